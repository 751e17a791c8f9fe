"""SQLAlchemy models for bridge jobs."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class JobStatus(str, Enum):
    """Status of a bridge job."""

    PENDING = "pending"                    # Created, not yet watching
    AWAITING_DEPOSIT = "awaiting_deposit"  # Watching source chain for the user's deposit
    PROCESSING = "processing"              # Deposit seen, bridging and paying out
    COMPLETED = "completed"                # Paid out on the destination chain
    FAILED = "failed"                      # Terminal failure, see error_message


# Forward-only state machine
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    JobStatus.PENDING.value: frozenset({JobStatus.AWAITING_DEPOSIT.value}),
    JobStatus.AWAITING_DEPOSIT.value: frozenset(
        {JobStatus.PROCESSING.value, JobStatus.FAILED.value}
    ),
    JobStatus.PROCESSING.value: frozenset({JobStatus.COMPLETED.value, JobStatus.FAILED.value}),
    JobStatus.COMPLETED.value: frozenset(),
    JobStatus.FAILED.value: frozenset(),
}

TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED.value, JobStatus.FAILED.value})

# Set at most once, in this order, never cleared
TX_FIELDS = (
    "deposit_tx_hash",
    "approve_tx_hash",
    "burn_tx_hash",
    "attestation",
    "mint_tx_hash",
    "payout_tx_hash",
)

IMMUTABLE_FIELDS = (
    "id",
    "user_source_address",
    "user_dest_address",
    "amount",
    "from_chain",
    "to_chain",
    "created_at",
)


class BridgeJob(Base):
    """One managed cross-chain transfer and its progress."""

    __tablename__ = "bridge_jobs"
    __table_args__ = (Index("ix_bridge_jobs_status", "status"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_source_address: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    user_dest_address: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[str] = mapped_column(String(40), nullable=False)  # human units, e.g. "10.5"
    from_chain: Mapped[str] = mapped_column(String(40), nullable=False)
    to_chain: Mapped[str] = mapped_column(String(40), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=JobStatus.PENDING.value, nullable=False
    )

    deposit_tx_hash: Mapped[Optional[str]] = mapped_column(
        String(80), nullable=True, unique=True
    )
    approve_tx_hash: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    burn_tx_hash: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    attestation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    mint_tx_hash: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    payout_tx_hash: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Source-chain block the deposit watcher started from
    deposit_scan_block: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def is_terminal(self) -> bool:
        """Check if the job has finished (completed or failed)."""
        return self.status in TERMINAL_STATUSES


class BridgeJobEvent(Base):
    """Append-only audit record of job transitions."""

    __tablename__ = "bridge_job_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(
        ForeignKey("bridge_jobs.id"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    event_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

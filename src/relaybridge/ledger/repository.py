"""Repository for bridge job persistence.

``update_job`` is where the job invariants live: partial updates merge into
the stored row, status only moves forward, transaction-hash fields are
append-only and terminal jobs are frozen. Violations raise instead of being
silently dropped.
"""

import json
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from relaybridge.ledger.models import (
    ALLOWED_TRANSITIONS,
    IMMUTABLE_FIELDS,
    TX_FIELDS,
    BridgeJob,
    BridgeJobEvent,
    JobStatus,
)

_SET_ONCE_FIELDS = TX_FIELDS + ("deposit_scan_block",)
_MUTABLE_FIELDS = frozenset(_SET_ONCE_FIELDS + ("status", "error_message"))
_COMPLETION_FIELDS = ("deposit_tx_hash", "burn_tx_hash", "mint_tx_hash", "payout_tx_hash")


class JobNotFoundError(LookupError):
    """Raised when a job id does not exist."""

    pass


class JobUpdateError(ValueError):
    """Raised when an update would break a job invariant."""

    pass


class InvalidTransitionError(JobUpdateError):
    """Raised for a backward or skipping status transition."""

    pass


class FieldOverwriteError(JobUpdateError):
    """Raised when an append-only field would be overwritten."""

    pass


class ImmutableFieldError(JobUpdateError):
    """Raised when a creation-time field would be changed."""

    pass


class JobRepository:
    """Repository for all bridge job database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Job operations
    async def create_job(
        self,
        job_id: str,
        user_source_address: str,
        user_dest_address: str,
        amount: str,
        from_chain: str,
        to_chain: str,
    ) -> BridgeJob:
        """Create a new job in the pending state."""
        job = BridgeJob(
            id=job_id,
            user_source_address=user_source_address,
            user_dest_address=user_dest_address,
            amount=amount,
            from_chain=from_chain,
            to_chain=to_chain,
            status=JobStatus.PENDING.value,
        )
        self.session.add(job)
        await self.session.flush()
        self._add_event(job.id, "created", {"status": job.status})
        await self.session.flush()
        await self.session.refresh(job)
        return job

    async def get_job(self, job_id: str) -> Optional[BridgeJob]:
        """Get job by ID."""
        stmt = select(BridgeJob).where(BridgeJob.id == job_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def update_job(self, job_id: str, **changes: Any) -> BridgeJob:
        """Merge a partial update into a job.

        Fields passed as None are treated as omitted: an update never nulls
        a stored value.

        Raises:
            JobNotFoundError: If the job does not exist
            JobUpdateError: If the update would break a job invariant
        """
        job = await self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")

        changes = {k: v for k, v in changes.items() if v is not None}
        for field in changes:
            if field in IMMUTABLE_FIELDS:
                raise ImmutableFieldError(f"{field} cannot be changed after creation")
            if field not in _MUTABLE_FIELDS:
                raise JobUpdateError(f"Unknown job field: {field}")

        applied: dict[str, Any] = {}

        old_status = job.status
        new_status = old_status
        if "status" in changes:
            new_status = JobStatus(changes.pop("status")).value
            if new_status != old_status:
                if new_status not in ALLOWED_TRANSITIONS[old_status]:
                    raise InvalidTransitionError(
                        f"Job {job_id}: cannot move from {old_status} to {new_status}"
                    )
                applied["status"] = new_status

        for field in _SET_ONCE_FIELDS:
            if field not in changes:
                continue
            value = changes[field]
            current = getattr(job, field)
            if current is None:
                applied[field] = value
            elif current != value:
                raise FieldOverwriteError(
                    f"Job {job_id}: {field} is already set to {current}"
                )

        if "error_message" in changes:
            if new_status != JobStatus.FAILED.value:
                raise JobUpdateError("error_message can only be set when the job fails")
            if job.error_message is None:
                applied["error_message"] = str(changes["error_message"])

        if not applied:
            return job

        if job.is_terminal:
            raise InvalidTransitionError(f"Job {job_id} is {old_status}; no further updates")

        merged = {field: getattr(job, field) for field in _COMPLETION_FIELDS}
        merged.update({k: v for k, v in applied.items() if k in merged})
        if new_status == JobStatus.COMPLETED.value:
            missing = [field for field, value in merged.items() if value is None]
            if missing:
                raise JobUpdateError(
                    f"Job {job_id} cannot complete without {', '.join(missing)}"
                )
        if new_status == JobStatus.FAILED.value:
            if not (applied.get("error_message") or job.error_message):
                raise JobUpdateError(f"Job {job_id} cannot fail without an error message")

        for field, value in applied.items():
            setattr(job, field, value)

        if "status" in applied:
            fields = {k: v for k, v in applied.items() if k != "status"}
            self._add_event(
                job.id, "status_changed", {"from": old_status, "to": new_status, **fields}
            )
        else:
            self._add_event(job.id, "fields_updated", applied)

        await self.session.flush()
        await self.session.refresh(job)
        return job

    async def get_jobs_by_status(self, statuses: Iterable[str]) -> list[BridgeJob]:
        """Get jobs in any of the given statuses, oldest first."""
        values = [JobStatus(s).value for s in statuses]
        stmt = (
            select(BridgeJob)
            .where(BridgeJob.status.in_(values))
            .order_by(BridgeJob.created_at, BridgeJob.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_job_by_deposit_tx(self, tx_hash: str) -> Optional[BridgeJob]:
        """Find the job that claimed a deposit transaction."""
        stmt = select(BridgeJob).where(BridgeJob.deposit_tx_hash == tx_hash)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_stranded_jobs(self) -> list[BridgeJob]:
        """Get failed jobs that burned the deposit but never paid the user.

        Covers both jobs whose mint never happened (funds await a mint with
        the attestation) and jobs minted to the relay without a payout.
        """
        stmt = (
            select(BridgeJob)
            .where(
                BridgeJob.status == JobStatus.FAILED.value,
                BridgeJob.burn_tx_hash.is_not(None),
                BridgeJob.payout_tx_hash.is_(None),
            )
            .order_by(BridgeJob.created_at, BridgeJob.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_unconfirmed_payout_jobs(self) -> list[BridgeJob]:
        """Get failed jobs whose payout was broadcast but never confirmed."""
        stmt = (
            select(BridgeJob)
            .where(
                BridgeJob.status == JobStatus.FAILED.value,
                BridgeJob.payout_tx_hash.is_not(None),
            )
            .order_by(BridgeJob.created_at, BridgeJob.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # Event operations
    async def get_events(self, job_id: str) -> list[BridgeJobEvent]:
        """Get all events for a job, oldest first."""
        stmt = (
            select(BridgeJobEvent)
            .where(BridgeJobEvent.job_id == job_id)
            .order_by(BridgeJobEvent.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    def _add_event(self, job_id: str, event_type: str, data: dict) -> None:
        """Queue an event in the current transaction."""
        self.session.add(
            BridgeJobEvent(
                job_id=job_id,
                event_type=event_type,
                event_data=json.dumps(data, default=str),
            )
        )

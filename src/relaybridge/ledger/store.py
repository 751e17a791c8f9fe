"""Job store: one committed transaction per call.

The orchestrator talks to storage only through this class. Each call opens
its own session, so concurrent jobs never share a transaction; updates for
the same job id are serialized with a per-job lock while different ids
proceed independently.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from relaybridge.ledger.database import get_session_factory
from relaybridge.ledger.models import BridgeJob, BridgeJobEvent, JobStatus
from relaybridge.ledger.repository import JobRepository
from relaybridge.utils.locks import keyed_lock

logger = logging.getLogger(__name__)

UNFINISHED_STATUSES = (
    JobStatus.PENDING.value,
    JobStatus.AWAITING_DEPOSIT.value,
    JobStatus.PROCESSING.value,
)


class JobStore:
    """Durable storage for bridge jobs."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        """Initialize store.

        Args:
            session_factory: Session maker to use; defaults to the application
                database
        """
        self._session_factory = session_factory

    @asynccontextmanager
    async def _repo(self) -> AsyncGenerator[JobRepository, None]:
        factory = self._session_factory or get_session_factory()
        async with factory() as session:
            try:
                yield JobRepository(session)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create(
        self,
        job_id: str,
        user_source_address: str,
        user_dest_address: str,
        amount: str,
        from_chain: str,
        to_chain: str,
    ) -> BridgeJob:
        """Persist a new pending job."""
        async with self._repo() as repo:
            job = await repo.create_job(
                job_id=job_id,
                user_source_address=user_source_address,
                user_dest_address=user_dest_address,
                amount=amount,
                from_chain=from_chain,
                to_chain=to_chain,
            )
        logger.info(f"Job {job_id} created: {amount} {from_chain} -> {to_chain}")
        return job

    async def get(self, job_id: str) -> Optional[BridgeJob]:
        """Get a job, or None if unknown."""
        async with self._repo() as repo:
            return await repo.get_job(job_id)

    async def update(self, job_id: str, **changes) -> BridgeJob:
        """Merge a partial update into a job.

        Raises:
            JobNotFoundError: If the job does not exist
            JobUpdateError: If the update would break a job invariant
        """
        async with keyed_lock("job", job_id, operation="update"):
            async with self._repo() as repo:
                job = await repo.update_job(job_id, **changes)

        if "status" in changes:
            logger.info(f"Job {job_id} is now {job.status}")
        return job

    async def list_by_status(self, statuses: Iterable[str]) -> list[BridgeJob]:
        """List jobs in any of the given statuses."""
        async with self._repo() as repo:
            return await repo.get_jobs_by_status(statuses)

    async def list_unfinished(self) -> list[BridgeJob]:
        """List jobs that have not reached a terminal status."""
        return await self.list_by_status(UNFINISHED_STATUSES)

    async def list_stranded(self) -> list[BridgeJob]:
        """List failed jobs that burned the deposit but never paid the user."""
        async with self._repo() as repo:
            return await repo.get_stranded_jobs()

    async def list_unconfirmed_payouts(self) -> list[BridgeJob]:
        """List failed jobs whose payout was broadcast but never confirmed."""
        async with self._repo() as repo:
            return await repo.get_unconfirmed_payout_jobs()

    async def find_by_deposit_tx(self, tx_hash: str) -> Optional[BridgeJob]:
        """Find the job that claimed a deposit transaction."""
        async with self._repo() as repo:
            return await repo.get_job_by_deposit_tx(tx_hash)

    async def events(self, job_id: str) -> list[BridgeJobEvent]:
        """List a job's audit events, oldest first."""
        async with self._repo() as repo:
            return await repo.get_events(job_id)

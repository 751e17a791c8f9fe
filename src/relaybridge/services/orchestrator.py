"""Bridge job orchestrator.

Owns the job state machine:

    pending -> awaiting_deposit -> processing -> completed
                      |                 |
                      +-----> failed <--+

Each job runs in its own asyncio task. Everything that goes wrong inside a
job's pipeline is converted into a ``failed`` transition for that job only;
nothing propagates to the service or to other jobs.
"""

import asyncio
import logging
import re
import uuid
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from relaybridge.bridge.base import BridgeError
from relaybridge.bridge.driver import BridgeDriver
from relaybridge.chain.client import ChainClientError, TransferEvent
from relaybridge.chains import CHAINS, parse_units, require_chain
from relaybridge.ledger.models import BridgeJob, BridgeJobEvent, JobStatus
from relaybridge.ledger.repository import JobNotFoundError
from relaybridge.ledger.store import JobStore
from relaybridge.payout.base import PayoutBackend, PayoutError
from relaybridge.scanner.watcher import DepositTimeoutError, DepositWatcher
from relaybridge.signing.base import SignerBackend

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_AMOUNT_RE = re.compile(r"^\d+(\.\d+)?$")

INTERRUPTED_MESSAGE = (
    "Job interrupted while processing; bridge or payout may already be on-chain, "
    "manual reconciliation required"
)


class TransferValidationError(ValueError):
    """Raised when a transfer request is rejected before a job is created."""

    pass


class ChainUnavailableError(Exception):
    """Raised when the source chain cannot be reached to accept a transfer."""

    pass


class BridgeOrchestrator:
    """Creates bridge jobs and drives each one to a terminal state."""

    def __init__(
        self,
        store: JobStore,
        watchers: Mapping[str, DepositWatcher],
        bridge_driver: BridgeDriver,
        payout_executor: PayoutBackend,
        signer: SignerBackend,
        enabled_chains: Optional[Iterable[str]] = None,
        token_decimals: int = 6,
        drain_timeout: float = 60.0,
    ):
        """Initialize orchestrator.

        Args:
            store: Durable job store
            watchers: Deposit watcher per source chain identifier
            bridge_driver: Driver for the bridge engine
            payout_executor: Destination-chain payout backend
            signer: Relay identity used for bridging and payout
            enabled_chains: Chains accepted on submission (defaults to the
                chains that have a watcher)
            token_decimals: Decimal count used to validate amounts
            drain_timeout: Seconds ``shutdown`` waits for processing jobs
        """
        self.store = store
        self.watchers = dict(watchers)
        self.bridge_driver = bridge_driver
        self.payout_executor = payout_executor
        self.signer = signer
        self.enabled_chains = (
            set(enabled_chains) if enabled_chains is not None else set(self.watchers)
        )
        self.token_decimals = token_decimals
        self.drain_timeout = drain_timeout

        self._tasks: dict[str, asyncio.Task] = {}
        self._processing: set[str] = set()
        self._claims: dict[str, str] = {}  # deposit tx hash -> job id
        self._claim_lock = asyncio.Lock()

    @property
    def relay_address(self) -> str:
        """Public address users deposit to."""
        return self.signer.address

    @property
    def active_jobs(self) -> list[str]:
        """Ids of jobs whose pipeline is currently running."""
        return list(self._tasks)

    # ======================
    # Submission
    # ======================

    def validate_request(
        self,
        user_source_address: str,
        user_dest_address: str,
        amount: str,
        from_chain: str,
        to_chain: str,
    ) -> None:
        """Check a transfer request.

        Raises:
            TransferValidationError: describing the first problem found
        """
        for label, address in (
            ("userSourceAddress", user_source_address),
            ("userDestAddress", user_dest_address),
        ):
            if not _ADDRESS_RE.match(address or ""):
                raise TransferValidationError(f"{label} is not a valid address: {address}")

        if not _AMOUNT_RE.match(amount or ""):
            raise TransferValidationError(f"amount must be a positive decimal: {amount}")
        try:
            base_units = parse_units(amount, self.token_decimals)
        except ValueError as e:
            raise TransferValidationError(str(e)) from e
        if base_units <= 0:
            raise TransferValidationError("amount must be greater than zero")

        for label, chain in (("fromChain", from_chain), ("toChain", to_chain)):
            if chain not in CHAINS:
                raise TransferValidationError(f"{label} is not a supported chain: {chain}")
            if chain not in self.enabled_chains:
                raise TransferValidationError(f"{label} is not enabled: {chain}")
        if from_chain not in self.watchers:
            raise TransferValidationError(f"Deposits are not watched on {from_chain}")
        if from_chain == to_chain:
            raise TransferValidationError("fromChain and toChain must be different")

    async def submit(
        self,
        user_source_address: str,
        user_dest_address: str,
        amount: str,
        from_chain: str,
        to_chain: str,
    ) -> BridgeJob:
        """Create a job and start its pipeline.

        The source chain height is read before anything is persisted and
        stored as the job's deposit low-water mark, so a deposit sent right
        after this call returns is always inside the scanned range.

        Returns once the job is persisted in ``awaiting_deposit``; the
        deposit, bridge and payout happen in the background.

        Raises:
            TransferValidationError: If the request is invalid (nothing is persisted)
            ChainUnavailableError: If the source chain height cannot be read
                (nothing is persisted)
        """
        amount = (amount or "").strip()
        self.validate_request(user_source_address, user_dest_address, amount, from_chain, to_chain)

        try:
            scan_block = await self.watchers[from_chain].current_block()
        except ChainClientError as e:
            raise ChainUnavailableError(f"{from_chain} is unreachable: {e}") from e

        job_id = str(uuid.uuid4())
        await self.store.create(
            job_id=job_id,
            user_source_address=user_source_address,
            user_dest_address=user_dest_address,
            amount=amount,
            from_chain=from_chain,
            to_chain=to_chain,
        )
        job = await self.store.update(
            job_id,
            status=JobStatus.AWAITING_DEPOSIT,
            deposit_scan_block=scan_block,
        )

        self._start(job_id)
        return job

    async def get(self, job_id: str) -> Optional[BridgeJob]:
        """Get a job's last persisted state."""
        return await self.store.get(job_id)

    async def events(self, job_id: str) -> list[BridgeJobEvent]:
        """Get a job's audit events.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        if await self.store.get(job_id) is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return await self.store.events(job_id)

    # ======================
    # Task management
    # ======================

    def _start(self, job_id: str) -> None:
        if job_id in self._tasks:
            return
        task = asyncio.create_task(self._guarded(job_id), name=f"bridge-job-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._forget(job_id))

    def _forget(self, job_id: str) -> None:
        self._tasks.pop(job_id, None)
        self._processing.discard(job_id)
        for tx_hash in [tx for tx, owner in self._claims.items() if owner == job_id]:
            del self._claims[tx_hash]

    async def join(self, job_id: str, timeout: Optional[float] = None) -> Optional[BridgeJob]:
        """Wait for a job's pipeline to finish and return the job."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout)
        return await self.store.get(job_id)

    async def resume_unfinished(self) -> int:
        """Re-enter the state machine for jobs left unfinished by a restart.

        ``processing`` jobs are not re-driven: a bridge or payout may have
        been broadcast before the restart, so they are failed for manual
        reconciliation.

        Returns:
            Number of job pipelines restarted
        """
        resumed = 0
        for job in await self.store.list_unfinished():
            if job.id in self._tasks:
                continue

            if job.status == JobStatus.PROCESSING.value:
                logger.warning(f"Job {job.id} was interrupted while processing")
                await self._fail(job.id, INTERRUPTED_MESSAGE)
                continue

            logger.info(f"Resuming job {job.id} ({job.status})")
            self._start(job.id)
            resumed += 1

        if resumed:
            logger.info(f"Resumed {resumed} unfinished job(s)")
        return resumed

    async def shutdown(self, drain_timeout: Optional[float] = None) -> None:
        """Stop job pipelines.

        Jobs still waiting for a deposit are cancelled and resume on restart.
        Jobs already processing get ``drain_timeout`` seconds to finish their
        bridge and payout; any still running after that are cancelled and
        will be failed as interrupted on restart.
        """
        timeout = self.drain_timeout if drain_timeout is None else drain_timeout
        waiting = [t for job_id, t in self._tasks.items() if job_id not in self._processing]
        draining = [t for job_id, t in self._tasks.items() if job_id in self._processing]

        for task in waiting:
            task.cancel()

        if draining:
            logger.info(f"Waiting up to {timeout:g}s for {len(draining)} processing job(s)")
            _, unfinished = await asyncio.wait(draining, timeout=timeout)
            for task in unfinished:
                logger.warning(f"{task.get_name()} still processing after {timeout:g}s, cancelling")
                task.cancel()

        tasks = waiting + draining
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Stopped {len(tasks)} job pipeline(s)")

    # ======================
    # Job pipeline
    # ======================

    async def _guarded(self, job_id: str) -> None:
        """Run one job, converting any error into a failed job."""
        try:
            await self._run_job(job_id)
        except asyncio.CancelledError:
            logger.info(f"Job {job_id} pipeline cancelled")
            raise
        except Exception as e:
            logger.exception(f"Job {job_id} pipeline error: {e}")
            await self._fail(job_id, str(e) or type(e).__name__)

    async def _run_job(self, job_id: str) -> None:
        job = await self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")

        if job.status == JobStatus.PENDING.value:
            job = await self.store.update(job_id, status=JobStatus.AWAITING_DEPOSIT)

        if job.status == JobStatus.AWAITING_DEPOSIT.value and job.deposit_tx_hash:
            self._processing.add(job_id)
            job = await self.store.update(job_id, status=JobStatus.PROCESSING)
        elif job.status == JobStatus.AWAITING_DEPOSIT.value:
            try:
                deposit = await self._wait_for_deposit(job)
            except DepositTimeoutError as e:
                logger.warning(f"Job {job_id}: {e}")
                await self._fail(job_id, str(e))
                return

            # From here on shutdown drains the job instead of cancelling it
            self._processing.add(job_id)
            job = await self.store.update(
                job_id,
                status=JobStatus.PROCESSING,
                deposit_tx_hash=deposit.tx_hash,
            )
            # The persisted hash now guards the deposit
            self._claims.pop(deposit.tx_hash, None)

        if job.status == JobStatus.PROCESSING.value:
            self._processing.add(job_id)
            await self._bridge_and_payout(job)

    async def _wait_for_deposit(self, job: BridgeJob) -> TransferEvent:
        watcher = self.watchers.get(job.from_chain)
        if watcher is None:
            raise TransferValidationError(f"Deposits are not watched on {job.from_chain}")

        async def claim(event: TransferEvent) -> bool:
            return await self._claim_deposit(job.id, event.tx_hash)

        async def record_low_water(block: int) -> None:
            await self.store.update(job.id, deposit_scan_block=block)

        return await watcher.wait_for_deposit(
            job.user_source_address,
            job.amount,
            claim=claim,
            start_block=job.deposit_scan_block,
            on_low_water=record_low_water,
        )

    async def _claim_deposit(self, job_id: str, tx_hash: str) -> bool:
        """Give a deposit transaction to at most one job."""
        async with self._claim_lock:
            owner = self._claims.get(tx_hash)
            if owner is not None:
                return owner == job_id

            existing = await self.store.find_by_deposit_tx(tx_hash)
            if existing is not None:
                return existing.id == job_id

            self._claims[tx_hash] = job_id
            return True

    async def _bridge_and_payout(self, job: BridgeJob) -> None:
        source = require_chain(job.from_chain)
        destination = require_chain(job.to_chain)

        try:
            outcome = await self.bridge_driver.run_bridge(
                self.signer, source, destination, Decimal(job.amount)
            )
        except BridgeError as e:
            logger.error(f"Job {job.id} bridge failed: {e} (completed steps: {e.job_fields})")
            await self._fail(job.id, str(e), **e.job_fields)
            return

        # Persist bridge results before moving any more funds
        job = await self.store.update(
            job.id,
            approve_tx_hash=outcome.approve_tx_hash,
            burn_tx_hash=outcome.burn_tx_hash,
            attestation=outcome.attestation,
            mint_tx_hash=outcome.mint_tx_hash,
        )
        logger.info(f"Job {job.id} bridged: burn {job.burn_tx_hash}, mint {job.mint_tx_hash}")

        try:
            payout_tx_hash = await self.payout_executor.payout(
                self.signer, job.to_chain, job.user_dest_address, job.amount
            )
        except PayoutError as e:
            if e.tx_hash:
                logger.error(
                    f"Job {job.id} payout {e.tx_hash} unconfirmed on {job.to_chain}: {e}"
                )
                await self._fail(
                    job.id,
                    f"{e} (check on-chain before paying out again)",
                    payout_tx_hash=e.tx_hash,
                )
                return
            logger.error(
                f"Job {job.id} payout failed, {job.amount} USDC held by relay on {job.to_chain}: {e}"
            )
            await self._fail(job.id, f"{e} (bridged funds held by relay on {job.to_chain})")
            return

        await self.store.update(
            job.id,
            status=JobStatus.COMPLETED,
            payout_tx_hash=payout_tx_hash,
        )
        logger.info(f"Job {job.id} completed: payout {payout_tx_hash}")

    async def _fail(self, job_id: str, message: str, **fields: str) -> None:
        """Record a terminal failure. Storage errors are logged, not raised.

        ``fields`` are transaction references recorded along with the
        failure. If they cannot be stored the failure is still recorded.
        """
        try:
            await self.store.update(
                job_id, status=JobStatus.FAILED, error_message=message, **fields
            )
            return
        except Exception as e:
            if not fields:
                logger.error(f"Could not record failure for job {job_id} ({message}): {e}")
                return
            logger.error(f"Could not record {fields} for failed job {job_id}: {e}")

        try:
            await self.store.update(job_id, status=JobStatus.FAILED, error_message=message)
        except Exception as e:
            logger.error(f"Could not record failure for job {job_id} ({message}): {e}")

"""Deposit watcher for the relay wallet.

Polls a source chain block by block for a USDC ``Transfer`` from the user's
address to the relay address. Only blocks at or after the low-water mark are
scanned, so older deposits that were already swept for a previous job are
never matched. Callers normally take the mark with ``current_block`` when
the job is accepted; a watch started without one anchors at the first
height it reads.
"""

import asyncio
import logging
import math
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Union

from relaybridge.chain.client import ChainClient, ChainClientError, TransferEvent
from relaybridge.chains import parse_units

logger = logging.getLogger(__name__)

ClaimFn = Callable[[TransferEvent], Awaitable[bool]]
LowWaterFn = Callable[[int], Awaitable[None]]


class DepositTimeoutError(Exception):
    """Raised when no matching deposit arrives within the time budget."""

    pass


class DepositWatcher:
    """Waits for a user's deposit to the relay address on one chain."""

    def __init__(
        self,
        client: ChainClient,
        token_address: str,
        service_address: str,
        token_decimals: int = 6,
        poll_interval: float = 5.0,
        timeout: float = 600.0,
    ):
        """Initialize watcher.

        Args:
            client: Chain client for the source chain
            token_address: USDC contract on the source chain
            service_address: Relay wallet address deposits must be sent to
            token_decimals: Fixed decimal count of the token
            poll_interval: Seconds between polling attempts
            timeout: Total seconds to wait before giving up
        """
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.client = client
        self.token_address = token_address
        self.service_address = service_address
        self.token_decimals = token_decimals
        self.poll_interval = poll_interval
        self.timeout = timeout

    @property
    def chain_name(self) -> str:
        return self.client.chain.name

    def max_attempts(self, timeout: Optional[float] = None) -> int:
        """Number of polling attempts that fit in the time budget."""
        budget = self.timeout if timeout is None else timeout
        return max(1, math.ceil(budget / self.poll_interval))

    async def current_block(self, attempts: int = 3) -> int:
        """Read the chain height, retrying transient RPC failures.

        Raises:
            ChainClientError: If every attempt fails
        """
        for attempt in range(1, attempts + 1):
            try:
                return await self.client.get_block_number()
            except ChainClientError as e:
                if attempt == attempts:
                    raise
                logger.warning(
                    f"Block height read on {self.chain_name} failed "
                    f"({attempt}/{attempts}), retrying: {e}"
                )
                await asyncio.sleep(self.poll_interval)
        raise ValueError("attempts must be positive")

    async def wait_for_deposit(
        self,
        from_address: str,
        amount: Union[str, Decimal],
        claim: Optional[ClaimFn] = None,
        start_block: Optional[int] = None,
        on_low_water: Optional[LowWaterFn] = None,
        timeout: Optional[float] = None,
    ) -> TransferEvent:
        """Block until a deposit of at least ``amount`` arrives.

        Args:
            from_address: User's source address
            amount: Required amount in human units
            claim: Called for each candidate transfer; returning False skips it
                (e.g. the transaction already belongs to another job)
            start_block: Resume scanning from this block instead of the tip
            on_low_water: Called once with the first block that will be scanned
            timeout: Override the watcher's time budget

        Returns:
            The first matching transfer event

        Raises:
            DepositTimeoutError: If no match arrives in time
        """
        required = parse_units(amount, self.token_decimals)
        attempts = self.max_attempts(timeout)
        last_checked = start_block - 1 if start_block is not None else None

        logger.info(
            f"Waiting for {amount} USDC on {self.chain_name} from {from_address} "
            f"to {self.service_address} ({attempts} attempts)"
        )

        for attempt in range(1, attempts + 1):
            try:
                current_block = await self.client.get_block_number()

                if last_checked is None:
                    last_checked = max(current_block - 1, -1)
                    if on_low_water is not None:
                        await on_low_water(last_checked + 1)

                # One block per query keeps each log filter small
                while last_checked < current_block:
                    block = last_checked + 1
                    match = await self._scan_block(block, from_address, required, claim)
                    if match is not None:
                        logger.info(
                            f"Deposit detected on {self.chain_name} in tx {match.tx_hash} "
                            f"(block {block}, value {match.value})"
                        )
                        return match
                    last_checked = block

            except ChainClientError as e:
                logger.warning(f"Error while polling {self.chain_name} for deposit: {e}")

            logger.debug(
                f"Attempt {attempt}/{attempts}: no deposit from {from_address} yet, waiting..."
            )
            await asyncio.sleep(self.poll_interval)

        budget = self.timeout if timeout is None else timeout
        raise DepositTimeoutError(
            f"Deposit timeout: no transfer of {amount} USDC from {from_address} "
            f"on {self.chain_name} within {budget:g}s"
        )

    async def _scan_block(
        self,
        block: int,
        from_address: str,
        required: int,
        claim: Optional[ClaimFn],
    ) -> Optional[TransferEvent]:
        """Return the first qualifying transfer in a block, if any."""
        events = await self.client.get_transfer_events(
            self.token_address,
            from_address,
            self.service_address,
            from_block=block,
            to_block=block,
        )

        for event in events:
            # Partial deposits are not accumulated
            if event.value < required:
                logger.debug(
                    f"Ignoring transfer {event.tx_hash}: {event.value} < required {required}"
                )
                continue
            if claim is not None and not await claim(event):
                logger.info(f"Skipping transfer {event.tx_hash}: already claimed by another job")
                continue
            return event
        return None

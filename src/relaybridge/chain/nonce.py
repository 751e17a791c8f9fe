"""Per-chain nonce allocation for the relay identity.

Every job pipeline sends from the same relay address, so two payouts on the
same chain could otherwise read the same pending nonce and collide. The
manager hands out nonces under a keyed lock that stays held until the
transaction is broadcast. ``hold`` takes the same locks for work that sends
from the relay address outside this process's own signing path, such as a
bridge engine run.
"""

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncGenerator, Iterable

from relaybridge.chain.client import ChainClient
from relaybridge.utils.locks import keyed_lock

logger = logging.getLogger(__name__)


class NonceManager:
    """Serialises nonce allocation per (chain id, address)."""

    def __init__(self, lock_timeout: float = 120.0):
        self.lock_timeout = lock_timeout
        self._next_nonce: dict[str, int] = {}

    @staticmethod
    def _key(chain_id: int, address: str) -> str:
        return f"{chain_id}:{address.lower()}"

    @asynccontextmanager
    async def reserve(self, client: ChainClient, address: str) -> AsyncGenerator[int, None]:
        """Reserve the next nonce until the block exits.

        The nonce is consumed when the block exits normally. If it raises,
        the cached value is dropped and the next reservation re-reads the
        chain's pending count.

        Example:
            async with nonce_manager.reserve(client, signer.address) as nonce:
                ...sign and broadcast...
        """
        key = self._key(client.chain.chain_id, address)
        async with keyed_lock("nonce", key, timeout=self.lock_timeout, operation="send"):
            chain_nonce = await client.get_transaction_count(address, "pending")

            # Use the higher of chain nonce or cached nonce
            nonce = max(chain_nonce, self._next_nonce.get(key, 0))

            try:
                yield nonce
            except BaseException:
                self._next_nonce.pop(key, None)
                raise

            self._next_nonce[key] = nonce + 1
            logger.debug(f"Nonce {nonce} used for {address} on chain {client.chain.chain_id}")

    @asynccontextmanager
    async def hold(self, chain_ids: Iterable[int], address: str) -> AsyncGenerator[None, None]:
        """Keep nonce allocation for ``address`` closed on several chains.

        Locks are taken in key order so two holders never deadlock. The
        cached nonces are dropped on exit because transactions sent while
        holding are not counted here.
        """
        keys = sorted({self._key(chain_id, address) for chain_id in chain_ids})
        async with AsyncExitStack() as stack:
            for key in keys:
                await stack.enter_async_context(
                    keyed_lock("nonce", key, timeout=self.lock_timeout, operation="hold")
                )
            try:
                yield
            finally:
                for key in keys:
                    self._next_nonce.pop(key, None)

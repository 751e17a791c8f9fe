"""Ethereum JSON-RPC client for one chain.

Each client is bound to a single chain and RPC endpoint at construction
time. All failures (HTTP status, transport, JSON-RPC error object) surface
as ``ChainClientError`` so callers can tell a flaky node from a logic error.
"""

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from web3 import Web3

from relaybridge.chains import ChainConfig

logger = logging.getLogger(__name__)

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


class ChainClientError(Exception):
    """Raised when an RPC call fails."""

    pass


@dataclass
class TransferEvent:
    """A decoded ERC-20 Transfer log."""

    tx_hash: str
    block_number: int
    log_index: int
    token: str
    from_address: str
    to_address: str
    value: int  # base units


def address_topic(address: str) -> str:
    """Left-pad an address into a 32-byte log topic."""
    return "0x" + address.lower().replace("0x", "").rjust(64, "0")


def topic_address(topic: str) -> str:
    """Extract the checksummed address from a 32-byte log topic."""
    return Web3.to_checksum_address("0x" + topic[-40:])


class ChainClient:
    """JSON-RPC client for an EVM chain."""

    def __init__(
        self,
        chain: ChainConfig,
        rpc_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            chain: Chain this client talks to
            rpc_url: RPC endpoint (defaults to the chain's public RPC)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.chain = chain
        self.rpc_url = rpc_url or chain.rpc_url
        self.timeout = timeout
        self._transport = transport
        self._ids = itertools.count(1)

    def __repr__(self) -> str:
        return f"ChainClient(chain={self.chain.name})"

    async def _rpc(self, method: str, params: list) -> Any:
        """Perform one JSON-RPC call and return its result."""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.rpc_url, json=payload)
        except httpx.HTTPError as e:
            raise ChainClientError(f"{self.chain.name} {method} failed: {e}") from e

        if response.status_code != 200:
            raise ChainClientError(
                f"{self.chain.name} {method} failed: HTTP {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ChainClientError(f"{self.chain.name} {method} returned invalid JSON") from e

        if data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ChainClientError(f"{self.chain.name} {method} error: {message}")

        if "result" not in data:
            raise ChainClientError(f"{self.chain.name} {method} returned no result")

        return data["result"]

    def _quantity(self, method: str, value: Any) -> int:
        """Decode a hex quantity from an RPC result."""
        try:
            return int(value, 16)
        except (TypeError, ValueError) as e:
            raise ChainClientError(
                f"{self.chain.name} {method} returned a malformed quantity: {value!r}"
            ) from e

    async def get_block_number(self) -> int:
        """Get current block height."""
        return self._quantity("eth_blockNumber", await self._rpc("eth_blockNumber", []))

    async def get_transfer_events(
        self,
        token: str,
        from_address: Optional[str],
        to_address: Optional[str],
        from_block: int,
        to_block: int,
    ) -> list[TransferEvent]:
        """Get decoded Transfer events for a token in an inclusive block range.

        Args:
            token: ERC-20 contract address
            from_address: Only transfers from this address (None = any)
            to_address: Only transfers to this address (None = any)
            from_block: First block (inclusive)
            to_block: Last block (inclusive)
        """
        topics = [
            TRANSFER_TOPIC,
            address_topic(from_address) if from_address else None,
            address_topic(to_address) if to_address else None,
        ]
        logs = await self._rpc(
            "eth_getLogs",
            [
                {
                    "address": token,
                    "topics": topics,
                    "fromBlock": hex(from_block),
                    "toBlock": hex(to_block),
                }
            ],
        )

        if logs is None:
            return []
        if not isinstance(logs, list):
            raise ChainClientError(f"{self.chain.name} eth_getLogs returned {type(logs).__name__}")

        events = []
        for log in logs:
            try:
                event = self._decode_transfer(log, token)
            except (AttributeError, IndexError, KeyError, TypeError, ValueError) as e:
                raise ChainClientError(
                    f"{self.chain.name} eth_getLogs returned a malformed log: {e!r}"
                ) from e
            if event is not None:
                events.append(event)
        return events

    @staticmethod
    def _decode_transfer(log: dict, token: str) -> Optional[TransferEvent]:
        if log.get("removed"):
            return None
        log_topics = log.get("topics") or []
        if len(log_topics) < 3 or log_topics[0].lower() != TRANSFER_TOPIC:
            return None
        data = log.get("data") or "0x0"
        return TransferEvent(
            tx_hash=log["transactionHash"],
            block_number=int(log["blockNumber"], 16),
            log_index=int(log.get("logIndex") or "0x0", 16),
            token=log.get("address", token),
            from_address=topic_address(log_topics[1]),
            to_address=topic_address(log_topics[2]),
            value=int(data, 16) if data != "0x" else 0,
        )

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        """Get transaction count (nonce) for address."""
        method = "eth_getTransactionCount"
        return self._quantity(method, await self._rpc(method, [address, block]))

    async def get_gas_price(self) -> int:
        """Get current gas price in wei."""
        return self._quantity("eth_gasPrice", await self._rpc("eth_gasPrice", []))

    async def estimate_gas(self, tx: dict) -> int:
        """Estimate gas for a call."""
        return self._quantity("eth_estimateGas", await self._rpc("eth_estimateGas", [tx]))

    async def send_raw_transaction(self, raw_tx: str) -> str:
        """Broadcast a signed transaction and return its hash."""
        if not raw_tx.startswith("0x"):
            raw_tx = f"0x{raw_tx}"
        tx_hash = await self._rpc("eth_sendRawTransaction", [raw_tx])
        if not isinstance(tx_hash, str):
            raise ChainClientError(
                f"{self.chain.name} eth_sendRawTransaction returned no transaction hash"
            )
        return tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict]:
        """Get a transaction receipt, or None while pending."""
        receipt = await self._rpc("eth_getTransactionReceipt", [tx_hash])
        if receipt is not None and not isinstance(receipt, dict):
            raise ChainClientError(
                f"{self.chain.name} eth_getTransactionReceipt returned {type(receipt).__name__}"
            )
        return receipt

    async def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: float = 120.0,
        poll_interval: float = 2.0,
    ) -> dict:
        """Wait until a transaction is mined.

        Raises:
            ChainClientError: If no receipt appears within the timeout
        """
        deadline = time.monotonic() + timeout
        while True:
            try:
                receipt = await self.get_transaction_receipt(tx_hash)
                if receipt is not None:
                    return receipt
            except ChainClientError as e:
                logger.warning(f"Receipt lookup for {tx_hash} failed, retrying: {e}")

            if time.monotonic() >= deadline:
                raise ChainClientError(
                    f"Transaction {tx_hash} not mined on {self.chain.name} within {timeout}s"
                )
            await asyncio.sleep(poll_interval)

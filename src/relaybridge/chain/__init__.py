"""Chain access: JSON-RPC client, nonce management and transaction sending."""

from relaybridge.chain.client import ChainClient, ChainClientError, TransferEvent
from relaybridge.chain.nonce import NonceManager
from relaybridge.chain.sender import TransactionFailedError, TransactionSender

__all__ = [
    "ChainClient",
    "ChainClientError",
    "TransferEvent",
    "NonceManager",
    "TransactionSender",
    "TransactionFailedError",
]

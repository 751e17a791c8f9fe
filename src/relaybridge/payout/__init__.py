"""Destination-chain payout."""

from relaybridge.payout.base import PayoutBackend, PayoutError
from relaybridge.payout.dry_run import SimulatedPayoutExecutor
from relaybridge.payout.executor import PayoutExecutor, encode_transfer

__all__ = [
    "PayoutBackend",
    "PayoutError",
    "PayoutExecutor",
    "SimulatedPayoutExecutor",
    "encode_transfer",
]

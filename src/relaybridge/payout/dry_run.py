"""Simulated payout for dry-run mode."""

import logging
import secrets
from decimal import Decimal
from typing import Union

from relaybridge.payout.base import PayoutBackend
from relaybridge.signing.base import SignerBackend

logger = logging.getLogger(__name__)


class SimulatedPayoutExecutor(PayoutBackend):
    """Records payouts instead of sending them."""

    def __init__(self):
        self.payouts: list[tuple[str, str, str]] = []

    async def payout(
        self,
        signer: SignerBackend,
        chain: str,
        to_address: str,
        amount: Union[str, Decimal],
    ) -> str:
        tx_hash = "0x" + secrets.token_hex(32)
        self.payouts.append((chain, to_address, str(amount)))
        logger.info(
            f"[DRY RUN] Payout {amount} USDC from {signer.address} to {to_address} "
            f"on {chain}: {tx_hash}"
        )
        return tx_hash

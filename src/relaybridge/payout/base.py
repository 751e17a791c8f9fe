"""Payout backend interface."""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, Union

from relaybridge.signing.base import SignerBackend


class PayoutError(Exception):
    """Raised when the payout transfer fails.

    ``tx_hash`` is set when the transfer was broadcast but its outcome is
    unknown, so it may still be mined.
    """

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message)


class PayoutBackend(ABC):
    """Abstract base class for payout backends."""

    @abstractmethod
    async def payout(
        self,
        signer: SignerBackend,
        chain: str,
        to_address: str,
        amount: Union[str, Decimal],
    ) -> str:
        """Send ``amount`` USDC to ``to_address`` on ``chain``.

        Returns:
            Payout transaction hash

        Raises:
            PayoutError: If the transfer cannot be sent or reverted
        """
        pass

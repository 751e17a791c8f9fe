"""Base interface for relay transaction signing.

Signing flow:
1. Build unsigned transaction (nonce, gas, chain id)
2. Submit to signer
3. Signer returns the raw signed transaction (never the private key)
4. Broadcast signed transaction
"""

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class SigningError(Exception):
    """Exception raised when signing fails."""

    pass


class SignerBackend(ABC):
    """Abstract base class for signing backends.

    Implementations should NEVER expose raw private keys. The relay identity
    may live in process memory or behind a custodial wallet API.
    """

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksummed address of the signing identity."""
        pass

    @abstractmethod
    async def sign_transaction(self, tx: dict) -> str:
        """Sign a transaction.

        Args:
            tx: Transaction fields (chainId, nonce, to, data, value, gas, gasPrice)

        Returns:
            Raw signed transaction as 0x-prefixed hex

        Raises:
            SigningError: If signing fails
        """
        pass

    async def health_check(self) -> bool:
        """Check if the signing backend is available."""
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(address={self.address})"

"""Local signing backend.

Uses an in-memory private key for the relay wallet. Suitable for
development, testnets and small hot-wallet balances.

WARNING: The private key lives in process memory. Put a custodial signer
behind SignerBackend for production with significant funds.
"""

import logging

from eth_account import Account

from relaybridge.signing.base import SignerBackend, SigningError

logger = logging.getLogger(__name__)


class LocalSigner(SignerBackend):
    """Signing backend using an in-memory private key."""

    def __init__(self, private_key: str):
        """Initialize signer.

        Args:
            private_key: Hex private key, with or without 0x prefix

        Raises:
            SigningError: If the key is malformed
        """
        key = private_key.strip()
        if not key.startswith("0x"):
            key = f"0x{key}"
        try:
            self._account = Account.from_key(key)
        except (ValueError, TypeError) as e:
            raise SigningError(f"Invalid relay private key: {e}") from e

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_transaction(self, tx: dict) -> str:
        """Sign a transaction with the local key."""
        try:
            signed = self._account.sign_transaction(tx)
        except Exception as e:
            logger.error(f"Local signing failed: {e}")
            raise SigningError(f"Local signing failed: {e}") from e
        return "0x" + bytes(signed.raw_transaction).hex()

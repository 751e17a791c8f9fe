"""Signer factory.

Creates the relay signer from configuration. One instance is shared by all
job pipelines so every transaction comes from the same identity.
"""

import logging
from typing import Optional

from relaybridge.config import get_settings
from relaybridge.signing.base import SignerBackend, SigningError

logger = logging.getLogger(__name__)

_signer_instance: Optional[SignerBackend] = None


def get_signer() -> SignerBackend:
    """Get the configured relay signer (singleton).

    Raises:
        SigningError: If no relay key is configured
    """
    global _signer_instance

    if _signer_instance is not None:
        return _signer_instance

    settings = get_settings()
    if not settings.relay_private_key:
        raise SigningError("RELAY_PRIVATE_KEY is not configured")

    from relaybridge.signing.local import LocalSigner

    _signer_instance = LocalSigner(settings.relay_private_key)
    logger.info(f"Relay signer initialized: {_signer_instance.address}")
    return _signer_instance


def reset_signer():
    """Reset the signer instance (for testing)."""
    global _signer_instance
    _signer_instance = None

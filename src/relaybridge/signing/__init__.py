"""Transaction signing for the relay identity.

- SignerBackend: capability interface (address + sign_transaction)
- LocalSigner: private key held in process memory
"""

from relaybridge.signing.base import SignerBackend, SigningError
from relaybridge.signing.factory import get_signer
from relaybridge.signing.local import LocalSigner

__all__ = [
    "SignerBackend",
    "SigningError",
    "LocalSigner",
    "get_signer",
]

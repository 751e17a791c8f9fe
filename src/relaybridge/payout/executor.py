"""Payout of bridged USDC from the relay wallet to the user."""

import logging
from decimal import Decimal
from typing import Mapping, Union

from eth_abi import encode
from web3 import Web3

from relaybridge.chain.client import ChainClient, ChainClientError
from relaybridge.chain.nonce import NonceManager
from relaybridge.chain.sender import (
    TransactionFailedError,
    TransactionSender,
    TransactionUnconfirmedError,
)
from relaybridge.chains import parse_units
from relaybridge.payout.base import PayoutBackend, PayoutError
from relaybridge.signing.base import SignerBackend, SigningError
from relaybridge.utils.locks import LockTimeoutError

logger = logging.getLogger(__name__)

TRANSFER_SELECTOR = bytes(Web3.keccak(text="transfer(address,uint256)"))[:4]


def encode_transfer(to_address: str, value: int) -> str:
    """ABI-encode an ERC-20 ``transfer(to, value)`` call."""
    args = encode(["address", "uint256"], [Web3.to_checksum_address(to_address), value])
    return "0x" + (TRANSFER_SELECTOR + args).hex()


class PayoutExecutor(PayoutBackend):
    """Sends USDC from the relay wallet on the destination chain."""

    def __init__(
        self,
        clients: Mapping[str, ChainClient],
        token_addresses: Mapping[str, str],
        nonce_manager: NonceManager,
        confirmation_timeout: float = 120.0,
    ):
        """Initialize executor.

        Args:
            clients: Chain client per chain identifier
            token_addresses: USDC contract per chain identifier
            nonce_manager: Shared nonce allocator for the relay identity
            confirmation_timeout: Seconds to wait for the payout receipt
        """
        self.clients = clients
        self.token_addresses = token_addresses
        self.nonce_manager = nonce_manager
        self.confirmation_timeout = confirmation_timeout

    async def payout(
        self,
        signer: SignerBackend,
        chain: str,
        to_address: str,
        amount: Union[str, Decimal],
    ) -> str:
        """Transfer ``amount`` USDC to ``to_address`` and wait for the receipt.

        Returns:
            Payout transaction hash

        Raises:
            PayoutError: If the transfer cannot be sent or reverted
        """
        client = self.clients.get(chain)
        token = self.token_addresses.get(chain)
        if client is None or token is None:
            raise PayoutError(f"No payout route configured for {chain}")

        value = parse_units(amount, client.chain.usdc_decimals)
        data = encode_transfer(to_address, value)
        sender = TransactionSender(client, signer, self.nonce_manager)

        logger.info(f"Paying out {amount} USDC to {to_address} on {chain}")

        try:
            tx_hash = await sender.send_and_wait(
                token,
                data=data,
                timeout=self.confirmation_timeout,
            )
        except TransactionFailedError as e:
            raise PayoutError(f"payout transaction {e.tx_hash} reverted") from e
        except TransactionUnconfirmedError as e:
            raise PayoutError(
                f"payout transaction {e.tx_hash} unconfirmed: {e}", tx_hash=e.tx_hash
            ) from e
        except (ChainClientError, LockTimeoutError, SigningError) as e:
            raise PayoutError(f"payout failed: {e}") from e

        logger.info(f"Payout confirmed on {chain}: {tx_hash}")
        return tx_hash

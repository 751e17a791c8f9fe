"""Build, sign and broadcast relay transactions on one chain."""

import logging
from typing import Optional

from web3 import Web3

from relaybridge.chain.client import ChainClient, ChainClientError
from relaybridge.chain.nonce import NonceManager
from relaybridge.signing.base import SignerBackend

logger = logging.getLogger(__name__)

# Headroom on top of eth_estimateGas
GAS_MULTIPLIER_NUM = 12
GAS_MULTIPLIER_DEN = 10


class TransactionFailedError(Exception):
    """Raised when a mined transaction reverted."""

    def __init__(self, tx_hash: str, message: str):
        self.tx_hash = tx_hash
        super().__init__(message)


class TransactionUnconfirmedError(Exception):
    """Raised when a broadcast transaction has no receipt in time.

    The transaction may still be mined later.
    """

    def __init__(self, tx_hash: str, message: str):
        self.tx_hash = tx_hash
        super().__init__(message)


class TransactionSender:
    """Sends transactions from a signer through a chain client."""

    def __init__(
        self,
        client: ChainClient,
        signer: SignerBackend,
        nonce_manager: NonceManager,
    ):
        self.client = client
        self.signer = signer
        self.nonce_manager = nonce_manager

    async def send(
        self,
        to: str,
        data: str = "0x",
        value: int = 0,
        gas: Optional[int] = None,
    ) -> str:
        """Sign and broadcast a legacy transaction.

        Args:
            to: Recipient or contract address
            data: Hex calldata
            value: Native value in wei
            gas: Gas limit (estimated when omitted)

        Returns:
            Transaction hash
        """
        sender = self.signer.address
        to = Web3.to_checksum_address(to)

        if gas is None:
            estimate = await self.client.estimate_gas(
                {"from": sender, "to": to, "data": data, "value": hex(value)}
            )
            gas = estimate * GAS_MULTIPLIER_NUM // GAS_MULTIPLIER_DEN
        gas_price = await self.client.get_gas_price()

        async with self.nonce_manager.reserve(self.client, sender) as nonce:
            tx = {
                "chainId": self.client.chain.chain_id,
                "nonce": nonce,
                "to": to,
                "data": data,
                "value": value,
                "gas": gas,
                "gasPrice": gas_price,
            }
            raw_tx = await self.signer.sign_transaction(tx)
            tx_hash = await self.client.send_raw_transaction(raw_tx)

        logger.info(
            f"Broadcast tx {tx_hash} on {self.client.chain.name} (nonce {nonce}, to {to})"
        )
        return tx_hash

    async def send_and_wait(
        self,
        to: str,
        data: str = "0x",
        value: int = 0,
        gas: Optional[int] = None,
        timeout: float = 120.0,
        poll_interval: float = 2.0,
    ) -> str:
        """Send a transaction and wait for a successful receipt.

        Raises:
            TransactionFailedError: If the transaction reverted
            TransactionUnconfirmedError: If it was broadcast but no receipt
                arrived within the timeout
        """
        tx_hash = await self.send(to, data=data, value=value, gas=gas)
        try:
            receipt = await self.client.wait_for_receipt(
                tx_hash, timeout=timeout, poll_interval=poll_interval
            )
        except ChainClientError as e:
            raise TransactionUnconfirmedError(tx_hash, str(e)) from e

        status = receipt.get("status")
        if status is not None and status not in ("0x1", 1):
            raise TransactionFailedError(tx_hash, f"Transaction {tx_hash} reverted")
        return tx_hash

"""Tests for relay signing, nonce allocation, sending and payout."""

import asyncio

import pytest

from fakes import TEST_PRIVATE_KEY, TEST_RELAY_ADDRESS, USER_B, FakeChainClient
from relaybridge.chain.client import ChainClientError
from relaybridge.chain.nonce import NonceManager
from relaybridge.chain.sender import (
    TransactionFailedError,
    TransactionSender,
    TransactionUnconfirmedError,
)
from relaybridge.payout.base import PayoutError
from relaybridge.payout.dry_run import SimulatedPayoutExecutor
from relaybridge.payout.executor import PayoutExecutor, encode_transfer
from relaybridge.signing.base import SignerBackend, SigningError
from relaybridge.signing.local import LocalSigner
from relaybridge.utils.locks import LockTimeoutError


class RecordingSigner(SignerBackend):
    """Signer that returns a fake raw tx and keeps what it signed."""

    def __init__(self):
        self.signed: list[dict] = []

    @property
    def address(self) -> str:
        return TEST_RELAY_ADDRESS

    async def sign_transaction(self, tx: dict) -> str:
        self.signed.append(tx)
        await asyncio.sleep(0)
        return "0x" + "00" * 10


class TestLocalSigner:
    def test_address_from_key(self):
        assert LocalSigner(TEST_PRIVATE_KEY).address == TEST_RELAY_ADDRESS

    def test_key_without_prefix(self):
        assert LocalSigner(TEST_PRIVATE_KEY[2:]).address == TEST_RELAY_ADDRESS

    def test_invalid_key(self):
        with pytest.raises(SigningError):
            LocalSigner("0x1234")

    @pytest.mark.asyncio
    async def test_sign_transaction(self):
        signer = LocalSigner(TEST_PRIVATE_KEY)

        raw = await signer.sign_transaction(
            {
                "chainId": 80002,
                "nonce": 0,
                "to": USER_B,
                "value": 1,
                "gas": 21000,
                "gasPrice": 1_000_000_000,
                "data": "0x",
            }
        )

        assert raw.startswith("0x")
        assert len(raw) > 100


class TestNonceManager:
    """Tests for per-chain nonce allocation."""

    @pytest.mark.asyncio
    async def test_sequential_nonces_without_chain_catching_up(self):
        """Test that the cache hands out increasing nonces before the node sees them."""
        client = FakeChainClient()
        manager = NonceManager()

        async with manager.reserve(client, TEST_RELAY_ADDRESS) as first:
            pass
        async with manager.reserve(client, TEST_RELAY_ADDRESS) as second:
            pass

        assert (first, second) == (0, 1)

    @pytest.mark.asyncio
    async def test_concurrent_reservations_unique(self):
        client = FakeChainClient()
        manager = NonceManager()
        nonces = []

        async def reserve():
            async with manager.reserve(client, TEST_RELAY_ADDRESS) as nonce:
                await asyncio.sleep(0.01)
                nonces.append(nonce)

        await asyncio.gather(*(reserve() for _ in range(5)))

        assert sorted(nonces) == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_failure_drops_cache(self):
        """Test that a failed broadcast makes the next reservation re-read the chain."""
        client = FakeChainClient()
        manager = NonceManager()

        async with manager.reserve(client, TEST_RELAY_ADDRESS):
            pass
        with pytest.raises(RuntimeError):
            async with manager.reserve(client, TEST_RELAY_ADDRESS):
                raise RuntimeError("broadcast failed")

        async with manager.reserve(client, TEST_RELAY_ADDRESS) as nonce:
            pass

        assert nonce == client.nonce == 0

    @pytest.mark.asyncio
    async def test_chain_nonce_wins_when_higher(self):
        client = FakeChainClient()
        manager = NonceManager()
        client.nonce = 7

        async with manager.reserve(client, TEST_RELAY_ADDRESS) as nonce:
            pass

        assert nonce == 7

    @pytest.mark.asyncio
    async def test_hold_blocks_reservations(self):
        """Test that a held chain hands out no nonces until released."""
        client = FakeChainClient("Polygon_Amoy_Testnet")
        manager = NonceManager(lock_timeout=0.05)

        async with manager.hold([client.chain.chain_id], TEST_RELAY_ADDRESS):
            with pytest.raises(LockTimeoutError):
                async with manager.reserve(client, TEST_RELAY_ADDRESS):
                    pass

        async with manager.reserve(client, TEST_RELAY_ADDRESS) as nonce:
            pass
        assert nonce == 0

    @pytest.mark.asyncio
    async def test_hold_leaves_other_chains_open(self):
        arc = FakeChainClient("Arc_Testnet")
        amoy = FakeChainClient("Polygon_Amoy_Testnet")
        manager = NonceManager(lock_timeout=0.05)

        async with manager.hold([arc.chain.chain_id], TEST_RELAY_ADDRESS):
            async with manager.reserve(amoy, TEST_RELAY_ADDRESS) as nonce:
                pass

        assert nonce == 0

    @pytest.mark.asyncio
    async def test_hold_drops_cached_nonce(self):
        """Test that the first reservation after a hold re-reads the chain count."""
        client = FakeChainClient("Polygon_Amoy_Testnet")
        manager = NonceManager()

        for _ in range(2):
            async with manager.reserve(client, TEST_RELAY_ADDRESS):
                pass
        async with manager.hold([client.chain.chain_id], TEST_RELAY_ADDRESS):
            pass
        async with manager.reserve(client, TEST_RELAY_ADDRESS) as nonce:
            pass

        assert nonce == client.nonce == 0


class TestTransactionSender:
    @pytest.mark.asyncio
    async def test_gas_headroom_and_fields(self):
        client = FakeChainClient("Polygon_Amoy_Testnet")
        signer = RecordingSigner()
        sender = TransactionSender(client, signer, NonceManager())

        await sender.send(USER_B, data="0xdeadbeef")

        tx = signer.signed[0]
        assert tx["gas"] == 60_000
        assert tx["chainId"] == 80002
        assert tx["nonce"] == 0
        assert tx["gasPrice"] == 1_000_000_000
        assert len(client.sent) == 1

    @pytest.mark.asyncio
    async def test_reverted_transaction(self):
        client = FakeChainClient()
        client.receipt_status = "0x0"
        sender = TransactionSender(client, RecordingSigner(), NonceManager())

        with pytest.raises(TransactionFailedError):
            await sender.send_and_wait(USER_B)

    @pytest.mark.asyncio
    async def test_integer_failure_status(self):
        client = FakeChainClient()
        client.receipt_status = 0
        sender = TransactionSender(client, RecordingSigner(), NonceManager())

        with pytest.raises(TransactionFailedError):
            await sender.send_and_wait(USER_B)

    @pytest.mark.asyncio
    async def test_missing_receipt_keeps_hash(self):
        client = FakeChainClient()
        client.receipt_error = ChainClientError("Timeout waiting for receipt")
        sender = TransactionSender(client, RecordingSigner(), NonceManager())

        with pytest.raises(TransactionUnconfirmedError) as exc_info:
            await sender.send_and_wait(USER_B)

        assert exc_info.value.tx_hash.startswith("0x")
        assert len(client.sent) == 1


class TestPayoutExecutor:
    """Tests for the ERC-20 payout."""

    def test_encode_transfer(self):
        data = encode_transfer(USER_B, 10_000_000)

        assert data.startswith("0xa9059cbb")
        assert data[10:74] == USER_B.lower()[2:].rjust(64, "0")
        assert int(data[74:], 16) == 10_000_000

    @pytest.mark.asyncio
    async def test_payout_sends_transfer(self):
        client = FakeChainClient("Polygon_Amoy_Testnet")
        signer = RecordingSigner()
        executor = PayoutExecutor(
            {"Polygon_Amoy_Testnet": client},
            {"Polygon_Amoy_Testnet": client.chain.usdc_address},
            NonceManager(),
        )

        tx_hash = await executor.payout(signer, "Polygon_Amoy_Testnet", USER_B, "10.5")

        assert tx_hash.startswith("0x")
        tx = signer.signed[0]
        assert tx["to"].lower() == client.chain.usdc_address.lower()
        assert tx["data"] == encode_transfer(USER_B, 10_500_000)

    @pytest.mark.asyncio
    async def test_payout_with_local_signer(self):
        client = FakeChainClient("Polygon_Amoy_Testnet")
        executor = PayoutExecutor(
            {"Polygon_Amoy_Testnet": client},
            {"Polygon_Amoy_Testnet": client.chain.usdc_address},
            NonceManager(),
        )

        await executor.payout(LocalSigner(TEST_PRIVATE_KEY), "Polygon_Amoy_Testnet", USER_B, "1")

        assert client.sent[0].startswith("0x")

    @pytest.mark.asyncio
    async def test_payout_revert_raises(self):
        client = FakeChainClient("Polygon_Amoy_Testnet")
        client.receipt_status = "0x0"
        executor = PayoutExecutor(
            {"Polygon_Amoy_Testnet": client},
            {"Polygon_Amoy_Testnet": client.chain.usdc_address},
            NonceManager(),
        )

        with pytest.raises(PayoutError, match="reverted"):
            await executor.payout(RecordingSigner(), "Polygon_Amoy_Testnet", USER_B, "1")

    @pytest.mark.asyncio
    async def test_unconfirmed_payout_carries_hash(self):
        """Test that a broadcast payout without a receipt reports its hash."""
        client = FakeChainClient("Polygon_Amoy_Testnet")
        client.receipt_error = ChainClientError("Timeout waiting for receipt")
        executor = PayoutExecutor(
            {"Polygon_Amoy_Testnet": client},
            {"Polygon_Amoy_Testnet": client.chain.usdc_address},
            NonceManager(),
        )

        with pytest.raises(PayoutError, match="unconfirmed") as exc_info:
            await executor.payout(RecordingSigner(), "Polygon_Amoy_Testnet", USER_B, "1")

        assert exc_info.value.tx_hash is not None
        assert exc_info.value.tx_hash in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unsent_payout_has_no_hash(self):
        client = FakeChainClient("Polygon_Amoy_Testnet")
        client.failures_left = 1
        executor = PayoutExecutor(
            {"Polygon_Amoy_Testnet": client},
            {"Polygon_Amoy_Testnet": client.chain.usdc_address},
            NonceManager(),
        )

        with pytest.raises(PayoutError, match="payout failed") as exc_info:
            await executor.payout(RecordingSigner(), "Polygon_Amoy_Testnet", USER_B, "1")

        assert exc_info.value.tx_hash is None
        assert client.sent == []

    @pytest.mark.asyncio
    async def test_payout_unknown_chain(self):
        executor = PayoutExecutor({}, {}, NonceManager())

        with pytest.raises(PayoutError):
            await executor.payout(RecordingSigner(), "Base_Sepolia", USER_B, "1")

    @pytest.mark.asyncio
    async def test_simulated_payout(self):
        executor = SimulatedPayoutExecutor()

        tx_hash = await executor.payout(RecordingSigner(), "Base_Sepolia", USER_B, "3")

        assert len(tx_hash) == 66
        assert executor.payouts == [("Base_Sepolia", USER_B, "3")]

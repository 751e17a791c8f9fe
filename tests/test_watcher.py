"""Tests for the deposit watcher."""

import pytest

from fakes import TEST_RELAY_ADDRESS, USER_A, USER_B, FakeChainClient, make_watcher
from relaybridge.chain.client import ChainClientError
from relaybridge.scanner.watcher import DepositTimeoutError, DepositWatcher


class TestDepositThreshold:
    """Tests for the amount comparison."""

    @pytest.mark.asyncio
    async def test_one_unit_short_is_ignored(self, arc_client, signer):
        """Test that value = required - 1 never matches."""
        arc_client.add_transfer(USER_A, TEST_RELAY_ADDRESS, 9_999_999)
        watcher = make_watcher(arc_client, signer, timeout=0.05)

        with pytest.raises(DepositTimeoutError):
            await watcher.wait_for_deposit(USER_A, "10", start_block=100)

    @pytest.mark.asyncio
    async def test_exact_amount_matches(self, arc_client, signer):
        """Test that value = required matches."""
        event = arc_client.add_transfer(USER_A, TEST_RELAY_ADDRESS, 10_000_000)
        watcher = make_watcher(arc_client, signer)

        match = await watcher.wait_for_deposit(USER_A, "10", start_block=100)

        assert match.tx_hash == event.tx_hash

    @pytest.mark.asyncio
    async def test_larger_amount_matches(self, arc_client, signer):
        arc_client.add_transfer(USER_A, TEST_RELAY_ADDRESS, 25_000_000)
        watcher = make_watcher(arc_client, signer)

        match = await watcher.wait_for_deposit(USER_A, "10.5", start_block=100)

        assert match.value == 25_000_000

    @pytest.mark.asyncio
    async def test_partial_deposits_not_accumulated(self, arc_client, signer):
        """Test that two transfers adding up to the amount do not match."""
        arc_client.add_transfer(USER_A, TEST_RELAY_ADDRESS, 6_000_000)
        arc_client.add_transfer(USER_A, TEST_RELAY_ADDRESS, 4_000_000)
        watcher = make_watcher(arc_client, signer, timeout=0.05)

        with pytest.raises(DepositTimeoutError):
            await watcher.wait_for_deposit(USER_A, "10", start_block=100)

    @pytest.mark.asyncio
    async def test_other_sender_ignored(self, arc_client, signer):
        arc_client.add_transfer(USER_B, TEST_RELAY_ADDRESS, 10_000_000)
        watcher = make_watcher(arc_client, signer, timeout=0.05)

        with pytest.raises(DepositTimeoutError):
            await watcher.wait_for_deposit(USER_A, "10", start_block=100)


class TestDepositScanning:
    """Tests for block scanning behaviour."""

    @pytest.mark.asyncio
    async def test_old_deposit_before_low_water_ignored(self, arc_client, signer):
        """Test that transfers before the starting height are never matched."""
        arc_client.add_transfer(USER_A, TEST_RELAY_ADDRESS, 10_000_000, block=50)
        watcher = make_watcher(arc_client, signer, timeout=0.05)

        with pytest.raises(DepositTimeoutError):
            await watcher.wait_for_deposit(USER_A, "10")

        assert min(arc_client.block_queries) == 100

    @pytest.mark.asyncio
    async def test_low_water_reported_once(self, arc_client, signer):
        marks = []

        async def on_low_water(block):
            marks.append(block)

        arc_client.add_transfer(USER_A, TEST_RELAY_ADDRESS, 10_000_000, block=100)
        watcher = make_watcher(arc_client, signer)

        await watcher.wait_for_deposit(USER_A, "10", on_low_water=on_low_water)

        assert marks == [100]

    @pytest.mark.asyncio
    async def test_resume_scans_from_start_block(self, arc_client, signer):
        """Test that a resumed watch covers blocks mined while it was down."""
        event = arc_client.add_transfer(USER_A, TEST_RELAY_ADDRESS, 10_000_000, block=60)
        watcher = make_watcher(arc_client, signer)

        match = await watcher.wait_for_deposit(USER_A, "10", start_block=55)

        assert match.tx_hash == event.tx_hash
        assert arc_client.block_queries[:6] == [55, 56, 57, 58, 59, 60]

    @pytest.mark.asyncio
    async def test_each_block_scanned_once(self, arc_client, signer):
        watcher = make_watcher(arc_client, signer, timeout=0.05)

        with pytest.raises(DepositTimeoutError):
            await watcher.wait_for_deposit(USER_A, "10", start_block=98)

        assert arc_client.block_queries == [98, 99, 100]

    @pytest.mark.asyncio
    async def test_rpc_errors_are_retried(self, arc_client, signer):
        """Test that transient RPC failures do not abort the wait."""
        arc_client.failures_left = 3
        event = arc_client.add_transfer(USER_A, TEST_RELAY_ADDRESS, 10_000_000)
        watcher = make_watcher(arc_client, signer)

        match = await watcher.wait_for_deposit(USER_A, "10", start_block=100)

        assert match.tx_hash == event.tx_hash

    @pytest.mark.asyncio
    async def test_current_block_retries(self, arc_client, signer):
        arc_client.failures_left = 2
        watcher = make_watcher(arc_client, signer)

        assert await watcher.current_block() == 100

    @pytest.mark.asyncio
    async def test_current_block_gives_up(self, arc_client, signer):
        arc_client.failures_left = 3
        watcher = make_watcher(arc_client, signer)

        with pytest.raises(ChainClientError):
            await watcher.current_block()

    @pytest.mark.asyncio
    async def test_claimed_transfer_skipped(self, arc_client, signer):
        """Test that a transfer refused by the claim callback is passed over."""
        taken = arc_client.add_transfer(USER_A, TEST_RELAY_ADDRESS, 10_000_000)
        free = arc_client.add_transfer(USER_A, TEST_RELAY_ADDRESS, 10_000_000)

        async def claim(event):
            return event.tx_hash != taken.tx_hash

        watcher = make_watcher(arc_client, signer)
        match = await watcher.wait_for_deposit(USER_A, "10", claim=claim, start_block=100)

        assert match.tx_hash == free.tx_hash


class TestDepositTimeout:
    """Tests for the time budget."""

    def test_max_attempts(self, signer):
        watcher = DepositWatcher(FakeChainClient(), "0x" + "1" * 40, signer.address)

        assert watcher.max_attempts() == 120
        assert watcher.max_attempts(timeout=7) == 2

    def test_poll_interval_must_be_positive(self, signer):
        with pytest.raises(ValueError):
            DepositWatcher(FakeChainClient(), "0x" + "1" * 40, signer.address, poll_interval=0)

    @pytest.mark.asyncio
    async def test_timeout_message(self, arc_client, signer):
        watcher = make_watcher(arc_client, signer, timeout=0.03)

        with pytest.raises(DepositTimeoutError, match="Deposit timeout"):
            await watcher.wait_for_deposit(USER_A, "1")

    @pytest.mark.asyncio
    async def test_too_precise_amount_rejected(self, arc_client, signer):
        watcher = make_watcher(arc_client, signer)

        with pytest.raises(ValueError):
            await watcher.wait_for_deposit(USER_A, "1.0000001")

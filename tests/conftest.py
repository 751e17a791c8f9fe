"""Pytest configuration and fixtures."""

import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment
_TEST_DIR = tempfile.mkdtemp(prefix="relaybridge-test-")
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/app.db"
os.environ["DEBUG"] = "false"
os.environ["DRY_RUN"] = "true"
os.environ.pop("RELAY_PRIVATE_KEY", None)

from fakes import TEST_PRIVATE_KEY, FakeChainClient, RecordingPayout, make_watcher
from relaybridge.bridge.driver import BridgeDriver
from relaybridge.bridge.dry_run import SimulatedBridgeEngine
from relaybridge.ledger.models import Base
from relaybridge.ledger.store import JobStore
from relaybridge.services.orchestrator import BridgeOrchestrator
from relaybridge.signing.local import LocalSigner
from relaybridge.utils.locks import clear_locks


@pytest.fixture(autouse=True)
def reset_locks():
    """Locks are bound to the event loop of the test that created them."""
    clear_locks()
    yield
    clear_locks()


@pytest_asyncio.fixture
async def db_engine(tmp_path: Path):
    """Create a file-backed SQLite engine so every session sees the same data."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/jobs.db", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session_factory) -> JobStore:
    return JobStore(session_factory)


@pytest.fixture
def signer() -> LocalSigner:
    return LocalSigner(TEST_PRIVATE_KEY)


@pytest.fixture
def arc_client() -> FakeChainClient:
    return FakeChainClient("Arc_Testnet")


@pytest.fixture
def amoy_client() -> FakeChainClient:
    return FakeChainClient("Polygon_Amoy_Testnet")


@pytest.fixture
def bridge_engine() -> SimulatedBridgeEngine:
    return SimulatedBridgeEngine()


@pytest.fixture
def payout() -> RecordingPayout:
    return RecordingPayout()


@pytest_asyncio.fixture
async def orchestrator(store, signer, arc_client, amoy_client, bridge_engine, payout):
    """Orchestrator over fakes with a short deposit budget."""
    orch = BridgeOrchestrator(
        store=store,
        watchers={
            "Arc_Testnet": make_watcher(arc_client, signer),
            "Polygon_Amoy_Testnet": make_watcher(amoy_client, signer),
        },
        bridge_driver=BridgeDriver(bridge_engine),
        payout_executor=payout,
        signer=signer,
    )
    yield orch
    await orch.shutdown()

"""Wiring of the orchestrator from settings."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from relaybridge.bridge.driver import BridgeDriver
from relaybridge.bridge.factory import create_bridge_engine
from relaybridge.chain.client import ChainClient
from relaybridge.chain.nonce import NonceManager
from relaybridge.chains import require_chain
from relaybridge.config import Settings, get_settings
from relaybridge.ledger.store import JobStore
from relaybridge.payout.base import PayoutBackend
from relaybridge.payout.dry_run import SimulatedPayoutExecutor
from relaybridge.payout.executor import PayoutExecutor
from relaybridge.scanner.watcher import DepositWatcher
from relaybridge.services.orchestrator import BridgeOrchestrator
from relaybridge.signing.base import SignerBackend
from relaybridge.signing.factory import get_signer

logger = logging.getLogger(__name__)


def build_orchestrator(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    signer: Optional[SignerBackend] = None,
) -> BridgeOrchestrator:
    """Build a fully wired orchestrator.

    Raises:
        ConfigurationError: If the settings are not usable
    """
    settings = settings or get_settings()
    settings.validate_runtime()

    signer = signer or get_signer()
    # A payout may queue behind a full bridge run on the same chain
    nonce_manager = NonceManager(
        lock_timeout=settings.bridge_engine_timeout + settings.payout_confirmation_timeout
    )

    clients: dict[str, ChainClient] = {}
    tokens: dict[str, str] = {}
    watchers: dict[str, DepositWatcher] = {}

    for name in settings.chain_names:
        chain = require_chain(name)
        clients[name] = ChainClient(chain, rpc_url=settings.get_rpc_url(name))
        tokens[name] = settings.get_usdc_address(name)
        watchers[name] = DepositWatcher(
            clients[name],
            token_address=tokens[name],
            service_address=signer.address,
            token_decimals=chain.usdc_decimals,
            poll_interval=settings.deposit_poll_interval,
            timeout=settings.deposit_timeout_seconds,
        )

    payout_executor: PayoutBackend
    if settings.dry_run:
        logger.warning("DRY RUN: bridge and payout are simulated, no funds will be moved")
        payout_executor = SimulatedPayoutExecutor()
        bridge_driver = BridgeDriver(create_bridge_engine(settings))
    else:
        bridge_driver = BridgeDriver(create_bridge_engine(settings), nonce_manager=nonce_manager)
        payout_executor = PayoutExecutor(
            clients,
            tokens,
            nonce_manager,
            confirmation_timeout=settings.payout_confirmation_timeout,
        )

    logger.info(f"Orchestrator ready for chains: {', '.join(settings.chain_names)}")
    return BridgeOrchestrator(
        store=JobStore(session_factory),
        watchers=watchers,
        bridge_driver=bridge_driver,
        payout_executor=payout_executor,
        signer=signer,
        enabled_chains=settings.chain_names,
        drain_timeout=settings.shutdown_drain_timeout,
    )

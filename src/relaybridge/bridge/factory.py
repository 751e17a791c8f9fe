"""Factory for the configured bridge engine."""

import logging
from typing import Optional

from relaybridge.bridge.base import BridgeEngine
from relaybridge.config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_bridge_engine(settings: Optional[Settings] = None) -> BridgeEngine:
    """Create the bridge engine for the current mode.

    Dry-run mode always gets the simulated engine. Otherwise an HTTP engine
    is required; ``validate_runtime`` guarantees its URL is set.
    """
    settings = settings or get_settings()

    if settings.dry_run:
        from relaybridge.bridge.dry_run import SimulatedBridgeEngine

        logger.info("Using simulated bridge engine (dry run)")
        return SimulatedBridgeEngine()

    from relaybridge.bridge.remote import HttpBridgeEngine

    logger.info(f"Using bridge engine at {settings.bridge_engine_url}")
    return HttpBridgeEngine(
        base_url=settings.bridge_engine_url,
        api_key=settings.bridge_engine_api_key or None,
        timeout=settings.bridge_engine_timeout,
    )

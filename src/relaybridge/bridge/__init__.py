"""Bridge engines and the driver that runs them."""

from relaybridge.bridge.base import (
    BridgeEngine,
    BridgeError,
    BridgeResult,
    BridgeStep,
    BridgeStepError,
    StepName,
    StepState,
)
from relaybridge.bridge.driver import BridgeDriver, BridgeOutcome
from relaybridge.bridge.factory import create_bridge_engine

__all__ = [
    "BridgeEngine",
    "BridgeError",
    "BridgeResult",
    "BridgeStep",
    "BridgeStepError",
    "StepName",
    "StepState",
    "BridgeDriver",
    "BridgeOutcome",
    "create_bridge_engine",
]

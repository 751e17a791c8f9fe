"""Job orchestration services."""

from relaybridge.services.factory import build_orchestrator
from relaybridge.services.orchestrator import BridgeOrchestrator, TransferValidationError

__all__ = ["BridgeOrchestrator", "TransferValidationError", "build_orchestrator"]

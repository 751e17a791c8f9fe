"""Bridge engine capability.

The burn/attest/mint protocol itself is executed by an external engine. This
module only describes the contract: given a signer for the relay identity,
a source chain, a destination chain and an amount, the engine runs its
fixed step sequence and reports each step's outcome.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from relaybridge.chains import ChainConfig
from relaybridge.signing.base import SignerBackend

logger = logging.getLogger(__name__)


class StepName(str, Enum):
    """Bridge steps in execution order."""

    APPROVE = "approve"
    BURN = "burn"
    FETCH_ATTESTATION = "fetchAttestation"
    MINT = "mint"


class StepState(str, Enum):
    """State of a single step or of the whole bridge run."""

    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
    NOOP = "noop"  # Step not needed (e.g. allowance already sufficient)


STEP_ORDER = (StepName.APPROVE, StepName.BURN, StepName.FETCH_ATTESTATION, StepName.MINT)


@dataclass
class BridgeStep:
    """Outcome of one bridge step."""

    name: str
    state: str
    tx_hash: Optional[str] = None
    data: Optional[Any] = None
    error_message: Optional[str] = None


@dataclass
class BridgeResult:
    """Outcome of a full bridge run."""

    state: str
    steps: list[BridgeStep] = field(default_factory=list)
    source_chain: Optional[str] = None
    destination_chain: Optional[str] = None
    amount: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == StepState.SUCCESS.value

    def step(self, name: str) -> Optional[BridgeStep]:
        """Get a step by name."""
        for step in self.steps:
            if step.name == name:
                return step
        return None

    def failed_step(self) -> Optional[BridgeStep]:
        """Get the first step that ended in error."""
        for step in self.steps:
            if step.state == StepState.ERROR.value:
                return step
        return None

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/storage."""
        return asdict(self)


class BridgeError(Exception):
    """Raised when a bridge run fails or cannot be interpreted.

    ``job_fields`` holds the transaction hashes of steps that did go through
    before the failure, keyed by job field name.
    """

    def __init__(self, message: str, job_fields: Optional[dict[str, str]] = None):
        self.job_fields = dict(job_fields or {})
        super().__init__(message)


class BridgeStepError(BridgeError):
    """Raised when a named bridge step failed."""

    def __init__(self, step: str, reason: str, job_fields: Optional[dict[str, str]] = None):
        self.step = step
        self.reason = reason
        super().__init__(f"{step} step failed: {reason}", job_fields)


class BridgeEngine(ABC):
    """Abstract base class for bridge engines."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Engine name identifier."""
        pass

    @abstractmethod
    async def bridge(
        self,
        signer: SignerBackend,
        source: ChainConfig,
        destination: ChainConfig,
        amount: Decimal,
    ) -> BridgeResult:
        """
        Run approve -> burn -> fetchAttestation -> mint.

        Args:
            signer: Relay identity that owns the funds on both chains
            source: Chain to burn on
            destination: Chain to mint on
            amount: Amount in human units

        Returns:
            BridgeResult with one entry per executed step. A failing step
            is reported in the result, not raised.
        """
        pass

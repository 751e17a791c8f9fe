"""Bridge driver: runs the engine for one job and extracts step results."""

import json
import logging
from contextlib import nullcontext
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from relaybridge.bridge.base import (
    BridgeEngine,
    BridgeError,
    BridgeResult,
    BridgeStepError,
    StepName,
    StepState,
)
from relaybridge.chain.nonce import NonceManager
from relaybridge.chains import ChainConfig
from relaybridge.signing.base import SignerBackend
from relaybridge.utils.locks import LockTimeoutError

logger = logging.getLogger(__name__)

_TX_STEP_FIELDS = (
    (StepName.APPROVE, "approve_tx_hash"),
    (StepName.BURN, "burn_tx_hash"),
    (StepName.MINT, "mint_tx_hash"),
)


@dataclass
class BridgeOutcome:
    """Fields a successful bridge contributes to the job record."""

    approve_tx_hash: Optional[str]
    burn_tx_hash: str
    attestation: Optional[str]
    mint_tx_hash: str
    result: BridgeResult


def extract_attestation(data: Any) -> Optional[str]:
    """Get the attestation payload from fetchAttestation step data."""
    if data is None:
        return None
    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        value = data.get("attestation")
        if value is None:
            return None
        return value if isinstance(value, str) else json.dumps(value)
    return str(data)


def step_job_fields(result: BridgeResult) -> dict[str, str]:
    """Map the results of steps that did not fail to job field names."""
    fields = {}
    for step_name, field in _TX_STEP_FIELDS:
        step = result.step(step_name.value)
        if step is not None and step.tx_hash and step.state != StepState.ERROR.value:
            fields[field] = step.tx_hash

    step = result.step(StepName.FETCH_ATTESTATION.value)
    if step is not None and step.state == StepState.SUCCESS.value:
        attestation = extract_attestation(step.data)
        if attestation is not None:
            fields["attestation"] = attestation
    return fields


class BridgeDriver:
    """Drives a bridge engine through its steps. Never retries.

    With a ``nonce_manager`` the relay wallet's nonce locks on both chains
    are held for the whole run, so payouts on those chains wait instead of
    racing the engine's approve, burn and mint transactions.
    """

    def __init__(self, engine: BridgeEngine, nonce_manager: Optional[NonceManager] = None):
        self.engine = engine
        self.nonce_manager = nonce_manager

    def _relay_wallet(self, signer: SignerBackend, source: ChainConfig, destination: ChainConfig):
        if self.nonce_manager is None:
            return nullcontext()
        return self.nonce_manager.hold((source.chain_id, destination.chain_id), signer.address)

    async def run_bridge(
        self,
        signer: SignerBackend,
        source: ChainConfig,
        destination: ChainConfig,
        amount: Decimal,
    ) -> BridgeOutcome:
        """Run the bridge and return the step results.

        Raises:
            BridgeStepError: If the engine reports a failed step
            BridgeError: If the engine fails outright or reports success
                without the burn and mint transactions
        """
        logger.info(
            f"Starting {self.engine.name} bridge: {amount} USDC "
            f"{source.name} -> {destination.name}"
        )

        try:
            async with self._relay_wallet(signer, source, destination):
                result = await self.engine.bridge(signer, source, destination, amount)
        except BridgeError:
            raise
        except LockTimeoutError as e:
            raise BridgeError(f"relay wallet busy: {e}") from e
        except Exception as e:
            raise BridgeError(f"bridge engine error: {e}") from e

        logger.debug(f"Bridge result: {result.to_dict()}")
        fields = step_job_fields(result)

        if not result.succeeded:
            failed = result.failed_step()
            name = failed.name if failed else "unknown"
            reason = (failed.error_message if failed else None) or "Unknown error"
            raise BridgeStepError(name, reason, fields)

        if "burn_tx_hash" not in fields:
            raise BridgeError("bridge reported success without a burn transaction", fields)
        if "mint_tx_hash" not in fields:
            raise BridgeError("bridge reported success without a mint transaction", fields)

        return BridgeOutcome(
            approve_tx_hash=fields.get("approve_tx_hash"),
            burn_tx_hash=fields["burn_tx_hash"],
            attestation=fields.get("attestation"),
            mint_tx_hash=fields["mint_tx_hash"],
            result=result,
        )

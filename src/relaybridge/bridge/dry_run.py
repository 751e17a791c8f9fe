"""Simulated bridge engine for dry-run mode.

No transactions are sent. Every step reports a random transaction hash so
the rest of the pipeline can be exercised end to end.
"""

import asyncio
import logging
import secrets
from decimal import Decimal
from typing import Optional

from relaybridge.bridge.base import (
    STEP_ORDER,
    BridgeEngine,
    BridgeResult,
    BridgeStep,
    StepName,
    StepState,
)
from relaybridge.chains import ChainConfig
from relaybridge.signing.base import SignerBackend

logger = logging.getLogger(__name__)


def fake_tx_hash() -> str:
    return "0x" + secrets.token_hex(32)


class SimulatedBridgeEngine(BridgeEngine):
    """Bridge engine that pretends to burn and mint.

    Args:
        fail_step: Step name that should report an error (None = succeed)
        failure_reason: Error message for the failing step
        step_delay: Seconds to sleep per step
    """

    def __init__(
        self,
        fail_step: Optional[str] = None,
        failure_reason: str = "simulated failure",
        step_delay: float = 0.0,
    ):
        self.fail_step = fail_step
        self.failure_reason = failure_reason
        self.step_delay = step_delay
        self.calls: list[tuple[str, str, Decimal]] = []

    @property
    def name(self) -> str:
        return "simulated"

    async def bridge(
        self,
        signer: SignerBackend,
        source: ChainConfig,
        destination: ChainConfig,
        amount: Decimal,
    ) -> BridgeResult:
        self.calls.append((source.name, destination.name, amount))
        logger.info(
            f"[DRY RUN] Bridging {amount} USDC {source.name} -> {destination.name} "
            f"for {signer.address}"
        )

        steps = []
        for step_name in STEP_ORDER:
            if self.step_delay:
                await asyncio.sleep(self.step_delay)

            if step_name.value == self.fail_step:
                steps.append(
                    BridgeStep(
                        name=step_name.value,
                        state=StepState.ERROR.value,
                        error_message=self.failure_reason,
                    )
                )
                return BridgeResult(
                    state=StepState.ERROR.value,
                    steps=steps,
                    source_chain=source.name,
                    destination_chain=destination.name,
                    amount=str(amount),
                )

            if step_name == StepName.FETCH_ATTESTATION:
                steps.append(
                    BridgeStep(
                        name=step_name.value,
                        state=StepState.SUCCESS.value,
                        data={
                            "attestation": "0x" + secrets.token_hex(65),
                            "message": "0x" + secrets.token_hex(32),
                        },
                    )
                )
            else:
                steps.append(
                    BridgeStep(
                        name=step_name.value,
                        state=StepState.SUCCESS.value,
                        tx_hash=fake_tx_hash(),
                    )
                )

        return BridgeResult(
            state=StepState.SUCCESS.value,
            steps=steps,
            source_chain=source.name,
            destination_chain=destination.name,
            amount=str(amount),
        )

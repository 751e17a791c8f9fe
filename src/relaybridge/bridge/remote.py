"""HTTP client for an external bridge engine service.

The service holds its own adapter for the relay wallet and runs the
approve -> burn -> fetchAttestation -> mint sequence. A single call blocks
until the run finishes, so the timeout must cover attestation latency.
"""

import logging
from decimal import Decimal
from typing import Any, Optional

import httpx

from relaybridge.bridge.base import (
    BridgeEngine,
    BridgeError,
    BridgeResult,
    BridgeStep,
    StepState,
)
from relaybridge.chains import ChainConfig
from relaybridge.signing.base import SignerBackend

logger = logging.getLogger(__name__)


class HttpBridgeEngine(BridgeEngine):
    """Bridge engine reached over HTTP."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 900.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "http"

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def bridge(
        self,
        signer: SignerBackend,
        source: ChainConfig,
        destination: ChainConfig,
        amount: Decimal,
    ) -> BridgeResult:
        payload = {
            "from": {"chain": source.name, "address": signer.address},
            "to": {"chain": destination.name, "address": signer.address},
            "token": "USDC",
            "amount": str(amount),
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/bridge",
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            raise BridgeError(f"bridge engine unreachable: {e}") from e

        if response.status_code != 200:
            raise BridgeError(
                f"bridge engine returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise BridgeError("bridge engine returned invalid JSON") from e

        return parse_bridge_result(data, source, destination, amount)


def parse_bridge_result(
    data: dict[str, Any],
    source: ChainConfig,
    destination: ChainConfig,
    amount: Decimal,
) -> BridgeResult:
    """Build a BridgeResult from the engine's JSON response."""
    state = data.get("state")
    if state not in {s.value for s in StepState}:
        raise BridgeError(f"bridge engine returned unknown state: {state}")

    steps = []
    for raw in data.get("steps") or []:
        steps.append(
            BridgeStep(
                name=raw.get("name", "unknown"),
                state=raw.get("state", StepState.PENDING.value),
                tx_hash=raw.get("txHash"),
                data=raw.get("data"),
                error_message=_error_message(raw),
            )
        )

    return BridgeResult(
        state=state,
        steps=steps,
        source_chain=source.name,
        destination_chain=destination.name,
        amount=str(amount),
    )


def _error_message(raw: dict[str, Any]) -> Optional[str]:
    if raw.get("errorMessage"):
        return raw["errorMessage"]
    error = raw.get("error")
    if isinstance(error, dict):
        return error.get("message")
    return str(error) if error else None

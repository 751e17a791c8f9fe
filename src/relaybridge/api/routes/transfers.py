"""Transfer submission and status endpoints."""

import json
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from relaybridge.ledger.models import BridgeJobEvent, JobStatus
from relaybridge.ledger.repository import JobNotFoundError
from relaybridge.services.orchestrator import (
    BridgeOrchestrator,
    ChainUnavailableError,
    TransferValidationError,
)

router = APIRouter()


class CamelModel(BaseModel):
    """Model serialised with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class TransferRequest(CamelModel):
    """Body of a transfer submission."""

    user_source_address: str = Field(..., min_length=1, description="User's address on fromChain")
    user_dest_address: str = Field(..., min_length=1, description="User's address on toChain")
    amount: str = Field(..., min_length=1, description="USDC amount in human units, e.g. \"10.5\"")
    from_chain: str = Field(..., min_length=1, description="Source chain identifier")
    to_chain: str = Field(..., min_length=1, description="Destination chain identifier")


class TransferAccepted(CamelModel):
    """Response for an accepted transfer."""

    job_id: str
    status: JobStatus


class JobResponse(CamelModel):
    """Full job record."""

    id: str
    user_source_address: str
    user_dest_address: str
    amount: str
    from_chain: str
    to_chain: str
    status: JobStatus
    deposit_tx_hash: Optional[str] = None
    approve_tx_hash: Optional[str] = None
    burn_tx_hash: Optional[str] = None
    attestation: Optional[str] = None
    mint_tx_hash: Optional[str] = None
    payout_tx_hash: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class JobEventResponse(CamelModel):
    """One audit event."""

    id: int
    event_type: str
    data: dict[str, Any] = {}
    created_at: Optional[datetime] = None

    @classmethod
    def from_event(cls, event: BridgeJobEvent) -> "JobEventResponse":
        return cls(
            id=event.id,
            event_type=event.event_type,
            data=json.loads(event.event_data) if event.event_data else {},
            created_at=event.created_at,
        )


class RelayAddressResponse(CamelModel):
    """Where users send deposits."""

    address: str


def get_orchestrator(request: Request) -> BridgeOrchestrator:
    orchestrator = request.app.state.orchestrator
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting",
        )
    return orchestrator


@router.post(
    "/transfers",
    response_model=TransferAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_transfer(payload: TransferRequest, request: Request):
    """Create a managed transfer job.

    The job is returned as soon as it is persisted; poll
    ``GET /transfers/{jobId}`` for progress.
    """
    orchestrator = get_orchestrator(request)
    try:
        job = await orchestrator.submit(
            user_source_address=payload.user_source_address,
            user_dest_address=payload.user_dest_address,
            amount=payload.amount,
            from_chain=payload.from_chain,
            to_chain=payload.to_chain,
        )
    except TransferValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ChainUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return TransferAccepted(job_id=job.id, status=job.status)


@router.get("/transfers/{job_id}", response_model=JobResponse)
async def get_transfer(job_id: str, request: Request):
    """Get the last persisted state of a job."""
    job = await get_orchestrator(request).get(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return JobResponse.model_validate(job)


@router.get("/transfers/{job_id}/events", response_model=list[JobEventResponse])
async def get_transfer_events(job_id: str, request: Request):
    """Get a job's audit trail, oldest first."""
    try:
        events = await get_orchestrator(request).events(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return [JobEventResponse.from_event(event) for event in events]


@router.get("/relay-address", response_model=RelayAddressResponse)
async def get_relay_address(request: Request):
    """Get the relay address users deposit to."""
    return RelayAddressResponse(address=get_orchestrator(request).relay_address)

"""Health check endpoints."""

from fastapi import APIRouter, Request

from relaybridge import __version__
from relaybridge.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "relaybridge"}


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Detailed health check with configuration info."""
    settings = get_settings()
    orchestrator = request.app.state.orchestrator
    return {
        "status": "healthy" if orchestrator is not None else "starting",
        "service": "relaybridge",
        "version": __version__,
        "relay_address": orchestrator.relay_address if orchestrator else None,
        "signer_ok": await orchestrator.signer.health_check() if orchestrator else False,
        "active_jobs": len(orchestrator.active_jobs) if orchestrator else 0,
        "config": settings.get_safe_dict(),
    }

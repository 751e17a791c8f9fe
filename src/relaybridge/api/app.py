"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from relaybridge import __version__
from relaybridge.config import get_settings
from relaybridge.ledger.database import close_db, init_db
from relaybridge.services.orchestrator import BridgeOrchestrator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    await init_db()
    if app.state.orchestrator is None:
        from relaybridge.services.factory import build_orchestrator

        app.state.orchestrator = build_orchestrator()
    await app.state.orchestrator.resume_unfinished()
    yield
    # Shutdown
    await app.state.orchestrator.shutdown()
    await close_db()


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed requests as 400 with an ``error`` body."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": problems},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


def create_app(orchestrator: Optional[BridgeOrchestrator] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        orchestrator: Pre-built orchestrator (built from settings at startup
            when omitted)
    """
    settings = get_settings()

    app = FastAPI(
        title="RelayBridge API",
        description="Managed cross-chain USDC transfers",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.orchestrator = orchestrator

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    # Register routes
    from relaybridge.api.routes import health, transfers

    app.include_router(health.router, tags=["Health"])
    app.include_router(transfers.router, tags=["Transfers"])

    return app


# Default app instance
app = create_app()

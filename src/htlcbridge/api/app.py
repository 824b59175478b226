"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from htlcbridge.chain import HeightUnavailableError
from htlcbridge.config import get_settings
from htlcbridge.errors import BridgeError
from htlcbridge.ledger.database import close_db, init_db
from htlcbridge.utils.locks import LockTimeoutError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    await init_db()
    yield
    # Shutdown
    await close_db()


async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    """Render a rejected bridge operation."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render a request that could not be ordered or timed."""
    logger.warning("Request to %s unavailable: %s", request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"error": type(exc).__name__, "category": "unavailable", "detail": str(exc)},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="HTLC Bridge API",
        description="Initiating side of a hash-time-locked cross-chain bridge",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(BridgeError, bridge_error_handler)
    app.add_exception_handler(HeightUnavailableError, unavailable_handler)
    app.add_exception_handler(LockTimeoutError, unavailable_handler)

    # Register routes
    from htlcbridge.api.routers import admin
    from htlcbridge.api.routes import health, token, transfers

    app.include_router(health.router, tags=["Health"])
    app.include_router(transfers.router, prefix="/api/v1", tags=["Bridge"])
    app.include_router(token.router, prefix="/api/v1", tags=["Token"])
    app.include_router(admin.router, tags=["Admin"])

    return app


# Default app instance
app = create_app()

"""Health check endpoints."""

from fastapi import APIRouter

from htlcbridge.chain import get_height_source
from htlcbridge.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "htlcbridge"}


@router.get("/health/detailed")
async def detailed_health():
    """Detailed health check with configuration info."""
    settings = get_settings()
    height_source = get_height_source()
    return {
        "status": "healthy",
        "service": "htlcbridge",
        "version": "0.1.0",
        "height": await height_source.current_height(),
        "config": settings.get_safe_dict(),
    }

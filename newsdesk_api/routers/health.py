"""Health check endpoints."""

from fastapi import APIRouter

from newsdesk_api.deps import get_services

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    """Basic health check; the cache being down is reported, not fatal."""
    services = get_services()
    return {
        "status": "ok",
        "store": services.store.connected,
        "cache": services.cache.connected,
    }

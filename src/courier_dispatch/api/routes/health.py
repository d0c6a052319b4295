"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings
from ...db.supabase import get_supabase_client

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


def _get_osrm_health_check():
    """Lazy import to avoid startup failures."""
    from ...services.routing.osrm_client import check_health as osrm_health_check
    return osrm_health_check


@router.get("/health/routing", status_code=status.HTTP_200_OK)
def health_routing() -> dict:
    """Report which routing provider is active and whether OSRM answers."""
    if not settings.osrm_base_url:
        return {"provider": "straight_line", "healthy": True}
    osrm_health_check = _get_osrm_health_check()
    return {"provider": "osrm", "healthy": osrm_health_check()}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Report whether deliveries are persisted in Supabase or kept in memory."""
    if get_supabase_client() is None:
        return {
            "configured": False,
            "store": "memory",
            "message": "Supabase not configured. Set DISPATCH_SUPABASE_URL and DISPATCH_SUPABASE_KEY.",
        }
    return {"configured": True, "store": "supabase"}

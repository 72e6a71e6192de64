"""
Health check endpoint.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from .deps import AppServices, get_services

router = APIRouter(prefix="/api", tags=["Health"])


@router.get("/health")
async def health(services: AppServices = Depends(get_services)):
    """Liveness plus the state of the response cache."""
    database_up = await services.database.test_connection()
    return {
        "status": "ok" if database_up else "degraded",
        "message": "Server is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "cache": services.store.state.value,
    }

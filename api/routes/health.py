"""Health and metrics endpoints."""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from api.dependencies import get_datastore
from core.errors import DatastoreError
from core.observability.metrics import get_metrics
from storage.db import Datastore


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]


@router.get("/health", response_model=HealthResponse)
async def health_check(store: Datastore = Depends(get_datastore)) -> HealthResponse:
    """Health check endpoint."""
    try:
        store.count("user_settings", "__health__")
        storage_status = "up"
    except DatastoreError:
        storage_status = "down"

    return HealthResponse(
        status="healthy" if storage_status == "up" else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version="1.0.0",
        services={
            "api": "up",
            "storage": storage_status,
        },
    )


@router.get("/ready")
async def readiness_check() -> Dict[str, str]:
    """Readiness probe."""
    return {"status": "ready"}


@router.get("/live")
async def liveness_check(response: Response) -> Dict[str, str]:
    """Liveness probe."""
    return {"status": "alive"}


@router.get("/metrics")
async def metrics() -> Dict[str, Any]:
    """Tool dispatch and voice session counters."""
    return get_metrics().snapshot()

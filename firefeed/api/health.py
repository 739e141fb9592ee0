from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from firefeed.api.fires import get_fires_service
from firefeed.core.errors import DataSourceError, service_unavailable
from firefeed.core.settings import settings
from firefeed.services.fires import Fires

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health")


@router.get("")
def health(svc: Fires = Depends(get_fires_service)) -> dict:
    """Lightweight liveness check, no database access."""
    return {
        "status": "ok",
        "service": "firefeed",
        "environment": settings.environment,
        "cache_backend": svc.cache.backend,
        "data_source": svc.fire_db.backend,
    }


@router.get("/db")
def health_db(svc: Fires = Depends(get_fires_service)) -> dict:
    """Deep check: round-trips the fire data source. Failure detail stays in the logs."""
    try:
        svc.fire_db.ping()
    except DataSourceError as e:
        logger.warning("[app] data source health check failed: %s", e, exc_info=e)
        service_unavailable("fire data source unavailable")
    return {"status": "ok", "data_source": svc.fire_db.backend}

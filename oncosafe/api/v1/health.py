"""
Health check and monitoring endpoints.
"""

import time
from datetime import datetime

from fastapi import APIRouter
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from oncosafe.config import get_settings
from oncosafe.core.cache import get_cache_service, get_lookup_cache
from oncosafe.schemas.common import HealthResponse
from oncosafe.services.reference_store import get_reference_store

router = APIRouter()

# Track startup time
_startup_time = time.time()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Check service health and reference data availability.

    No authentication required for health checks.
    """
    settings = get_settings()
    store = get_reference_store()
    cache = await get_cache_service()

    return HealthResponse(
        service=settings.APP_NAME,
        version=settings.APP_VERSION,
        status="healthy" if store.is_loaded else "degraded",
        timestamp=datetime.utcnow(),
        reference_data=store.snapshot.summary(),
        lookup_cache=get_lookup_cache().stats(),
        redis=cache.is_connected,
        uptime_seconds=time.time() - _startup_time
    )


@router.get("/metrics")
async def prometheus_metrics():
    """
    Expose Prometheus metrics.

    No authentication for metrics endpoint.
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )

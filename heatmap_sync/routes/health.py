"""
Health check endpoint.

Used by:
  - Docker HEALTHCHECK instruction
  - Load balancers / orchestrators
  - Front end to check API connectivity

Returns process liveness plus the synchronizer status, so callers can tell
"API down" apart from "API up but synchronizer not running". Also reports
the reverse-geocoding cache and outbound rate limiter counters.
"""

import logging
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from heatmap_sync.core import runtime

logger = logging.getLogger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    status: str  # Always "ok" if the API process is alive
    version: str
    synchronizer: str  # "running" | "stopped"
    cluster_backend: str  # "mock" | "live"
    environment: str
    geocoding_cache: Optional[dict[str, float]] = None
    geocoding_rate_limiter: Optional[dict[str, int]] = None


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check() -> HealthResponse:
    """
    Returns the liveness status of the API and its synchronizer.

    The API is considered healthy (HTTP 200) even when the synchronizer is
    stopped.
    """
    from heatmap_sync.adapters.nominatim_adapter import nominatim_adapter
    from heatmap_sync.core.config import settings

    # Access via module reference so tests can patch runtime.sync_holder
    running = runtime.sync_holder.synchronizer is not None

    return HealthResponse(
        status="ok",
        version="0.1.0",
        synchronizer="running" if running else "stopped",
        cluster_backend="mock" if settings.cluster_mock_mode else "live",
        environment=settings.environment,
        geocoding_cache=(
            nominatim_adapter.cache.metrics()
            if nominatim_adapter.cache is not None
            else None
        ),
        geocoding_rate_limiter=(
            nominatim_adapter.rate_limiter.metrics()
            if nominatim_adapter.rate_limiter is not None
            else None
        ),
    )

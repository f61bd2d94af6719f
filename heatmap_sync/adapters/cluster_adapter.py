"""
ClusterAdapter — Client for the intervention-location cluster endpoint.

    GET {CLUSTER_API_URL}/api/mapa-calor/lugar-intervencion
        ?zoom=11&north=19.63&south=19.23&east=-98.93&west=-99.33

    → [ { "latitud": 19.43, "longitud": -99.13, "count": 42 }, ... ]

The backend clusters by zoom level:
  - zoom 1-11:  aggressive grouping (coordinates rounded to 1 decimal, ~10 km)
  - zoom 12-14: semi-grouping (2 decimals, ~1 km)
  - zoom 15+:   individual points (max 3000)

Supports two runtime modes (set via CLUSTER_MOCK_MODE env var):
  - MOCK mode (default): generates deterministic records inside the query
    bounds and clusters them with the same zoom rules. Use for tests and
    local dev without the backend.
  - REAL mode: calls the backend.

Every failure surfaces as ClusterFetchError with a message suitable for
showing to the user.
"""

import hashlib
import json
import logging
import random
from collections import Counter
from typing import Any, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from heatmap_sync.core.config import settings
from heatmap_sync.core.errors import ClusterFetchError
from heatmap_sync.models.heatmap import (
    ClusterPoint,
    Coordinates,
    ViewportQuery,
)
from heatmap_sync.services.lifecycle import CancellationToken
from heatmap_sync.services.query_builder import build_initial_query

logger = logging.getLogger(__name__)

_POINTS = TypeAdapter(list[ClusterPoint])

MAX_INDIVIDUAL_POINTS = 3000
_MOCK_RECORDS = 600


class ClusterAdapter:
    """
    Async wrapper around the cluster endpoint.

    Don't instantiate per request; use the module-level `cluster_adapter`
    singleton (tests build their own with an httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        endpoint: Optional[str] = None,
        api_token: Optional[str] = None,
        mock_mode: Optional[bool] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url or settings.cluster_api_url
        self.endpoint = endpoint or settings.cluster_endpoint
        self.api_token = settings.cluster_api_token if api_token is None else api_token
        self.mock_mode = settings.cluster_mock_mode if mock_mode is None else mock_mode
        self.timeout = timeout or settings.http_timeout_seconds
        self._transport = transport

        if self.mock_mode:
            logger.info("ClusterAdapter initialised in MOCK mode")
        else:
            logger.info("ClusterAdapter initialised in REAL mode (%s)", self.base_url)

    async def fetch(
        self,
        query: ViewportQuery,
        token: Optional[CancellationToken] = None,
    ) -> list[ClusterPoint]:
        """
        Fetch clustered points for a viewport.

        Args:
            query: Zoom and optional bounds.
            token: Cancellation token of the fetch session. Checked once the
                   response is in, before any parsing happens.

        Raises:
            ClusterFetchError: HTTP error, unreachable backend, or malformed payload.
            SessionCancelled:  the token was cancelled while the request ran.
        """
        logger.info(
            "Fetching cluster points (zoom=%d, bounds=%s)",
            query.zoom,
            query.bounds is not None,
        )

        if self.mock_mode:
            payload: Any = _mock_payload(query)
        else:
            payload = await self._request(query)

        if token is not None:
            token.raise_if_cancelled()

        points = _parse_points(payload)
        _log_point_summary(points, query)
        return points

    async def _request(self, query: ViewportQuery) -> Any:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"

        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        ) as client:
            try:
                response = await client.get(
                    self.endpoint, params=query.to_params(), headers=headers
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                logger.error("Cluster API error: %s — %s", status, exc.response.text[:200])
                raise ClusterFetchError(
                    f"Cluster service responded with HTTP {status}", status_code=status
                ) from exc
            except httpx.HTTPError as exc:
                logger.error("Cluster request failed: %s", exc)
                raise ClusterFetchError(
                    f"Could not reach the cluster service: {exc}"
                ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise ClusterFetchError("Cluster service returned invalid JSON") from exc


def _parse_points(payload: Any) -> list[ClusterPoint]:
    if not isinstance(payload, list):
        raise ClusterFetchError("Malformed cluster response: expected a list of points")
    try:
        return _POINTS.validate_python(payload)
    except ValidationError as exc:
        raise ClusterFetchError(
            f"Malformed cluster response: {exc.error_count()} invalid field(s)"
        ) from exc


def _log_point_summary(points: list[ClusterPoint], query: ViewportQuery) -> None:
    if not points:
        logger.debug("Empty cluster response (zoom=%d)", query.zoom)
        return
    counts = [p.count for p in points]
    logger.debug(
        "Cluster response: %d points, count min=%d max=%d avg=%.1f",
        len(points),
        min(counts),
        max(counts),
        sum(counts) / len(points),
    )


# ── Mock backend ──────────────────────────────────────────────────────────────

def _cluster_decimals(zoom: int) -> Optional[int]:
    """Rounding used to group records at a zoom level (None = no grouping)."""
    if zoom <= 11:
        return 1
    if zoom <= 14:
        return 2
    return None


def _mock_payload(query: ViewportQuery) -> list[dict[str, Any]]:
    """
    Deterministic stand-in for the backend: same query, same answer.

    Records are scattered inside the query bounds (or the default window when
    the query has none) and grouped with the backend's zoom rules.
    """
    bounds = query.bounds
    if bounds is None:
        center = Coordinates(
            latitude=settings.default_latitude, longitude=settings.default_longitude
        )
        bounds = build_initial_query(
            center, settings.initial_zoom, settings.initial_span_degrees
        ).bounds

    seed_src = json.dumps(query.to_params(), sort_keys=True)
    rng = random.Random(int(hashlib.sha256(seed_src.encode("utf-8")).hexdigest(), 16))

    records = [
        (rng.uniform(bounds.south, bounds.north), rng.uniform(bounds.west, bounds.east))
        for _ in range(_MOCK_RECORDS)
    ]

    decimals = _cluster_decimals(query.zoom)
    if decimals is None:
        return [
            {"latitud": lat, "longitud": lng, "count": 1}
            for lat, lng in records[:MAX_INDIVIDUAL_POINTS]
        ]

    groups = Counter((round(lat, decimals), round(lng, decimals)) for lat, lng in records)
    return [
        {"latitud": lat, "longitud": lng, "count": count}
        for (lat, lng), count in sorted(groups.items())
    ]


# Module-level singleton: import and use this everywhere
cluster_adapter = ClusterAdapter()

"""
NominatimAdapter — Reverse geocoding via OpenStreetMap's Nominatim API.

Free, no API key, but with a strict usage policy: an identifying
User-Agent and at most one request per second. Both are enforced here
(header from settings, OutboundRateLimiter), and repeated lookups for the
same ~11 m cell are served from GeocodingCache.

Raises ReverseGeocodingError on any failure; falling back to a coordinate
string is the caller's decision (see services/address.py).

To swap to another provider (Google, Mapbox):
  1. Implement the same `reverse()` / `simple_address()` interface
  2. Update the module-level singleton alias
"""

import logging
import math
from typing import Any, Optional

import httpx

from heatmap_sync.core.config import settings
from heatmap_sync.core.errors import ReverseGeocodingError
from heatmap_sync.core.privacy import sanitize_coordinates
from heatmap_sync.core.throttle import OutboundRateLimiter
from heatmap_sync.models.heatmap import ReverseGeocodingResult
from heatmap_sync.services.geocoding_cache import GeocodingCache

logger = logging.getLogger(__name__)


class NominatimAdapter:
    """Thin async wrapper around GET /reverse."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        rate_limiter: Optional[OutboundRateLimiter] = None,
        cache: Optional[GeocodingCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = (base_url or settings.nominatim_url).rstrip("/")
        self.user_agent = user_agent or settings.nominatim_user_agent
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.timeout = timeout or settings.http_timeout_seconds
        self._transport = transport

    async def reverse(self, lat: float, lng: float) -> ReverseGeocodingResult:
        """
        Resolve coordinates to a structured address.

        Raises:
            ReverseGeocodingError: invalid coordinates, HTTP/transport error,
                or a response without `display_name`.
        """
        if not (math.isfinite(lat) and math.isfinite(lng)):
            raise ReverseGeocodingError("Invalid coordinates")

        if self.cache is not None:
            cached = self.cache.get(lat, lng)
            if cached is not None:
                return cached

        logger.info("Reverse geocoding %s", sanitize_coordinates(lat, lng))
        if self.rate_limiter is not None:
            data = await self.rate_limiter.run(lambda: self._request(lat, lng))
        else:
            data = await self._request(lat, lng)

        result = _parse_result(data)
        if self.cache is not None:
            self.cache.set(lat, lng, result)
        return result

    async def simple_address(self, lat: float, lng: float) -> str:
        """Short address: road, neighbourhood, city, state — or the full display name."""
        result = await self.reverse(lat, lng)
        parts = [
            p for p in (result.road, result.neighbourhood, result.city, result.state) if p
        ]
        return ", ".join(parts) if parts else result.display_name

    async def _request(self, lat: float, lng: float) -> dict[str, Any]:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"User-Agent": self.user_agent},
        ) as client:
            try:
                response = await client.get(
                    f"{self.base_url}/reverse",
                    params={
                        "format": "json",
                        "lat": lat,
                        "lon": lng,
                        "zoom": 18,
                        "addressdetails": 1,
                    },
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.error("Nominatim error: %s", exc.response.status_code)
                raise ReverseGeocodingError(
                    f"HTTP error: {exc.response.status_code}"
                ) from exc
            except httpx.HTTPError as exc:
                logger.error("Nominatim request failed: %s", exc)
                raise ReverseGeocodingError(f"Request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise ReverseGeocodingError("Invalid JSON from Nominatim") from exc
        if not isinstance(data, dict):
            raise ReverseGeocodingError("Unexpected Nominatim payload")
        return data


def _parse_result(data: dict[str, Any]) -> ReverseGeocodingResult:
    display_name = data.get("display_name")
    if not display_name:
        raise ReverseGeocodingError("No address information found")

    address = data.get("address") or {}
    return ReverseGeocodingResult(
        display_name=display_name,
        postcode=address.get("postcode"),
        city=address.get("city") or address.get("town") or address.get("municipality"),
        state=address.get("state"),
        country=address.get("country"),
        neighbourhood=address.get("neighbourhood") or address.get("suburb"),
        road=address.get("road"),
    )


# Module-level singleton
nominatim_adapter = NominatimAdapter(
    rate_limiter=OutboundRateLimiter(settings.geocoding_rate_limit, key="nominatim"),
    cache=GeocodingCache(
        maxsize=settings.geocoding_cache_maxsize,
        ttl_seconds=settings.geocoding_cache_ttl_seconds,
    ),
)

"""
Geolocation providers — where is the caller?

Two providers share the `locate()` interface used by GeolocationResolver:

  IPGeolocationAdapter      approximate location from the caller's public IP
                            (ip-api.com style JSON: {"status", "lat", "lon"}).
                            Disabled unless GEOLOCATION_ENABLED=true, which is
                            how a user's location consent is expressed.
  StaticGeolocationAdapter  fixed coordinates, e.g. ones the browser already
                            reported to the front end.

Providers may raise; the resolver turns every failure into "use fallback".
"""

import logging
from typing import Optional

import httpx

from heatmap_sync.core.config import settings
from heatmap_sync.core.errors import GeolocationError
from heatmap_sync.models.heatmap import Coordinates

logger = logging.getLogger(__name__)


class IPGeolocationAdapter:
    def __init__(
        self,
        url: Optional[str] = None,
        enabled: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url or settings.geolocation_url
        self.enabled = settings.geolocation_enabled if enabled is None else enabled
        self._transport = transport

        if not self.enabled:
            logger.info(
                "Geolocation disabled (GEOLOCATION_ENABLED=false) — "
                "the default map center will be used."
            )

    async def locate(self) -> Optional[Coordinates]:
        """
        Look up the caller's approximate coordinates.

        Returns:
            Coordinates, or None when geolocation is disabled.

        Raises:
            GeolocationError: the lookup answered but without a position.
            httpx.HTTPError: transport or HTTP status failure.
        """
        if not self.enabled:
            return None

        async with httpx.AsyncClient(
            timeout=settings.http_timeout_seconds, transport=self._transport
        ) as client:
            response = await client.get(self.url)
            response.raise_for_status()
            data = response.json()

        if data.get("status", "success") != "success":
            raise GeolocationError(data.get("message") or "IP geolocation failed")
        try:
            return Coordinates(latitude=data["lat"], longitude=data["lon"])
        except (KeyError, ValueError) as exc:
            raise GeolocationError(f"Unusable geolocation payload: {exc}") from exc


class StaticGeolocationAdapter:
    def __init__(self, coordinates: Optional[Coordinates]) -> None:
        self.coordinates = coordinates

    async def locate(self) -> Optional[Coordinates]:
        return self.coordinates


# Module-level singleton
geolocation_adapter = IPGeolocationAdapter()

"""
geolocation.py — One-shot resolution of the caller's coordinates.

The resolver asks its provider exactly once, waits at most `timeout`
seconds, and never raises: permission denied, timeout, unsupported or any
provider error all resolve to None, which callers read as "use the default
center". Later calls to resolve() return the stored result.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from heatmap_sync.core.privacy import sanitize_coordinates
from heatmap_sync.models.heatmap import Coordinates

logger = logging.getLogger(__name__)

GeolocationProvider = Callable[[], Awaitable[Optional[Coordinates]]]

DEFAULT_TIMEOUT_SECONDS = 5.0


class GeolocationResolver:
    def __init__(
        self,
        provider: GeolocationProvider,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._provider = provider
        self.timeout = timeout
        self.result: Optional[Coordinates] = None
        self.loading = True
        self._task: Optional[asyncio.Task] = None

    @property
    def resolved(self) -> bool:
        return not self.loading

    async def resolve(self) -> Optional[Coordinates]:
        if self.resolved:
            return self.result
        if self._task is None:
            self._task = asyncio.ensure_future(self._locate_once())
        # Shielded so a cancelled caller can't abort the single attempt.
        return await asyncio.shield(self._task)

    async def _locate_once(self) -> Optional[Coordinates]:
        result: Optional[Coordinates] = None
        try:
            result = await asyncio.wait_for(self._provider(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Geolocation timed out after %.1fs — using default location", self.timeout
            )
        except Exception as exc:
            logger.warning(
                "Geolocation failed (%s: %s) — using default location",
                type(exc).__name__,
                exc,
            )
        else:
            if result is not None:
                logger.info(
                    "Geolocation resolved %s",
                    sanitize_coordinates(result.latitude, result.longitude),
                )
            else:
                logger.info("Geolocation unavailable — using default location")
        finally:
            self.result = result
            self.loading = False
        return result

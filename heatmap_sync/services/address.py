"""
address.py — Best-effort address for the map center.

Runs beside the point-fetch pipeline and never affects it: a slow or failed
lookup only changes `address` / `loading` here. On failure the address is
the center's coordinates formatted to 4 decimals ("19.4300, -99.1300").

Lookups overlap when the user keeps panning; the newest one wins, and an
older lookup that finishes late is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from heatmap_sync.core.errors import ReverseGeocodingError
from heatmap_sync.core.privacy import sanitize_coordinates

logger = logging.getLogger(__name__)

AddressLookup = Callable[[float, float], Awaitable[str]]


def format_coordinates(lat: float, lng: float) -> str:
    return f"{lat:.4f}, {lng:.4f}"


class AddressResolver:
    def __init__(
        self,
        lookup: AddressLookup,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self._lookup = lookup
        self._on_change = on_change
        self._generation = 0
        self.address: Optional[str] = None
        self.loading = False

    async def resolve(self, lat: float, lng: float) -> str:
        self._generation += 1
        generation = self._generation
        self.loading = True
        self._notify()

        try:
            address = await self._lookup(lat, lng)
            if not address:
                raise ReverseGeocodingError("empty address")
        except asyncio.CancelledError:
            if generation == self._generation:
                self.loading = False
            raise
        except Exception as exc:
            logger.warning(
                "Reverse geocoding failed for %s (%s) — showing coordinates",
                sanitize_coordinates(lat, lng),
                exc,
            )
            address = format_coordinates(lat, lng)

        if generation != self._generation:
            logger.debug("Dropping stale address lookup #%d", generation)
            return address

        self.address = address
        self.loading = False
        self._notify()
        return address

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()

"""
geocoding_cache.py — In-memory cache for reverse-geocode results.

Coordinates are rounded to 4 decimals (~11 m) before building the key, so
small pans around the same spot reuse the cached address:

    key_for(19.432608, -99.133209)  → "19.4326_-99.1332"
    key_for(19.432649, -99.133151)  → "19.4326_-99.1332"

Entries expire after `ttl_seconds` (7 days by default — addresses rarely
change); the least recently used entry is evicted when `maxsize` is hit.
"""

import logging
import time
from typing import Callable, Optional

from cachetools import TTLCache

from heatmap_sync.models.heatmap import ReverseGeocodingResult

logger = logging.getLogger(__name__)

KEY_PRECISION = 4
DEFAULT_TTL_SECONDS = 7 * 24 * 60 * 60


def key_for(lat: float, lng: float) -> str:
    return f"{lat:.{KEY_PRECISION}f}_{lng:.{KEY_PRECISION}f}"


class GeocodingCache:
    def __init__(
        self,
        maxsize: int = 1000,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=timer)
        self.hits = 0
        self.misses = 0

    def get(self, lat: float, lng: float) -> Optional[ReverseGeocodingResult]:
        key = key_for(lat, lng)
        cached = self._entries.get(key)
        if cached is None:
            self.misses += 1
            logger.debug("Geocoding cache miss (%s)", key)
            return None
        self.hits += 1
        logger.debug("Geocoding cache hit (%s)", key)
        return cached

    def set(self, lat: float, lng: float, result: ReverseGeocodingResult) -> None:
        self._entries[key_for(lat, lng)] = result

    def clear(self) -> None:
        logger.info("Clearing geocoding cache (%d entries)", len(self._entries))
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def metrics(self) -> dict[str, float]:
        lookups = self.hits + self.misses
        return {
            "total_entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": (self.hits / lookups * 100) if lookups else 0.0,
        }

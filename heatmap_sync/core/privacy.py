"""
privacy.py — Keep exact user coordinates out of log files.

Anything derived from the caller's location (geolocation results, the
initial map center, reverse-geocode lookups) is logged through
sanitize_coordinates(), which rounds to 2 decimals (~1 km).
"""

_LOG_PRECISION = 2


def sanitize_coordinates(lat: float, lng: float) -> dict[str, float]:
    """Return a log-safe representation of a coordinate pair."""
    return {
        "lat": round(lat, _LOG_PRECISION),
        "lng": round(lng, _LOG_PRECISION),
    }

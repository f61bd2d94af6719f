"""
errors.py — Exception hierarchy for the heatmap synchronizer.

Only ClusterFetchError ever reaches the presentation layer (as a message).
Geolocation and reverse-geocoding errors are caught by their resolvers and
degrade to fallbacks; SessionCancelled marks a superseded fetch and is never
treated as a failure.
"""


class HeatmapSyncError(Exception):
    """Base class for all synchronizer errors."""


class ClusterFetchError(HeatmapSyncError):
    """The cluster endpoint failed or returned a payload we cannot use."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ReverseGeocodingError(HeatmapSyncError):
    """Reverse geocoding produced no usable address."""


class GeolocationError(HeatmapSyncError):
    """The caller's coordinates could not be determined."""


class SessionCancelled(HeatmapSyncError):
    """Raised inside a fetch whose session has been superseded."""

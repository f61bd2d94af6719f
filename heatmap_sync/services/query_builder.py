"""
query_builder.py — Turn map viewport state into ViewportQuery values.

USAGE
─────
    from heatmap_sync.services.query_builder import build_initial_query

    query = build_initial_query(Coordinates(latitude=19.4326, longitude=-99.1332))
    # query.zoom   → 11
    # query.bounds → north=19.6326 south=19.2326 east=-98.9332 west=-99.3332

The initial window is only used for the very first request, before the map
has reported real bounds. Every later query passes the map's bounds through
unchanged.
"""

from __future__ import annotations

from typing import Optional

from heatmap_sync.models.heatmap import Bounds, Coordinates, ViewportQuery

DEFAULT_INITIAL_ZOOM = 11
DEFAULT_SPAN_DEGREES = 0.2   # ~22 km radius


def build_initial_query(
    center: Coordinates,
    zoom: int = DEFAULT_INITIAL_ZOOM,
    span: float = DEFAULT_SPAN_DEGREES,
) -> ViewportQuery:
    """Query covering ±`span` degrees of latitude and longitude around `center`."""
    bounds = Bounds(
        north=min(center.latitude + span, 90.0),
        south=max(center.latitude - span, -90.0),
        east=min(center.longitude + span, 180.0),
        west=max(center.longitude - span, -180.0),
    )
    return ViewportQuery(zoom=zoom, bounds=bounds)


def build_query_from_viewport(bounds: Optional[Bounds], zoom: int) -> ViewportQuery:
    """Query for an explicit viewport; bounds pass through unchanged."""
    return ViewportQuery(zoom=zoom, bounds=bounds)


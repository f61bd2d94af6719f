"""
heatmap.py — Pydantic models for the viewport-driven heatmap synchronizer.

Wire format note
────────────────
The clustering backend speaks Spanish field names for points:

  [ { "latitud": 19.43, "longitud": -99.13, "count": 42 }, ... ]

ClusterPoint exposes them as `latitude` / `longitude` in Python and keeps
the Spanish names as aliases, so `model_dump(by_alias=True)` (what FastAPI
does for responses) round-trips the backend shape unchanged.

Query parameters sent to the backend:

  zoom=11&north=19.63&south=19.23&east=-98.93&west=-99.33

`zoom` is always present; the four bounds are sent together or not at all.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

MIN_ZOOM = 1
MAX_ZOOM = 20


class Coordinates(BaseModel):
    """A latitude/longitude pair (user location, map center)."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class Bounds(BaseModel):
    """Geographic rectangle of the visible map region."""

    model_config = ConfigDict(frozen=True)

    north: float = Field(ge=-90, le=90)
    south: float = Field(ge=-90, le=90)
    east: float = Field(ge=-180, le=180)
    west: float = Field(ge=-180, le=180)

    @model_validator(mode="after")
    def _check_ordering(self) -> "Bounds":
        if self.south >= self.north:
            raise ValueError("south must be less than north")
        if self.west >= self.east:
            raise ValueError("west must be less than east")
        return self

    @property
    def center(self) -> Coordinates:
        return Coordinates(
            latitude=(self.north + self.south) / 2,
            longitude=(self.east + self.west) / 2,
        )


class ViewportQuery(BaseModel):
    """Normalized query for the cluster endpoint. Immutable."""

    model_config = ConfigDict(frozen=True)

    zoom: int = Field(ge=MIN_ZOOM, le=MAX_ZOOM)
    bounds: Optional[Bounds] = None

    def to_params(self) -> dict[str, float]:
        """Query-string parameters in the order the backend documents them."""
        params: dict[str, float] = {"zoom": self.zoom}
        if self.bounds is not None:
            params["north"] = self.bounds.north
            params["south"] = self.bounds.south
            params["east"] = self.bounds.east
            params["west"] = self.bounds.west
        return params


class ClusterPoint(BaseModel):
    """One record or aggregated cluster returned by the backend."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    latitude: float = Field(alias="latitud", ge=-90, le=90)
    longitude: float = Field(alias="longitud", ge=-180, le=180)
    count: int = Field(ge=0)


class ActivityLevel(str, Enum):
    HIGH = "high"      # count > 50
    MEDIUM = "medium"  # 30 <= count <= 50
    LOW = "low"        # count < 30


class ActivityStats(BaseModel):
    """Activity buckets derived from the current point set. Never persisted."""

    total_count: int = 0
    high_activity_count: int = 0
    medium_activity_count: int = 0
    low_activity_count: int = 0

    @classmethod
    def empty(cls) -> "ActivityStats":
        return cls()


class ReverseGeocodingResult(BaseModel):
    """Structured reverse-geocode answer (Nominatim address details)."""

    display_name: str
    postcode: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    neighbourhood: Optional[str] = None
    road: Optional[str] = None


class HeatmapState(BaseModel):
    """Everything the presentation layer renders, as one snapshot."""

    points: list[ClusterPoint] = Field(default_factory=list)
    stats: ActivityStats = Field(default_factory=ActivityStats)
    loading: bool = False          # blocking load (initial / explicit refresh)
    silent_loading: bool = False   # background refresh after a pan/zoom
    error: Optional[str] = None
    center_address: Optional[str] = None
    center_address_loading: bool = False
    user_location: Optional[Coordinates] = None
    geolocation_loading: bool = False
    query: Optional[ViewportQuery] = None


class ViewportChange(BaseModel):
    """Request body for POST /api/v1/heatmap/viewport."""

    zoom: int = Field(ge=MIN_ZOOM, le=MAX_ZOOM)
    bounds: Optional[Bounds] = None
    center: Optional[Coordinates] = None

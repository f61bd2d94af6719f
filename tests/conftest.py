"""
pytest configuration and shared fixtures for the heatmap synchronizer tests.

Key concern: tests must not reach the clustering backend, Nominatim, or an
IP geolocation service. We achieve this by:
  1. Forcing CLUSTER_MOCK_MODE=true and GEOLOCATION_ENABLED=false before
     anything imports the settings singleton.
  2. Building synchronizers from in-memory fakes (FakeClusterBackend,
     FakeGeocoder) that record every call and can be gated or made to fail.
  3. Overriding the get_synchronizer dependency for route tests.
"""

import asyncio
import os
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("CLUSTER_MOCK_MODE", "true")
os.environ.setdefault("GEOLOCATION_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from heatmap_sync.core.errors import ReverseGeocodingError  # noqa: E402
from heatmap_sync.models.heatmap import ClusterPoint, Coordinates, ViewportQuery  # noqa: E402
from heatmap_sync.services.synchronizer import HeatmapSynchronizer  # noqa: E402

FAST_DEBOUNCE = 0.05


def make_points(*counts: int) -> list[ClusterPoint]:
    """One point per count, spread along a line near Mexico City."""
    return [
        ClusterPoint(latitude=19.40 + i * 0.01, longitude=-99.10 - i * 0.01, count=c)
        for i, c in enumerate(counts)
    ]


class FakeClusterBackend:
    """
    Records every query and token. By default answers immediately with `points`.

    - `fail_with`: exception raised instead of answering
    - `gate()`: later calls park on a future until the test calls
      `resolve(i, points)` or `reject(i, exc)` for the i-th parked call
    """

    def __init__(self, points: Optional[list[ClusterPoint]] = None) -> None:
        self.points = points if points is not None else make_points(10, 40, 60)
        self.queries: list[ViewportQuery] = []
        self.tokens: list = []
        self.fail_with: Optional[Exception] = None
        self.gated = False
        self.waiters: list[asyncio.Future] = []

    def gate(self) -> None:
        self.gated = True

    def resolve(self, index: int, points: list[ClusterPoint]) -> None:
        waiter = self.waiters[index]
        if not waiter.done():
            waiter.set_result(points)

    def reject(self, index: int, exc: Exception) -> None:
        waiter = self.waiters[index]
        if not waiter.done():
            waiter.set_exception(exc)

    async def fetch(self, query, token=None):
        self.queries.append(query)
        self.tokens.append(token)
        if self.gated:
            waiter = asyncio.get_running_loop().create_future()
            self.waiters.append(waiter)
            return await waiter
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.points)


class FakeGeocoder:
    def __init__(self, address: str = "Avenida Juárez, Centro, Ciudad de México") -> None:
        self.address = address
        self.calls: list[tuple[float, float]] = []
        self.fail = False

    async def simple_address(self, lat: float, lng: float) -> str:
        self.calls.append((lat, lng))
        if self.fail:
            raise ReverseGeocodingError("geocoder down")
        return self.address


class FakeGeolocator:
    def __init__(self, coordinates: Optional[Coordinates] = None, error: Optional[Exception] = None):
        self.coordinates = coordinates
        self.error = error
        self.calls = 0

    async def locate(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.coordinates


@pytest.fixture()
def backend():
    return FakeClusterBackend()


@pytest.fixture()
def geocoder():
    return FakeGeocoder()


@pytest.fixture()
def geolocator():
    return FakeGeolocator()


@pytest.fixture()
async def sync(backend, geocoder, geolocator):
    """Synchronizer on fakes with a short debounce; closed after the test."""
    synchronizer = HeatmapSynchronizer(
        backend.fetch,
        geocoder.simple_address,
        geolocator.locate,
        debounce_seconds=FAST_DEBOUNCE,
    )
    yield synchronizer
    await synchronizer.close()


@pytest.fixture()
async def api_client(sync):
    """
    HTTPX async test client wired to the FastAPI app, with the synchronizer
    dependency pointed at the fake-backed `sync` fixture (already started).
    """
    from heatmap_sync.core.runtime import get_synchronizer
    from heatmap_sync.main import app

    await sync.start()
    await sync.wait_idle()

    app.dependency_overrides[get_synchronizer] = lambda: sync
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

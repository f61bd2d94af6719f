"""
synchronizer.py — Viewport-driven heatmap data synchronizer.

HOW THE DATA FLOWS
──────────────────
1. start(): resolve the caller's location once (or fall back to the default
   center), build a ±0.2° window around it and load it as a *blocking*
   fetch. The center address lookup starts at the same time.
2. handle_viewport_change(): every pan/zoom notification rebuilds the query
   and re-arms a 300 ms trailing debounce. Only the last notification of a
   burst reaches the lifecycle manager, as a *silent* fetch, together with
   an address lookup for the new center.
3. refresh(): explicit *blocking* reload of any query.
4. Listeners registered with subscribe() receive a HeatmapState snapshot on
   every visible change; error listeners receive the message of each failed
   fetch (transient notification).

USAGE
─────
    sync = HeatmapSynchronizer.from_settings()
    sync.subscribe(render)
    await sync.start()
    sync.handle_viewport_change(bounds, zoom=13)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from heatmap_sync.core.errors import HeatmapSyncError
from heatmap_sync.core.privacy import sanitize_coordinates
from heatmap_sync.models.heatmap import Bounds, Coordinates, HeatmapState, ViewportQuery
from heatmap_sync.services.address import AddressLookup, AddressResolver
from heatmap_sync.services.debounce import TrailingDebouncer
from heatmap_sync.services.geolocation import (
    DEFAULT_TIMEOUT_SECONDS,
    GeolocationProvider,
    GeolocationResolver,
)
from heatmap_sync.services.lifecycle import Fetcher, FetchSession, RequestLifecycleManager
from heatmap_sync.services.query_builder import (
    DEFAULT_INITIAL_ZOOM,
    DEFAULT_SPAN_DEGREES,
    build_initial_query,
    build_query_from_viewport,
)

logger = logging.getLogger(__name__)

DEFAULT_CENTER = Coordinates(latitude=19.4326, longitude=-99.1332)  # Mexico City
DEFAULT_DEBOUNCE_SECONDS = 0.3

StateListener = Callable[[HeatmapState], None]
ErrorListener = Callable[[str], None]


class HeatmapSynchronizer:
    def __init__(
        self,
        cluster_fetch: Fetcher,
        address_lookup: AddressLookup,
        geolocation_provider: GeolocationProvider,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        initial_zoom: int = DEFAULT_INITIAL_ZOOM,
        initial_span: float = DEFAULT_SPAN_DEGREES,
        default_center: Coordinates = DEFAULT_CENTER,
        geolocation_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        on_error: Optional[ErrorListener] = None,
    ) -> None:
        self.initial_zoom = initial_zoom
        self.initial_span = initial_span
        self.default_center = default_center

        self._listeners: list[StateListener] = []
        self._error_listeners: list[ErrorListener] = [on_error] if on_error else []

        self.geolocation = GeolocationResolver(geolocation_provider, timeout=geolocation_timeout)
        self.lifecycle = RequestLifecycleManager(
            cluster_fetch, on_error=self._emit_error, on_change=self._on_lifecycle_change
        )
        self.address = AddressResolver(address_lookup, on_change=self._emit)
        self._debouncer: TrailingDebouncer[tuple[ViewportQuery, Optional[Coordinates]]] = (
            TrailingDebouncer(debounce_seconds, self._on_viewport_settled)
        )

        self._started = False
        self._initial_session: Optional[FetchSession] = None
        self._painted = False
        self._blocking_issued = False
        self._closed = False
        self._address_tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, cluster=None, geocoder=None, geolocator=None) -> "HeatmapSynchronizer":
        """Build a synchronizer wired to the module-level adapter singletons."""
        from heatmap_sync.adapters.cluster_adapter import cluster_adapter
        from heatmap_sync.adapters.geolocation_adapter import geolocation_adapter
        from heatmap_sync.adapters.nominatim_adapter import nominatim_adapter
        from heatmap_sync.core.config import settings

        cluster = cluster or cluster_adapter
        geocoder = geocoder or nominatim_adapter
        geolocator = geolocator or geolocation_adapter

        return cls(
            cluster.fetch,
            geocoder.simple_address,
            geolocator.locate,
            debounce_seconds=settings.debounce_seconds,
            initial_zoom=settings.initial_zoom,
            initial_span=settings.initial_span_degrees,
            default_center=Coordinates(
                latitude=settings.default_latitude,
                longitude=settings.default_longitude,
            ),
            geolocation_timeout=settings.geolocation_timeout_seconds,
        )

    # ── Presentation contract ─────────────────────────────────────────────────

    @property
    def loading(self) -> bool:
        # Blocking from construction until the first blocking load has settled.
        if not self._painted:
            return True
        return self.lifecycle.loading

    def state(self) -> HeatmapState:
        return HeatmapState(
            points=self.lifecycle.points,
            stats=self.lifecycle.stats,
            loading=self.loading,
            silent_loading=self.lifecycle.silent_loading,
            error=self.lifecycle.error,
            center_address=self.address.address,
            center_address_loading=self.address.loading,
            user_location=self.geolocation.result,
            geolocation_loading=self.geolocation.loading,
            query=self.lifecycle.last_query,
        )

    def subscribe(
        self,
        listener: StateListener,
        on_error: Optional[ErrorListener] = None,
    ) -> Callable[[], None]:
        """Register listeners; returns a callable that unregisters them."""
        self._listeners.append(listener)
        if on_error is not None:
            self._error_listeners.append(on_error)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
            if on_error is not None and on_error in self._error_listeners:
                self._error_listeners.remove(on_error)

        return unsubscribe

    async def start(self) -> Optional[FetchSession]:
        """Resolve the location and issue the initial blocking load (once)."""
        if self._closed:
            raise HeatmapSyncError("synchronizer is closed")
        if self._started:
            return self._initial_session
        self._started = True
        self._emit()

        location = await self.geolocation.resolve()
        center = location or self.default_center
        logger.info(
            "Initial map load (location: %s, center: %s)",
            "resolved" if location else "default",
            sanitize_coordinates(center.latitude, center.longitude),
        )

        query = build_initial_query(center, self.initial_zoom, self.initial_span)
        self._blocking_issued = True
        self._initial_session = self.lifecycle.dispatch(query, silent=False)
        self._lookup_address(center)
        return self._initial_session

    def handle_viewport_change(
        self,
        bounds: Optional[Bounds],
        zoom: int,
        center: Optional[Coordinates] = None,
    ) -> None:
        """Debounced entry point for pan/zoom notifications."""
        if self._closed:
            logger.debug("Ignoring viewport change on a closed synchronizer")
            return
        query = build_query_from_viewport(bounds, zoom)
        if center is None and bounds is not None:
            center = bounds.center
        self._debouncer.schedule((query, center))

    def refresh(self, query: ViewportQuery) -> FetchSession:
        """Explicit blocking reload; bypasses the debounce."""
        if self._closed:
            raise HeatmapSyncError("synchronizer is closed")
        self._blocking_issued = True
        return self.lifecycle.dispatch(query, silent=False)

    async def wait_idle(self) -> None:
        """Wait for the running fetch and address lookups (not a pending debounce)."""
        await self.lifecycle.wait()
        while self._address_tasks:
            await asyncio.gather(*list(self._address_tasks), return_exceptions=True)

    async def close(self) -> None:
        self._closed = True
        self._debouncer.cancel()
        self.lifecycle.cancel_current()
        tasks = list(self._address_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.lifecycle.wait()
        self._listeners.clear()
        self._error_listeners.clear()
        logger.info("Heatmap synchronizer closed")

    # ── Internals ─────────────────────────────────────────────────────────────

    def _on_viewport_settled(self, item: tuple[ViewportQuery, Optional[Coordinates]]) -> None:
        query, center = item
        if self._closed:
            return
        logger.debug("Viewport settled (zoom=%d)", query.zoom)
        self.lifecycle.dispatch(query, silent=True)
        if center is not None:
            self._lookup_address(center)

    def _lookup_address(self, center: Coordinates) -> None:
        task = asyncio.create_task(self.address.resolve(center.latitude, center.longitude))
        self._address_tasks.add(task)
        task.add_done_callback(self._address_tasks.discard)

    def _on_lifecycle_change(self) -> None:
        if self._blocking_issued and not self.lifecycle.in_flight:
            self._painted = True
        self._emit()

    def _emit(self) -> None:
        if not self._listeners:
            return
        snapshot = self.state()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Heatmap state listener failed")

    def _emit_error(self, message: str) -> None:
        for listener in list(self._error_listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("Heatmap error listener failed")

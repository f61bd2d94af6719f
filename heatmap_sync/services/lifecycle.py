"""
lifecycle.py — Request lifecycle for cluster fetches.

STATE MACHINE
─────────────
    Idle ──dispatch(silent=False)──▶ Fetching(blocking) ──▶ Idle
    Idle ──dispatch(silent=True)───▶ Fetching(silent)   ──▶ Idle
                                     └── error ──▶ (points=[], stats=0) ──▶ Idle

A new dispatch while a session is active supersedes it: the old session's
token is cancelled (which cancels its task), and whatever it eventually
produces is discarded because it is no longer the current session. Session
identity, not the transport, decides what may touch state.

OWNERSHIP
─────────
The current session reference, the point set and the stats belong to the
manager alone. Callers read them through properties and get notified via
the `on_change` callback; the `on_error` callback is the hook for a
transient user-facing notification.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional

from heatmap_sync.core.errors import SessionCancelled
from heatmap_sync.models.heatmap import ActivityStats, ClusterPoint, ViewportQuery
from heatmap_sync.services.stats import calculate_stats

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Failed to load map coordinates"


class CancellationToken:
    """Cooperative cancellation capability handed to the network call."""

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], object]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], object]) -> None:
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise SessionCancelled("fetch session was superseded")


Fetcher = Callable[[ViewportQuery, CancellationToken], Awaitable[list[ClusterPoint]]]


@dataclass(eq=False)
class FetchSession:
    session_id: int
    query: ViewportQuery
    silent: bool
    token: CancellationToken = field(default_factory=CancellationToken)
    in_flight: bool = False
    task: Optional[asyncio.Task] = field(default=None, repr=False)


class LifecycleState(str, Enum):
    IDLE = "idle"
    FETCHING_BLOCKING = "fetching_blocking"
    FETCHING_SILENT = "fetching_silent"


class RequestLifecycleManager:
    def __init__(
        self,
        fetcher: Fetcher,
        on_error: Optional[Callable[[str], None]] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self._fetcher = fetcher
        self._on_error = on_error
        self._on_change = on_change

        self._session: Optional[FetchSession] = None
        self._last_task: Optional[asyncio.Task] = None
        self._next_id = 0

        self._points: tuple[ClusterPoint, ...] = ()
        self._stats = ActivityStats.empty()
        self.error: Optional[str] = None
        self.last_query: Optional[ViewportQuery] = None

    # ── Read-only view ────────────────────────────────────────────────────────

    @property
    def points(self) -> list[ClusterPoint]:
        return list(self._points)

    @property
    def stats(self) -> ActivityStats:
        return self._stats

    @property
    def current_session(self) -> Optional[FetchSession]:
        return self._session

    @property
    def in_flight(self) -> bool:
        return self._session is not None and self._session.in_flight

    @property
    def loading(self) -> bool:
        return self.in_flight and not self._session.silent

    @property
    def silent_loading(self) -> bool:
        return self.in_flight and self._session.silent

    @property
    def state(self) -> LifecycleState:
        if not self.in_flight:
            return LifecycleState.IDLE
        if self._session.silent:
            return LifecycleState.FETCHING_SILENT
        return LifecycleState.FETCHING_BLOCKING

    # ── Transitions ───────────────────────────────────────────────────────────

    def dispatch(self, query: ViewportQuery, silent: bool = False) -> FetchSession:
        """Start a fetch for `query`, superseding any active session."""
        self._supersede()

        self._next_id += 1
        session = FetchSession(session_id=self._next_id, query=query, silent=silent)
        self._session = session
        self.last_query = query
        self.error = None

        # Marker goes up before the network call; _run clears it in `finally`
        # and the done-callback covers a task cancelled before its first step.
        session.in_flight = True
        session.task = asyncio.create_task(
            self._run(session), name=f"heatmap-fetch-{session.session_id}"
        )
        session.task.add_done_callback(lambda _t, s=session: self._task_done(s, _t))
        session.token.add_callback(session.task.cancel)
        self._last_task = session.task

        logger.info(
            "Dispatching session %d (zoom=%d, bounds=%s, %s)",
            session.session_id,
            query.zoom,
            query.bounds is not None,
            "silent" if silent else "blocking",
        )
        self._notify()
        return session

    def cancel_current(self) -> Optional[FetchSession]:
        """Cancel the active session without starting a new one."""
        session = self._supersede()
        if session is not None:
            self._notify()
        return session

    def complete(self, session: FetchSession, points: list[ClusterPoint]) -> bool:
        """Commit a session's points. Returns False if the session is stale."""
        if session is not self._session:
            logger.debug("Discarding results of superseded session %d", session.session_id)
            return False

        stats = calculate_stats(points)
        # Points and stats change together; there is no await in between.
        self._points = tuple(points)
        self._stats = stats
        self.error = None
        self._session = None

        logger.info(
            "Session %d loaded %d points (total=%d)",
            session.session_id,
            len(points),
            stats.total_count,
        )
        self._notify()
        return True

    def fail(self, session: FetchSession, exc: BaseException) -> bool:
        """Record a failed fetch. Returns False if the session is stale."""
        if session is not self._session:
            logger.debug(
                "Ignoring failure of superseded session %d: %s", session.session_id, exc
            )
            return False

        message = str(exc) or DEFAULT_ERROR_MESSAGE
        logger.error("Cluster fetch failed (session %d): %s", session.session_id, message)

        # A failed refresh clears previously loaded data, silent or not.
        self._points = ()
        self._stats = ActivityStats.empty()
        self.error = message
        self._session = None

        if self._on_error is not None:
            self._on_error(message)
        self._notify()
        return True

    async def wait(self) -> None:
        """Wait until no session is running (follows supersessions)."""
        while self._last_task is not None and not self._last_task.done():
            await asyncio.gather(self._last_task, return_exceptions=True)

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _run(self, session: FetchSession) -> None:
        try:
            points = await self._fetcher(session.query, session.token)
            session.token.raise_if_cancelled()
        except asyncio.CancelledError:
            logger.debug("Session %d cancelled", session.session_id)
            raise
        except SessionCancelled:
            logger.debug("Session %d superseded before commit", session.session_id)
        except Exception as exc:
            session.in_flight = False
            self.fail(session, exc)
        else:
            session.in_flight = False
            self.complete(session, points)
        finally:
            session.in_flight = False

    def _supersede(self) -> Optional[FetchSession]:
        session = self._session
        if session is None:
            return None
        self._session = None
        session.token.cancel()
        logger.debug("Session %d superseded", session.session_id)
        return session

    def _task_done(self, session: FetchSession, task: asyncio.Task) -> None:
        session.in_flight = False
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Session %d task crashed: %s", session.session_id, task.exception()
            )

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()

"""
debounce.py — Trailing-edge debounce primitive.

A burst of schedule() calls collapses into a single callback invocation,
`delay` seconds after the last call, carrying only the most recent value:

    debouncer = TrailingDebouncer(0.3, on_settled)
    debouncer.schedule(q1)   # t=0.0
    debouncer.schedule(q2)   # t=0.1  → q1 is dropped, timer restarts
    # t=0.4 → on_settled(q2)

Must be used from inside a running asyncio event loop. The callback may be
a plain function or a coroutine function; coroutines are run as tasks so a
later schedule() never cancels work that has already been emitted.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TrailingDebouncer(Generic[T]):
    def __init__(self, delay: float, callback: Callable[[T], Any]) -> None:
        if delay < 0:
            raise ValueError("delay must be non-negative")
        self.delay = delay
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None
        self._value: Optional[T] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, value: T) -> None:
        """Replace any pending emission with `value` and restart the timer."""
        if self._handle is not None:
            self._handle.cancel()
        self._value = value
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        """Drop the pending emission, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            self._value = None

    def _fire(self) -> None:
        value = self._value
        self._handle = None
        self._value = None
        try:
            result = self._callback(value)
        except Exception:
            logger.exception("Debounced callback failed")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Debounced coroutine failed: %s", task.exception())

    async def drain(self) -> None:
        """Wait for coroutines already emitted by the callback."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

"""
test_debounce.py — Trailing-edge debounce.
"""

import asyncio

import pytest

from heatmap_sync.services.debounce import TrailingDebouncer

DELAY = 0.05


class TestTrailingDebouncer:

    async def test_burst_collapses_to_last_value(self):
        received = []
        debouncer = TrailingDebouncer(DELAY, received.append)

        for value in ("a", "b", "c"):
            debouncer.schedule(value)
            await asyncio.sleep(DELAY / 5)

        await asyncio.sleep(DELAY * 3)
        assert received == ["c"]

    async def test_nothing_emitted_before_delay(self):
        received = []
        debouncer = TrailingDebouncer(DELAY, received.append)

        debouncer.schedule(1)
        assert debouncer.pending is True
        assert received == []

        await asyncio.sleep(DELAY * 3)
        assert received == [1]
        assert debouncer.pending is False

    async def test_separate_bursts_emit_separately(self):
        received = []
        debouncer = TrailingDebouncer(DELAY, received.append)

        debouncer.schedule(1)
        await asyncio.sleep(DELAY * 3)
        debouncer.schedule(2)
        await asyncio.sleep(DELAY * 3)

        assert received == [1, 2]

    async def test_cancel_drops_pending_value(self):
        received = []
        debouncer = TrailingDebouncer(DELAY, received.append)

        debouncer.schedule(1)
        debouncer.cancel()
        await asyncio.sleep(DELAY * 3)

        assert received == []
        assert debouncer.pending is False

    async def test_coroutine_callback_runs_as_task(self):
        received = []

        async def on_settled(value):
            await asyncio.sleep(0)
            received.append(value)

        debouncer = TrailingDebouncer(DELAY, on_settled)
        debouncer.schedule("x")
        await asyncio.sleep(DELAY * 2)
        await debouncer.drain()

        assert received == ["x"]

    async def test_callback_error_does_not_break_later_emissions(self):
        received = []

        def flaky(value):
            if value == "bad":
                raise RuntimeError("boom")
            received.append(value)

        debouncer = TrailingDebouncer(DELAY, flaky)
        debouncer.schedule("bad")
        await asyncio.sleep(DELAY * 3)
        debouncer.schedule("good")
        await asyncio.sleep(DELAY * 3)

        assert received == ["good"]

    def test_negative_delay_rejected(self):
        with pytest.raises(ValueError):
            TrailingDebouncer(-1, print)

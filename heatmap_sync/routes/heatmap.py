"""
heatmap.py — Presentation bridge for the heatmap synchronizer.

Routes:
  GET  /api/v1/heatmap           — current snapshot (points, stats, flags, address)
  GET  /api/v1/heatmap/stats     — activity buckets only (lighter payload)
  POST /api/v1/heatmap/viewport  — pan/zoom notification (debounced, silent fetch)
  POST /api/v1/heatmap/refresh   — explicit blocking reload; answers after it lands
  WS   /api/v1/heatmap/stream    — snapshot on connect, then one frame per change

HOW THE DATA FLOWS
──────────────────
1. The map front end opens the WebSocket and renders the first "state" frame.
2. On every Leaflet moveend/zoomend it POSTs the new bounds + zoom to /viewport.
3. The synchronizer debounces, fetches silently and pushes a new "state"
   frame; failed fetches additionally push an "error" frame for the toast.

Points are serialised with the backend's field names (latitud / longitud).
"""

import asyncio
import json
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect

from heatmap_sync.core.config import settings
from heatmap_sync.core.rate_limit import limiter
from heatmap_sync.core.runtime import get_synchronizer
from heatmap_sync.models.heatmap import (
    ActivityStats,
    HeatmapState,
    ViewportChange,
    ViewportQuery,
)
from heatmap_sync.services.synchronizer import HeatmapSynchronizer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/heatmap", tags=["heatmap"])

MAX_PENDING_ERRORS = 16


def _require(sync: Optional[HeatmapSynchronizer]) -> HeatmapSynchronizer:
    if sync is None:
        raise HTTPException(status_code=503, detail="Heatmap synchronizer is not running")
    return sync


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("", response_model=HeatmapState)
async def get_heatmap(sync=Depends(get_synchronizer)):
    """Return everything the map view renders, as one consistent snapshot."""
    return _require(sync).state()


@router.get("/stats", response_model=ActivityStats)
async def get_stats(sync=Depends(get_synchronizer)):
    return _require(sync).lifecycle.stats


@router.post("/viewport", status_code=202)
@limiter.limit(settings.viewport_rate_limit)
async def post_viewport(
    request: Request,
    change: ViewportChange,
    sync=Depends(get_synchronizer),
):
    """
    Accept a pan/zoom notification.

    Returns immediately; the fetch happens after the debounce window and its
    result is delivered through the stream (or the next GET).
    """
    _require(sync).handle_viewport_change(change.bounds, change.zoom, change.center)
    return {"accepted": True}


@router.post("/refresh", response_model=HeatmapState)
async def post_refresh(query: ViewportQuery, sync=Depends(get_synchronizer)):
    """Blocking reload of `query`; responds once the reload has settled."""
    sync = _require(sync)
    sync.refresh(query)
    await sync.lifecycle.wait()
    return sync.state()


# ── WebSocket stream ──────────────────────────────────────────────────────────

class FrameBuffer:
    """
    Outgoing frames for one stream client.

    A new "state" frame replaces any state frame still waiting to be sent,
    so a slow client only ever receives the latest snapshot. Error frames
    keep their order, up to MAX_PENDING_ERRORS (oldest dropped first).
    """

    def __init__(self, max_errors: int = MAX_PENDING_ERRORS) -> None:
        self._frames: deque[dict] = deque()
        self._max_errors = max_errors
        self._ready = asyncio.Event()

    def __len__(self) -> int:
        return len(self._frames)

    def put_state(self, frame: dict) -> None:
        self._frames = deque(f for f in self._frames if f["type"] != "state")
        self._frames.append(frame)
        self._ready.set()

    def put_error(self, frame: dict) -> None:
        pending = [f for f in self._frames if f["type"] == "error"]
        if len(pending) >= self._max_errors:
            self._frames.remove(pending[0])
            logger.debug("Dropping oldest pending error frame")
        self._frames.append(frame)
        self._ready.set()

    async def get(self) -> dict:
        while not self._frames:
            self._ready.clear()
            await self._ready.wait()
        return self._frames.popleft()

@router.websocket("/stream")
async def heatmap_stream(websocket: WebSocket, sync=Depends(get_synchronizer)):
    """
    Push state snapshots to the map front end.

    Message formats (JSON strings):
      { "type": "state", "data": <HeatmapState> }
      { "type": "error", "message": "...", "timestamp": "<ISO>" }
    """
    await websocket.accept()
    if sync is None:
        await websocket.close(code=1011)
        return

    frames = FrameBuffer()

    def on_state(state: HeatmapState) -> None:
        frames.put_state(
            {"type": "state", "data": state.model_dump(mode="json", by_alias=True)}
        )

    def on_error(message: str) -> None:
        frames.put_error(
            {
                "type": "error",
                "message": message,
                "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            }
        )

    async def pump() -> None:
        while True:
            payload = await frames.get()
            await websocket.send_text(json.dumps(payload))

    unsubscribe = sync.subscribe(on_state, on_error)
    on_state(sync.state())
    sender = asyncio.create_task(pump())
    try:
        # Inbound frames are ignored; reading is how a disconnect shows up.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Heatmap WebSocket client disconnected")
    except Exception as exc:
        logger.warning("Heatmap WebSocket error: %s", exc)
    finally:
        unsubscribe()
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)

"""
Synchronizer lifecycle management for the API process.

Architecture decision: single HeatmapSynchronizer instance shared across all
requests via a module-level holder. FastAPI's dependency injection
(get_synchronizer) gives routes clean access without importing the holder
directly, and tests swap in their own instance with dependency_overrides.

The synchronizer is started in FastAPI's lifespan (startup) and closed on
shutdown.
"""

import logging
from typing import Optional

from heatmap_sync.services.synchronizer import HeatmapSynchronizer

logger = logging.getLogger(__name__)


class SynchronizerHolder:
    """
    Holds the running synchronizer.

    A class rather than a bare global so tests can replace `.synchronizer`
    cleanly.
    """

    synchronizer: Optional[HeatmapSynchronizer] = None


sync_holder = SynchronizerHolder()


async def start_synchronizer() -> None:
    """
    Create the synchronizer and issue the initial map load.

    Called once at app startup (via lifespan). Start-up failures are logged
    and leave the holder empty; routes then answer 503 instead of the whole
    server refusing to boot.
    """
    try:
        synchronizer = HeatmapSynchronizer.from_settings()
        await synchronizer.start()
    except Exception as exc:
        logger.warning("Heatmap synchronizer failed to start: %s", exc)
        sync_holder.synchronizer = None
        return
    sync_holder.synchronizer = synchronizer
    logger.info("Heatmap synchronizer started")


async def stop_synchronizer() -> None:
    if sync_holder.synchronizer is not None:
        await sync_holder.synchronizer.close()
        sync_holder.synchronizer = None


def get_synchronizer() -> Optional[HeatmapSynchronizer]:
    """
    FastAPI dependency — inject the synchronizer into route handlers.

    Returns None when it is not running; routes translate that into 503.
    """
    return sync_holder.synchronizer

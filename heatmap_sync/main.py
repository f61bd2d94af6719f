"""
Heatmap Sync API — Application entry point.

Bootstraps FastAPI, wires up middleware, registers route groups, and
manages the synchronizer lifecycle.

Run locally:
    uvicorn heatmap_sync.main:app --reload

Extension points:
  - Add new route groups with app.include_router() below
  - Change startup behaviour in the lifespan context manager
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from heatmap_sync.core.config import settings
from heatmap_sync.core.rate_limit import limiter
from heatmap_sync.core.runtime import start_synchronizer, stop_synchronizer
from heatmap_sync.routes.health import router as health_router
from heatmap_sync.routes.heatmap import router as heatmap_router

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage startup and shutdown lifecycle.

    Code before `yield` runs on startup; code after runs on shutdown.
    """
    logger.info("Starting Heatmap Sync API (env: %s)", settings.environment)
    await start_synchronizer()
    yield
    logger.info("Shutting down Heatmap Sync API")
    await stop_synchronizer()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Heatmap Sync API",
    description=(
        "Viewport-driven synchronizer for the intervention heat map: debounced, "
        "cancellable cluster fetches plus best-effort center address lookup."
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Rate limiting ─────────────────────────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ─── Middleware ─────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(heatmap_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "Heatmap Sync API",
        "version": "0.1.0",
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }

"""
rate_limit.py — Global inbound rate limiter instance.

Uses slowapi (a Starlette-compatible wrapper around the `limits` library).
Requests are keyed by client IP address. Map clients emit a viewport
change for every pan/zoom gesture, so the viewport route is limited to
keep a misbehaving client from flooding the synchronizer.

Usage in routes:
    from fastapi import Request
    from heatmap_sync.core.rate_limit import limiter

    @router.post("/viewport")
    @limiter.limit(settings.viewport_rate_limit)
    async def viewport(request: Request, change: ViewportChange):
        ...

Wire into app (in main.py):
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

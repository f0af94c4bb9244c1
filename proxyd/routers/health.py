"""Health, version, and metrics endpoints.

/health and /version never require X-Control-Key authentication; /metrics
does whenever a control key is configured.

- GET /health: service status + proxy counts
- GET /version: daemon version as plain text
- GET /metrics: per-proxy connection counters
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from proxyd import __version__
from proxyd.proxy.registry import ProxyRegistry


def create_health_router(*, registry: ProxyRegistry) -> APIRouter:
    """Factory that creates the health router with injected dependencies."""

    health_router = APIRouter(tags=["health"])

    @health_router.get("/health")
    async def health() -> dict:
        """Service health check with proxy counts."""
        stats = registry.get_stats()
        return {
            "status": "healthy",
            "proxies": stats["total"],
            "enabled": stats["enabled"],
            "active_sessions": stats["active_sessions"],
        }

    @health_router.get("/version", response_class=PlainTextResponse)
    async def version() -> str:
        return __version__

    @health_router.get("/metrics")
    async def metrics() -> dict:
        """Operational metrics endpoint."""
        return registry.get_stats()

    return health_router

"""HTTP routers for the control API."""

from proxyd.routers.health import create_health_router
from proxyd.routers.proxies import create_proxies_router

__all__ = ["create_health_router", "create_proxies_router"]

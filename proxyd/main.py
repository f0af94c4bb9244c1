"""FastAPI application entry point with lifespan management.

Startup: configure logging, create the proxies listed in the startup file.
Shutdown: stop every proxy, closing listeners and terminating sessions.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from proxyd import __version__
from proxyd.config.proxies_file import load_proxies_file
from proxyd.config.settings import ProxydSettings
from proxyd.logging_config import configure_logging
from proxyd.middleware.auth import ControlKeyAuthMiddleware
from proxyd.middleware.error_handler import ProxydError, register_error_handlers
from proxyd.middleware.request_id import RequestIdMiddleware
from proxyd.proxy.forwarder import ConnectionForwarder
from proxyd.proxy.registry import ProxyRegistry
from proxyd.routers.health import create_health_router
from proxyd.routers.proxies import create_proxies_router
from proxyd.services.control_api import ControlAPI

logger = logging.getLogger(__name__)


async def _load_startup_proxies(control_api: ControlAPI, path: str) -> None:
    """Create each proxy from the startup file; failures are logged, not fatal."""
    for spec in load_proxies_file(path):
        try:
            await control_api.create_proxy(
                spec.name, spec.upstream, spec.listen, enabled=spec.enabled
            )
        except ProxydError as exc:
            logger.error(
                "Unable to create proxy from %s: %s",
                path,
                exc.message,
                extra={"proxy": spec.name, "upstream": spec.upstream, "listen": spec.listen},
            )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown logic."""
    settings: ProxydSettings = app.state.settings
    control_api: ControlAPI = app.state.control_api

    configure_logging(settings.log_level)
    logger.info("Starting proxyd control API on %s:%d", settings.host, settings.port)

    if settings.config_path:
        await _load_startup_proxies(control_api, settings.config_path)

    logger.info("proxyd started with %d proxies", len(control_api.registry))

    yield

    logger.info("Shutting down proxyd…")
    await control_api.registry.clear()
    logger.info("proxyd shut down")


def create_app(settings: ProxydSettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    The registry is owned by the application and reachable only through the
    routers (and ``app.state`` for tests and the lifespan).
    """
    settings = settings or ProxydSettings()

    registry = ProxyRegistry(
        forwarder=ConnectionForwarder(
            buffer_size=settings.buffer_size,
            grace_seconds=settings.session_grace_seconds,
        ),
        default_listen_host=settings.default_listen_host,
    )
    control_api = ControlAPI(registry=registry)

    app = FastAPI(
        title="proxyd",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.control_api = control_api

    register_error_handlers(app)

    app.include_router(create_health_router(registry=registry))
    app.include_router(create_proxies_router(control_api=control_api))

    # Starlette applies middleware in reverse order of add_middleware calls
    if settings.control_key:
        app.add_middleware(ControlKeyAuthMiddleware, control_key=settings.control_key)
    app.add_middleware(RequestIdMiddleware)

    return app

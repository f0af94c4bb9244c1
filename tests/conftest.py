"""Shared test fixtures for the proxyd test suite."""

from __future__ import annotations

import asyncio
import os

import pytest
import pytest_asyncio

from proxyd.config.settings import ProxydSettings
from tests.helpers import echo_handler, make_registry


# ---------------------------------------------------------------------------
# Keep the host environment out of ProxydSettings
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop any PROXYD_* variables inherited from the shell."""
    for key in list(os.environ):
        if key.startswith("PROXYD_"):
            monkeypatch.delenv(key)


# ---------------------------------------------------------------------------
# Settings / component fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> ProxydSettings:
    """Test settings with a short session grace period."""
    return ProxydSettings(session_grace_seconds=0.2)


@pytest_asyncio.fixture
async def registry(settings: ProxydSettings):
    reg = make_registry(settings)
    yield reg
    await reg.clear()


@pytest_asyncio.fixture
async def echo_server():
    """Loopback echo server; yields its ``host:port``."""
    server = await asyncio.start_server(echo_handler, "127.0.0.1", 0)
    host, port = server.sockets[0].getsockname()[:2]
    yield f"{host}:{port}"
    server.close()


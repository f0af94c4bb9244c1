"""Loopback socket helpers shared by the forwarding tests."""

from __future__ import annotations

import asyncio
import socket

import pytest

from proxyd.config.settings import ProxydSettings
from proxyd.proxy.forwarder import ConnectionForwarder
from proxyd.proxy.registry import ProxyRegistry


def unused_port() -> int:
    """A loopback port nothing is listening on right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def occupy(address: str) -> socket.socket:
    """Bind and listen on ``address`` (use port 0 for any); caller closes the socket."""
    host, _, port = address.rpartition(":")
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind((host, int(port)))
    sock.listen(1)
    return sock


async def echo_handler(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    try:
        while data := await reader.read(65536):
            writer.write(data)
            await writer.drain()
    except ConnectionError:
        pass
    finally:
        writer.close()


async def open_client(listen: str) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    host, _, port = listen.rpartition(":")
    return await asyncio.open_connection(host, int(port))


async def assert_refused(listen: str) -> None:
    with pytest.raises(ConnectionRefusedError):
        await open_client(listen)


async def read_until_closed(reader: asyncio.StreamReader) -> bytes:
    """Read to EOF; a reset counts as EOF."""
    try:
        return await reader.read()
    except ConnectionResetError:
        return b""


def make_registry(settings: ProxydSettings) -> ProxyRegistry:
    return ProxyRegistry(
        forwarder=ConnectionForwarder(
            buffer_size=settings.buffer_size,
            grace_seconds=settings.session_grace_seconds,
        ),
        default_listen_host=settings.default_listen_host,
    )

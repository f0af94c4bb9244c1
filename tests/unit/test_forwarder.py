"""Unit tests for forwarding sessions and the connection forwarder."""

from __future__ import annotations

import asyncio
import os

import pytest
import pytest_asyncio

from proxyd.proxy.forwarder import ConnectionForwarder
from proxyd.proxy.listener import ListenerManager
from proxyd.proxy.types import Address, Proxy, SessionState
from tests.helpers import open_client, read_until_closed, unused_port


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


@pytest_asyncio.fixture
async def forwarding():
    """Start proxies against a given upstream; everything is torn down afterwards."""
    listeners = ListenerManager()
    forwarder = ConnectionForwarder(buffer_size=4096, grace_seconds=0.2)
    started: list[Proxy] = []

    async def _start(upstream: str, name: str = "svc") -> Proxy:
        proxy = Proxy(
            name=name,
            upstream=Address.parse(upstream),
            listen=Address("127.0.0.1", 0),
            enabled=True,
        )
        await listeners.open(proxy, forwarder.handler_for(proxy))
        started.append(proxy)
        return proxy

    _start.forwarder = forwarder  # type: ignore[attr-defined]
    yield _start

    for proxy in started:
        proxy.enabled = False
        listeners.close(proxy)
        await forwarder.terminate_all(proxy)


class TestRelay:
    @pytest.mark.asyncio
    async def test_round_trip_integrity(self, forwarding, echo_server):
        proxy = await forwarding(echo_server)
        payload = os.urandom(256 * 1024)

        reader, writer = await open_client(str(proxy.listen))
        writer.write(payload)
        await writer.drain()
        writer.write_eof()

        echoed = await reader.read()
        writer.close()

        assert echoed == payload

    @pytest.mark.asyncio
    async def test_half_close_propagates_to_upstream(self, forwarding):
        received = bytearray()

        async def reply_after_eof(reader, writer):
            received.extend(await reader.read())
            writer.write(b"pong:" + bytes(received))
            await writer.drain()
            writer.close()

        upstream = await asyncio.start_server(reply_after_eof, "127.0.0.1", 0)
        try:
            port = upstream.sockets[0].getsockname()[1]
            proxy = await forwarding(f"127.0.0.1:{port}")

            reader, writer = await open_client(str(proxy.listen))
            writer.write(b"ping")
            await writer.drain()
            writer.write_eof()

            assert await reader.read() == b"pong:ping"
            writer.close()
        finally:
            upstream.close()

    @pytest.mark.asyncio
    async def test_upstream_close_ends_session(self, forwarding):
        async def greet_and_close(reader, writer):
            writer.write(b"bye")
            await writer.drain()
            writer.close()

        upstream = await asyncio.start_server(greet_and_close, "127.0.0.1", 0)
        try:
            port = upstream.sockets[0].getsockname()[1]
            proxy = await forwarding(f"127.0.0.1:{port}")

            reader, writer = await open_client(str(proxy.listen))
            assert await reader.read() == b"bye"
            writer.close()

            await _wait_for(lambda: not proxy.sessions)
        finally:
            upstream.close()

    @pytest.mark.asyncio
    async def test_session_tracked_while_forwarding(self, forwarding, echo_server):
        proxy = await forwarding(echo_server)

        reader, writer = await open_client(str(proxy.listen))
        writer.write(b"abc")
        assert await reader.readexactly(3) == b"abc"

        assert len(proxy.sessions) == 1
        session = next(iter(proxy.sessions))
        assert session.state is SessionState.FORWARDING
        assert session.bytes_up == 3
        assert session.bytes_down == 3
        assert proxy.accepted == 1

        writer.close()
        await _wait_for(lambda: session.done)
        assert session.state is SessionState.CLOSED
        assert not proxy.sessions

    @pytest.mark.asyncio
    async def test_concurrent_sessions_are_independent(self, forwarding, echo_server):
        proxy = await forwarding(echo_server)
        first_reader, first_writer = await open_client(str(proxy.listen))
        second_reader, second_writer = await open_client(str(proxy.listen))

        first_writer.write(b"one")
        second_writer.write(b"two")
        assert await first_reader.readexactly(3) == b"one"
        assert await second_reader.readexactly(3) == b"two"

        first_writer.close()
        second_writer.write(b"still")
        assert await second_reader.readexactly(5) == b"still"
        second_writer.close()


class TestUpstreamUnreachable:
    @pytest.mark.asyncio
    async def test_client_connection_is_reset(self, forwarding):
        proxy = await forwarding(f"127.0.0.1:{unused_port()}")

        reader, writer = await open_client(str(proxy.listen))
        assert await read_until_closed(reader) == b""
        writer.close()

        await _wait_for(lambda: proxy.upstream_failures == 1)
        assert proxy.enabled is True
        assert not proxy.sessions

    @pytest.mark.asyncio
    async def test_reset_not_graceful_close(self, forwarding):
        proxy = await forwarding(f"127.0.0.1:{unused_port()}")

        reader, writer = await open_client(str(proxy.listen))
        with pytest.raises(ConnectionResetError):
            await reader.read()
        writer.close()

    @pytest.mark.asyncio
    async def test_other_proxies_unaffected(self, forwarding, echo_server):
        broken = await forwarding(f"127.0.0.1:{unused_port()}", name="broken")
        healthy = await forwarding(echo_server, name="healthy")

        reader, writer = await open_client(str(broken.listen))
        await read_until_closed(reader)
        writer.close()

        reader, writer = await open_client(str(healthy.listen))
        writer.write(b"ok")
        assert await reader.readexactly(2) == b"ok"
        writer.close()
        assert healthy.upstream_failures == 0


class TestTerminateAll:
    @pytest.mark.asyncio
    async def test_terminates_open_sessions(self, forwarding, echo_server):
        proxy = await forwarding(echo_server)

        reader, writer = await open_client(str(proxy.listen))
        writer.write(b"x")
        await reader.readexactly(1)

        terminated = await forwarding.forwarder.terminate_all(proxy)

        assert terminated == 1
        assert not proxy.sessions
        assert await read_until_closed(reader) == b""
        writer.close()

    @pytest.mark.asyncio
    async def test_no_sessions(self, forwarding, echo_server):
        proxy = await forwarding(echo_server)
        assert await forwarding.forwarder.terminate_all(proxy) == 0

    @pytest.mark.asyncio
    async def test_disabled_proxy_resets_new_clients(self, forwarding, echo_server):
        proxy = await forwarding(echo_server)
        proxy.enabled = False

        reader, writer = await open_client(str(proxy.listen))
        assert await read_until_closed(reader) == b""
        writer.close()
        assert proxy.accepted == 0

    @pytest.mark.asyncio
    async def test_disabled_proxy_sends_reset(self, forwarding, echo_server):
        proxy = await forwarding(echo_server)
        proxy.enabled = False

        reader, writer = await open_client(str(proxy.listen))
        with pytest.raises(ConnectionResetError):
            await reader.read()
        writer.close()

"""Per-connection forwarding between a client and the proxy's upstream.

Each accepted client connection becomes a :class:`ForwardingSession` which
moves through ``CONNECTING -> FORWARDING -> CLOSED``:

- CONNECTING dials the upstream. When that fails the client connection is
  reset and the session closes; the proxy itself is unaffected.
- FORWARDING runs two pumps concurrently, client->upstream and
  upstream->client. EOF on one side is passed on as a half-close
  (``write_eof``) on the other, and the session ends once both directions
  are finished. An error in either pump ends the session.
- CLOSED is terminal: both transports are closed and the session has been
  removed from its proxy.

The :class:`ConnectionForwarder` creates sessions for a proxy's accept loop
and terminates them when the proxy is disabled or deleted.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import struct
from uuid import uuid4

from proxyd.middleware.error_handler import UpstreamUnreachableError
from proxyd.proxy.listener import ClientHandler
from proxyd.proxy.types import Proxy, SessionState

logger = logging.getLogger(__name__)

_LINGER_RESET = struct.pack("ii", 1, 0)


def _peer(writer: asyncio.StreamWriter) -> str:
    peer = writer.get_extra_info("peername")
    if not peer:
        return "unknown"
    return f"{peer[0]}:{peer[1]}"


def _reset(writer: asyncio.StreamWriter) -> None:
    """Close with RST instead of FIN."""
    sock = writer.get_extra_info("socket")
    if sock is not None:
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, _LINGER_RESET)
        except OSError:
            pass
    writer.transport.abort()


class ForwardingSession:
    """One client connection relayed to the upstream of ``proxy``."""

    def __init__(
        self,
        proxy: Proxy,
        client_reader: asyncio.StreamReader,
        client_writer: asyncio.StreamWriter,
        *,
        buffer_size: int = 32 * 1024,
    ) -> None:
        self.id = uuid4().hex[:12]
        self.proxy = proxy
        self.client = _peer(client_writer)
        self.state = SessionState.CONNECTING
        self.error: str | None = None
        self.bytes_up = 0
        self.bytes_down = 0

        self._client_reader = client_reader
        self._client_writer = client_writer
        self._upstream_writer: asyncio.StreamWriter | None = None
        self._buffer_size = buffer_size
        self._dial: asyncio.Future | None = None
        self._pumps: list[asyncio.Task[None]] = []
        self._closed = asyncio.Event()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Drive the session until it reaches CLOSED."""
        self.proxy.sessions.add(self)
        try:
            try:
                upstream = await self._connect()
            except UpstreamUnreachableError as exc:
                self.error = exc.message
                self.proxy.upstream_failures += 1
                logger.error(
                    "Unable to open connection to upstream",
                    extra=self._log_fields(error_reason=exc.message),
                )
                _reset(self._client_writer)
                return

            if upstream is None:
                return
            await self._forward(*upstream)
        finally:
            self._finish()

    async def _connect(
        self,
    ) -> tuple[asyncio.StreamReader, asyncio.StreamWriter] | None:
        """Dial the upstream. Returns ``None`` if the session was closed meanwhile."""
        upstream = self.proxy.upstream
        self._dial = asyncio.ensure_future(
            asyncio.open_connection(upstream.host, upstream.port)
        )
        await asyncio.wait({self._dial})

        if self._dial.cancelled():
            return None
        exc = self._dial.exception()
        if exc is not None:
            raise UpstreamUnreachableError(f"Unable to connect to upstream {upstream}: {exc}")
        return self._dial.result()

    async def _forward(
        self,
        upstream_reader: asyncio.StreamReader,
        upstream_writer: asyncio.StreamWriter,
    ) -> None:
        self._upstream_writer = upstream_writer
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.FORWARDING

        self._pumps = [
            asyncio.ensure_future(
                self._pump(self._client_reader, upstream_writer, upstream=True)
            ),
            asyncio.ensure_future(
                self._pump(upstream_reader, self._client_writer, upstream=False)
            ),
        ]
        done, pending = await asyncio.wait(
            self._pumps, return_when=asyncio.FIRST_EXCEPTION
        )
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                self.error = str(task.exception()) or type(task.exception()).__name__
                logger.debug(
                    "Forwarding error",
                    extra=self._log_fields(error_reason=self.error),
                )

    async def _pump(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        upstream: bool,
    ) -> None:
        while True:
            data = await reader.read(self._buffer_size)
            if not data:
                break
            writer.write(data)
            await writer.drain()
            if upstream:
                self.bytes_up += len(data)
            else:
                self.bytes_down += len(data)

        # Half-close: pass the EOF on, keep reading the other direction.
        if writer.can_write_eof():
            writer.write_eof()

    def _finish(self) -> None:
        self.state = SessionState.CLOSED
        self._client_writer.close()
        if self._upstream_writer is not None:
            self._upstream_writer.close()
        self.proxy.sessions.discard(self)
        self._closed.set()
        logger.debug("Session closed", extra=self._log_fields())

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Ask the session to end: stop dialing or pumping and close both sides.

        Transports are closed gracefully, so buffered bytes are still flushed.
        """
        if self.state is SessionState.CLOSED:
            return
        if self._dial is not None:
            self._dial.cancel()
        for task in self._pumps:
            task.cancel()
        self.state = SessionState.CLOSED
        self._client_writer.close()
        if self._upstream_writer is not None:
            self._upstream_writer.close()

    def abort(self) -> None:
        """Drop both connections without flushing."""
        self._client_writer.transport.abort()
        if self._upstream_writer is not None:
            self._upstream_writer.transport.abort()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    @property
    def done(self) -> bool:
        return self._closed.is_set()

    def _log_fields(self, **extra: object) -> dict:
        fields: dict = {
            "proxy": self.proxy.name,
            "session_id": self.id,
            "client": self.client,
            "upstream": str(self.proxy.upstream),
            "bytes_up": self.bytes_up,
            "bytes_down": self.bytes_down,
        }
        fields.update(extra)
        return fields


class ConnectionForwarder:
    """Creates forwarding sessions and tears them down per proxy.

    Parameters
    ----------
    buffer_size:
        Read size for each pump.
    grace_seconds:
        How long closed sessions get to flush before they are aborted.
    """

    def __init__(self, *, buffer_size: int = 32 * 1024, grace_seconds: float = 1.0) -> None:
        self._buffer_size = buffer_size
        self._grace_seconds = grace_seconds

    def handler_for(self, proxy: Proxy) -> ClientHandler:
        """Return the accept callback for ``proxy``'s listening socket."""

        async def _handle(
            reader: asyncio.StreamReader, writer: asyncio.StreamWriter
        ) -> None:
            if not proxy.enabled:
                _reset(writer)
                return
            proxy.accepted += 1
            session = ForwardingSession(
                proxy, reader, writer, buffer_size=self._buffer_size
            )
            logger.debug(
                "Accepted client",
                extra={
                    "proxy": proxy.name,
                    "session_id": session.id,
                    "client": session.client,
                    "listen": str(proxy.listen),
                    "upstream": str(proxy.upstream),
                },
            )
            await session.run()

        return _handle

    async def terminate_all(self, proxy: Proxy) -> int:
        """Close every session of ``proxy``; abort those still open after the grace period.

        Returns the number of sessions terminated.
        """
        sessions = list(proxy.sessions)
        if not sessions:
            return 0

        for session in sessions:
            session.close()

        waiters = {
            asyncio.ensure_future(session.wait_closed()): session for session in sessions
        }
        _, pending = await asyncio.wait(waiters, timeout=self._grace_seconds)
        for waiter in pending:
            waiters[waiter].abort()
            waiter.cancel()
        proxy.sessions.difference_update(sessions)

        logger.info(
            "Terminated %d session(s)",
            len(sessions),
            extra={"proxy": proxy.name, "listen": str(proxy.listen)},
        )
        return len(sessions)

"""Listening socket management, one ``asyncio.Server`` per enabled proxy.

``open`` binds the proxy's listen address and starts the accept loop;
``close`` stops accepting and releases the socket immediately. Sockets are
bound with SO_REUSEADDR so a proxy that is toggled down can rebind the same
address right away even while its old connections linger in TIME_WAIT.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Awaitable, Callable

from proxyd.middleware.error_handler import BindError
from proxyd.proxy.types import Address, Proxy

logger = logging.getLogger(__name__)

ClientHandler = Callable[[asyncio.StreamReader, asyncio.StreamWriter], Awaitable[None]]


class ListenerManager:
    """Owns the bound listening sockets, keyed by proxy name."""

    def __init__(self) -> None:
        self._servers: dict[str, asyncio.Server] = {}

    async def open(self, proxy: Proxy, handler: ClientHandler) -> asyncio.Server:
        """Bind ``proxy.listen`` and start accepting connections.

        A port of 0 is resolved to the ephemeral port the kernel picked and
        written back to ``proxy.listen``.

        Raises
        ------
        BindError
            If the address is in use or cannot be bound.
        """
        if proxy.name in self._servers:
            return self._servers[proxy.name]

        try:
            host = await self._resolve(proxy.listen)
            server = await asyncio.start_server(
                handler,
                host=host,
                port=proxy.listen.port,
                reuse_address=True,
            )
        except OSError as exc:
            raise BindError(
                f"Unable to bind {proxy.listen} for proxy {proxy.name}: {exc.strerror or exc}",
                proxy=proxy.name,
                listen=str(proxy.listen),
            ) from exc

        if proxy.listen.port == 0:
            host, port = server.sockets[0].getsockname()[:2]
            proxy.listen = Address(host=host, port=port)

        self._servers[proxy.name] = server
        logger.info(
            "Started proxy",
            extra={
                "proxy": proxy.name,
                "listen": str(proxy.listen),
                "upstream": str(proxy.upstream),
            },
        )
        return server

    def close(self, proxy: Proxy) -> None:
        """Stop accepting and release the socket. Safe to call repeatedly."""
        server = self._servers.pop(proxy.name, None)
        if server is None:
            return
        server.close()
        logger.info(
            "Stopped listening",
            extra={"proxy": proxy.name, "listen": str(proxy.listen)},
        )

    @staticmethod
    async def _resolve(listen: Address) -> str:
        """First address ``listen.host`` resolves to.

        Only that address is bound, even for a host with several addresses
        (``localhost`` on a dual-stack machine), so each proxy owns exactly one
        listening socket.
        """
        infos = await asyncio.get_running_loop().getaddrinfo(
            listen.host or None,
            listen.port,
            type=socket.SOCK_STREAM,
            flags=socket.AI_PASSIVE,
        )
        if not infos:
            raise OSError(f"{listen.host} did not resolve to any address")
        return infos[0][4][0]

    def is_open(self, proxy: Proxy) -> bool:
        return proxy.name in self._servers

    def __len__(self) -> int:
        return len(self._servers)

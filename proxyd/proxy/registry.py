"""Proxy registry: the single source of truth for managed proxies.

Proxies are kept in the order their creation completed. While a proxy's
listener is being bound its name is only reserved; the proxy becomes visible
once it is committed, so readers never see a half-created proxy.

Every mutation of one proxy (create, delete, enable, disable) runs under that
proxy's own ``asyncio.Lock``, so operations on the same name are serialized
while different proxies are mutated concurrently. The name mapping itself is
only touched between awaits, which makes each check-and-reserve atomic on the
event loop and lets readers take a consistent snapshot without locking.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from proxyd.middleware.error_handler import (
    BindError,
    NameConflictError,
    ProxyNotFoundError,
)
from proxyd.proxy.forwarder import ConnectionForwarder
from proxyd.proxy.listener import ListenerManager
from proxyd.proxy.types import Address, Proxy

if TYPE_CHECKING:
    from proxyd.models.requests import CreateProxyRequest

logger = logging.getLogger(__name__)


class ProxyRegistry:
    """Owns all proxies and drives their listeners and sessions.

    Parameters
    ----------
    listeners:
        Listening socket manager; a fresh one is created when omitted.
    forwarder:
        Connection forwarder; a fresh one is created when omitted.
    default_listen_host:
        Host used when a listen address is missing or given as ``:port``.
    """

    def __init__(
        self,
        *,
        listeners: ListenerManager | None = None,
        forwarder: ConnectionForwarder | None = None,
        default_listen_host: str = "127.0.0.1",
    ) -> None:
        self._listeners = listeners or ListenerManager()
        self._forwarder = forwarder or ConnectionForwarder()
        self._default_listen_host = default_listen_host
        self._proxies: dict[str, Proxy] = {}
        self._pending: set[str] = set()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, name: str) -> Proxy:
        """Return the proxy named ``name`` or raise ``ProxyNotFoundError``."""
        proxy = self._proxies.get(name)
        if proxy is None:
            raise ProxyNotFoundError(f"Proxy {name} not found")
        return proxy

    def list(self) -> list[Proxy]:
        """Snapshot of all proxies in creation order."""
        return list(self._proxies.values())

    def __contains__(self, name: object) -> bool:
        return name in self._proxies

    def __len__(self) -> int:
        return len(self._proxies)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(
        self,
        name: str,
        upstream: str,
        listen: str | None = None,
        *,
        enabled: bool = True,
    ) -> Proxy:
        """Register a new proxy and, if ``enabled``, start listening.

        Raises
        ------
        NameConflictError
            If ``name`` is taken. The registry is left unchanged.
        BindError
            If the listen address cannot be bound. Nothing is registered.
        """
        proxy = Proxy(
            name=name,
            upstream=Address.parse(upstream),
            listen=self._parse_listen(listen),
        )

        async with proxy.lock:
            if name in self._proxies or name in self._pending:
                raise NameConflictError(f"Proxy {name} already exists")
            self._pending.add(name)
            try:
                if enabled:
                    await self._start(proxy)
                self._proxies[name] = proxy
            except BindError:
                proxy.removed = True
                raise
            finally:
                self._pending.discard(name)

        logger.info(
            "Created proxy",
            extra={
                "proxy": proxy.name,
                "listen": str(proxy.listen),
                "upstream": str(proxy.upstream),
            },
        )
        return proxy

    async def delete(self, name: str) -> None:
        """Stop the proxy, terminate its sessions and remove it."""
        proxy = self.get(name)
        async with proxy.lock:
            if proxy.removed:
                raise ProxyNotFoundError(f"Proxy {name} not found")
            await self._stop(proxy)
            self._discard(proxy)

        logger.info("Deleted proxy", extra={"proxy": name, "listen": str(proxy.listen)})

    async def set_enabled(self, name: str, enabled: bool) -> Proxy:
        """Enable (reopen the same listen address) or disable a proxy.

        Disabling returns once the listener is closed and every session has
        been terminated. A failed enable raises ``BindError`` and leaves the
        proxy disabled.
        """
        proxy = self.get(name)
        async with proxy.lock:
            if proxy.removed:
                raise ProxyNotFoundError(f"Proxy {name} not found")
            if enabled:
                await self._start(proxy)
            else:
                await self._stop(proxy)
        return proxy

    async def populate(self, specs: Iterable[CreateProxyRequest]) -> list[Proxy]:
        """Add or replace proxies from a list of definitions.

        An existing proxy with identical listen and upstream addresses is
        kept as is; any other existing proxy of the same name is stopped and
        replaced. Stops at the first failure, raising it after the proxies
        applied so far have been recorded in the error details.
        """
        applied: list[Proxy] = []
        for spec in specs:
            try:
                applied.append(await self._add_or_replace(spec))
            except BindError as exc:
                exc.details["proxies"] = [p.name for p in applied]
                raise
        return applied

    async def reset(self) -> None:
        """Re-enable every disabled proxy."""
        for proxy in self.list():
            async with proxy.lock:
                if not proxy.removed and not proxy.enabled:
                    await self._start(proxy)

    async def clear(self) -> None:
        """Stop and remove every proxy."""
        for proxy in self.list():
            async with proxy.lock:
                if proxy.removed:
                    continue
                await self._stop(proxy)
                self._discard(proxy)
        logger.info("Registry cleared")

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_stats(self) -> dict:
        """Return registry statistics for the metrics endpoint."""
        proxies = self.list()
        enabled = sum(1 for p in proxies if p.enabled)
        return {
            "total": len(proxies),
            "enabled": enabled,
            "disabled": len(proxies) - enabled,
            "active_sessions": sum(len(p.sessions) for p in proxies),
            "proxies": [p.to_dict() for p in proxies],
        }

    # ------------------------------------------------------------------
    # Internals (caller holds proxy.lock)
    # ------------------------------------------------------------------

    async def _start(self, proxy: Proxy) -> None:
        if proxy.enabled:
            return
        await self._listeners.open(proxy, self._forwarder.handler_for(proxy))
        proxy.enabled = True

    async def _stop(self, proxy: Proxy) -> None:
        if not proxy.enabled:
            return
        proxy.enabled = False
        self._listeners.close(proxy)
        await self._forwarder.terminate_all(proxy)
        logger.info(
            "Terminated proxy",
            extra={
                "proxy": proxy.name,
                "listen": str(proxy.listen),
                "upstream": str(proxy.upstream),
            },
        )

    async def _add_or_replace(self, spec: CreateProxyRequest) -> Proxy:
        existing = self._proxies.get(spec.name)
        if existing is not None:
            async with existing.lock:
                same = (
                    not existing.removed
                    and existing.upstream == Address.parse(spec.upstream)
                    and (spec.listen is None or existing.listen == self._parse_listen(spec.listen))
                )
                if same:
                    return existing
                if not existing.removed:
                    await self._stop(existing)
                    self._discard(existing)
        return await self.create(
            spec.name, spec.upstream, spec.listen, enabled=spec.enabled
        )

    def _discard(self, proxy: Proxy) -> None:
        proxy.removed = True
        if self._proxies.get(proxy.name) is proxy:
            del self._proxies[proxy.name]

    def _parse_listen(self, listen: str | None) -> Address:
        if not listen:
            return Address(host=self._default_listen_host, port=0)
        return Address.parse(listen, default_host=self._default_listen_host)

"""Control API: the operations external clients perform on proxies.

A thin layer over :class:`ProxyRegistry` that owns the semantics of the
control surface: state names, not-found handling, and the response shapes
returned to the HTTP routers.
"""

from __future__ import annotations

import logging

from proxyd.middleware.error_handler import InvalidStateError
from proxyd.models.requests import CreateProxyRequest
from proxyd.proxy.registry import ProxyRegistry
from proxyd.proxy.types import Proxy, ProxyState

logger = logging.getLogger(__name__)


class ControlAPI:
    """Create, list, delete and toggle proxies.

    Parameters
    ----------
    registry:
        The registry holding every managed proxy.
    """

    def __init__(self, *, registry: ProxyRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ProxyRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def list_proxies(self) -> list[Proxy]:
        return self._registry.list()

    def get_proxy(self, name: str) -> Proxy:
        return self._registry.get(name)

    async def create_proxy(
        self,
        name: str,
        upstream: str,
        listen: str | None = None,
        *,
        enabled: bool = True,
    ) -> Proxy:
        """Create a proxy; ``listen`` defaults to an ephemeral local port."""
        return await self._registry.create(name, upstream, listen, enabled=enabled)

    async def delete_proxy(self, name: str) -> None:
        await self._registry.delete(name)

    async def set_state(self, name: str, state: str | ProxyState) -> Proxy:
        """Toggle a proxy ``up`` (listening) or ``down`` (refusing connections).

        Raises
        ------
        InvalidStateError
            If ``state`` is not ``up`` or ``down``.
        ProxyNotFoundError
            If no proxy is named ``name``.
        BindError
            If going ``up`` and the listen address is no longer available.
        """
        try:
            target = ProxyState(state.lower() if isinstance(state, str) else state)
        except ValueError:
            raise InvalidStateError(
                f"Invalid state {state!r} for proxy {name}, expected 'up' or 'down'"
            ) from None

        proxy = await self._registry.set_enabled(name, target is ProxyState.UP)
        logger.info(
            "Proxy state changed",
            extra={"proxy": name, "listen": str(proxy.listen), "event": f"state_{target.value}"},
        )
        return proxy

    async def update_proxy(self, name: str, enabled: bool | None) -> Proxy:
        """Apply a partial update; only ``enabled`` is mutable."""
        if enabled is None:
            return self._registry.get(name)
        return await self.set_state(name, ProxyState.UP if enabled else ProxyState.DOWN)

    async def populate(self, specs: list[CreateProxyRequest]) -> list[Proxy]:
        return await self._registry.populate(specs)

    async def reset(self) -> None:
        await self._registry.reset()

"""Proxy data models shared by the registry, listener and forwarder."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from proxyd.proxy.forwarder import ForwardingSession


class ProxyState(str, Enum):
    """Target states accepted by the control API's state toggle."""

    UP = "up"
    DOWN = "down"


class SessionState(str, Enum):
    """Lifecycle of a single forwarded connection."""

    CONNECTING = "connecting"
    FORWARDING = "forwarding"
    CLOSED = "closed"


@dataclass(frozen=True)
class Address:
    """A TCP ``host:port`` pair."""

    host: str
    port: int

    @classmethod
    def parse(cls, value: str, default_host: str = "") -> Address:
        """Parse ``host:port``, ``[v6]:port`` or ``:port``.

        An empty host is replaced by *default_host*. Raises ``ValueError``
        on anything else.
        """
        host, sep, port_text = value.strip().rpartition(":")
        if not sep:
            raise ValueError(f"address {value!r} is missing a port")
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        elif ":" in host:
            raise ValueError(f"IPv6 address {value!r} must be bracketed")
        try:
            port = int(port_text)
        except ValueError:
            raise ValueError(f"address {value!r} has a non-numeric port") from None
        if not 0 <= port <= 65535:
            raise ValueError(f"address {value!r} has an out-of-range port")
        return cls(host=host or default_host, port=port)

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(eq=False)
class Proxy:
    """A named forwarding endpoint and everything it owns.

    ``listen`` is rewritten once, when an ephemeral port is first resolved,
    and never changes afterwards.
    """

    name: str
    upstream: Address
    listen: Address
    enabled: bool = False
    sessions: set[ForwardingSession] = field(default_factory=set)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    removed: bool = False
    accepted: int = 0
    upstream_failures: int = 0

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "upstream": str(self.upstream),
            "listen": str(self.listen),
            "enabled": self.enabled,
            "active_sessions": len(self.sessions),
            "accepted": self.accepted,
            "upstream_failures": self.upstream_failures,
        }

"""Proxy engine package: registry, listening sockets and forwarding."""

from proxyd.proxy.forwarder import ConnectionForwarder, ForwardingSession
from proxyd.proxy.listener import ListenerManager
from proxyd.proxy.registry import ProxyRegistry
from proxyd.proxy.types import Address, Proxy, ProxyState, SessionState

__all__ = [
    "Address",
    "ConnectionForwarder",
    "ForwardingSession",
    "ListenerManager",
    "Proxy",
    "ProxyRegistry",
    "ProxyState",
    "SessionState",
]

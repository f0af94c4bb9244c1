"""Middleware package: error hierarchy, auth, and request ID."""

from proxyd.middleware.auth import ControlKeyAuthMiddleware
from proxyd.middleware.error_handler import (
    AuthenticationError,
    BindError,
    InvalidStateError,
    NameConflictError,
    ProxydError,
    ProxyNotFoundError,
    UpstreamUnreachableError,
    ValidationError,
    register_error_handlers,
)
from proxyd.middleware.request_id import RequestIdMiddleware

__all__ = [
    "AuthenticationError",
    "BindError",
    "ControlKeyAuthMiddleware",
    "InvalidStateError",
    "NameConflictError",
    "ProxyNotFoundError",
    "ProxydError",
    "RequestIdMiddleware",
    "UpstreamUnreachableError",
    "ValidationError",
    "register_error_handlers",
]

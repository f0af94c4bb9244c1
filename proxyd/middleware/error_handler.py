"""Global error hierarchy and FastAPI exception handlers.

All proxyd-specific errors extend ProxydError. The FastAPI exception handlers
catch these errors (plus Pydantic's RequestValidationError and unhandled
exceptions) and return a JSON error body the control client can raise on:
``{ "error": <message>, "status": <code> }`` with an optional ``meta`` dict.
"""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class ProxydError(Exception):
    """Base error for all proxyd-specific errors."""

    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, **kwargs: object) -> None:
        self.message = message or self.__class__.message
        self.details = kwargs
        super().__init__(self.message)


class ValidationError(ProxydError):
    """Malformed control request body: includes field-level details."""

    status_code = 400
    message = "Bad request body"


class AuthenticationError(ProxydError):
    """Invalid or missing control key."""

    status_code = 401
    message = "Invalid or missing control key"


class NameConflictError(ProxydError):
    """A proxy with the requested name already exists."""

    status_code = 409
    message = "Proxy already exists"


class ProxyNotFoundError(ProxydError):
    """No proxy registered under the requested name."""

    status_code = 404
    message = "Proxy not found"


class BindError(ProxydError):
    """The listen address could not be bound."""

    status_code = 409
    message = "Unable to bind listen address"


class InvalidStateError(ProxydError):
    """Requested proxy state is neither ``up`` nor ``down``."""

    status_code = 400
    message = "Invalid proxy state, expected 'up' or 'down'"


class UpstreamUnreachableError(ProxydError):
    """Dialing the upstream failed. Scoped to a single forwarding session."""

    status_code = 502
    message = "Unable to open connection to upstream"


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------


def _error_body(
    status_code: int,
    error: str,
    meta: dict | None = None,
) -> JSONResponse:
    """Build a JSON error response."""
    content: dict = {"error": error, "status": status_code}
    if meta:
        content["meta"] = meta
    return JSONResponse(status_code=status_code, content=content)


async def _proxyd_error_handler(_request: Request, exc: ProxydError) -> JSONResponse:
    """Handle ProxydError subclasses."""
    meta = exc.details if exc.details else None
    return _error_body(exc.status_code, exc.message, meta=meta)


async def _validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle FastAPI / Pydantic RequestValidationError (400)."""
    field_errors = [
        {
            "field": " -> ".join(str(loc) for loc in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    return _error_body(
        status_code=ValidationError.status_code,
        error=ValidationError.message,
        meta={"fields": field_errors},
    )


async def _unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions: log traceback, return generic 500."""
    logger.error(
        "Unhandled exception: %s\n%s",
        exc,
        traceback.format_exc(),
    )
    return _error_body(status_code=500, error="Internal server error")


# ---------------------------------------------------------------------------
# Registration helper
# ---------------------------------------------------------------------------


def register_error_handlers(app: FastAPI) -> None:
    """Wire up all exception handlers on the FastAPI application."""
    app.add_exception_handler(ProxydError, _proxyd_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)  # type: ignore[arg-type]

"""X-Control-Key authentication middleware.

When a control key is configured, every control request must carry a
matching ``X-Control-Key`` header. Only /health and /version are excluded;
/metrics lists every proxy's addresses and needs the key like the rest.
With no key configured the middleware is not installed at all and the
control API is open, which is what the stock toxiproxy clients expect.

Uses ``hmac.compare_digest`` for constant-time comparison.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from proxyd.middleware.error_handler import AuthenticationError, _error_body

logger = logging.getLogger(__name__)

_PUBLIC_PATHS: set[str] = {"/health", "/version"}


class ControlKeyAuthMiddleware(BaseHTTPMiddleware):
    """Rejects control requests whose ``X-Control-Key`` does not match."""

    def __init__(self, app, control_key: str) -> None:  # noqa: ANN001
        super().__init__(app)
        self._control_key = control_key

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in _PUBLIC_PATHS:
            return await call_next(request)

        provided_key = request.headers.get("x-control-key")
        source_ip = request.client.host if request.client else "unknown"

        if not provided_key or not hmac.compare_digest(provided_key, self._control_key):
            logger.warning(
                "Rejected control request",
                extra={
                    "event": "auth_failure",
                    "reason": "missing_control_key" if not provided_key else "invalid_control_key",
                    "source_ip": source_ip,
                    "path": request.url.path,
                },
            )
            return _error_body(
                status_code=AuthenticationError.status_code,
                error=AuthenticationError.message,
            )

        return await call_next(request)

"""Pydantic Settings for the proxy daemon.

All environment variables use the PROXYD_ prefix.
Example: PROXYD_PORT=8474, PROXYD_CONFIG_PATH=/etc/proxyd/proxies.yaml
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class ProxydSettings(BaseSettings):
    """Daemon configuration validated from environment variables."""

    # Control API
    host: str = "localhost"
    port: int = Field(default=8474, ge=1, le=65535)
    log_level: str = "INFO"
    control_key: str | None = None  # X-Control-Key; None leaves the API open

    # Proxies created at startup (YAML or JSON list)
    config_path: str | None = None

    # Forwarding
    default_listen_host: str = "127.0.0.1"
    buffer_size: int = Field(default=32 * 1024, ge=1024)
    session_grace_seconds: float = Field(default=1.0, ge=0)

    model_config = {"env_prefix": "PROXYD_"}

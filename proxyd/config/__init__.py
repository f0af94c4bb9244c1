"""Configuration module: settings and the startup proxies file."""

from proxyd.config.proxies_file import load_proxies_file
from proxyd.config.settings import ProxydSettings

__all__ = [
    "ProxydSettings",
    "load_proxies_file",
]

"""proxyd: dynamically managed TCP proxies behind an HTTP control API."""

__version__ = "1.0.0"

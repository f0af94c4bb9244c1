"""proxyd entry point.

Usage:
    python -m proxyd
    or
    uvicorn proxyd.main:create_app --factory --host localhost --port 8474
"""

import sys

import uvicorn
from pydantic import ValidationError

from proxyd.config.settings import ProxydSettings
from proxyd.main import create_app


def main():
    try:
        settings = ProxydSettings()
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        # Logging is configured by the application lifespan
        log_config=None,
    )


if __name__ == "__main__":
    main()

"""Startup proxies file loader.

The file holds a list of proxy definitions in the same shape the control API
accepts on ``POST /populate``. JSON is a subset of YAML, so both formats are
read with the YAML loader.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from proxyd.models.requests import CreateProxyRequest

logger = logging.getLogger(__name__)


def load_proxies_file(path: str) -> list[CreateProxyRequest]:
    """Parse a proxies file into validated proxy definitions.

    Args:
        path: Path to the YAML or JSON file.

    Returns:
        The valid definitions in file order. A missing or unparsable file
        yields an empty list; invalid entries are skipped.
    """
    config_file = Path(path)

    if not config_file.exists():
        logger.warning("No proxies file found at %s, starting with no proxies", path)
        return []

    try:
        raw = yaml.safe_load(config_file.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        logger.error("Failed to parse proxies file at %s: %s", path, exc)
        return []

    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning("Proxies file %s must contain a list of proxies, ignoring", path)
        return []

    proxies: list[CreateProxyRequest] = []
    for index, entry in enumerate(raw, start=1):
        try:
            proxies.append(CreateProxyRequest.model_validate(entry))
        except Exception as exc:
            logger.error("Invalid proxy #%d in %s, skipping: %s", index, path, exc)

    return proxies

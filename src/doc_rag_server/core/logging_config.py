"""Process-wide logging setup shared by the API server and the worker."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(log_level: str = "INFO") -> None:
    """Install a single stream handler on the root logger."""
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(level=numeric_level, format=LOG_FORMAT, force=True)

    # httpx logs every request at INFO; keep provider chatter out of the way.
    logging.getLogger("httpx").setLevel(max(numeric_level, logging.WARNING))

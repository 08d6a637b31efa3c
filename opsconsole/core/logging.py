"""Logging setup shared by the console, the CLI and background helpers."""
from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
NOISY_LOGGERS = ("urllib3", "gspread")


def configure_logging(level: str | None = None) -> None:
    """Initialize basic logging with the console's format and log level.

    ``level`` wins over the ``LOG_LEVEL`` environment variable, which
    defaults to ``INFO``. HTTP client chatter is capped at WARNING so that
    remote calls only show up through our own log lines.
    """

    resolved_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=resolved_level, format=LOG_FORMAT)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, logging.getLogger().level))

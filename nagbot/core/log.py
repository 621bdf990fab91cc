"""Loguru sink setup."""

from __future__ import annotations

import sys

from loguru import logger


def setup_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Replace loguru's default sink with a stderr sink at ``level``.

    With ``json_logs`` each record is written as one JSON object per line.
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), serialize=json_logs)
    logger.debug(f"Logging configured (level={level.upper()}, json={json_logs})")

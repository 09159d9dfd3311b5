from __future__ import annotations

import sys

from loguru import logger


def configure_logging(level: str = "INFO") -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format="{time:HH:mm:ss} | {level: <8} | {message}")


def log_api_error(context: str, exc: Exception) -> None:
    logger.error("API error in {}: {}", context, exc)

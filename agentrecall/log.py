"""Process-wide loguru setup and per-component loggers."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from loguru import Logger

__all__ = ["configure_logging", "component_logger"]

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[component]}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", *, debug: bool = False) -> None:
    """Route all agentrecall logging to stderr. Call once from the composition root."""
    logger.remove()
    logger.configure(extra={"component": "agentrecall"})
    logger.add(sys.stderr, level="DEBUG" if debug else level.upper(), format=LOG_FORMAT)


def component_logger(component: str) -> Logger:
    return logger.bind(component=component)

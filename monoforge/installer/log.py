"""Logging configuration using loguru.

Intercepts stdlib logging so that httpx and friends flow through loguru
with the same format as package-manager output.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger


_LOGURU_LEVELS = frozenset({"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"})


class _InterceptHandler(logging.Handler):
    """Forward stdlib records (httpx, httpcore) to loguru, tagged with their logger name."""

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int = record.levelname if record.levelname in _LOGURU_LEVELS else record.levelno

        # Count the frames between emit() and the code that called the stdlib logger
        frame, depth = logging.currentframe(), 0
        while frame is not None and frame.f_code.co_filename in (__file__, logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.bind(stdlib_logger=record.name).opt(depth=depth, exception=record.exc_info).log(
            level, "{}", record.getMessage()
        )


def setup_logging(level: str = "INFO") -> None:
    """Make loguru the only sink and route stdlib logging into it.

    The CLI calls this once before dispatching a command.
    """
    level = level.upper()

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=(
            "<green>{time:HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
    )

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug("Logging initialised (level={})", level)

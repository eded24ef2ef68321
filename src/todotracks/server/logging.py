"""Logging configuration using structlog."""

import logging
import sys
from typing import Any

import structlog

from todotracks.exceptions import ConfigurationError

LOG_FORMATS = ("console", "json")

# GitPython logs every spawned command at DEBUG; one TODO scan spawns
# hundreds of them.
NOISY_LOGGERS = ("git.cmd", "git.util")


def configure_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Configure structlog for the server and CLI.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format ("json" for JSON lines, "console" for human-readable)

    Raises:
        ConfigurationError: If ``log_format`` is not a known format
    """
    if log_format not in LOG_FORMATS:
        raise ConfigurationError(
            f"Unknown log format {log_format!r}, expected one of {', '.join(LOG_FORMATS)}"
        )
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # Logs go to stderr; CLI commands print their JSON results on stdout.
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=numeric_level,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.INFO))

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "console":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.extend([
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

"""Structured logging configuration using structlog."""

from __future__ import annotations

import logging
import sys
from typing import IO, TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from companyscope.config.settings import Settings

PACKAGE_LOGGER = "companyscope"

# Event keys that may carry credentials and must never reach a log sink
_REDACTED_KEYS = frozenset({"token", "access_token", "authorization", "bearer"})


def redact_credentials(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Replace credential values in the event dict."""
    for key in event_dict:
        if key.lower() in _REDACTED_KEYS:
            event_dict[key] = "***"
    return event_dict


def setup_logging(
    log_level: str = "INFO", json_output: bool = False, stream: IO[str] | None = None
) -> logging.Logger:
    """Route structlog events for this package to ``stream`` (stderr by default).

    Only the ``companyscope`` stdlib logger gets a handler, so a host
    application's root logging setup is left alone. Calling this again
    replaces the previous handler. Returns the configured package logger.
    """
    stream = stream or sys.stderr
    if json_output or not stream.isatty():
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            redact_credentials,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    package_logger.propagate = False
    return package_logger


def setup_logging_from_settings(settings: Settings) -> logging.Logger:
    return setup_logging(log_level=settings.log_level, json_output=settings.log_json)

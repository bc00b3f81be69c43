"""
Mintless Claim API - Logging Configuration
"""

import logging
import sys
from typing import Any, TextIO

import structlog

from claim_api.core.config import settings

# Chatty third-party loggers: per-request HTTP lines and scheduler ticks
QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler")


def _add_service_context(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    event_dict.setdefault("service", "claim-api")
    event_dict.setdefault("version", settings.VERSION)
    return event_dict


def setup_logging(stream: TextIO | None = None) -> None:
    """
    Configure structured logging for the service and its libraries.

    Args:
        stream: Log destination, stdout by default
    """
    use_json = settings.ENV == "production"

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if use_json:
        processors.append(_add_service_context)
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, settings.LOG_LEVEL.upper())
    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stdout,
        level=level,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

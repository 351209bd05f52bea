"""structlog setup shared by the API, the resolver and the CLI."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from .settings import settings
from .utils import request_id_ctx

SERVICE_NAME = "whatthemenu"
SERVICE_VERSION = "0.1.0"
MAX_FIELD_CHARS = 300

NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "uvicorn.access")


def add_service_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    request_id = request_id_ctx.get("")
    if request_id:
        event_dict["request_id"] = request_id
    event_dict["service"] = SERVICE_NAME
    event_dict["environment"] = settings.SENTRY_ENVIRONMENT
    event_dict["version"] = SERVICE_VERSION
    return event_dict


def clip_long_values(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Cap string fields such as raw model output and driver error text."""
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str) and len(value) > MAX_FIELD_CHARS:
            event_dict[key] = value[:MAX_FIELD_CHARS] + "…"
    return event_dict


def configure_structlog(json_logs: bool = False) -> None:
    """JSON lines unless DEBUG is on and ``json_logs`` is False."""
    if json_logs or not settings.DEBUG:
        timestamper = structlog.processors.TimeStamper(fmt="iso")
        renderer: Processor = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        timestamper = structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S")
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_service_context,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            timestamper,
            clip_long_values,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


__all__ = ["configure_structlog", "get_logger"]

"""
Structured logging for the device engine.

Every record is one JSON object (or a console line when LOG_FORMAT=console)
carrying event_type, level, logger, service and an ISO-8601 UTC timestamp.
Device context travels two ways:

    bind_device(42).info("trust_score_calculated", score=54)

    with device_context(42):
        ...  # every log call in this thread/task carries device_id=42

No backend_deviceid imports here; this module is imported first by everything else.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

SERVICE_NAME = "backend_deviceid"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()


def _level_value(level: str) -> int:
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.INFO


def _add_service(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _event_to_event_type(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog's positional 'event' becomes event_type; message mirrors it for log shippers."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    event_dict.setdefault("message", str(event_dict.get("event_type", "")))
    return event_dict


def configure_structlog(level: str | None = None, fmt: str | None = None) -> None:
    """(Re)configure structlog. Called once at import with LOG_LEVEL / LOG_FORMAT."""
    level = level or LOG_LEVEL
    fmt = (fmt or LOG_FORMAT).lower()
    renderer: Any
    if fmt == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    else:
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _add_service,
            _event_to_event_type,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_level_value(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Module logger with the module name bound as `logger`.

        logger = get_logger(__name__)
        logger.info("fingerprint_verified", identifier_type="serial", match_count=1)
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_device(device_id: int | str) -> structlog.BoundLogger:
    """Logger with device_id bound to every call made through it."""
    return get_logger(SERVICE_NAME).bind(device_id=device_id)


@contextmanager
def device_context(device_id: int | str) -> Iterator[None]:
    """Bind device_id into contextvars for the duration of the block."""
    with structlog.contextvars.bound_contextvars(device_id=device_id):
        yield

"""Centralised logging configuration helpers."""

from __future__ import annotations

import json
import logging
import logging.config
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator


_LOG_CONTEXT: ContextVar[Dict[str, Any]] = ContextVar("colorbook_log_context", default={})

LOG_LEVEL_ENV_VAR = "COLORBOOK_LOG_LEVEL"
LOG_FORMAT_ENV_VAR = "COLORBOOK_LOG_FORMAT"


class ContextFilter(logging.Filter):
    """Copy fields bound with :func:`log_context` onto each record."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401 - inherited docstring
        context = _LOG_CONTEXT.get()
        for key, value in context.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        if getattr(record, "service", None) is None:
            record.service = self.service_name
        return True


class JsonFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    _RESERVED = frozenset(
        {
            "args",
            "asctime",
            "created",
            "exc_info",
            "exc_text",
            "filename",
            "funcName",
            "levelname",
            "levelno",
            "lineno",
            "message",
            "module",
            "msecs",
            "msg",
            "name",
            "pathname",
            "process",
            "processName",
            "relativeCreated",
            "stack_info",
            "taskName",
            "thread",
            "threadName",
        }
    )

    # Emitted first so pipeline context is easy to scan in aggregated logs.
    _PRIORITY_FIELDS = (
        "service",
        "batch_id",
        "project_id",
        "page_index",
        "attempt",
        "reinforcement_level",
        "state",
        "stage",
        "provider",
        "request_id",
        "route",
        "method",
        "status_code",
        "latency_ms",
        "cost_usd",
    )

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited docstring
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._PRIORITY_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = self._coerce(value)

        for key, value in record.__dict__.items():
            if key in self._RESERVED or key in payload or key.startswith("_"):
                continue
            coerced = self._coerce(value)
            if coerced is not None:
                payload[key] = coerced

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)
        return json.dumps(payload, ensure_ascii=True)

    @staticmethod
    def _coerce(value: Any) -> Any:
        if isinstance(value, (bytes, bytearray)):
            return None
        if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
            return value.value
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            return str(value)
        return value


def setup_logging(
    service_name: str,
    level: str | int | None = None,
    *,
    capture_warnings: bool | None = None,
) -> None:
    """Configure process-wide logging for a pipeline service.

    ``COLORBOOK_LOG_LEVEL`` overrides the default ``INFO`` level when ``level``
    is omitted, and ``COLORBOOK_LOG_FORMAT=text`` switches to a plain formatter
    for local development. Calling this again replaces the handlers.
    """

    resolved_level = level or os.getenv(LOG_LEVEL_ENV_VAR, "INFO").upper()
    formatter = "text" if os.getenv(LOG_FORMAT_ENV_VAR, "json").lower() == "text" else "json"
    handlers = ["default"]
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": "colorbook_observability.logging.JsonFormatter"},
            "text": {"format": "%(asctime)s %(levelname)s [%(service)s] %(name)s: %(message)s"},
        },
        "filters": {
            "context": {
                "()": "colorbook_observability.logging.ContextFilter",
                "service_name": service_name,
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
                "formatter": formatter,
                "filters": ["context"],
            }
        },
        "root": {"level": resolved_level, "handlers": handlers},
        "loggers": {
            "uvicorn": {"handlers": handlers, "level": resolved_level, "propagate": False},
            "uvicorn.error": {"handlers": handlers, "level": resolved_level, "propagate": False},
            "uvicorn.access": {"handlers": handlers, "level": resolved_level, "propagate": False},
            "httpx": {"level": "WARNING"},
        },
    }

    logging.config.dictConfig(config)

    if capture_warnings is None:
        capture_env = os.getenv("COLORBOOK_CAPTURE_WARNINGS", "")
        capture_warnings = capture_env.lower() in {"1", "true", "t", "yes", "y"}
    if capture_warnings:
        logging.captureWarnings(True)


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Temporarily bind contextual information that should accompany logs.

    Passing ``None`` for a key removes it for the duration of the block.
    """

    updated = dict(_LOG_CONTEXT.get())
    for key, value in kwargs.items():
        if value is None:
            updated.pop(key, None)
        else:
            updated[key] = value
    token = _LOG_CONTEXT.set(updated)
    try:
        yield
    finally:
        _LOG_CONTEXT.reset(token)

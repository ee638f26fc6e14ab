"""
Structured logging for flowledger.

Pool, executor and transaction events are logged as event names with
key/value context (``pool_exhausted``, ``transaction_rolled_back``, ...).
Libraries only call :func:`get_logger`; the process entry point (the CLI,
or the host application) calls :func:`configure_logging` once.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="flowledger")
            │
            ▼
        processor chain:
          1. TimeStamper (ISO)
          2. merge_contextvars  (transaction_id bound by the coordinator)
          3. add_log_level / add_logger_name
          4. service metadata
          5. ECS field names (JSON only)
          6. JSONRenderer | ConsoleRenderer  ──► stdlib handler on stderr

Tags:
    logging, structlog, observability, flowledger
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "flowledger"

# flowledger key -> ECS field
_ECS_FIELDS = {
    "timestamp": "@timestamp",
    "level": "log.level",
    "logger": "log.logger",
    "transaction_id": "transaction.id",
}


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def _ecs_fields(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Rename well-known keys to their Elastic Common Schema names."""
    for key, ecs_key in _ECS_FIELDS.items():
        if key in event_dict:
            event_dict[ecs_key] = event_dict.pop(key)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "flowledger",
) -> None:
    """Configure structlog and the stdlib root handler.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for JSON unless stderr is a tty
        service: Value of ``service.name`` on every line
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service
    numeric_level = getattr(logging, level.upper())

    if json_format is None:
        json_format = not sys.stderr.isatty()

    processors: list[Processor] = [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]
    if json_format:
        processors += [_ecs_fields, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # stdout stays free for CLI output
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level, force=True)


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


class LogContext:
    """Bind keys for every log line emitted inside a ``with`` block.

    Values an enclosing scope bound under the same keys are restored on exit.
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs
        self._scope: Any = None

    def __enter__(self) -> LogContext:
        self._scope = structlog.contextvars.bound_contextvars(**self._context)
        self._scope.__enter__()
        return self

    def __exit__(self, *args: Any) -> None:
        self._scope.__exit__(*args)


__all__ = [
    "configure_logging",
    "get_logger",
    "LogContext",
]

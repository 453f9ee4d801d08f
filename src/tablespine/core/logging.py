"""
Structured logging for table-spine.

Every module obtains its logger through ``get_logger(__name__)`` and logs
snake_case event names with key/value fields, e.g.::

    logger.warning("async_backlog_exceeded", backlog=1200, threshold=1000)

Unconfigured structlog still prints to stdout. Applications (and the
``tablespine`` CLI, which keeps stdout for query output) call
``configure_logging`` once at startup to pick the level, renderer and
output stream.

Examples:
    >>> from tablespine.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", stream="stderr")
    >>> logger = get_logger(__name__)
    >>> with LogContext(database="main"):
    ...     logger.info("table_registered", table="players")
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "tablespine"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


class _StreamLoggerFactory:
    """Build ``PrintLogger`` instances on the stream current at call time.

    Looking ``sys.stdout``/``sys.stderr`` up per logger keeps output on
    whatever stream is installed later (pytest capture, CliRunner).
    """

    def __init__(self, stream: Literal["stdout", "stderr"]):
        self.stream = stream

    def __call__(self, *args: Any) -> structlog.PrintLogger:
        return structlog.PrintLogger(getattr(sys, self.stream))


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "tablespine",
    stream: Literal["stdout", "stderr"] = "stdout",
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name added to every event as ``service.name``
        stream: ``"stdout"`` or ``"stderr"``
        add_timestamp: Include ISO timestamp in logs
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not getattr(sys, stream).isatty()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _add_service_metadata,
    ]
    if add_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer(default=str))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
        context_class=dict,
        logger_factory=_StreamLoggerFactory(stream),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs on this thread/task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Scoped logging context.

    Example:
        with LogContext(database="main", table="players"):
            logger.info("table_created")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]

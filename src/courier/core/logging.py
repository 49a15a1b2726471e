"""
Structured logging for courier.

Every module logs through structlog with dotted event names and keyword
fields, so one delivery can be followed across the intake, dispatcher and
retry controller by its ``alert_id``.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="courier")
            │
            ▼
        processor chain:
          1. TimeStamper (iso)
          2. merge_contextvars      ← LogContext(alert_id=...)
          3. add_log_level / add_logger_name
          4. _stamp_service
          5. _ecs_field_names       (JSON only)
          6. JSONRenderer | ConsoleRenderer
            │
            ▼
        stdlib root logger → stdout   (shared with httpx / redis loggers)

        logger = get_logger(__name__)
        logger.info("dispatch.attempt", destination_id="out-1", outcome="success")

Examples:
    >>> from courier.core.logging import configure_logging, get_logger, LogContext
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> logger = get_logger(__name__)
    >>> with LogContext(alert_id="a-123"):
    ...     logger.info("intake.received")

Tags:
    logging, structlog, observability, json-logging, courier-core
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_service = "courier"


def _stamp_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service.name", _service)
    return event_dict


def _ecs_field_names(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Rename ``timestamp``/``level`` to their ECS field names for log shippers."""
    for ours, ecs in (("timestamp", "@timestamp"), ("level", "log.level")):
        if ours in event_dict:
            event_dict[ecs] = event_dict.pop(ours)
    return event_dict


def _processor_chain(json_format: bool) -> list[Processor]:
    chain: list[Processor] = [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _stamp_service,
    ]
    if json_format:
        chain += [
            _ecs_field_names,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return chain


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "courier",
) -> None:
    """Route structlog and stdlib logging to stdout.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        json_format: JSON lines when True, console output when False,
            JSON whenever stdout is not a terminal when None
        service: value of ``service.name`` on every event
    """
    global _service
    _service = service
    numeric_level = getattr(logging, level.upper())

    if json_format is None:
        json_format = not sys.stdout.isatty()

    structlog.configure(
        processors=_processor_chain(json_format),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    logging.getLogger().setLevel(numeric_level)


def get_logger(name: str | None = None) -> Any:
    """Return a structlog logger, normally ``get_logger(__name__)``."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach fields to every event logged from the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind fields for the duration of a ``with`` / ``async with`` block.

    Example:
        async with LogContext(alert_id="a-123", message_id="m-1"):
            logger.info("intake.received")

    Each asyncio task runs in its own contextvars copy, so concurrent
    messages in one batch keep their own ``alert_id``.
    """

    def __init__(self, **fields: Any):
        self._fields = fields

    def __enter__(self) -> LogContext:
        bind_context(**self._fields)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        unbind_context(*self._fields)

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, *exc_info: Any) -> None:
        self.__exit__(*exc_info)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]

"""
Structured logging for reconverge.

The executor and the convergence driver log through structlog. Nothing is
configured at import time; applications (and the ``reconverge`` CLI) call
:func:`configure_logging` once, which falls back to ``ReconvergeSettings``
for anything not passed explicitly.

Architecture:
    ::

        configure_logging(level=None, json_format=None)
              │  (defaults from RECONVERGE_LOG_LEVEL / RECONVERGE_LOG_FORMAT)
              ▼
        processors:
          TimeStamper(iso) → merge_contextvars → log level / logger name
          → service name → [ECS field names] → JSON | console renderer

        LogContext(convergence_id=..., executor=...)
              binds keys for one run and restores the previous values

Event names used by the package:
    executor.attempt_failed      debug    one attempt failed, retrying
    executor.call_exhausted      debug    every attempt of a call failed
    executor.circuit_opened      warning  a worker tripped
    convergence.pass_complete    info     metrics of one pass
    convergence.converged        info     every item resolved
    convergence.exhausted        info     pass budget spent or nothing left to retry
    engine.persist / unpersist   debug    collection checkpoints

Examples:
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> log = get_logger(__name__)
    >>> with LogContext(convergence_id="a1b2"):
    ...     log.info("convergence.started", items=10)

Tags:
    logging, structlog, observability, reconverge
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from reconverge.core.errors import InvalidConfigError
from reconverge.core.settings import get_settings

_ECS_FIELDS = {
    "timestamp": "@timestamp",
    "level": "log.level",
    "logger": "log.logger",
}


def _service_name(service: str) -> Processor:
    def add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service.name", service)
        return event_dict

    return add_service


def _ecs_field_names(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Rename standard keys to their Elastic Common Schema names."""
    for key, ecs_key in _ECS_FIELDS.items():
        if key in event_dict:
            event_dict[ecs_key] = event_dict.pop(key)
    return event_dict


def _level_number(level: str) -> int:
    number = logging.getLevelName(level.upper())
    if not isinstance(number, int):
        raise InvalidConfigError("log_level", level)
    return number


def configure_logging(
    level: str | None = None,
    json_format: bool | None = None,
    service: str = "reconverge",
    add_timestamp: bool = True,
) -> None:
    """Configure structlog for the process.

    Args:
        level: DEBUG, INFO, WARNING or ERROR (default: settings.log_level)
        json_format: JSON lines instead of console output
            (default: settings.log_format)
        service: Value of the ``service.name`` field
        add_timestamp: Prefix events with an ISO timestamp

    Raises:
        InvalidConfigError: Unknown level name
    """
    settings = get_settings()
    threshold = _level_number(level or settings.log_level)
    if json_format is None:
        json_format = settings.json_logs

    processors: list[Processor] = []
    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))
    processors += [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _service_name(service),
    ]
    if json_format:
        processors += [_ecs_field_names, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    # not cached: tests and the CLI reconfigure at runtime
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=threshold)


def get_logger(name: str | None = None) -> Any:
    """Structured logger, usually ``get_logger(__name__)``."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind keys for the duration of a block.

    Keys that were already bound are restored on exit, so contexts nest.
    Pool threads started inside the block see the keys when the caller
    copies the context (``contextvars.copy_context``).
    """

    def __init__(self, **kwargs: Any):
        self.values = kwargs
        self._tokens: Any = None

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self.values)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]

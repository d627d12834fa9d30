"""
Structured logging for logsync.

Configures structlog once per process and hands out bound loggers. The
sync engine never reads its own logs; they exist for the operator who
wants to know why the cursor did (or did not) move.

Manifesto:
    - **Structured:** events are snake_case names plus key/value fields
    - **Correlated:** every cycle binds ``cadence`` and ``run_id``
    - **Flexible output:** JSON for log shipping, colored console on a TTY

Architecture:
    ::

        configure_logging(level="info", json_format=None, service="logsync")
              │
              ▼
        structlog processor chain:
          1. merge_contextvars        (cadence, run_id from LogContext)
          2. add_log_level / add_logger_name
          3. TimeStamper(fmt="iso")
          4. _add_service_metadata
          5. JSONRenderer | ConsoleRenderer

        logger = get_logger(__name__)
        logger.info("forward_cycle_completed", sent=12, cursor_ts="...")

Examples:
    >>> from logsync.core.logging import configure_logging, get_logger, LogContext
    >>> configure_logging(level="debug", json_format=True)
    >>> logger = get_logger(__name__)
    >>> with LogContext(cadence="forward", run_id="01J..."):
    ...     logger.info("cycle_started")

Tags:
    logging, structlog, observability, json-logging
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "logsync"

# "warn" is accepted as an alias.
_LEVEL_ALIASES = {"warn": "warning"}


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def resolve_level(level: str) -> int:
    """Translate ``debug|info|warn|warning|error`` to a stdlib level number."""
    name = level.strip().lower()
    name = _LEVEL_ALIASES.get(name, name)
    value = logging.getLevelName(name.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


def configure_logging(
    level: str = "info",
    json_format: bool | None = None,
    service: str = "logsync",
) -> None:
    """Configure structured logging for the process.

    Args:
        level: debug, info, warn/warning or error
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name included in every event
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    numeric_level = resolve_level(level)

    if json_format is None:
        json_format = not sys.stdout.isatty()

    processors: list[Processor] = [
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if json_format:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
        force=True,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(cadence="backfill", run_id="abc123"):
            logger.info("backfill_cycle_started")
        # Context cleared here
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args: object) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "get_logger",
    "resolve_level",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]

"""logsync Core -- primitives shared by the sync engine.

Manifesto:
    The sync engine is a small state machine driven by a scheduler tick.
    Everything it needs from the outside world (a durable key/value store,
    a clock, a logger, typed errors) lives here so the controllers stay
    free of transport details.

    - **Protocol-first:** ``KeyValueStore`` is a protocol, backends are swappable
    - **Explicit state:** cursors are values, persisted only by ``CursorStore``
    - **Typed failures:** ``SyncError`` hierarchy + ``Result`` for best-effort writes

Architecture::

    errors.py          Structured error hierarchy (SyncError, SourceError, SinkError)
    result.py          Result[T] envelope (Ok / Err / try_result)
    timestamps.py      UTC helpers, ISO-8601 parsing, run ids
    logging.py         structlog configuration + LogContext
    settings.py        SyncSettings (pydantic-settings) + get_settings()
    kv.py              KeyValueStore protocol: memory / Redis / Cloudflare KV
    cursors.py         Cursor, ForwardState, BackfillState, CursorStore
    lease.py           Optional per-cadence lease held in the state store
"""

from logsync.core.cursors import BackfillState, Cursor, CursorStore, ForwardState
from logsync.core.errors import (
    AuthError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    MissingConfigError,
    ParseError,
    SinkError,
    SourceError,
    StorageError,
    SyncError,
)
from logsync.core.kv import InMemoryKeyValueStore, KeyPage, KeyValueStore
from logsync.core.result import Err, Ok, Result

__all__ = [
    "AuthError",
    "BackfillState",
    "ConfigError",
    "Cursor",
    "CursorStore",
    "Err",
    "ErrorCategory",
    "ErrorContext",
    "ForwardState",
    "InMemoryKeyValueStore",
    "KeyPage",
    "KeyValueStore",
    "MissingConfigError",
    "Ok",
    "ParseError",
    "Result",
    "SinkError",
    "SourceError",
    "StorageError",
    "SyncError",
]

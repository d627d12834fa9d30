"""
Structured error types for the logsync engine.

Provides a small hierarchy of typed errors with the metadata the scheduler
tier needs to decide what happened to a cycle: which collaborator failed,
whether re-running the cycle on the next tick is expected to help, and the
request/record context for the operational log.

Manifesto:
    A sync cycle talks to four collaborators (log source, key/value store,
    token endpoint, warehouse sink). When one of them fails, the cycle must
    abort without moving its cursor, and the log line must say *which*
    collaborator failed and *why*. Plain exceptions lose that, so every
    failure the engine raises is a ``SyncError`` carrying:

    - **Category:** SOURCE, PARSE, SINK, AUTH, STORAGE, CONFIG, ...
    - **Retryable:** whether the next scheduled tick is expected to succeed
    - **Context:** cadence, url, http status, record id, free-form metadata
    - **Cause:** the chained transport/library exception

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                         SyncError                            │
        │          (category, retryable, context, cause)               │
        ├─────────────────────────────────────────────────────────────┤
        │  SourceError           SinkError          AuthError          │
        │  (SOURCE)              (SINK)             (AUTH)             │
        │     │                                        │               │
        │  SourceUnavailable     StorageError       TokenExchangeError │
        │  ParseError (PARSE)    (STORAGE)                             │
        │                                                              │
        │  ConfigError → MissingConfigError, InvalidConfigError        │
        └─────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Raise SinkError for per-row rejections (those are reported)
    ✅ DO: Put row failures in ``InsertReport.row_errors``

    ❌ DON'T: Raise from dedup marking failures
    ✅ DO: Collect them as ``Err`` results in ``MarkReport``

Usage:
    from logsync.core.errors import SourceError

    try:
        response = client.get(url)
    except httpx.HTTPError as e:
        raise SourceUnavailableError("Logs API unreachable", cause=e).with_context(url=url)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Error categories used for routing log lines and retry decisions.

    Attributes:
        NETWORK: Connection, timeout, DNS errors
        SOURCE: Log source API rejected or failed the request
        PARSE: Source payload could not be decoded
        SINK: Warehouse bulk insert failed at transport level
        AUTH: Token signing or exchange failed
        STORAGE: Key/value store failures
        CONFIG: Missing or invalid settings
        INTERNAL: Bugs, unexpected state
        UNKNOWN: Uncategorized errors
    """

    NETWORK = "NETWORK"
    SOURCE = "SOURCE"
    PARSE = "PARSE"
    SINK = "SINK"
    AUTH = "AUTH"
    STORAGE = "STORAGE"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that are set end up in :meth:`to_dict`, so log lines stay
    short.

    Examples:
        >>> ctx = ErrorContext(cadence="forward", http_status=502)
        >>> ctx.to_dict()
        {'cadence': 'forward', 'http_status': 502}

    Attributes:
        cadence: Which controller was running (``forward`` / ``backfill``)
        run_id: Per-cycle identifier
        url: URL that was being accessed
        http_status: HTTP status code if applicable
        record_id: Record the error relates to, if any
        metadata: Additional key-value pairs
    """

    cadence: str | None = None
    run_id: str | None = None
    url: str | None = None
    http_status: int | None = None
    record_id: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["cadence", "run_id", "url", "http_status", "record_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class SyncError(Exception):
    """
    Base exception for all logsync errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers
    may override either per instance.

    Examples:
        >>> error = SyncError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False

        >>> error = SourceError("Logs API returned 500").with_context(http_status=500)
        >>> error.context.http_status
        500
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> SyncError:
        """
        Add context to this error (fluent API).

        Usage:
            raise SinkError("insertAll failed").with_context(
                http_status=503,
                url=url,
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# SOURCE ERRORS
# =============================================================================


class SourceError(SyncError):
    """
    Error from the log source API.

    Aborts the cycle before any state is mutated, so the next tick
    re-reads the same window.
    """

    default_category = ErrorCategory.SOURCE
    default_retryable = False


class SourceUnavailableError(SourceError):
    """Log source unreachable (connection refused, timeout, DNS)."""

    default_retryable = True


class ParseError(SourceError):
    """Log source answered with a payload that is not the expected envelope."""

    default_category = ErrorCategory.PARSE


# =============================================================================
# SINK ERRORS
# =============================================================================


class SinkError(SyncError):
    """
    Bulk insert failed as a whole.

    Raised for transport failures and non-success HTTP responses. Row level
    rejections inside a successful response are reported, never raised.
    """

    default_category = ErrorCategory.SINK
    default_retryable = True


# =============================================================================
# AUTH ERRORS
# =============================================================================


class AuthError(SyncError):
    """Authentication error (credential signing or token exchange)."""

    default_category = ErrorCategory.AUTH
    default_retryable = False


class TokenExchangeError(AuthError):
    """The token endpoint refused the signed assertion."""

    pass


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(SyncError):
    """Key/value store read, write or list failure."""

    default_category = ErrorCategory.STORAGE
    default_retryable = True


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(SyncError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is expected to clear on the next tick."""
    if isinstance(error, SyncError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, SyncError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "SyncError",
    "SourceError",
    "SourceUnavailableError",
    "ParseError",
    "SinkError",
    "AuthError",
    "TokenExchangeError",
    "StorageError",
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    "is_retryable",
    "categorize_error",
]

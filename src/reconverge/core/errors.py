"""
Structured error types for reconverge.

Every error raised by the package extends ReconvergeError, which carries a
category, a retryable flag, and an optional chained cause. Operation failures
inside the executor are never raised to callers; they only surface through
``ExecutionResult.to_outcome()`` as Err values carrying one of the execution
errors below.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                    ReconvergeError                        │
        │           (category, retryable, cause, context)          │
        ├──────────────────────────────────────────────────────────┤
        │  ConfigError            ExecutionError                   │
        │  (CONFIG)               (EXECUTION)                      │
        │     │                      │                             │
        │  MissingConfigError     CircuitOpenError                 │
        │  InvalidConfigError     ExecutionFailedError             │
        │                         WorkerOwnershipError             │
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> error = InvalidConfigError("attempt", 0)
    >>> error.category
    <ErrorCategory.CONFIG: 'CONFIG'>
    >>> error.retryable
    False

    >>> CircuitOpenError().to_dict()["error_type"]
    'CircuitOpenError'

Guardrails:
    ❌ DON'T: Default a broken configuration into a working executor
    ✅ DO: Raise ConfigError subclasses at construction time

    ❌ DON'T: Let an operation's exception escape the executor
    ✅ DO: Fold it into an ExecutionResult and expose it via to_outcome()

Tags:
    error-handling, exception-hierarchy, circuit-breaker, reconverge

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    CONFIG = "CONFIG"             # Missing or invalid settings
    EXECUTION = "EXECUTION"       # Operation failed or was refused
    CONCURRENCY = "CONCURRENCY"   # Worker state used from the wrong thread
    INTERNAL = "INTERNAL"         # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"           # Uncategorized errors


class ReconvergeError(Exception):
    """
    Base exception for all reconverge errors.

    Subclasses set ``default_category`` and ``default_retryable`` so the
    common cases need only a message.

    Attributes:
        message: Human-readable description
        category: ErrorCategory used for routing and logging
        retryable: Whether repeating the failed operation may succeed
        context: Free-form metadata (executor name, item key, ...)
        cause: Underlying exception, chained as ``__cause__``
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = type(self).default_category if category is None else category
        self.retryable = type(self).default_retryable if retryable is None else retryable
        self.context: dict[str, Any] = {**(context or {})}
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ReconvergeError:
        """Add context to this error (fluent API)."""
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Flat, JSON-friendly form used in logs and CLI output."""
        data: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.context:
            data["context"] = {**self.context}
        if self.cause is not None:
            data["cause"] = error_message(self.cause)
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(ReconvergeError):
    """
    Raised while building executors, engines, drivers or settings.

    Not retryable: the same input fails the same way.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """A required value (such as an executor name) was never set."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"{key} is required")


class InvalidConfigError(ConfigError):
    """A value is outside its allowed range."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid value for {key}: {value!r}")


# =============================================================================
# EXECUTION ERRORS
# =============================================================================


class ExecutionError(ReconvergeError):
    """Base for errors describing why an execution produced no value."""

    default_category = ErrorCategory.EXECUTION
    default_retryable = True


class CircuitOpenError(ExecutionError):
    """The worker's circuit is open; the operation was not attempted."""

    def __init__(self, message: str = "Circuit breaker is open"):
        super().__init__(message)


class ExecutionFailedError(ExecutionError):
    """Every configured attempt failed; carries the last error message."""

    def __init__(self, message: str, nb_attempt: int | None = None):
        self.nb_attempt = nb_attempt
        context = {"nb_attempt": nb_attempt} if nb_attempt is not None else None
        super().__init__(message, context=context)


class WorkerOwnershipError(ReconvergeError):
    """An executor worker was entered by a second thread while busy."""

    default_category = ErrorCategory.CONCURRENCY
    default_retryable = False


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def error_message(error: BaseException) -> str:
    """Return a non-empty message for an exception."""
    if isinstance(error, ReconvergeError):
        return error.message
    return str(error) or type(error).__name__


def categorize_error(error: Exception) -> ErrorCategory:
    """Category used when logging an arbitrary exception."""
    if isinstance(error, ReconvergeError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.EXECUTION
    if isinstance(error, (KeyError, AttributeError)):
        return ErrorCategory.CONFIG
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ReconvergeError",
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    "ExecutionError",
    "CircuitOpenError",
    "ExecutionFailedError",
    "WorkerOwnershipError",
    "error_message",
    "categorize_error",
]

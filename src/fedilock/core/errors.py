"""
Structured error types for the fedilock lock service.

Every failure the lock service can raise is a ``FediLockError`` carrying a
category, a retry hint, structured context (lock key, driver, owner) and the
chained underlying exception.  Callers of ``LockService.acquire`` normally
never see any of these: contention is reported by ``acquire`` returning
``False``, and backend construction failures are absorbed by the driver
selector.  What does escape is meant for operators.

Manifesto:
    - **Contention is not an error:** ``acquire`` returns ``False``
    - **Recoverable vs fatal:** construction failures are recovered by the
      selector; exhausting every candidate is a configuration error
    - **Rich context:** errors carry key/driver/owner for logging
    - **Error chaining:** driver exceptions are preserved as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        FediLockError                          │
        │       (category, retryable, context, cause)                   │
        ├──────────────────────────────────────────────────────────────┤
        │  ConfigError          BackendError           CacheError       │
        │  (CONFIG)             (BACKEND)              (CACHE)          │
        │       │                    │                                  │
        │  InvalidConfigError   BackendConstructionError                │
        │                       BackendUnavailableError                 │
        │                                                               │
        │  DatabaseError (DATABASE)                                     │
        │       │                                                       │
        │  IntegrityError                                               │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = BackendConstructionError("redis unreachable")
    >>> error.with_context(driver="redis")
    BackendConstructionError('redis unreachable', category=BACKEND)
    >>> error.context.driver
    'redis'

Tags:
    error-handling, exception-hierarchy, fedilock, locking

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and log routing."""

    CONFIG = "CONFIG"             # Missing or invalid settings
    BACKEND = "BACKEND"           # Lock driver could not be built
    CACHE = "CACHE"               # Cache store round-trip failed
    DATABASE = "DATABASE"         # Query, constraint, connection
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        key: Lock key involved, if any
        driver: Lock driver name (``semaphore``, ``redis``, ``database``...)
        owner: Owner token of the driver that raised
        metadata: Additional key-value pairs
    """

    key: str | None = None
    driver: str | None = None
    owner: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for name in ("key", "driver", "owner"):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class FediLockError(Exception):
    """
    Base exception for all fedilock errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can
    be overridden per instance.

    Examples:
        >>> error = FediLockError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
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

    def with_context(self, **kwargs: Any) -> FediLockError:
        """
        Add context to this error (fluent API).

        Usage:
            raise CacheError("get failed").with_context(key="poller:1", driver="redis")
        """
        for name, value in kwargs.items():
            if name != "metadata" and hasattr(self.context, name):
                setattr(self.context, name, value)
            else:
                self.context.metadata[name] = value
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
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(FediLockError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# BACKEND ERRORS
# =============================================================================


class BackendError(FediLockError):
    """Lock backend error."""

    default_category = ErrorCategory.BACKEND
    default_retryable = False


class BackendConstructionError(BackendError):
    """A requested lock driver could not be built.

    Raised when a client library is missing, a server is unreachable or the
    platform lacks the OS primitive.  The driver selector recovers from it by
    moving on to the next candidate.
    """


class BackendUnavailableError(BackendError):
    """Every lock driver candidate failed to build.

    This is a configuration error that must reach the operator; ``attempts``
    lists what was tried and why each candidate failed.
    """

    default_category = ErrorCategory.CONFIG

    def __init__(self, message: str, *, attempts: list[Any] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.attempts = attempts or []


# =============================================================================
# STORE ERRORS
# =============================================================================


class CacheError(FediLockError):
    """A cache store round-trip failed (connection reset, timeout, ...)."""

    default_category = ErrorCategory.CACHE
    default_retryable = True


class DatabaseError(FediLockError):
    """Database query or transaction error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class IntegrityError(DatabaseError):
    """Database integrity constraint violation (e.g. duplicate lock row)."""

    pass


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "FediLockError",
    "ConfigError",
    "InvalidConfigError",
    "BackendError",
    "BackendConstructionError",
    "BackendUnavailableError",
    "CacheError",
    "DatabaseError",
    "IntegrityError",
]

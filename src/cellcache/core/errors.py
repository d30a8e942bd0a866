"""
Structured error types for cellcache.

Two families matter to callers of the record store:

- **Invariant violations** are fatal. They mean a consumer or the backend broke
  the cache contract (metadata read before it was loaded, a record whose
  ``created_time`` changed between partial loads, an unknown view id). They
  are never retryable and must not be caught to "degrade gracefully".
- **Backend failures** are recoverable. A failed fetch rejects every caller
  joined on the shared load; a later load retries.

Over-release of a retain count is deliberately *not* an error: it is logged
and clamped.

Architecture:
    ::

        CellCacheError (category, retryable, context, cause)
        ├── InvariantError            INTERNAL, fatal
        │   ├── MetadataNotLoadedError
        │   ├── FieldNotLoadedError
        │   ├── RecordOutOfSyncError
        │   ├── UnknownViewError
        │   ├── InvalidIdError
        │   └── InvalidWatchKeyError
        ├── RecordNotFoundError       VALIDATION
        ├── BackendError              SOURCE, retryable
        │   └── BackendUnavailableError   NETWORK, retryable
        └── ConfigError               CONFIG

Examples:
    >>> error = BackendError("fetch failed").with_context(table_id="tbl1")
    >>> error.retryable
    True
    >>> error.to_dict()["context"]
    {'table_id': 'tbl1'}

Tags:
    error-handling, exception-hierarchy, invariants, cellcache

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    NETWORK = "NETWORK"           # Backend connection, timeout
    SOURCE = "SOURCE"             # Backend returned an error
    VALIDATION = "VALIDATION"     # Bad argument from a consumer
    CONFIG = "CONFIG"             # Missing config, invalid settings
    INTERNAL = "INTERNAL"         # Contract breach, unexpected state
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Attributes:
        table_id: Table whose store raised the error
        record_id: Record involved, if any
        field_id: Field involved, if any
        view_id: View involved, if any
        metadata: Additional key-value pairs
    """

    table_id: str | None = None
    record_id: str | None = None
    field_id: str | None = None
    view_id: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["table_id", "record_id", "field_id", "view_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CellCacheError(Exception):
    """
    Base exception for all cellcache errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    callers (and retry loops) can decide what to do without string matching.

    Examples:
        >>> error = CellCacheError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
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

    def with_context(self, **kwargs: Any) -> CellCacheError:
        """
        Add context to this error (fluent API).

        Usage:
            raise MetadataNotLoadedError("Record metadata is not loaded").with_context(
                table_id="tbl1"
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
# INVARIANT VIOLATIONS (Fatal)
# =============================================================================


class InvariantError(CellCacheError):
    """
    A consumer or the backend broke the cache contract.

    Never retryable. Raised by :func:`invariant` and by the specific
    subclasses below so callers can tell the breaches apart in tests.
    """

    default_category = ErrorCategory.INTERNAL
    default_retryable = False


class MetadataNotLoadedError(InvariantError):
    """Record ids/rows were read before record metadata was loaded."""


class FieldNotLoadedError(InvariantError):
    """A cell value was read for a field whose values are not loaded."""


class RecordOutOfSyncError(InvariantError):
    """``created_time`` or ``comment_count`` diverged between partial loads."""


class UnknownViewError(InvariantError):
    """A view index was requested for a view missing from the table schema."""


class InvalidIdError(InvariantError):
    """An id argument was not a string."""


class InvalidWatchKeyError(InvariantError):
    """A watch key does not belong to the model being watched."""


def invariant(condition: Any, message: str, error_cls: type[InvariantError] = InvariantError) -> None:
    """Raise ``error_cls(message)`` unless ``condition`` is truthy."""
    if not condition:
        raise error_cls(message)


# =============================================================================
# CONSUMER ERRORS
# =============================================================================


class RecordNotFoundError(CellCacheError):
    """No record with the requested id exists in the table."""

    default_category = ErrorCategory.VALIDATION


# =============================================================================
# BACKEND ERRORS (Retryable)
# =============================================================================


class BackendError(CellCacheError):
    """
    The data backend failed to serve a fetch.

    Retryable by default: the load coordinator clears its in-flight marker on
    failure so the next load issues a fresh fetch.
    """

    default_category = ErrorCategory.SOURCE
    default_retryable = True


class BackendUnavailableError(BackendError):
    """The data backend could not be reached."""

    default_category = ErrorCategory.NETWORK


# =============================================================================
# CONFIG ERRORS
# =============================================================================


class ConfigError(CellCacheError):
    """Invalid cache configuration."""

    default_category = ErrorCategory.CONFIG


def is_retryable(error: BaseException) -> bool:
    """Return whether ``error`` is worth retrying."""
    if isinstance(error, CellCacheError):
        return error.retryable
    return False


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CellCacheError",
    "InvariantError",
    "MetadataNotLoadedError",
    "FieldNotLoadedError",
    "RecordOutOfSyncError",
    "UnknownViewError",
    "InvalidIdError",
    "InvalidWatchKeyError",
    "invariant",
    "RecordNotFoundError",
    "BackendError",
    "BackendUnavailableError",
    "ConfigError",
    "is_retryable",
]

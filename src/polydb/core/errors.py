"""
Structured error types for polydb.

Every adapter operation fails with one of a small set of typed errors so
that callers can render an actionable message (engine, operation, the
offending identifier or filter fragment) without knowing which adapter
produced it.

Manifesto:
    - **Typed taxonomy:** Unavailable, UnsupportedOperation, MalformedFilter,
      MalformedInput, ExecutionFailure, UnsupportedType
    - **No automatic retries:** ``retryable`` is a hint for the caller only
    - **Rich context:** engine, operation, schema, storage unit, identifier
    - **Error chaining:** native driver errors are kept as ``cause``

Architecture:
    ::

        ┌───────────────────────────────────────────────────────────────┐
        │                         PolyDBError                            │
        │        (category, retryable, context, cause)                   │
        ├───────────────────────────────────────────────────────────────┤
        │  UnavailableError          UnsupportedOperationError           │
        │  (NETWORK, retry hint)     (UNSUPPORTED)                       │
        │                                                                │
        │  ValidationError           ExecutionFailureError               │
        │  (VALIDATION)              (DATABASE)                          │
        │    │                                                           │
        │  MalformedFilterError      ConfigError                         │
        │  MalformedInputError       (CONFIG)                            │
        │                              │                                 │
        │                            UnsupportedTypeError                │
        └───────────────────────────────────────────────────────────────┘

Examples:
    >>> error = MalformedFilterError("Unknown column: nme")
    >>> error.with_context(engine="postgresql", operation="get_rows", identifier="nme")
    MalformedFilterError('Unknown column: nme', category=VALIDATION)
    >>> error.to_dict()["context"]["identifier"]
    'nme'

Guardrails:
    ❌ DON'T: Raise bare Exception from an adapter
    ✅ DO: Raise the taxonomy error that matches the failure

    ❌ DON'T: Swallow the native driver exception
    ✅ DO: Pass it as ``cause=`` for error chaining

Tags:
    error-handling, exception-hierarchy, error-context, polydb

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

    NETWORK = "NETWORK"  # Cannot reach the engine
    DATABASE = "DATABASE"  # Engine rejected the statement
    VALIDATION = "VALIDATION"  # Bad filter / input from the caller
    UNSUPPORTED = "UNSUPPORTED"  # Engine cannot meaningfully do this
    CONFIG = "CONFIG"  # Missing driver, unknown engine type
    INTERNAL = "INTERNAL"  # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only non-empty fields are serialized by ``to_dict()``; anything that
    does not fit a typed slot goes into ``metadata``.
    """

    engine: str | None = None
    operation: str | None = None
    schema: str | None = None
    storage_unit: str | None = None
    identifier: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key in ("engine", "operation", "schema", "storage_unit", "identifier"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        result.update(self.metadata)
        return result


class PolyDBError(Exception):
    """
    Base error for all polydb failures.

    Attributes:
        message: Human readable message.
        category: ``ErrorCategory`` used for routing.
        retryable: Hint for the caller's retry policy. The core itself
            never retries.
        context: ``ErrorContext`` with engine/operation/identifier.
        cause: Underlying exception, also set as ``__cause__``.
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
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> PolyDBError:
        """
        Add context to this error (fluent API).

        Usage:
            raise MalformedInputError("bad value").with_context(
                storage_unit="users", identifier="age"
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def with_default_context(self, **kwargs: Any) -> PolyDBError:
        """Like ``with_context`` but never overwrites fields already set."""
        missing = {
            key: value
            for key, value in kwargs.items()
            if getattr(self.context, key, None) is None and key not in self.context.metadata
        }
        return self.with_context(**missing)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
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

    def __str__(self) -> str:
        context = self.context.to_dict()
        if not context:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in context.items())
        return f"{self.message} ({details})"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONNECTIVITY
# =============================================================================


class UnavailableError(PolyDBError):
    """
    The engine could not be reached (connect, auth handshake, ping).

    Marked retryable so callers know a later attempt may succeed; polydb
    itself surfaces it immediately.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True


# =============================================================================
# CAPABILITY
# =============================================================================


class UnsupportedOperationError(PolyDBError):
    """The engine cannot meaningfully perform this operation."""

    default_category = ErrorCategory.UNSUPPORTED


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationError(PolyDBError):
    """
    Caller supplied something the engine cannot accept.

    Never retryable, the input must be fixed.
    """

    default_category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        if field is not None and self.context.identifier is None:
            self.context.identifier = field

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class MalformedFilterError(ValidationError):
    """Filter references an invalid column, operator or value type."""


class MalformedInputError(ValidationError):
    """Row values, field definitions or paging arguments are invalid."""


# =============================================================================
# EXECUTION
# =============================================================================


class ExecutionFailureError(PolyDBError):
    """The native driver rejected the operation."""

    default_category = ErrorCategory.DATABASE


# =============================================================================
# CONFIGURATION
# =============================================================================


class ConfigError(PolyDBError):
    """Configuration error (missing driver, frozen registry, bad setting)."""

    default_category = ErrorCategory.CONFIG


class UnsupportedTypeError(ConfigError):
    """The caller asked for a database type that is not registered."""

    def __init__(self, db_type: str, supported: list[str] | None = None):
        self.db_type = db_type
        self.supported = supported or []
        message = f"Unsupported database type: {db_type!r}"
        if self.supported:
            message += f". Supported: {', '.join(self.supported)}"
        super().__init__(message)
        self.context.identifier = db_type


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is worth retrying by the caller."""
    if isinstance(error, PolyDBError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, PolyDBError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "PolyDBError",
    "UnavailableError",
    "UnsupportedOperationError",
    "ValidationError",
    "MalformedFilterError",
    "MalformedInputError",
    "ExecutionFailureError",
    "ConfigError",
    "UnsupportedTypeError",
    "is_retryable",
    "categorize_error",
]

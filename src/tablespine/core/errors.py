"""
Structured error types for table-spine.

Every failure the ORM core can report is a ``TableSpineError`` subclass that
carries a category, a retryable flag, structured context (entity, table,
column, SQL text) and an optional chained cause. Registration problems surface
as configuration errors, bad builder calls as validation errors, and anything
the driver reports as persistence errors.

Manifesto:
    - **Typed Error Hierarchy:** One subclass per failure mode the caller can act on
    - **Explicit Retry Semantics:** Only connectivity failures are retryable
    - **Rich Context:** Errors carry the table, column and SQL that failed
    - **Error Chaining:** Driver exceptions are preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      TableSpineError                             │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigurationError   ValidationError       PersistenceError    │
        │  (CONFIG)             (VALIDATION)          (DATABASE)          │
        │       │                    │                     │               │
        │  UnsupportedTypeError UnknownColumnError    DatabaseConnection  │
        │                       MissingIdentityError  GeneratedKeyError   │
        │                       InvalidValueError     OptimisticConflict  │
        │                       QueryBuilderError     (CONFLICT)          │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> err = UnknownColumnError("No column 'nmae' in table `players`")
    >>> err.with_context(table="players", column="nmae").context.table
    'players'
    >>> err.retryable
    False

Guardrails:
    ❌ DON'T: Raise bare ValueError from the compiler or descriptors
    ✅ DO: Raise the matching TableSpineError subclass

    ❌ DON'T: Swallow driver exceptions
    ✅ DO: Wrap them in PersistenceError with cause= and the SQL in context

Tags:
    error-handling, exception-hierarchy, orm, table-spine

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Error categories for classification and routing.

    Attributes:
        CONFIG: Entity declaration or database configuration problems
        VALIDATION: Bad builder calls, unknown columns, unsaved references
        DATABASE: Anything the SQL driver reported
        CONFLICT: Optimistic-lock conflicts
        INTERNAL: Bugs, unexpected state
        UNKNOWN: Uncategorized errors
    """

    CONFIG = "CONFIG"
    VALIDATION = "VALIDATION"
    DATABASE = "DATABASE"
    CONFLICT = "CONFLICT"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only non-None fields end up in ``to_dict()``; anything that doesn't fit a
    named field goes into ``metadata``.

    Attributes:
        entity: Qualified name of the entity type involved
        table: Storage name of the table
        column: Storage or field name of the column
        sql: SQL text that was being executed
        database: Name of the owning database handle
        metadata: Additional key-value pairs
    """

    entity: str | None = None
    table: str | None = None
    column: str | None = None
    sql: str | None = None
    database: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["entity", "table", "column", "sql", "database"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class TableSpineError(Exception):
    """
    Base exception for all table-spine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    rarely pass them explicitly.

    Examples:
        >>> error = TableSpineError("Something went wrong")
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

    def with_context(self, **kwargs: Any) -> TableSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise PersistenceError("Insert failed").with_context(
                table="players", sql=sql
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key):
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
# CONFIGURATION ERRORS (registration time, never retryable)
# =============================================================================


class ConfigurationError(TableSpineError):
    """
    Entity declaration or database configuration is invalid.

    Raised at registration time: the type is not a dataclass, a column field
    has no default, two fields map to the same storage name, keys conflict,
    or a config value cannot be used.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class UnsupportedTypeError(ConfigurationError):
    """A field's declared type has no column kind."""

    def __init__(self, declared_type: Any, message: str | None = None, **kwargs: Any):
        self.declared_type = declared_type
        super().__init__(message or f"Unsupported column type: {declared_type!r}", **kwargs)


# =============================================================================
# VALIDATION ERRORS (per call, the statement is never issued)
# =============================================================================


class ValidationError(TableSpineError):
    """
    A call was rejected before any SQL was issued.

    Never retryable - the call itself must change.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

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

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class UnknownColumnError(ValidationError):
    """A predicate or column subset names a column the table does not have."""

    pass


class MissingIdentityError(ValidationError):
    """A row (or a referenced row) has no identity value yet."""

    pass


class InvalidValueError(ValidationError):
    """A value cannot be bound to its column."""

    pass


class QueryBuilderError(ValidationError):
    """The predicate or updater builder was used incorrectly."""

    pass


# =============================================================================
# PERSISTENCE ERRORS (driver reported)
# =============================================================================


class PersistenceError(TableSpineError):
    """SQL execution failed (syntax, constraint violation, closed handle)."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class DatabaseConnectionError(PersistenceError):
    """Connecting or reconnecting to the database failed."""

    default_retryable = True


class GeneratedKeyError(PersistenceError):
    """The driver returned fewer generated keys than rows that needed one."""

    pass


class OptimisticConflictError(PersistenceError):
    """A versioned update matched zero rows; re-read and retry."""

    default_category = ErrorCategory.CONFLICT


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, TableSpineError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, TableSpineError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.DATABASE
    if isinstance(error, (ValueError, TypeError)):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "TableSpineError",
    # Config
    "ConfigurationError",
    "UnsupportedTypeError",
    # Validation
    "ValidationError",
    "UnknownColumnError",
    "MissingIdentityError",
    "InvalidValueError",
    "QueryBuilderError",
    # Persistence
    "PersistenceError",
    "DatabaseConnectionError",
    "GeneratedKeyError",
    "OptimisticConflictError",
    # Utilities
    "is_retryable",
    "categorize_error",
]

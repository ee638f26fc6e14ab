"""
Structured error types for the flowledger persistence core.

Every failure that crosses the persistence boundary is a ``FlowLedgerError``
subclass carrying a category, an explicit retry flag, structured context and
the chained backend exception. Callers branch on the *type* (and, for query
failures, on the stable ``kind`` discriminant), never on backend-specific
message text.

Manifesto:
    - **Typed Error Hierarchy:** Pool, query, transaction and config failures
      are distinct types
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Stable Discriminants:** ``QueryError.kind`` is backend-independent
    - **Error Chaining:** The driver exception is preserved as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────────┐
        │                        FlowLedgerError                           │
        │  (category, retryable, retry_after, context, cause)              │
        ├──────────────────────────────────────────────────────────────────┤
        │                                                                   │
        │  TransientError          DatabaseError          ConfigError       │
        │  (retryable=True)        (DATABASE)             (CONFIG)          │
        │       │                       │                      │            │
        │  PoolExhausted           QueryError            InvalidConfigError │
        │  BackendUnreachable        ├ ConstraintViolation                  │
        │                            ├ SyntaxOrTypeError                    │
        │                            └ StatementCancelled                   │
        │                          TransactionAborted                       │
        │                          RowNotFound                              │
        │                                                                   │
        │  NestedTransactionError (INTERNAL, programming error)             │
        └──────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = PoolExhausted("no connection within 5.0s", retry_after=1)
    >>> error.retryable
    True

    >>> err = ConstraintViolation("rejected", kind="enum", backend_code="23514")
    >>> err.to_dict()["kind"]
    'enum'

Guardrails:
    ❌ DON'T: Match on backend error text
    ✅ DO: Branch on the error type and ``kind``

    ❌ DON'T: Swallow the driver exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, retry-logic, flowledger
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    DATABASE = "DATABASE"  # Pool, connection, statement failures
    VALIDATION = "VALIDATION"  # Constraint violations
    CONFIG = "CONFIG"  # Missing or invalid settings
    INTERNAL = "INTERNAL"  # Programming errors, unexpected state
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error for logging and alerting.

    Attributes:
        table: Table the failing statement targeted, when known
        statement: Truncated statement text (never parameter values)
        transaction_id: Identifier of the enclosing transaction
        workflow_id: Workflow the operation concerned
        agent_id: Agent the operation concerned
        metadata: Additional key-value pairs
    """

    table: str | None = None
    statement: str | None = None
    transaction_id: str | None = None
    workflow_id: str | None = None
    agent_id: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["table", "statement", "transaction_id", "workflow_id", "agent_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class FlowLedgerError(Exception):
    """
    Base exception for all flowledger errors.

    All instances carry:
    - **category:** ErrorCategory for classification and routing
    - **retryable:** whether the caller may retry the same operation
    - **retry_after:** optional seconds to wait before retrying
    - **context:** ErrorContext with structured metadata
    - **cause:** the underlying exception, also set as ``__cause__``

    Subclasses set ``default_category`` and ``default_retryable``.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> FlowLedgerError:
        """
        Add context to this error (fluent API).

        Usage:
            raise RowNotFound("workflow").with_context(workflow_id=wid)
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
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (Retryable)
# =============================================================================


class TransientError(FlowLedgerError):
    """
    Temporary error that may succeed on retry.

    Callers should retry with backoff; the API layer maps these to a
    retryable service-unavailable response.
    """

    default_category = ErrorCategory.DATABASE
    default_retryable = True


class PoolExhausted(TransientError):
    """No pooled connection became free within the acquire timeout."""

    def __init__(
        self,
        message: str = "Connection pool exhausted",
        *,
        retry_after: int | None = 1,
        **kwargs: Any,
    ):
        super().__init__(message, retry_after=retry_after, **kwargs)


class BackendUnreachable(TransientError):
    """Connection-level failure: the backend could not be reached or dropped the link."""


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(FlowLedgerError):
    """Base class for statement and transaction failures."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class QueryError(DatabaseError):
    """
    The backend rejected a statement.

    ``backend_code`` and ``backend_message`` are the driver's values,
    verbatim. ``kind`` is the stable discriminant callers should branch on.
    """

    default_kind = "unknown"

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        backend_code: str | None = None,
        backend_message: str | None = None,
        statement: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.kind = kind or self.default_kind
        self.backend_code = backend_code
        self.backend_message = backend_message if backend_message is not None else message
        if statement is not None:
            self.context.statement = statement

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["kind"] = self.kind
        if self.backend_code is not None:
            result["backend_code"] = self.backend_code
        return result


class ConstraintViolation(QueryError):
    """Enum, check, foreign-key, uniqueness, not-null or append-only rejection."""

    default_category = ErrorCategory.VALIDATION
    default_kind = "check"


class SyntaxOrTypeError(QueryError):
    """Malformed statement, unknown object or a value of the wrong type."""

    default_kind = "syntax"


class StatementCancelled(QueryError):
    """The statement was interrupted because its deadline passed."""

    default_kind = "cancelled"


class TransactionAborted(DatabaseError):
    """
    The transaction was cancelled; rollback has already been performed.

    The interrupting error is available as ``cause``.
    """


class RowNotFound(DatabaseError):
    """A repository lookup or mutation matched no row in the requested view."""

    def __init__(self, entity: str, entity_id: str | None = None, message: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity} not found: {entity_id}")


# =============================================================================
# PROGRAMMING AND CONFIG ERRORS
# =============================================================================


class NestedTransactionError(FlowLedgerError):
    """A unit of work tried to open a second top-level transaction."""

    default_category = ErrorCategory.INTERNAL
    default_retryable = False


class ConfigError(FlowLedgerError):
    """Missing or invalid configuration. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, FlowLedgerError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, FlowLedgerError):
        return error.category
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "FlowLedgerError",
    "TransientError",
    "PoolExhausted",
    "BackendUnreachable",
    "DatabaseError",
    "QueryError",
    "ConstraintViolation",
    "SyntaxOrTypeError",
    "StatementCancelled",
    "TransactionAborted",
    "RowNotFound",
    "NestedTransactionError",
    "ConfigError",
    "InvalidConfigError",
    "is_retryable",
    "categorize_error",
]

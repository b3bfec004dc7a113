"""
Structured error types for stowage.

Every failure a provider can report is translated into one of a small set of
domain errors with stable, human-readable messages. Callers match on the
error class (or on the exact message) without knowing which backend
produced it.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure kind callers react to
    - **Stable Messages:** Message text is part of the contract
    - **Error Chaining:** The raw backend error is kept as ``cause``
    - **Two Delivery Paths:** Argument-shape errors are raised synchronously,
      backend outcomes are delivered through the completion protocol

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        StorageError                           │
        │       (category, retryable, context, cause)                   │
        ├──────────────────────────────────────────────────────────────┤
        │  InvalidArgumentError        ConfigurationError               │
        │  UnsupportedOperationError     ProviderNotFoundError          │
        │                                RepositoryNotFoundError        │
        │  ProviderConnectionError       RepositoryConstructorError     │
        │    ServerNotFoundError         NoRepositoriesConfiguredError  │
        │  AuthenticationFailedError                                    │
        │                              CompletionError                  │
        │  DatabaseNotFoundError  NotFoundError                         │
        │  AmbiguousResultError   ConflictError                         │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = NotFoundError.for_key("alice")
    >>> error.message
    "Item with key 'alice' does not exist"
    >>> error.category
    <ErrorCategory.STORAGE: 'STORAGE'>

Tags:
    error-handling, exception-hierarchy, error-context, stowage

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
    Standard error categories for classification and routing.

    Attributes:
        NETWORK: Unreachable server, DNS failure, refused connection
        AUTH: Rejected credentials
        STORAGE: Missing database, missing or ambiguous records, conflicts
        VALIDATION: Bad arguments, unsupported operations
        CONFIG: Missing or inconsistent configuration, resolution failures
        INTERNAL: Protocol misuse (bugs)
        UNKNOWN: Uncategorized errors
    """

    NETWORK = "NETWORK"
    AUTH = "AUTH"
    STORAGE = "STORAGE"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to a storage error.

    Attributes:
        operation: Provider operation that produced the error (``save``, ...)
        provider: Connection name of the provider
        provider_type: Backend identifier (``CouchDB``, ``Memory``, ...)
        url: Server URL, when the backend has one
        metadata: Additional key-value pairs
    """

    operation: str | None = None
    provider: str | None = None
    provider_type: str | None = None
    url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["operation", "provider", "provider_type", "url"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class StorageError(Exception):
    """
    Base exception for all stowage errors.

    All StorageError instances carry:
    - **message:** Stable human-readable text
    - **category:** ErrorCategory for classification
    - **retryable:** Whether the operation may succeed if repeated
    - **context:** ErrorContext with structured metadata
    - **cause:** Optional underlying backend exception

    Subclasses set ``default_category`` and ``default_retryable``.

    Examples:
        >>> error = StorageError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(operation="save").context.operation
        'save'
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

    def with_context(self, **kwargs: Any) -> StorageError:
        """
        Add context to this error (fluent API).

        Usage:
            raise NotFoundError.for_id("abc").with_context(
                operation="find_by_id",
                provider="Profiles",
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
# ARGUMENT ERRORS (raised synchronously)
# =============================================================================


class InvalidArgumentError(StorageError):
    """
    A caller passed a missing or malformed argument.

    Raised synchronously, before any backend work starts; never delivered
    through a completion.
    """

    default_category = ErrorCategory.VALIDATION

    @classmethod
    def required(cls, name: str) -> InvalidArgumentError:
        return cls(f"Argument '{name}' is required")

    @classmethod
    def wrong_type(cls, name: str, kind: str) -> InvalidArgumentError:
        return cls(f"Argument '{name}' must be {kind}")

    @classmethod
    def missing_property(cls, name: str, prop: str) -> InvalidArgumentError:
        return cls(f"Argument '{name}' is missing a '{prop}' property")


class UnsupportedOperationError(StorageError):
    """The provider does not implement the requested capability."""

    default_category = ErrorCategory.VALIDATION

    def __init__(self, operation: str, provider_type: str):
        self.operation = operation
        self.provider_type = provider_type
        super().__init__(
            f"Operation '{operation}' is not supported by the {provider_type} provider",
            context=ErrorContext(operation=operation, provider_type=provider_type),
        )


# =============================================================================
# CONFIGURATION / RESOLUTION ERRORS
# =============================================================================


class ConfigurationError(StorageError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG


class ProviderNotFoundError(ConfigurationError):
    """No adapter is registered for the configured provider type."""

    def __init__(self, provider_type: str, location: str):
        self.provider_type = provider_type
        self.location = location
        super().__init__(
            f"Cannot find provider '{provider_type}' in the following location '{location}'"
        )


class RepositoryNotFoundError(ConfigurationError):
    """The repository factory could not be located."""

    def __init__(self, name: str, location: str):
        self.repository = name
        self.location = location
        super().__init__(
            f"Cannot find repository '{name}' in the following location '{location}'"
        )


class RepositoryConstructorError(ConfigurationError):
    """The repository was located but cannot be instantiated."""

    def __init__(self, name: str):
        self.repository = name
        super().__init__(f"The repository '{name}' does not have a constructor.")


class NoRepositoriesConfiguredError(ConfigurationError):
    """The configuration does not declare any repository."""

    def __init__(self) -> None:
        super().__init__("There are no repositories configured")


# =============================================================================
# CONNECTIVITY ERRORS
# =============================================================================


class ProviderConnectionError(StorageError):
    """The backend could not be reached or the connection is not open."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True

    @classmethod
    def not_connected(cls) -> ProviderConnectionError:
        return cls(
            "There is no open connection to the database server. Call connect first.",
            retryable=False,
        )


class ServerNotFoundError(ProviderConnectionError):
    """DNS lookup or TCP connect to the server failed."""

    def __init__(self, url: str, **kwargs: Any):
        self.url = url
        super().__init__(f"Server '{url}' not found.", **kwargs)


class AuthenticationFailedError(StorageError):
    """The backend rejected the configured credentials."""

    default_category = ErrorCategory.AUTH

    def __init__(self, message: str = "Name or password is incorrect.", **kwargs: Any):
        super().__init__(message, **kwargs)


# =============================================================================
# BACKEND STATE ERRORS
# =============================================================================


class DatabaseNotFoundError(StorageError):
    """The database (or collection) does not exist on the server."""

    default_category = ErrorCategory.STORAGE

    def __init__(self, database: str, **kwargs: Any):
        self.database = database
        super().__init__(f"Database '{database}' not found.", **kwargs)


class NotFoundError(StorageError):
    """A lookup that expects exactly one record found none."""

    default_category = ErrorCategory.STORAGE

    @classmethod
    def for_id(cls, id: Any, rev: Any = None, **kwargs: Any) -> NotFoundError:
        if rev:
            return cls(f"Item with id '{id}' and rev '{rev}' does not exist", **kwargs)
        return cls(f"Item with id '{id}' does not exist", **kwargs)

    @classmethod
    def for_key(cls, key: Any, **kwargs: Any) -> NotFoundError:
        return cls(f"Item with key '{key}' does not exist", **kwargs)


class AmbiguousResultError(StorageError):
    """A lookup that expects exactly one record found several."""

    default_category = ErrorCategory.STORAGE

    def __init__(self, key: Any, **kwargs: Any):
        self.key = key
        super().__init__(f"Found multiple items with key '{key}'", **kwargs)


class ConflictError(StorageError):
    """The stored revision differs from the revision being written."""

    default_category = ErrorCategory.STORAGE

    def __init__(self, id: Any, **kwargs: Any):
        self.id = id
        super().__init__(f"Document update conflict for item with id '{id}'", **kwargs)


class CompletionError(StorageError):
    """A completion was triggered more than once."""

    default_category = ErrorCategory.INTERNAL


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, StorageError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, StorageError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    if isinstance(error, (TypeError, ValueError)):
        return ErrorCategory.VALIDATION
    if isinstance(error, (FileNotFoundError, KeyError)):
        return ErrorCategory.STORAGE
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "StorageError",
    "InvalidArgumentError",
    "UnsupportedOperationError",
    "ConfigurationError",
    "ProviderNotFoundError",
    "RepositoryNotFoundError",
    "RepositoryConstructorError",
    "NoRepositoriesConfiguredError",
    "ProviderConnectionError",
    "ServerNotFoundError",
    "AuthenticationFailedError",
    "DatabaseNotFoundError",
    "NotFoundError",
    "AmbiguousResultError",
    "ConflictError",
    "CompletionError",
    "is_retryable",
    "categorize_error",
]

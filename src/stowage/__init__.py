"""
stowage - one asynchronous storage contract over several backends.

Providers (CouchDB, MongoDB, Redis, filesystem, in-memory) share the same
operations, the same completion delivery (callback, event and ``Result``)
and the same domain errors. ``StorageService`` turns declarative
configuration into connected providers and wired repositories.
"""

__version__ = "0.1.0"

from stowage.config import ConnectionConfig, RepositoryConfig, StorageConfig, load_config
from stowage.errors import (
    AmbiguousResultError,
    AuthenticationFailedError,
    CompletionError,
    ConfigurationError,
    ConflictError,
    DatabaseNotFoundError,
    ErrorCategory,
    InvalidArgumentError,
    NoRepositoriesConfiguredError,
    NotFoundError,
    ProviderConnectionError,
    ProviderNotFoundError,
    RepositoryConstructorError,
    RepositoryNotFoundError,
    ServerNotFoundError,
    StorageError,
    UnsupportedOperationError,
)
from stowage.providers import Capability, Provider, ProviderRegistry, ProviderType
from stowage.repository import Repository, RepositoryRegistry
from stowage.result import Err, Ok, Result
from stowage.service import StorageService

__all__ = [
    "__version__",
    # config
    "ConnectionConfig",
    "RepositoryConfig",
    "StorageConfig",
    "load_config",
    # errors
    "AmbiguousResultError",
    "AuthenticationFailedError",
    "CompletionError",
    "ConfigurationError",
    "ConflictError",
    "DatabaseNotFoundError",
    "ErrorCategory",
    "InvalidArgumentError",
    "NoRepositoriesConfiguredError",
    "NotFoundError",
    "ProviderConnectionError",
    "ProviderNotFoundError",
    "RepositoryConstructorError",
    "RepositoryNotFoundError",
    "ServerNotFoundError",
    "StorageError",
    "UnsupportedOperationError",
    # providers
    "Capability",
    "Provider",
    "ProviderRegistry",
    "ProviderType",
    # repositories / service
    "Repository",
    "RepositoryRegistry",
    "StorageService",
    # result
    "Ok",
    "Err",
    "Result",
]

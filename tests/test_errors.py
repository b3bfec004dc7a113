"""Tests for stowage.errors: error hierarchy, messages, context and helpers."""

import pytest

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
    categorize_error,
    is_retryable,
)


class TestMessages:
    @pytest.mark.parametrize(
        "error, message",
        [
            (InvalidArgumentError.required("key"), "Argument 'key' is required"),
            (InvalidArgumentError.wrong_type("rev", "a string"), "Argument 'rev' must be a string"),
            (
                InvalidArgumentError.missing_property("data", "_rev"),
                "Argument 'data' is missing a '_rev' property",
            ),
            (
                UnsupportedOperationError("find_all", "Redis"),
                "Operation 'find_all' is not supported by the Redis provider",
            ),
            (
                ProviderNotFoundError("Oracle", "providers/Oracle"),
                "Cannot find provider 'Oracle' in the following location 'providers/Oracle'",
            ),
            (
                RepositoryNotFoundError("Foo", "./Foo"),
                "Cannot find repository 'Foo' in the following location './Foo'",
            ),
            (RepositoryConstructorError("Foo"), "The repository 'Foo' does not have a constructor."),
            (NoRepositoriesConfiguredError(), "There are no repositories configured"),
            (
                ProviderConnectionError.not_connected(),
                "There is no open connection to the database server. Call connect first.",
            ),
            (ServerNotFoundError("http://nohost:5984/"), "Server 'http://nohost:5984/' not found."),
            (AuthenticationFailedError(), "Name or password is incorrect."),
            (DatabaseNotFoundError("profiles"), "Database 'profiles' not found."),
            (NotFoundError.for_id("a1"), "Item with id 'a1' does not exist"),
            (NotFoundError.for_id("a1", "2-x"), "Item with id 'a1' and rev '2-x' does not exist"),
            (NotFoundError.for_key("bob"), "Item with key 'bob' does not exist"),
            (AmbiguousResultError("bob"), "Found multiple items with key 'bob'"),
            (ConflictError("a1"), "Document update conflict for item with id 'a1'"),
        ],
    )
    def test_exact_message(self, error, message):
        assert str(error) == message
        assert error.message == message


class TestHierarchy:
    def test_configuration_family(self):
        for error in (
            ProviderNotFoundError("X", "y"),
            RepositoryNotFoundError("X", "y"),
            RepositoryConstructorError("X"),
            NoRepositoriesConfiguredError(),
        ):
            assert isinstance(error, ConfigurationError)
            assert error.category == ErrorCategory.CONFIG

    def test_server_not_found_is_connection_error(self):
        error = ServerNotFoundError("http://x/")
        assert isinstance(error, ProviderConnectionError)
        assert error.category == ErrorCategory.NETWORK
        assert error.retryable is True

    def test_not_connected_is_not_retryable(self):
        assert ProviderConnectionError.not_connected().retryable is False

    def test_categories(self):
        assert AuthenticationFailedError().category == ErrorCategory.AUTH
        assert NotFoundError.for_key("k").category == ErrorCategory.STORAGE
        assert InvalidArgumentError("x").category == ErrorCategory.VALIDATION
        assert CompletionError("x").category == ErrorCategory.INTERNAL


class TestStorageError:
    def test_cause_is_chained(self):
        raw = ConnectionRefusedError("refused")
        error = ServerNotFoundError("http://x/", cause=raw)
        assert error.cause is raw
        assert error.__cause__ is raw

    def test_with_context_known_and_extra_keys(self):
        error = NotFoundError.for_id("a").with_context(operation="find_by_id", provider="Profiles", shard=3)
        assert error.context.operation == "find_by_id"
        assert error.context.provider == "Profiles"
        assert error.context.metadata == {"shard": 3}

    def test_to_dict(self):
        error = DatabaseNotFoundError("db", cause=KeyError("x")).with_context(operation="drop")
        data = error.to_dict()
        assert data["error_type"] == "DatabaseNotFoundError"
        assert data["message"] == "Database 'db' not found."
        assert data["category"] == "STORAGE"
        assert data["context"] == {"operation": "drop"}
        assert "cause" in data

    def test_repr(self):
        assert repr(StorageError("boom")) == "StorageError('boom', category=INTERNAL)"


class TestHelpers:
    def test_is_retryable(self):
        assert is_retryable(ServerNotFoundError("u")) is True
        assert is_retryable(NotFoundError.for_key("k")) is False
        assert is_retryable(TimeoutError()) is True
        assert is_retryable(ValueError()) is False

    def test_categorize_error(self):
        assert categorize_error(ConflictError("a")) == ErrorCategory.STORAGE
        assert categorize_error(ConnectionResetError()) == ErrorCategory.NETWORK
        assert categorize_error(TypeError()) == ErrorCategory.VALIDATION
        assert categorize_error(KeyError("k")) == ErrorCategory.STORAGE
        assert categorize_error(RuntimeError()) == ErrorCategory.UNKNOWN

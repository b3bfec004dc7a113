"""Provider base class.

Manifesto:
    All storage providers share one contract: the same operation names,
    the same argument checks, the same connection state machine and the
    same completion delivery. The abstract base class owns all of that;
    a backend adapter only implements a handful of private coroutines that
    talk to its client library.

Features:
    - Public operations validate synchronously and return an awaitable
      ``Result`` (the completion is also delivered to the callback and the
      operation's event)
    - ``Disconnected`` → ``Connected`` → ``Disconnected`` state machine with
      idempotent ``connect`` and optional implicit connect on first use
    - Exactly-one lookups (``find_by_id``, ``find_by_key``) normalize zero
      and many matches into ``NotFoundError`` / ``AmbiguousResultError``
    - Batch operations pre-check every item, then aggregate per-item
      completions into one
    - Declared ``capabilities``; unsupported operations raise
      ``UnsupportedOperationError``
    - Async context-manager protocol for connection lifecycle

Adapter hooks:
    ``_open() -> handle``, ``_close(handle)``, ``_create()``, ``_drop()``,
    ``_save(record) -> record``, ``_remove(record) -> record``,
    ``_find_by_id(id, rev) -> record | None``, ``_find_by_key(key) -> list``,
    ``_find_all() -> list``, optionally ``_save_many``, ``_remove_many``,
    ``_is_missing(error)`` and ``_normalization_rules()``.

Tags:
    stowage, provider, abstract-base, adapter-pattern, state-machine

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from functools import cached_property
from typing import Any, ClassVar

from stowage.completion import Completion, spawn
from stowage.errors import (
    AmbiguousResultError,
    ConfigurationError,
    ConflictError,
    DatabaseNotFoundError,
    InvalidArgumentError,
    NotFoundError,
    ProviderConnectionError,
    StorageError,
    UnsupportedOperationError,
)
from stowage.events import EventChannel, EventHandler
from stowage.logging import get_logger
from stowage.normalizer import ErrorNormalizer, NormalizationRule, capture_stack
from stowage.result import Result, collect_results

from .types import ALL_CAPABILITIES, Capability, as_mapping

logger = get_logger(__name__)

Callback = Callable[..., Any]


# ── Record helpers ───────────────────────────────────────────────────────


def new_identity() -> str:
    return uuid.uuid4().hex


def next_revision(rev: str | None) -> str:
    """Return the revision following ``rev`` (``"<n>-<hex>"``)."""
    generation = 0
    if rev:
        head = str(rev).split("-", 1)[0]
        generation = int(head) if head.isdigit() else 0
    return f"{generation + 1}-{uuid.uuid4().hex}"


def matches_key(record: Mapping[str, Any], key: Any, key_field: str) -> bool:
    """True when ``record`` matches a scalar key or a mapping filter."""
    if isinstance(key, Mapping):
        return all(record.get(field) == value for field, value in key.items())
    return record.get(key_field) == key


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


class Provider(ABC):
    """
    Abstract base class for storage providers.

    Subclasses set ``type`` (backend identifier), ``capabilities`` and the
    identity conventions, and implement the private backend hooks.
    """

    type: ClassVar[str] = "Generic"
    capabilities: ClassVar[frozenset[Capability]] = ALL_CAPABILITIES
    identity_field: ClassVar[str] = "_id"
    revision_field: ClassVar[str | None] = None
    revision_required: ClassVar[bool] = False

    def __init__(self, config: Mapping[str, Any] | Any | None = None):
        if config is None:
            raise ConfigurationError(f"Expected a {self.type} configuration")
        self.config: dict[str, Any] = as_mapping(config)
        self.name: str | None = self.config.get("name")
        self.auto_connect: bool = bool(self.config.get("auto_connect", True))
        self.events = EventChannel()
        self._handle: Any = None
        self._connect_lock = asyncio.Lock()
        self._log = logger.bind(provider=self.name, provider_type=self.type)

    # ── Introspection ────────────────────────────────────────────

    @property
    def database(self) -> str:
        """Name of the logical database/collection this provider targets."""
        return self.name or self.type

    @property
    def url(self) -> str | None:
        return None

    def is_connected(self) -> bool:
        """Whether the provider holds an open backend handle."""
        return self._handle is not None

    def supports(self, operation: Capability | str) -> bool:
        return Capability(operation) in self.capabilities

    @cached_property
    def normalizer(self) -> ErrorNormalizer:
        return ErrorNormalizer(
            self._normalization_rules(),
            provider=self.name,
            provider_type=self.type,
            url=self.url,
        )

    # ── Event channel ────────────────────────────────────────────

    def on(self, operation: str, handler: EventHandler) -> str:
        """Subscribe to every completion of ``operation``."""
        return self.events.on(operation, handler)

    def once(self, operation: str, handler: EventHandler) -> str:
        return self.events.once(operation, handler)

    def off(self, subscription_id: str) -> None:
        self.events.off(subscription_id)

    # ── Lifecycle ────────────────────────────────────────────────

    def connect(self, callback: Callback | None = None) -> Awaitable[Result[Provider]]:
        """Open the backend connection. Idempotent while connected."""
        completion = self._completion(Capability.CONNECT, callback)

        @completion.on_error
        def _connection_failed(error: BaseException) -> BaseException:
            if isinstance(error, StorageError):
                return error
            return ProviderConnectionError(
                f"Cannot connect to the {self.type} server: {error}", cause=error
            ).with_context(
                operation=completion.operation,
                provider=self.name,
                provider_type=self.type,
                url=self.url,
            )

        return completion.start(self._connect_once)

    def disconnect(self, callback: Callback | None = None) -> Awaitable[Result[Provider]]:
        """Close the backend connection."""
        completion = self._completion(Capability.DISCONNECT, callback)
        return completion.start(self._disconnect_open)

    def dispose(self, callback: Callback | None = None) -> Awaitable[Result[Provider]]:
        """Release the connection (if any) and drop all event listeners."""
        completion = self._completion(Capability.DISPOSE, callback)

        async def _dispose_then_clear() -> Result[Provider]:
            result = await completion.run(self._release)
            self.events.clear()
            return result

        return spawn(_dispose_then_clear(), eager=completion.has_callback)

    def create(self, callback: Callback | None = None) -> Awaitable[Result[str]]:
        """Create the logical database/collection."""
        completion = self._completion(Capability.CREATE, callback)
        return completion.start(self._create_connected)

    def drop(self, callback: Callback | None = None) -> Awaitable[Result[bool]]:
        """Drop the logical database/collection. The connection stays open."""
        completion = self._completion(Capability.DROP, callback)
        return completion.start(self._drop_connected)

    def recreate(self, callback: Callback | None = None) -> Awaitable[Result[str]]:
        """Drop (tolerating an absent database), then create."""
        completion = self._completion(Capability.RECREATE, callback)
        return completion.start(self._recreate)

    # ── Writes ───────────────────────────────────────────────────

    def save(self, data: Mapping[str, Any], callback: Callback | None = None) -> Awaitable[Result[dict]]:
        """Insert ``data`` (no identity) or update it (identity present)."""
        record = self._check_record(data)
        completion = self._completion(Capability.SAVE, callback)
        return completion.start(self._with_connection, self._save, record)

    def save_many(
        self, data: Sequence[Mapping[str, Any]], callback: Callback | None = None
    ) -> Awaitable[Result[list[dict]]]:
        """Save every item; one aggregated completion in input order."""
        records = [self._check_record(item) for item in self._check_sequence(data)]
        completion = self._completion(Capability.SAVE_MANY, callback)
        return completion.start(self._with_connection, self._save_many, records)

    def remove(self, data: Mapping[str, Any], callback: Callback | None = None) -> Awaitable[Result[dict]]:
        """Remove the record identified by ``data``."""
        record = self._check_identity(data)
        completion = self._completion(Capability.REMOVE, callback)

        @completion.on_error
        def _missing(error: BaseException) -> BaseException:
            if not isinstance(error, StorageError) and self._is_missing(error):
                return NotFoundError.for_id(
                    record[self.identity_field], self._revision_of(record), cause=error
                )
            return error

        return completion.start(self._with_connection, self._remove, record)

    def remove_many(
        self, data: Sequence[Mapping[str, Any]], callback: Callback | None = None
    ) -> Awaitable[Result[list[dict]]]:
        """Remove every item; all identities are checked before any removal."""
        items = self._check_sequence(data)
        if not items:
            raise InvalidArgumentError("Argument 'data' must contain at least one item")
        records = [self._check_identity(item) for item in items]
        completion = self._completion(Capability.REMOVE_MANY, callback)
        return completion.start(self._with_connection, self._remove_many, records)

    # ── Reads ────────────────────────────────────────────────────

    def find_by_id(
        self,
        id: Any,
        rev: str | Callback | None = None,
        callback: Callback | None = None,
    ) -> Awaitable[Result[dict]]:
        """Fetch exactly one record by identity (and revision)."""
        if callable(rev) and callback is None:
            callback, rev = rev, None
        if is_blank(id):
            raise InvalidArgumentError.required("id")
        if rev is not None and not isinstance(rev, str):
            raise InvalidArgumentError.wrong_type("rev", "a string")
        completion = self._completion(Capability.FIND_BY_ID, callback)

        @completion.on_error
        def _missing(error: BaseException) -> BaseException:
            if not isinstance(error, StorageError) and self._is_missing(error):
                return NotFoundError.for_id(id, rev, cause=error)
            return error

        @completion.on_success
        def _one(record: Any) -> dict:
            if record is None:
                raise NotFoundError.for_id(id, rev)
            return copy.deepcopy(record)

        return completion.start(self._with_connection, self._find_by_id, id, rev)

    def find_by_key(self, key: Any, callback: Callback | None = None) -> Awaitable[Result[dict]]:
        """Fetch exactly one record matching ``key``."""
        if is_blank(key):
            raise InvalidArgumentError.required("key")
        completion = self._completion(Capability.FIND_BY_KEY, callback)

        @completion.on_success
        def _exactly_one(records: list[Any]) -> dict:
            if not records:
                raise NotFoundError.for_key(key)
            if len(records) > 1:
                raise AmbiguousResultError(key)
            return copy.deepcopy(records[0])

        return completion.start(self._with_connection, self._find_by_key, key)

    def find_many_by_key(self, key: Any, callback: Callback | None = None) -> Awaitable[Result[list[dict]]]:
        """Fetch every record matching ``key`` (possibly none)."""
        if is_blank(key):
            raise InvalidArgumentError.required("key")
        completion = self._completion(Capability.FIND_MANY_BY_KEY, callback)
        completion.on_success(lambda records: copy.deepcopy(list(records or [])))
        return completion.start(self._with_connection, self._find_by_key, key)

    def find_all(self, callback: Callback | None = None) -> Awaitable[Result[list[dict]]]:
        """Fetch every record (possibly none)."""
        completion = self._completion(Capability.FIND_ALL, callback)
        completion.on_success(lambda records: copy.deepcopy(list(records or [])))
        return completion.start(self._with_connection, self._find_all)

    # ── Backend hooks ────────────────────────────────────────────

    @abstractmethod
    async def _open(self) -> Any:
        """Open and return the backend handle."""
        ...

    @abstractmethod
    async def _close(self, handle: Any) -> None:
        """Close a handle returned by :meth:`_open`."""
        ...

    async def _create(self) -> None:
        raise UnsupportedOperationError(Capability.CREATE.value, self.type)

    async def _drop(self) -> None:
        raise UnsupportedOperationError(Capability.DROP.value, self.type)

    async def _save(self, record: dict[str, Any]) -> dict[str, Any]:
        raise UnsupportedOperationError(Capability.SAVE.value, self.type)

    async def _remove(self, record: dict[str, Any]) -> dict[str, Any]:
        raise UnsupportedOperationError(Capability.REMOVE.value, self.type)

    async def _find_by_id(self, id: Any, rev: str | None) -> dict[str, Any] | None:
        raise UnsupportedOperationError(Capability.FIND_BY_ID.value, self.type)

    async def _find_by_key(self, key: Any) -> list[dict[str, Any]]:
        raise UnsupportedOperationError(Capability.FIND_BY_KEY.value, self.type)

    async def _find_all(self) -> list[dict[str, Any]]:
        raise UnsupportedOperationError(Capability.FIND_ALL.value, self.type)

    async def _save_many(self, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        results = await asyncio.gather(*(self.save(record) for record in records))
        return collect_results(list(results)).unwrap()

    async def _remove_many(self, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        results = await asyncio.gather(*(self.remove(record) for record in records))
        return collect_results(list(results)).unwrap()

    def _is_missing(self, error: BaseException) -> bool:
        """True when ``error`` is the backend's "no such record" signal."""
        return False

    def _normalization_rules(self) -> Iterable[NormalizationRule]:
        return ()

    # ── Internals ────────────────────────────────────────────────

    def _completion(self, operation: Capability | str, callback: Callback | None) -> Completion:
        if isinstance(operation, Capability) and operation not in self.capabilities:
            raise UnsupportedOperationError(operation.value, self.type)
        return Completion(
            getattr(operation, "value", operation),
            callback,
            channel=self.events,
            normalizer=self.normalizer,
            stack=capture_stack(skip=3),
        )

    async def _connect_once(self) -> Provider:
        async with self._connect_lock:
            if self._handle is None:
                self._handle = await self._open()
                self._log.info("provider_connected", url=self.url)
        return self

    async def _disconnect_open(self) -> Provider:
        if self._handle is None:
            raise ProviderConnectionError.not_connected()
        await self._release()
        return self

    async def _release(self) -> Provider:
        handle, self._handle = self._handle, None
        if handle is not None:
            await self._close(handle)
            self._log.info("provider_disconnected")
        return self

    async def _with_connection(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        if self._handle is None:
            if not self.auto_connect:
                raise ProviderConnectionError.not_connected()
            await self._connect_once()
        return await fn(*args)

    async def _create_connected(self) -> str:
        if self._handle is None:
            raise ProviderConnectionError.not_connected()
        await self._create()
        return self.database

    async def _drop_connected(self) -> bool:
        if self._handle is None:
            raise DatabaseNotFoundError(self.database)
        await self._drop()
        return True

    async def _recreate(self) -> str:
        dropped = await self.drop()
        if dropped.is_err() and not isinstance(dropped.error, DatabaseNotFoundError):
            raise dropped.error
        created = await self.create()
        return created.unwrap()

    def _revision_of(self, record: Mapping[str, Any]) -> Any:
        if self.revision_field is None:
            return None
        return record.get(self.revision_field)

    def _check_record(self, data: Any) -> dict[str, Any]:
        if data is None:
            raise InvalidArgumentError.required("data")
        if not isinstance(data, Mapping):
            raise InvalidArgumentError.wrong_type("data", "a mapping")
        return copy.deepcopy(dict(data))

    def _check_sequence(self, data: Any) -> list[Any]:
        if data is None:
            raise InvalidArgumentError.required("data")
        if isinstance(data, (str, bytes, Mapping)) or not isinstance(data, Sequence):
            raise InvalidArgumentError.wrong_type("data", "a list")
        return list(data)

    def _check_identity(self, data: Any) -> dict[str, Any]:
        record = self._check_record(data)
        if is_blank(record.get(self.identity_field)):
            raise InvalidArgumentError.missing_property("data", self.identity_field)
        if self.revision_required and self.revision_field and is_blank(record.get(self.revision_field)):
            raise InvalidArgumentError.missing_property("data", self.revision_field)
        return record

    def _stamp(self, record: dict[str, Any], stored: Mapping[str, Any] | None) -> dict[str, Any]:
        """Assign identity and next revision, refusing stale revisions."""
        stamped = dict(record)
        if is_blank(stamped.get(self.identity_field)):
            stamped[self.identity_field] = new_identity()
        if self.revision_field is not None:
            current = stored.get(self.revision_field) if stored is not None else None
            if stored is not None and stamped.get(self.revision_field) != current:
                raise ConflictError(stamped[self.identity_field])
            stamped[self.revision_field] = next_revision(current)
        return stamped

    def _tombstone(self, record: Mapping[str, Any], rev: Any = None) -> dict[str, Any]:
        result = {self.identity_field: record[self.identity_field]}
        if self.revision_field is not None and rev is not None:
            result[self.revision_field] = rev
        result["_deleted"] = True
        return result

    # ── Context manager ──────────────────────────────────────────

    async def __aenter__(self) -> Provider:
        (await self.connect()).unwrap()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.dispose()

    def __repr__(self) -> str:
        state = "connected" if self.is_connected() else "disconnected"
        return f"<{self.__class__.__name__} name={self.name!r} type={self.type!r} {state}>"


__all__ = [
    "Provider",
    "Callback",
    "new_identity",
    "next_revision",
    "matches_key",
    "is_blank",
]

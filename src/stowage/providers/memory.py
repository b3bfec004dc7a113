"""In-process dictionary provider.

Keeps records in a dict keyed by ``_id`` with CouchDB-style ``_rev``
tracking. Useful for tests and for wiring repositories before a real backend
exists.

Configuration::

    [connections.Scratch]
    type = "Memory"
    key_field = "email"          # field used by find_by_key (default "key")
    data = [{ _id = "a", email = "a@example.com" }]   # optional seed records
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any, ClassVar

from stowage.errors import ConflictError, DatabaseNotFoundError, NotFoundError

from .base import Provider, matches_key
from .types import ProviderType


class MemoryProvider(Provider):
    """Provider backed by a plain dict."""

    type: ClassVar[str] = ProviderType.MEMORY.value
    revision_field: ClassVar[str | None] = "_rev"

    def __init__(self, config: Mapping[str, Any] | Any | None = None):
        super().__init__(config)
        self.key_field: str = self.config.get("key_field") or "key"
        self._store: dict[Any, dict[str, Any]] | None = {}
        for record in self.config.get("data") or []:
            stamped = self._stamp(dict(record), None)
            self._store[stamped[self.identity_field]] = stamped

    async def _open(self) -> Any:
        return self

    async def _close(self, handle: Any) -> None:
        return None

    def _records(self) -> dict[Any, dict[str, Any]]:
        if self._store is None:
            raise DatabaseNotFoundError(self.database)
        return self._store

    async def _create(self) -> None:
        if self._store is None:
            self._store = {}

    async def _drop(self) -> None:
        self._records()
        self._store = None

    async def _save(self, record: dict[str, Any]) -> dict[str, Any]:
        records = self._records()
        stored = records.get(record.get(self.identity_field))
        saved = self._stamp(record, stored)
        records[saved[self.identity_field]] = copy.deepcopy(saved)
        return saved

    async def _remove(self, record: dict[str, Any]) -> dict[str, Any]:
        records = self._records()
        id = record[self.identity_field]
        rev = record.get(self.revision_field)
        stored = records.get(id)
        if stored is None:
            raise NotFoundError.for_id(id, rev)
        if rev is not None and stored.get(self.revision_field) != rev:
            raise ConflictError(id)
        del records[id]
        return self._tombstone(record, stored.get(self.revision_field))

    async def _find_by_id(self, id: Any, rev: str | None) -> dict[str, Any] | None:
        record = self._records().get(id)
        if record is None or (rev is not None and record.get(self.revision_field) != rev):
            return None
        return record

    async def _find_by_key(self, key: Any) -> list[dict[str, Any]]:
        return [r for r in self._records().values() if matches_key(r, key, self.key_field)]

    async def _find_all(self) -> list[dict[str, Any]]:
        return list(self._records().values())

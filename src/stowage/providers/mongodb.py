"""MongoDB provider on the asyncio driver (``pymongo.AsyncMongoClient``).

The database name is the last path segment of ``url``; the provider works
on one ``collection`` in it, so ``create``/``drop`` act on that collection.
Identities are ``ObjectId`` values on the server and hex strings in returned
records.

Configuration::

    [connections.Geo]
    type = "MongoDB"
    url = "mongodb://localhost/stowage-test"
    collection = "storage-test"
    key_field = "code"          # scalar find_by_key looks up this field
    object_ids = true           # false: use _id values as given
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, ClassVar
from urllib.parse import urlsplit

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import AsyncMongoClient
from pymongo.errors import ConnectionFailure, OperationFailure, ServerSelectionTimeoutError

from stowage.errors import ConfigurationError, DatabaseNotFoundError, InvalidArgumentError, NotFoundError
from stowage.normalizer import (
    NormalizationRule,
    authentication_failed,
    is_unreachable,
    server_not_found,
)

from .base import Provider
from .types import ProviderType, require_option

DEFAULT_TIMEOUT_MS = 5000

# Server error code for a failed SASL/SCRAM handshake.
AUTHENTICATION_FAILED = 18


def database_from_url(url: str) -> str:
    """Return the database name encoded in a MongoDB connection URL."""
    name = urlsplit(url).path.rsplit("/", 1)[-1]
    if not name:
        raise ConfigurationError("Expected a database name in the MongoDB url")
    return name


def _is_unreachable(error: BaseException) -> bool:
    return isinstance(error, (ServerSelectionTimeoutError, ConnectionFailure)) or is_unreachable(error)


def _is_bad_credentials(error: BaseException) -> bool:
    return isinstance(error, OperationFailure) and error.code == AUTHENTICATION_FAILED


class MongoDBProvider(Provider):
    """Provider for a single MongoDB collection."""

    type: ClassVar[str] = ProviderType.MONGODB.value

    def __init__(self, config: Mapping[str, Any] | Any | None = None):
        super().__init__(config)
        self._url = require_option(self.config, "url", self.type)
        self.collection_name = require_option(self.config, "collection", self.type, "collection name")
        self.db_name = database_from_url(self._url)
        self.key_field: str = self.config.get("key_field") or "key"
        self.object_ids: bool = bool(self.config.get("object_ids", True))
        self.timeout_ms = int(self.config.get("timeout_ms") or DEFAULT_TIMEOUT_MS)

    @property
    def database(self) -> str:
        return self.collection_name

    @property
    def url(self) -> str:
        return self._url

    def _normalization_rules(self) -> Iterable[NormalizationRule]:
        return (
            authentication_failed(matches=_is_bad_credentials),
            server_not_found(self.url, matches=_is_unreachable),
            NormalizationRule(
                kind="invalid_object_id",
                matches=lambda error: isinstance(error, InvalidId),
                build=lambda error: InvalidArgumentError(
                    "Argument 'id' is not a valid ObjectId", cause=error
                ),
            ),
        )

    # ── Document mapping ─────────────────────────────────────────

    def _to_key(self, id: Any) -> Any:
        if not self.object_ids or isinstance(id, ObjectId):
            return id
        if not ObjectId.is_valid(id):
            raise InvalidArgumentError("Argument 'id' is not a valid ObjectId")
        return ObjectId(id)

    def _from_document(self, document: Mapping[str, Any] | None) -> dict[str, Any] | None:
        if document is None:
            return None
        record = dict(document)
        if isinstance(record.get(self.identity_field), ObjectId):
            record[self.identity_field] = str(record[self.identity_field])
        return record

    def _collection(self):
        return self._handle[self.db_name][self.collection_name]

    # ── Provider hooks ───────────────────────────────────────────

    async def _open(self) -> AsyncMongoClient:
        client = AsyncMongoClient(self.url, serverSelectionTimeoutMS=self.timeout_ms)
        try:
            await client.admin.command("ping")
        except BaseException:
            await client.close()
            raise
        return client

    async def _close(self, handle: AsyncMongoClient) -> None:
        await handle.close()

    async def _collection_exists(self) -> bool:
        names = await self._handle[self.db_name].list_collection_names()
        return self.collection_name in names

    async def _create(self) -> None:
        if not await self._collection_exists():
            await self._handle[self.db_name].create_collection(self.collection_name)

    async def _drop(self) -> None:
        if not await self._collection_exists():
            raise DatabaseNotFoundError(self.database)
        await self._collection().drop()

    async def _save(self, record: dict[str, Any]) -> dict[str, Any]:
        document = dict(record)
        id = document.get(self.identity_field)
        if id is None or id == "":
            document.pop(self.identity_field, None)
            result = await self._collection().insert_one(document)
            document[self.identity_field] = result.inserted_id
        else:
            document[self.identity_field] = self._to_key(id)
            await self._collection().replace_one(
                {self.identity_field: document[self.identity_field]}, document, upsert=True
            )
        return self._from_document(document)

    async def _remove(self, record: dict[str, Any]) -> dict[str, Any]:
        id = record[self.identity_field]
        result = await self._collection().delete_one({self.identity_field: self._to_key(id)})
        if result.deleted_count == 0:
            raise NotFoundError.for_id(id)
        return self._tombstone(record)

    async def _find_by_id(self, id: Any, rev: str | None) -> dict[str, Any] | None:
        document = await self._collection().find_one({self.identity_field: self._to_key(id)})
        return self._from_document(document)

    async def _find_by_key(self, key: Any) -> list[dict[str, Any]]:
        query = dict(key) if isinstance(key, Mapping) else {self.key_field: key}
        documents = await self._collection().find(query).to_list(None)
        return [self._from_document(document) for document in documents]

    async def _find_all(self) -> list[dict[str, Any]]:
        documents = await self._collection().find({}).to_list(None)
        return [self._from_document(document) for document in documents]

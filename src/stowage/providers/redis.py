"""Redis provider on ``redis.asyncio``.

Records are JSON strings stored under ``<prefix>doc:<_id>``. Two kinds of
sets make lookups possible without ``KEYS`` scans: ``<prefix>ids`` holds every
identity and ``<prefix>key:<value>`` holds the identities whose ``key_field``
equals ``value``. Records have no revisions. ``find_all`` is not offered;
``expire(id, seconds)`` sets a TTL on a record.

Configuration::

    [connections.Sessions]
    type = "Redis"
    url = "redis://localhost:6379/0"
    prefix = "sessions:"
    key_field = "token"
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Iterable, Mapping
from typing import Any, ClassVar

import redis.asyncio as aioredis
from redis.exceptions import AuthenticationError, WatchError
from redis.exceptions import ConnectionError as RedisConnectionError

from stowage.errors import DatabaseNotFoundError, InvalidArgumentError, NotFoundError
from stowage.normalizer import (
    NormalizationRule,
    authentication_failed,
    is_unreachable,
    server_not_found,
)
from stowage.result import Result

from .base import Callback, Provider, is_blank, matches_key, new_identity
from .types import ALL_CAPABILITIES, Capability, ProviderType, require_option


def _is_unreachable(error: BaseException) -> bool:
    return (
        isinstance(error, RedisConnectionError) and not isinstance(error, AuthenticationError)
    ) or is_unreachable(error)


class RedisProvider(Provider):
    """Provider storing JSON records in Redis strings with set indexes."""

    type: ClassVar[str] = ProviderType.REDIS.value
    capabilities: ClassVar[frozenset[Capability]] = ALL_CAPABILITIES - {Capability.FIND_ALL}

    def __init__(self, config: Mapping[str, Any] | Any | None = None):
        super().__init__(config)
        self._url = require_option(self.config, "url", self.type)
        self.prefix: str = self.config.get("prefix") or f"{self.name or 'stowage'}:"
        self.key_field: str = self.config.get("key_field") or "key"

    @property
    def database(self) -> str:
        return self.prefix

    @property
    def url(self) -> str:
        return self._url

    def _normalization_rules(self) -> Iterable[NormalizationRule]:
        return (
            authentication_failed(matches=lambda error: isinstance(error, AuthenticationError)),
            server_not_found(self.url, matches=_is_unreachable),
        )

    # ── Key layout ───────────────────────────────────────────────

    def _doc_key(self, id: Any) -> str:
        return f"{self.prefix}doc:{id}"

    def _index_key(self, value: Any) -> str:
        return f"{self.prefix}key:{value}"

    @property
    def _ids_key(self) -> str:
        return f"{self.prefix}ids"

    @property
    def _marker_key(self) -> str:
        return f"{self.prefix}created"

    async def _load(self, id: Any, client: Any = None) -> dict[str, Any] | None:
        if client is None:
            client = self._handle
        raw = await client.get(self._doc_key(id))
        return json.loads(raw) if raw is not None else None

    async def _load_many(self, ids: Iterable[Any]) -> list[dict[str, Any]]:
        ids = sorted(ids)
        if not ids:
            return []
        raws = await self._handle.mget([self._doc_key(id) for id in ids])
        return [json.loads(raw) for raw in raws if raw is not None]

    # ── Extra operation ──────────────────────────────────────────

    def expire(self, id: Any, seconds: int, callback: Callback | None = None) -> Awaitable[Result[bool]]:
        """Let the record ``id`` expire after ``seconds``."""
        if is_blank(id):
            raise InvalidArgumentError.required("id")
        if isinstance(seconds, bool) or not isinstance(seconds, int):
            raise InvalidArgumentError.wrong_type("seconds", "an integer")
        completion = self._completion("expire", callback)
        return completion.start(self._with_connection, self._expire, id, seconds)

    async def _expire(self, id: Any, seconds: int) -> bool:
        if not await self._handle.expire(self._doc_key(id), seconds):
            raise NotFoundError.for_id(id)
        return True

    # ── Provider hooks ───────────────────────────────────────────

    async def _open(self) -> aioredis.Redis:
        client = aioredis.from_url(self.url, decode_responses=True)
        try:
            await client.ping()
        except BaseException:
            await client.aclose()
            raise
        return client

    async def _close(self, handle: aioredis.Redis) -> None:
        await handle.aclose()

    async def _create(self) -> None:
        await self._handle.set(self._marker_key, "1")

    async def _drop(self) -> None:
        ids = await self._handle.smembers(self._ids_key)
        created = await self._handle.exists(self._marker_key)
        if not ids and not created:
            raise DatabaseNotFoundError(self.database)
        keys = [self._doc_key(id) for id in ids]
        async for index_key in self._handle.scan_iter(match=f"{self.prefix}key:*"):
            keys.append(index_key)
        keys.extend([self._ids_key, self._marker_key])
        await self._handle.delete(*keys)

    async def _save(self, record: dict[str, Any]) -> dict[str, Any]:
        saved = dict(record)
        if is_blank(saved.get(self.identity_field)):
            saved[self.identity_field] = new_identity()
        id = saved[self.identity_field]
        doc_key = self._doc_key(id)

        async with self._handle.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(doc_key)
                    previous = await self._load(id, pipe)
                    pipe.multi()
                    if previous is not None and previous.get(self.key_field) is not None:
                        pipe.srem(self._index_key(previous[self.key_field]), id)
                    pipe.set(doc_key, json.dumps(saved, default=str))
                    pipe.sadd(self._ids_key, id)
                    if saved.get(self.key_field) is not None:
                        pipe.sadd(self._index_key(saved[self.key_field]), id)
                    await pipe.execute()
                    return saved
                except WatchError:
                    self._log.debug("redis_write_retried", id=id)

    async def _remove(self, record: dict[str, Any]) -> dict[str, Any]:
        id = record[self.identity_field]
        doc_key = self._doc_key(id)

        async with self._handle.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(doc_key)
                    stored = await self._load(id, pipe)
                    if stored is None:
                        raise NotFoundError.for_id(id)
                    pipe.multi()
                    pipe.delete(doc_key)
                    pipe.srem(self._ids_key, id)
                    if stored.get(self.key_field) is not None:
                        pipe.srem(self._index_key(stored[self.key_field]), id)
                    await pipe.execute()
                    return self._tombstone(record)
                except WatchError:
                    self._log.debug("redis_write_retried", id=id)

    async def _find_by_id(self, id: Any, rev: str | None) -> dict[str, Any] | None:
        return await self._load(id)

    async def _find_by_key(self, key: Any) -> list[dict[str, Any]]:
        if isinstance(key, Mapping):
            records = await self._load_many(await self._handle.smembers(self._ids_key))
            return [r for r in records if matches_key(r, key, self.key_field)]
        ids = await self._handle.smembers(self._index_key(key))
        return await self._load_many(ids)

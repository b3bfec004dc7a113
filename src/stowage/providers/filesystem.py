"""Directory-of-JSON-files provider.

Each record is stored as ``<directory>/<_id>.json``. Writes go to a
temporary file first and are renamed into place, so readers never observe a
partially written record. Blocking file I/O runs in a worker thread via
``asyncio.to_thread``.

Configuration::

    [connections.Archive]
    type = "FileSystem"
    directory = "var/archive"
    key_field = "slug"
"""

from __future__ import annotations

import asyncio
import json
import os
import shutil
from collections.abc import Mapping
from pathlib import Path
from typing import Any, ClassVar

from stowage.errors import ConflictError, DatabaseNotFoundError, InvalidArgumentError, NotFoundError

from .base import Provider, is_blank, matches_key
from .types import ProviderType, require_option

SUFFIX = ".json"


class FileSystemProvider(Provider):
    """Provider storing one JSON document per file."""

    type: ClassVar[str] = ProviderType.FILESYSTEM.value
    revision_field: ClassVar[str | None] = "_rev"

    def __init__(self, config: Mapping[str, Any] | Any | None = None):
        super().__init__(config)
        self.directory = Path(require_option(self.config, "directory", self.type))
        self.key_field: str = self.config.get("key_field") or "key"

    @property
    def database(self) -> str:
        return str(self.directory)

    @property
    def url(self) -> str:
        return self.directory.as_uri() if self.directory.is_absolute() else str(self.directory)

    # ── File helpers (run in a worker thread) ────────────────────

    def _path_for(self, id: Any) -> Path:
        name = str(id)
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            raise InvalidArgumentError(f"Argument 'id' is not a valid file name: {name!r}")
        return self.directory / f"{name}{SUFFIX}"

    def _read(self, path: Path) -> dict[str, Any] | None:
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None

    def _write(self, path: Path, record: Mapping[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(record, f, default=str)
            f.flush()
            os.fsync(f.fileno())
        tmp.replace(path)

    def _scan(self) -> list[dict[str, Any]]:
        if not self.directory.is_dir():
            return []
        records = []
        for path in sorted(self.directory.iterdir()):
            if path.is_file() and path.suffix == SUFFIX:
                record = self._read(path)
                if record is not None:
                    records.append(record)
        return records

    def _save_sync(self, record: dict[str, Any]) -> dict[str, Any]:
        id = record.get(self.identity_field)
        stored = None if is_blank(id) else self._read(self._path_for(id))
        saved = self._stamp(record, stored)
        self._write(self._path_for(saved[self.identity_field]), saved)
        return saved

    def _remove_sync(self, record: dict[str, Any]) -> dict[str, Any]:
        id = record[self.identity_field]
        rev = record.get(self.revision_field)
        path = self._path_for(id)
        stored = self._read(path)
        if stored is None:
            raise NotFoundError.for_id(id, rev)
        if rev is not None and stored.get(self.revision_field) != rev:
            raise ConflictError(id)
        path.unlink()
        return self._tombstone(record, stored.get(self.revision_field))

    def _drop_sync(self) -> None:
        if not self.directory.is_dir():
            raise DatabaseNotFoundError(self.database)
        shutil.rmtree(self.directory)

    # ── Provider hooks ───────────────────────────────────────────

    async def _open(self) -> Path:
        return self.directory

    async def _close(self, handle: Any) -> None:
        return None

    async def _create(self) -> None:
        await asyncio.to_thread(self.directory.mkdir, parents=True, exist_ok=True)

    async def _drop(self) -> None:
        await asyncio.to_thread(self._drop_sync)

    async def _save(self, record: dict[str, Any]) -> dict[str, Any]:
        return await asyncio.to_thread(self._save_sync, record)

    async def _remove(self, record: dict[str, Any]) -> dict[str, Any]:
        return await asyncio.to_thread(self._remove_sync, record)

    async def _find_by_id(self, id: Any, rev: str | None) -> dict[str, Any] | None:
        record = await asyncio.to_thread(self._read, self._path_for(id))
        if record is None or (rev is not None and record.get(self.revision_field) != rev):
            return None
        return record

    async def _find_by_key(self, key: Any) -> list[dict[str, Any]]:
        records = await asyncio.to_thread(self._scan)
        return [r for r in records if matches_key(r, key, self.key_field)]

    async def _find_all(self) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._scan)

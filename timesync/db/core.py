"""Document store backends.

The whole application state is one JSON document held under a single key.
Every backend exposes the same read/write of that raw document; ``load`` and
``save`` add the degradation rules shared by all of them:

* a missing, unreachable or failing medium reads as the empty document;
* a document that does not parse reads as the empty document;
* a write that fails is dropped.

Failures are logged and never raised, so callers cannot tell "empty" from
"unavailable".
"""

import asyncio
import logging
import os
from pathlib import Path

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from timesync.config import Settings
from timesync.models.poll import StorageData

_logger = logging.getLogger(__name__)


def decode_document(raw: str | bytes | None) -> StorageData:
    if raw is None:
        return StorageData()
    try:
        return StorageData.model_validate_json(raw)
    except ValidationError as e:
        _logger.warning("Discarding malformed state document (%d errors)", e.error_count())
        return StorageData()


def encode_document(doc: StorageData) -> str:
    return doc.model_dump_json(by_alias=True, exclude_none=True)


class DocumentStore:
    """Base class: subclasses implement ``read``/``write`` of the raw document."""

    name = "base"
    # errors of the underlying medium that degrade instead of propagating
    medium_errors: tuple[type[Exception], ...] = ()

    async def read(self) -> str | bytes | None:
        raise NotImplementedError

    async def write(self, raw: str) -> None:
        raise NotImplementedError

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    async def load(self) -> StorageData:
        try:
            raw = await self.read()
        except self.medium_errors as e:
            _logger.warning("State document unavailable on %s: %r", self.name, e)
            return StorageData()
        return decode_document(raw)

    async def save(self, doc: StorageData) -> bool:
        try:
            await self.write(encode_document(doc))
        except self.medium_errors as e:
            _logger.warning("Dropping state write on %s: %r", self.name, e)
            return False
        return True


class MemoryDocumentStore(DocumentStore):
    name = "memory"

    def __init__(self, raw: str | None = None) -> None:
        self.raw = raw

    async def read(self) -> str | None:
        return self.raw

    async def write(self, raw: str) -> None:
        self.raw = raw


class FileDocumentStore(DocumentStore):
    name = "file"
    medium_errors = (OSError, UnicodeDecodeError)

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def read(self) -> str | None:
        return await asyncio.to_thread(self._read_sync)

    async def write(self, raw: str) -> None:
        await asyncio.to_thread(self._write_sync, raw)

    def _read_sync(self) -> str | None:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding="utf-8")

    def _write_sync(self, raw: str) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(raw, encoding="utf-8")
        os.replace(tmp, self.path)

    async def ping(self) -> bool:
        parent = self.path.parent
        return parent.is_dir() and os.access(parent, os.W_OK)


class RedisDocumentStore(DocumentStore):
    name = "redis"
    medium_errors = (RedisError, OSError)

    def __init__(self, client: redis.Redis | None, key: str) -> None:
        self.client = client
        self.key = key

    async def read(self) -> str | bytes | None:
        if self.client is None:
            raise ConnectionError("Redis not connected")
        return await self.client.get(self.key)

    async def write(self, raw: str) -> None:
        if self.client is None:
            raise ConnectionError("Redis not connected")
        await self.client.set(self.key, raw)

    async def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            await self.client.ping()
            return True
        except self.medium_errors:
            return False

    async def close(self) -> None:
        if self.client is None:
            return
        aclose = getattr(self.client, "aclose", None)
        if callable(aclose):
            await aclose()
        else:
            close = getattr(self.client, "close", None)
            if callable(close):
                await close()


def build_document_store(settings: Settings, redis_client: redis.Redis | None = None) -> DocumentStore:
    """Create the store selected by ``STORAGE_BACKEND``."""
    backend = settings.storage.backend
    if backend == "memory":
        return MemoryDocumentStore()
    if backend == "file":
        return FileDocumentStore(settings.storage.file_path)
    return RedisDocumentStore(redis_client, settings.storage.key)

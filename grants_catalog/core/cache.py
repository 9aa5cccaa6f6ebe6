"""
Durable key-value cache with per-entry TTL.

Two backends behind one interface:
- SqliteCache: file-based embedded database (aiosqlite), the production store
- MemoryCache: in-process dict, for tests and dry runs

Values are stored as JSON documents. Expired entries behave as absent
and are purged lazily when read.
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Optional

import aiosqlite
import structlog

logger = structlog.get_logger(__name__)

DAY_MS = 1000 * 60 * 60 * 24


def _now_ms() -> int:
    return int(time.time() * 1000)


class Cache(ABC):
    """String-keyed cache consumed by every pipeline component."""

    def __init__(self, namespace: str = "1", clock: Callable[[], int] = _now_ms):
        self.namespace = namespace
        self._clock = clock

    def _full_key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    def _expires_at(self, ttl_ms: Optional[int]) -> Optional[int]:
        return self._clock() + ttl_ms if ttl_ms else None

    def _is_expired(self, expires_at: Optional[int]) -> bool:
        return expires_at is not None and expires_at <= self._clock()

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        """Store a JSON-serializable value, replacing any previous entry."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove an entry if present."""

    @abstractmethod
    async def purge_expired(self) -> int:
        """Delete every expired entry. Returns the number removed."""

    async def has(self, key: str) -> bool:
        return await self.get(key) is not None

    async def open(self) -> "Cache":
        return self

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "Cache":
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class MemoryCache(Cache):
    """In-process cache with the same semantics as SqliteCache."""

    def __init__(self, namespace: str = "1", clock: Callable[[], int] = _now_ms):
        super().__init__(namespace=namespace, clock=clock)
        self._entries: dict[str, tuple[str, Optional[int]]] = {}

    async def get(self, key: str) -> Optional[Any]:
        full_key = self._full_key(key)
        entry = self._entries.get(full_key)
        if entry is None:
            return None

        value, expires_at = entry
        if self._is_expired(expires_at):
            del self._entries[full_key]
            return None

        return json.loads(value)

    async def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        self._entries[self._full_key(key)] = (json.dumps(value), self._expires_at(ttl_ms))

    async def delete(self, key: str) -> None:
        self._entries.pop(self._full_key(key), None)

    async def purge_expired(self) -> int:
        expired = [k for k, (_, exp) in self._entries.items() if self._is_expired(exp)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class SqliteCache(Cache):
    """
    Cache backed by a single SQLite file.

    Usage:
        async with SqliteCache("cache.db") as cache:
            await cache.set("key", {"a": 1}, ttl_ms=DAY_MS)
            value = await cache.get("key")
    """

    SCHEMA = (
        "CREATE TABLE IF NOT EXISTS cache ("
        "key TEXT PRIMARY KEY, "
        "value TEXT NOT NULL, "
        "expires_at INTEGER"
        ")"
    )

    def __init__(
        self,
        path: str = "cache.db",
        namespace: str = "1",
        clock: Callable[[], int] = _now_ms,
    ):
        super().__init__(namespace=namespace, clock=clock)
        self.path = path
        self._db: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    async def open(self) -> "SqliteCache":
        if self._db is None:
            if self.path != ":memory:":
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self.path)
            await self._db.execute(self.SCHEMA)
            await self._db.commit()
            logger.info("cache_opened", path=self.path, namespace=self.namespace)
        return self

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.info("cache_closed", path=self.path)

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Cache not opened. Use 'async with' or call open().")
        return self._db

    async def get(self, key: str) -> Optional[Any]:
        db = self._conn()
        full_key = self._full_key(key)

        async with db.execute(
            "SELECT value, expires_at FROM cache WHERE key = ?", (full_key,)
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None

        value, expires_at = row
        if self._is_expired(expires_at):
            await self.delete(key)
            return None

        return json.loads(value)

    async def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        db = self._conn()
        async with self._write_lock:
            await db.execute(
                "INSERT OR REPLACE INTO cache (key, value, expires_at) VALUES (?, ?, ?)",
                (self._full_key(key), json.dumps(value), self._expires_at(ttl_ms)),
            )
            await db.commit()

    async def delete(self, key: str) -> None:
        db = self._conn()
        async with self._write_lock:
            await db.execute("DELETE FROM cache WHERE key = ?", (self._full_key(key),))
            await db.commit()

    async def purge_expired(self) -> int:
        db = self._conn()
        async with self._write_lock:
            cursor = await db.execute(
                "DELETE FROM cache WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (self._clock(),),
            )
            await db.commit()
        removed = cursor.rowcount
        if removed:
            logger.info("cache_purged", removed=removed)
        return removed

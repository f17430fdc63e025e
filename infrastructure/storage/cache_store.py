# infrastructure/storage/cache_store.py
"""
Cache backends for task results.

get() and set() never raise on I/O failure: a failed read is a miss and a
failed write is skipped, both logged through log_cache_event.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import asyncpg
import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.logging import log_cache_event, logger

_PG_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)
_REDIS_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class CacheStore(ABC):
    backend = "base"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Store value; ttl is in seconds, None means no expiry"""

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    async def close(self) -> None:
        return None


class RedisCacheStore(CacheStore):
    """Shared networked cache; entries expire through SETEX"""

    backend = "redis"

    def __init__(self, url: str = "redis://localhost:6379/0", key_prefix: str = "ai-agent:",
                 client: Optional[redis.Redis] = None):
        self.key_prefix = key_prefix
        self.client = client or redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=10,
        )

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self.client.get(self._key(key))
        except _REDIS_ERRORS as e:
            log_cache_event(self.backend, "get", key, str(e))
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        try:
            if ttl is not None and ttl <= 0:
                # Expired on arrival; SETEX rejects non-positive TTLs
                await self.client.delete(self._key(key))
            elif ttl is not None:
                await self.client.setex(self._key(key), int(ttl), value)
            else:
                await self.client.set(self._key(key), value)
        except _REDIS_ERRORS as e:
            log_cache_event(self.backend, "set", key, str(e))

    async def delete(self, key: str) -> None:
        await self.client.delete(self._key(key))

    async def clear(self) -> None:
        keys = [key async for key in self.client.scan_iter(match=f"{self.key_prefix}*")]
        if keys:
            await self.client.delete(*keys)
        logger.info("Cache cleared", backend=self.backend, keys_removed=len(keys))

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self.client.exists(self._key(key)))
        except _REDIS_ERRORS as e:
            log_cache_event(self.backend, "exists", key, str(e))
            return False

    async def close(self) -> None:
        await self.client.aclose()


class PostgresCacheStore(CacheStore):
    """Networked cache on the agent_cache table; the pool is created on first use"""

    backend = "postgres"

    def __init__(self, database_url: Optional[str] = None, pool: Optional[asyncpg.Pool] = None):
        if database_url is None and pool is None:
            raise ValueError("database_url or pool is required")
        self.database_url = database_url
        self.pool = pool
        self._pool_lock = asyncio.Lock()

    async def _get_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            async with self._pool_lock:
                if self.pool is None:
                    self.pool = await asyncpg.create_pool(
                        self.database_url,
                        min_size=1,
                        max_size=10,
                        command_timeout=10,
                    )
        return self.pool

    async def initialize(self) -> None:
        """Create the cache table and index if missing"""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS agent_cache (
                    key VARCHAR(128) PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at TIMESTAMPTZ
                )
            """)
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_agent_cache_expires ON agent_cache(expires_at)"
            )

    async def get(self, key: str) -> Optional[str]:
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                return await conn.fetchval("""
                    SELECT value FROM agent_cache
                    WHERE key = $1 AND (expires_at IS NULL OR expires_at > NOW())
                """, key)
        except _PG_ERRORS as e:
            log_cache_event(self.backend, "get", key, str(e))
            return None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl) if ttl is not None else None
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                await conn.execute("""
                    INSERT INTO agent_cache (key, value, expires_at)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (key) DO UPDATE
                    SET value = EXCLUDED.value, expires_at = EXCLUDED.expires_at
                """, key, value, expires_at)
        except _PG_ERRORS as e:
            log_cache_event(self.backend, "set", key, str(e))

    async def delete(self, key: str) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute("DELETE FROM agent_cache WHERE key = $1", key)

    async def clear(self) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute("DELETE FROM agent_cache")

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None

    async def sweep(self) -> int:
        """Delete expired rows, returning how many were removed"""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM agent_cache WHERE expires_at IS NOT NULL AND expires_at <= NOW()"
            )
        # asyncpg returns the command tag, e.g. "DELETE 3"
        removed = int(result.split()[-1]) if result else 0
        logger.info("Expired cache rows swept", backend=self.backend, removed=removed)
        return removed

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()


@dataclass
class _MemoryEntry:
    value: str
    expires_at: Optional[float]


class MemoryCacheStore(CacheStore):
    """In-process cache with lazy expiry on read"""

    backend = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, _MemoryEntry] = {}
        self._lock = asyncio.Lock()
        self._sweeper: Optional[asyncio.Task] = None
        self.hits = 0
        self.misses = 0

    def _expired(self, entry: _MemoryEntry) -> bool:
        return entry.expires_at is not None and self._clock() >= entry.expires_at

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if self._expired(entry):
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry.value

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        async with self._lock:
            self._entries[key] = _MemoryEntry(value=value, expires_at=expires_at)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    async def exists(self, key: str) -> bool:
        async with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not self._expired(entry)

    async def sweep(self) -> int:
        async with self._lock:
            expired = [key for key, entry in self._entries.items() if self._expired(entry)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def start_sweeper(self, interval_seconds: float = 300.0) -> asyncio.Task:
        """Run sweep() periodically until close()"""
        async def _run():
            while True:
                await asyncio.sleep(interval_seconds)
                removed = await self.sweep()
                if removed:
                    logger.debug("Expired cache entries swept", backend=self.backend, removed=removed)

        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(_run())
        return self._sweeper

    def stats(self) -> Dict[str, Any]:
        # Expired entries count until a read or sweep removes them
        return {
            "backend": self.backend,
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
        }

    async def close(self) -> None:
        if self._sweeper is not None and not self._sweeper.done():
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
        self._sweeper = None


class NullCacheStore(CacheStore):
    """Caching disabled"""

    backend = "none"

    async def get(self, key: str) -> Optional[str]:
        return None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        return None

    async def delete(self, key: str) -> None:
        return None

    async def clear(self) -> None:
        return None

    async def exists(self, key: str) -> bool:
        return False


def create_cache_store(kind: str, **options: Any) -> CacheStore:
    """Build the cache backend selected by configuration"""
    if kind == "redis":
        return RedisCacheStore(**options)
    if kind == "postgres":
        return PostgresCacheStore(**options)
    if kind == "memory":
        return MemoryCacheStore(**options)
    if kind == "none":
        return NullCacheStore()

    logger.error("Unknown cache backend requested", kind=kind)
    raise ValueError(f"Unknown cache backend: {kind}")

"""Counter store abstraction for the rate-limiting engine.

Provides the sorted-set primitives the sliding-window algorithm needs, with
a Redis implementation for production and an in-memory implementation that
behaves the same way for development and tests.
"""

import asyncio
import fnmatch
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import redis.asyncio as aioredis

from apiguard.app.core.redis_lua import SLIDING_WINDOW_SCRIPT


class CounterStore(ABC):
    """Abstract base class for counter stores.

    Scores are epoch milliseconds. A counter is a sorted set whose members
    are individual requests.
    """

    @abstractmethod
    async def record_hit(
        self,
        key: str,
        now_ms: int,
        window_start_ms: int,
        member: str,
        ttl_seconds: int,
    ) -> int:
        """Prune, count, record and refresh TTL in one round trip.

        Args:
            key: Full counter key
            now_ms: Score of the request being recorded
            window_start_ms: Entries scored at or below this are removed
            member: Unique member for this request
            ttl_seconds: Expiry for the whole counter

        Returns:
            Number of entries in the window before this request was added.
        """
        pass

    @abstractmethod
    async def record_hit_atomic(
        self,
        key: str,
        now_ms: int,
        window_start_ms: int,
        member: str,
        ttl_seconds: int,
    ) -> tuple[int, Optional[float]]:
        """Same as record_hit, also returning the oldest score, atomically."""
        pass

    @abstractmethod
    async def oldest_score(self, key: str) -> Optional[float]:
        """Return the lowest score in the counter, or None if empty."""
        pass

    @abstractmethod
    async def count_in_range(self, key: str, min_score: float, max_score: float) -> int:
        """Count entries with min_score <= score <= max_score."""
        pass

    @abstractmethod
    async def remove_range(self, key: str, min_score: float, max_score: float) -> int:
        """Remove entries with min_score <= score <= max_score."""
        pass

    @abstractmethod
    async def cardinality(self, key: str) -> int:
        """Number of entries in the counter."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> int:
        """Delete the counter. Returns the number of keys removed."""
        pass

    @abstractmethod
    async def scan_keys(self, pattern: str) -> list[str]:
        """List counter keys matching a glob-style pattern."""
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Check the store is reachable."""
        pass

    async def close(self) -> None:
        """Release connections held by the store."""
        return None


class InMemoryCounterStore(CounterStore):
    """In-process counter store with TTL support.

    Mirrors Redis sorted-set semantics (empty sets disappear, TTL expiry)
    so the algorithm can be exercised without a network. Not shared between
    processes; use it for development and tests only.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: dict[str, dict[str, float]] = {}
        self._expires_at: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> Optional[dict[str, float]]:
        expires_at = self._expires_at.get(key)
        if expires_at is not None and self._clock() >= expires_at:
            self._data.pop(key, None)
            self._expires_at.pop(key, None)
            return None
        return self._data.get(key)

    def _drop_if_empty(self, key: str) -> None:
        if not self._data.get(key):
            self._data.pop(key, None)
            self._expires_at.pop(key, None)

    def _remove(self, key: str, min_score: float, max_score: float) -> int:
        entries = self._live(key)
        if not entries:
            return 0
        doomed = [m for m, s in entries.items() if min_score <= s <= max_score]
        for member in doomed:
            del entries[member]
        self._drop_if_empty(key)
        return len(doomed)

    def _hit(
        self, key: str, now_ms: int, window_start_ms: int, member: str, ttl_seconds: int
    ) -> int:
        self._remove(key, 0, window_start_ms)
        entries = self._data.setdefault(key, {})
        count = len(entries)
        entries[member] = float(now_ms)
        self._expires_at[key] = self._clock() + ttl_seconds
        return count

    def _oldest(self, key: str) -> Optional[float]:
        entries = self._live(key)
        if not entries:
            return None
        return min(entries.values())

    async def record_hit(
        self, key: str, now_ms: int, window_start_ms: int, member: str, ttl_seconds: int
    ) -> int:
        async with self._lock:
            return self._hit(key, now_ms, window_start_ms, member, ttl_seconds)

    async def record_hit_atomic(
        self, key: str, now_ms: int, window_start_ms: int, member: str, ttl_seconds: int
    ) -> tuple[int, Optional[float]]:
        async with self._lock:
            count = self._hit(key, now_ms, window_start_ms, member, ttl_seconds)
            return count, self._oldest(key)

    async def oldest_score(self, key: str) -> Optional[float]:
        async with self._lock:
            return self._oldest(key)

    async def count_in_range(self, key: str, min_score: float, max_score: float) -> int:
        async with self._lock:
            entries = self._live(key) or {}
            return sum(1 for s in entries.values() if min_score <= s <= max_score)

    async def remove_range(self, key: str, min_score: float, max_score: float) -> int:
        async with self._lock:
            return self._remove(key, min_score, max_score)

    async def cardinality(self, key: str) -> int:
        async with self._lock:
            return len(self._live(key) or {})

    async def delete(self, key: str) -> int:
        async with self._lock:
            existed = self._live(key) is not None
            self._data.pop(key, None)
            self._expires_at.pop(key, None)
            return 1 if existed else 0

    async def scan_keys(self, pattern: str) -> list[str]:
        async with self._lock:
            return [
                key for key in list(self._data)
                if self._live(key) is not None and fnmatch.fnmatchcase(key, pattern)
            ]

    async def ping(self) -> bool:
        return True


class RedisCounterStore(CounterStore):
    """Redis-based counter store.

    Uses sorted sets; the per-request sequence runs in a MULTI/EXEC pipeline
    so it costs one network round trip.

    Example:
        >>> store = RedisCounterStore("redis://localhost:6379/0")
        >>> await store.record_hit("rl:ip:203.0.113.5", now, now - 60000, member, 60)
    """

    SCAN_BATCH_SIZE = 500

    def __init__(
        self,
        redis_url: Optional[str] = None,
        redis_client: Optional[Any] = None,
        socket_timeout: Optional[float] = None,
        connect_timeout: Optional[float] = None,
    ) -> None:
        """Initialize the Redis counter store.

        Args:
            redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
            redis_client: Pre-built client, mainly for tests
            socket_timeout: Per-command timeout in seconds
            connect_timeout: Connection timeout in seconds
        """
        self._redis_url = redis_url
        self._redis = redis_client
        self._socket_timeout = socket_timeout
        self._connect_timeout = connect_timeout

    def _get_client(self) -> Any:
        """Get or create the Redis client."""
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._redis_url,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._connect_timeout,
                decode_responses=True,
            )
        return self._redis

    @staticmethod
    def _to_str(value: Any) -> str:
        return value.decode() if isinstance(value, bytes) else str(value)

    async def record_hit(
        self, key: str, now_ms: int, window_start_ms: int, member: str, ttl_seconds: int
    ) -> int:
        client = self._get_client()
        pipe = client.pipeline(transaction=True)
        pipe.zremrangebyscore(key, 0, window_start_ms)
        pipe.zcard(key)
        pipe.zadd(key, {member: now_ms})
        pipe.expire(key, ttl_seconds)
        results = await pipe.execute()
        return int(results[1] or 0)

    async def record_hit_atomic(
        self, key: str, now_ms: int, window_start_ms: int, member: str, ttl_seconds: int
    ) -> tuple[int, Optional[float]]:
        client = self._get_client()
        result = await client.eval(
            SLIDING_WINDOW_SCRIPT,
            1,  # Number of keys
            key,  # KEYS[1]
            now_ms,  # ARGV[1]
            window_start_ms,  # ARGV[2]
            member,  # ARGV[3]
            ttl_seconds,  # ARGV[4]
        )
        count = int(result[0])
        oldest = float(result[1]) if len(result) > 1 and result[1] is not None else None
        return count, oldest

    async def oldest_score(self, key: str) -> Optional[float]:
        client = self._get_client()
        oldest = await client.zrange(key, 0, 0, withscores=True)
        if not oldest:
            return None
        return float(oldest[0][1])

    async def count_in_range(self, key: str, min_score: float, max_score: float) -> int:
        client = self._get_client()
        return int(await client.zcount(key, min_score, max_score))

    async def remove_range(self, key: str, min_score: float, max_score: float) -> int:
        client = self._get_client()
        return int(await client.zremrangebyscore(key, min_score, max_score))

    async def cardinality(self, key: str) -> int:
        client = self._get_client()
        return int(await client.zcard(key))

    async def delete(self, key: str) -> int:
        client = self._get_client()
        return int(await client.delete(key))

    async def scan_keys(self, pattern: str) -> list[str]:
        client = self._get_client()
        keys = []
        async for key in client.scan_iter(match=pattern, count=self.SCAN_BATCH_SIZE):
            keys.append(self._to_str(key))
        return keys

    async def ping(self) -> bool:
        client = self._get_client()
        return bool(await client.ping())

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


# Global counter store instance (singleton pattern)
_store_instance: Optional[CounterStore] = None


def get_counter_store(force_new: bool = False) -> CounterStore:
    """Get or create the global counter store.

    Uses Redis when settings.redis_enabled is set, otherwise an in-memory
    store (single process only).
    """
    global _store_instance

    if _store_instance is not None and not force_new:
        return _store_instance

    # Import settings here to avoid circular imports
    from apiguard.app.core.config import settings

    if settings.redis_enabled:
        _store_instance = RedisCounterStore(
            redis_url=settings.redis_url,
            socket_timeout=settings.redis_socket_timeout,
            connect_timeout=settings.redis_connect_timeout,
        )
    else:
        _store_instance = InMemoryCounterStore()
    return _store_instance


def reset_counter_store() -> None:
    """Reset the global counter store instance.

    This is primarily useful for testing.
    """
    global _store_instance
    _store_instance = None

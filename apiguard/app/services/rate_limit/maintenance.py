"""Administrative operations and the periodic cleanup sweep."""

import asyncio
import time
from typing import Callable, List, Optional

from apiguard.app.core.counter_store import CounterStore
from apiguard.app.core.logging import get_logger
from apiguard.app.services.rate_limit.catalog import DEFAULT_RULES
from apiguard.app.services.rate_limit.keys import full_counter_key
from apiguard.app.services.rate_limit.models import (
    RateLimitConfig,
    RateLimitRule,
    RateLimitStats,
    RateLimitStatus,
    default_key_prefix,
)

logger = get_logger(__name__)

DEFAULT_KEY_PATTERN = "rl:*"
DEFAULT_RETENTION_MS = 24 * 60 * 60 * 1000
IDENTITY_KINDS = ("ip", "user", "tenant")


class RateLimitMaintenance:
    """Inspection, reset and cleanup of rate limit counters.

    Unlike the admission path, errors from the store propagate here: an
    operator asking for a reset needs to know it failed.
    """

    def __init__(
        self,
        store: CounterStore,
        clock: Callable[[], float] = time.time,
        key_pattern: str = DEFAULT_KEY_PATTERN,
        rules: Optional[List[RateLimitRule]] = None,
    ) -> None:
        self.store = store
        self._clock = clock
        self.key_pattern = key_pattern
        self.rules = DEFAULT_RULES if rules is None else rules

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def reset(self, key: str, prefix: Optional[str] = None) -> None:
        """Delete a counter so the next request starts a fresh window.

        prefix defaults to the configured default key prefix.
        """
        counter_key = f"{prefix or default_key_prefix()}:{key}"
        try:
            await self.store.delete(counter_key)
        except Exception as e:
            logger.error(f"Error resetting rate limit for {counter_key}: {e}")
            raise
        logger.info(f"Rate limit reset for key: {counter_key}")

    async def status(self, key: str, config: RateLimitConfig) -> RateLimitStatus:
        """Report a counter's usage without recording a request."""
        counter_key = full_counter_key(config, key)
        now = self._now_ms()
        try:
            current = await self.store.count_in_range(counter_key, now - config.window_ms, now)
        except Exception as e:
            logger.error(f"Error getting rate limit status for {counter_key}: {e}")
            raise
        return RateLimitStatus(
            key=counter_key,
            current_count=current,
            limit=config.max_requests,
            remaining=max(0, config.max_requests - current),
            reset_time=now + config.window_ms,
            window_ms=config.window_ms,
        )

    async def list_active_keys(self, pattern: Optional[str] = None) -> list[str]:
        """List counter keys matching a glob pattern (default rl:*)."""
        pattern = pattern or self.key_pattern
        try:
            keys = await self.store.scan_keys(pattern)
        except Exception as e:
            logger.error(f"Error getting rate limit keys with pattern {pattern}: {e}")
            raise
        return sorted(keys)

    async def cleanup_expired_data(self, retention_ms: int = DEFAULT_RETENTION_MS) -> int:
        """Drop entries older than the retention horizon and empty counters.

        Returns:
            Number of entries removed.
        """
        logger.info("Starting rate limiting cleanup...")
        cutoff = self._now_ms() - retention_ms
        cleaned = 0

        for key in await self.list_active_keys():
            removed = await self.store.remove_range(key, 0, cutoff)
            if removed > 0:
                cleaned += removed
                logger.debug(f"Cleaned {removed} expired entries from {key}")

            if await self.store.cardinality(key) == 0:
                await self.store.delete(key)
                logger.debug(f"Removed empty rate limit key: {key}")

        logger.info(f"Rate limiting cleanup completed: {cleaned} entries cleaned")
        return cleaned

    async def get_stats(self, top_n: int = 10) -> RateLimitStats:
        """Group counters by namespace and rank the busiest ones."""
        keys = await self.list_active_keys()
        keys_by_type: dict[str, int] = {}
        key_data: list[dict] = []

        for key in keys:
            # 'rl:user:general:user:u-1' -> 'user'
            parts = key.split(":")
            key_type = parts[1] if len(parts) > 1 and parts[1] else "unknown"
            keys_by_type[key_type] = keys_by_type.get(key_type, 0) + 1

            count = await self.store.cardinality(key)
            if count > 0:
                key_data.append({"key": key, "count": count})

        key_data.sort(key=lambda item: item["count"], reverse=True)

        return RateLimitStats(
            total_keys=len(keys),
            active_keys=len(key_data),
            keys_by_type=keys_by_type,
            top_limited_keys=key_data[:top_n],
        )

    async def clear_identity(self, kind: str, value: str) -> int:
        """Delete every counter scoped to one IP, user or tenant.

        Returns:
            Number of counters deleted.
        """
        if kind not in IDENTITY_KINDS:
            raise ValueError(f"kind must be one of {IDENTITY_KINDS}, got {kind!r}")
        deleted = 0
        for key in await self.list_active_keys():
            if self._segment_value(self._composed_part(key), kind) == value:
                deleted += await self.store.delete(key)
        logger.info(f"Cleared {deleted} rate limit counters for {kind}:{value}")
        return deleted

    async def blocked_identities(self, kind: str) -> list[str]:
        """Identities with at least one catalog counter at or over its limit."""
        if kind not in IDENTITY_KINDS:
            raise ValueError(f"kind must be one of {IDENTITY_KINDS}, got {kind!r}")
        now = self._now_ms()
        blocked: set[str] = set()

        for rule in self.rules:
            config = rule.config
            for key in await self.list_active_keys(f"{config.key_prefix}:*"):
                composed = key[len(config.key_prefix) + 1:]
                value = self._segment_value(composed, kind)
                if value is None or value in blocked:
                    continue
                count = await self.store.count_in_range(key, now - config.window_ms, now)
                if count >= config.max_requests:
                    blocked.add(value)

        return sorted(blocked)

    def _composed_part(self, key: str) -> str:
        """Strip a catalog prefix (which may itself contain labels) from a key."""
        for rule in self.rules:
            prefix = f"{rule.config.key_prefix}:"
            if key.startswith(prefix):
                return key[len(prefix):]
        return key

    @staticmethod
    def _segment_value(composed_key: str, kind: str) -> Optional[str]:
        """Value following 'kind:' in a composed key.

        Values may contain ':' (IPv6), so the value runs to the next known label.
        """
        labels = ("ip", "user", "tenant", "path", "method")
        parts = composed_key.split(":")
        for index, part in enumerate(parts[:-1]):
            if part != kind:
                continue
            value_parts = []
            for piece in parts[index + 1:]:
                if piece in labels and value_parts:
                    break
                value_parts.append(piece)
            return ":".join(value_parts)
        return None


class CleanupJob:
    """Background task running the cleanup sweep on a fixed interval."""

    def __init__(
        self,
        maintenance: RateLimitMaintenance,
        interval_seconds: float,
        retention_ms: int = DEFAULT_RETENTION_MS,
    ) -> None:
        self.maintenance = maintenance
        self.interval_seconds = interval_seconds
        self.retention_ms = retention_ms
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        """Start the periodic cleanup task."""
        if self._task is not None:
            return
        self._shutdown_event.clear()
        self._task = asyncio.create_task(self._run())
        logger.info("Started rate limit cleanup task")

    async def stop(self) -> None:
        """Stop the periodic cleanup task."""
        if self._task is None:
            return
        self._shutdown_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Stopped rate limit cleanup task")

    async def _run(self) -> None:
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self.interval_seconds,
                )
            except asyncio.TimeoutError:
                pass
            if self._shutdown_event.is_set():
                break
            try:
                await self.maintenance.cleanup_expired_data(self.retention_ms)
            except Exception as e:
                logger.error(f"Rate limiting cleanup failed: {e}")

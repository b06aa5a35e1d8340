"""Sliding-window rate limiter backed by a shared counter store.

Each check records the request in a sorted set keyed by rule and identity,
prunes entries that left the window and compares the surviving count with
the rule's limit. Store failures never block traffic: the check fails open.
"""

import asyncio
import math
import secrets
import time
from typing import Callable, Iterable, Optional

import redis

from apiguard.app.core.counter_store import CounterStore
from apiguard.app.core.logging import get_log_context, get_logger
from apiguard.app.services.rate_limit.keys import full_counter_key
from apiguard.app.services.rate_limit.models import RateLimitConfig, RateLimitResult

logger = get_logger(__name__)


class SlidingWindowRateLimiter:
    """Sliding-window log limiter.

    The four store steps (prune, count, record, expire) run in one round
    trip. The Retry-After read is a second round trip, so two near-
    simultaneous requests can both observe a count just under the limit;
    the resulting overshoot is bounded by the requests in flight. With
    atomic=True the whole check runs as one Lua script instead and the
    limit becomes a hard cutoff.
    """

    def __init__(
        self,
        store: CounterStore,
        clock: Callable[[], float] = time.time,
        atomic: bool = False,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Counter store shared by all API instances
            clock: Returns the current time in seconds
            atomic: Run each check as a single server-side script
        """
        self.store = store
        self._clock = clock
        self.atomic = atomic

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @staticmethod
    def _new_member(now_ms: int) -> str:
        # Two requests in the same millisecond must both be counted
        return f"{now_ms}-{secrets.token_hex(4)}"

    async def check_rate_limit(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """Record a request against a counter and decide whether to admit it.

        Args:
            key: Composed key (without prefix)
            config: Window and limit to apply

        Returns:
            RateLimitResult; allowed=True with full headroom if the store fails.
        """
        counter_key = full_counter_key(config, key)
        now = self._now_ms()
        window_start = now - config.window_ms
        member = self._new_member(now)

        try:
            oldest: Optional[float] = None
            if self.atomic:
                count, oldest = await self.store.record_hit_atomic(
                    counter_key, now, window_start, member, config.ttl_seconds
                )
            else:
                count = await self.store.record_hit(
                    counter_key, now, window_start, member, config.ttl_seconds
                )

            allowed = count < config.max_requests
            remaining = max(0, config.max_requests - count - 1)
            reset_time = now + config.window_ms

            retry_after: Optional[int] = None
            if not allowed:
                if not self.atomic:
                    oldest = await self.store.oldest_score(counter_key)
                if oldest is not None:
                    retry_after = math.ceil((oldest + config.window_ms - now) / 1000)

            logger.debug(
                f"Rate limit check for {counter_key}: {count}/{config.max_requests} "
                f"requests, allowed: {allowed}"
            )

            return RateLimitResult(
                allowed=allowed,
                count=count,
                remaining=remaining,
                reset_time=reset_time,
                retry_after=retry_after,
            )

        except redis.ConnectionError as e:
            logger.error(f"Counter store connection failed for {counter_key}: {e}")
            return self._fail_open(config, now, "connection_error", counter_key)
        except (redis.TimeoutError, asyncio.TimeoutError) as e:
            logger.warning(f"Counter store timeout for {counter_key}: {e}")
            return self._fail_open(config, now, "timeout", counter_key)
        except (redis.RedisError, OSError) as e:
            logger.error(f"Counter store error for {counter_key}: {e}")
            return self._fail_open(config, now, "store_error", counter_key)
        except Exception as e:
            logger.exception(f"Unexpected rate limit error for {counter_key}: {e}")
            return self._fail_open(config, now, "unexpected", counter_key)

    def _fail_open(
        self, config: RateLimitConfig, now: int, error_type: str, counter_key: str
    ) -> RateLimitResult:
        """Admit the request when the counter store cannot be used."""
        logger.warning(
            f"Rate limiting fail-open triggered due to {error_type}. "
            "Request allowed without rate limit check.",
            extra=get_log_context(key=counter_key),
        )
        return RateLimitResult(
            allowed=True,
            count=0,
            remaining=config.max_requests,
            reset_time=now + config.window_ms,
        )

    async def check_multiple(
        self, checks: Iterable[tuple[str, RateLimitConfig]]
    ) -> list[RateLimitResult]:
        """Run several independent checks concurrently, preserving order."""
        return list(await asyncio.gather(
            *(self.check_rate_limit(key, config) for key, config in checks)
        ))

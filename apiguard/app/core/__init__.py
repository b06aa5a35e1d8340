"""Core utilities for the rate-limiting engine."""

from apiguard.app.core.config import settings
from apiguard.app.core.counter_store import (
    CounterStore,
    InMemoryCounterStore,
    RedisCounterStore,
    get_counter_store,
    reset_counter_store,
)
from apiguard.app.core.logging import get_logger, setup_logging

__all__ = [
    "CounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "get_counter_store",
    "reset_counter_store",
    "settings",
    "get_logger",
    "setup_logging",
]

"""Shared fixtures for the rate limiting tests."""

import pytest

from apiguard.app.core.counter_store import InMemoryCounterStore, reset_counter_store
from apiguard.app.middleware.auth import get_admin_token
from apiguard.app.services.rate_limit.limiter import SlidingWindowRateLimiter

ADMIN_TOKEN = "test-admin-token"


class FakeClock:
    """Manually advanced time source (seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def advance_ms(self, milliseconds: int) -> None:
        self.now += milliseconds / 1000


def _clear_admin_token_cache() -> None:
    if hasattr(get_admin_token, "_cached_token"):
        delattr(get_admin_token, "_cached_token")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryCounterStore(clock=clock)


@pytest.fixture
def limiter(store, clock):
    return SlidingWindowRateLimiter(store, clock=clock)


@pytest.fixture
def admin_headers(monkeypatch):
    _clear_admin_token_cache()
    monkeypatch.setenv("ADMIN_TOKEN", ADMIN_TOKEN)
    yield {"Authorization": f"Bearer {ADMIN_TOKEN}"}
    _clear_admin_token_cache()


@pytest.fixture(autouse=True)
def _reset_global_store():
    reset_counter_store()
    yield
    reset_counter_store()

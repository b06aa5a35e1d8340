import pytest
from pydantic import ValidationError

from apiguard.app.core import config
from apiguard.app.core.config import Settings
from apiguard.app.services.rate_limit.models import RateLimitConfig


def test_defaults(monkeypatch) -> None:
    for name in (
        "REDIS_ENABLED",
        "RATE_LIMIT_ENABLED",
        "RATE_LIMIT_ATOMIC_SCRIPT",
        "RATE_LIMIT_DEFAULT_PREFIX",
        "RATE_LIMIT_TRUST_FORWARDED_HEADERS",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.redis_enabled is False
    assert settings.rate_limit_enabled is True
    assert settings.rate_limit_atomic_script is False
    assert settings.rate_limit_trust_forwarded_headers is False
    assert settings.rate_limit_default_prefix == "rl"
    assert settings.rate_limit_key_pattern == "rl:*"
    assert settings.cleanup_retention_ms == 24 * 60 * 60 * 1000


def test_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("REDIS_ENABLED", "true")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")
    monkeypatch.setenv("RATE_LIMIT_CLEANUP_RETENTION_HOURS", "2")

    settings = Settings(_env_file=None)

    assert settings.redis_enabled is True
    assert settings.redis_url == "redis://cache:6379/2"
    assert settings.cleanup_retention_ms == 2 * 60 * 60 * 1000


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("redis_socket_timeout", 0),
        ("redis_connect_timeout", -1),
        ("rate_limit_cleanup_interval_seconds", 30),
        ("rate_limit_cleanup_retention_hours", 0),
        ("rate_limit_stats_top_n", 0),
        ("rate_limit_default_prefix", "  "),
    ],
)
def test_invalid_values_rejected(field: str, value) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


def test_default_prefix_applies_to_configs(monkeypatch) -> None:
    monkeypatch.setattr(config.settings, "rate_limit_default_prefix", "custom")

    assert RateLimitConfig(window_ms=1000, max_requests=1).key_prefix == "custom"
    assert RateLimitConfig(window_ms=1000, max_requests=1, key_prefix="rl:x").key_prefix == "rl:x"

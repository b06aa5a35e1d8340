"""Built-in rate limit rules and config presets."""

from datetime import datetime
from typing import List, Optional

from apiguard.app.services.rate_limit.models import RateLimitConfig, RateLimitRule

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

# Evaluated in declaration order; the first violated rule is reported.
DEFAULT_RULES: List[RateLimitRule] = [
    # Global API rate limits
    RateLimitRule(
        name="global_per_ip",
        per_ip=True,
        config=RateLimitConfig(window_ms=15 * MINUTE_MS, max_requests=1000, key_prefix="rl:global:ip"),
    ),
    # Authenticated user limits
    RateLimitRule(
        name="auth_user_general",
        user_type="authenticated",
        config=RateLimitConfig(window_ms=15 * MINUTE_MS, max_requests=500, key_prefix="rl:user:general"),
    ),
    # Anonymous user limits (stricter)
    RateLimitRule(
        name="anonymous_general",
        user_type="anonymous",
        config=RateLimitConfig(window_ms=15 * MINUTE_MS, max_requests=100, key_prefix="rl:anon:general"),
    ),
    # Tenant-based limits
    RateLimitRule(
        name="tenant_free",
        tenant_type="free",
        config=RateLimitConfig(window_ms=HOUR_MS, max_requests=1000, key_prefix="rl:tenant:free"),
    ),
    RateLimitRule(
        name="tenant_paid",
        tenant_type="paid",
        config=RateLimitConfig(window_ms=HOUR_MS, max_requests=10000, key_prefix="rl:tenant:paid"),
    ),
    RateLimitRule(
        name="tenant_enterprise",
        tenant_type="enterprise",
        config=RateLimitConfig(window_ms=HOUR_MS, max_requests=50000, key_prefix="rl:tenant:enterprise"),
    ),
    # Specific endpoint limits
    RateLimitRule(
        name="auth_login",
        path="/auth/login",
        method="POST",
        config=RateLimitConfig(window_ms=15 * MINUTE_MS, max_requests=5, key_prefix="rl:auth:login"),
    ),
    RateLimitRule(
        name="auth_register",
        path="/auth/register",
        method="POST",
        config=RateLimitConfig(window_ms=HOUR_MS, max_requests=3, key_prefix="rl:auth:register"),
    ),
    RateLimitRule(
        name="password_reset",
        path="/auth/forgot-password",
        method="POST",
        config=RateLimitConfig(window_ms=HOUR_MS, max_requests=3, key_prefix="rl:auth:reset"),
    ),
    # File upload limits
    RateLimitRule(
        name="file_upload",
        path="/files/upload",
        method="POST",
        config=RateLimitConfig(window_ms=HOUR_MS, max_requests=100, key_prefix="rl:files:upload"),
    ),
    # API-heavy operations
    RateLimitRule(
        name="bulk_operations",
        path="/bulk/*",
        config=RateLimitConfig(window_ms=HOUR_MS, max_requests=10, key_prefix="rl:bulk:ops"),
    ),
]


def find_rule(name: str, rules: Optional[List[RateLimitRule]] = None) -> Optional[RateLimitRule]:
    """Look up a catalog rule by name."""
    for rule in DEFAULT_RULES if rules is None else rules:
        if rule.name == name:
            return rule
    return None


def strict_limit(max_requests: int = 5, window_minutes: int = 15) -> RateLimitConfig:
    """Strict limit for sensitive operations."""
    return RateLimitConfig(window_ms=window_minutes * MINUTE_MS, max_requests=max_requests, key_prefix="rl:strict")


def moderate_limit(max_requests: int = 100, window_minutes: int = 15) -> RateLimitConfig:
    """Moderate limit for regular API endpoints."""
    return RateLimitConfig(window_ms=window_minutes * MINUTE_MS, max_requests=max_requests, key_prefix="rl:moderate")


def lenient_limit(max_requests: int = 1000, window_minutes: int = 15) -> RateLimitConfig:
    """Lenient limit for read-only operations."""
    return RateLimitConfig(window_ms=window_minutes * MINUTE_MS, max_requests=max_requests, key_prefix="rl:lenient")


def auth_limit() -> RateLimitConfig:
    return RateLimitConfig(window_ms=15 * MINUTE_MS, max_requests=5, key_prefix="rl:auth")


def upload_limit() -> RateLimitConfig:
    return RateLimitConfig(window_ms=HOUR_MS, max_requests=50, key_prefix="rl:upload")


def bulk_operation_limit() -> RateLimitConfig:
    return RateLimitConfig(window_ms=HOUR_MS, max_requests=10, key_prefix="rl:bulk")


def admin_limit() -> RateLimitConfig:
    return RateLimitConfig(window_ms=15 * MINUTE_MS, max_requests=1000, key_prefix="rl:admin")


def public_limit() -> RateLimitConfig:
    return RateLimitConfig(window_ms=15 * MINUTE_MS, max_requests=50, key_prefix="rl:public")


def search_limit() -> RateLimitConfig:
    return RateLimitConfig(window_ms=MINUTE_MS, max_requests=30, key_prefix="rl:search")


def export_limit() -> RateLimitConfig:
    return RateLimitConfig(window_ms=HOUR_MS, max_requests=5, key_prefix="rl:export")


def notification_limit() -> RateLimitConfig:
    return RateLimitConfig(window_ms=HOUR_MS, max_requests=100, key_prefix="rl:notification")


def scaling_limit(
    base_requests: int,
    base_window_minutes: int,
    scale_factor: float = 1.5,
    now: Optional[datetime] = None,
) -> RateLimitConfig:
    """Limit that scales up during business hours (09:00-17:00 inclusive).

    Evaluated when called, so build route tables with it at startup only if
    a fixed value is acceptable.
    """
    hour = (now or datetime.now()).hour
    max_requests = base_requests
    if 9 <= hour <= 17:
        max_requests = int(base_requests * scale_factor)
    return RateLimitConfig(
        window_ms=base_window_minutes * MINUTE_MS,
        max_requests=max_requests,
        key_prefix="rl:scaling",
    )

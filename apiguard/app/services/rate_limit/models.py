"""Rate limiting data models."""

from dataclasses import dataclass, field
from typing import Literal, Optional

from apiguard.app.core.config import settings
from apiguard.app.exceptions import InvalidRateLimitConfigError

UserType = Literal["authenticated", "anonymous", "premium"]
TenantType = Literal["free", "paid", "enterprise"]

USER_TYPES = ("authenticated", "anonymous", "premium")
TENANT_TYPES = ("free", "paid", "enterprise")


def default_key_prefix() -> str:
    """Prefix for counters whose config does not name one."""
    return settings.rate_limit_default_prefix


@dataclass(frozen=True)
class RateLimitConfig:
    """Window length and admitted requests per window for one counter.

    skip_successful_requests and skip_failed_requests are accepted for
    compatibility but not consulted when counting.
    """
    window_ms: int
    max_requests: int
    key_prefix: str = field(default_factory=default_key_prefix)
    skip_successful_requests: bool = False
    skip_failed_requests: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.window_ms, int) or self.window_ms <= 0:
            raise InvalidRateLimitConfigError(
                f"window_ms must be a positive integer, got {self.window_ms!r}"
            )
        if not isinstance(self.max_requests, int) or self.max_requests <= 0:
            raise InvalidRateLimitConfigError(
                f"max_requests must be a positive integer, got {self.max_requests!r}"
            )
        if not self.key_prefix:
            raise InvalidRateLimitConfigError("key_prefix must not be empty")

    @property
    def ttl_seconds(self) -> int:
        """Counter expiry: the window rounded up to whole seconds."""
        return -(-self.window_ms // 1000)

    def to_dict(self) -> dict:
        return {
            "windowMs": self.window_ms,
            "maxRequests": self.max_requests,
            "keyPrefix": self.key_prefix,
        }


@dataclass(frozen=True)
class RateLimitRule:
    """A named rate limit with optional request matchers.

    Absent matchers are wildcards; present matchers must all match.
    per_ip scopes the counter to the client IP.
    """
    name: str
    config: RateLimitConfig
    path: Optional[str] = None
    method: Optional[str] = None
    user_type: Optional[UserType] = None
    tenant_type: Optional[TenantType] = None
    per_ip: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise InvalidRateLimitConfigError("rule name must not be empty")
        if self.user_type is not None and self.user_type not in USER_TYPES:
            raise InvalidRateLimitConfigError(
                f"rule {self.name}: unknown user_type {self.user_type!r}"
            )
        if self.tenant_type is not None and self.tenant_type not in TENANT_TYPES:
            raise InvalidRateLimitConfigError(
                f"rule {self.name}: unknown tenant_type {self.tenant_type!r}"
            )
        if self.method is not None:
            object.__setattr__(self, "method", self.method.upper())

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": self.path,
            "method": self.method,
            "userType": self.user_type,
            "tenantType": self.tenant_type,
            "perIp": self.per_ip,
            "config": self.config.to_dict(),
        }


@dataclass(frozen=True)
class RequestContext:
    """Identity and routing facts about one request.

    tenant_type is None for requests made outside any tenant, so
    tenant-scoped rules do not apply to them.
    """
    ip: str
    path: str
    method: str
    user_type: UserType = "anonymous"
    tenant_type: Optional[TenantType] = None
    user_id: Optional[str] = None
    tenant_id: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def identifier(self) -> str:
        """Human-readable requester identity for log lines."""
        if self.user_id:
            return f"user:{self.user_id}"
        return f"ip:{self.ip}"


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    count: int
    remaining: int
    reset_time: int
    retry_after: Optional[int] = None


@dataclass
class RateLimitStatus:
    """Read-only view of a counter."""
    key: str
    current_count: int
    limit: int
    remaining: int
    reset_time: int
    window_ms: int

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "currentCount": self.current_count,
            "limit": self.limit,
            "remaining": self.remaining,
            "resetTime": self.reset_time,
            "windowMs": self.window_ms,
        }


@dataclass
class RateLimitStats:
    """Aggregate view of every active counter."""
    total_keys: int
    active_keys: int
    keys_by_type: dict[str, int] = field(default_factory=dict)
    top_limited_keys: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "totalKeys": self.total_keys,
            "activeKeys": self.active_keys,
            "keysByType": self.keys_by_type,
            "topLimitedKeys": self.top_limited_keys,
        }

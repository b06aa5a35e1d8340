"""Distributed rate limiting.

Package layout:
- models.py: Configs, rules, request context and results
- catalog.py: Built-in rules and config presets
- resolver.py: Rule selection for a request
- keys.py: Counter key composition
- limiter.py: Sliding-window counter
- coordinator.py: Multi-rule admission decisions
- routes.py: Per-route skip/override table
- maintenance.py: Admin operations and cleanup job
"""

from apiguard.app.services.rate_limit.catalog import DEFAULT_RULES, find_rule
from apiguard.app.services.rate_limit.coordinator import (
    AdmissionCoordinator,
    AdmissionDecision,
    format_reset_time,
)
from apiguard.app.services.rate_limit.keys import build_rate_limit_key, full_counter_key
from apiguard.app.services.rate_limit.limiter import SlidingWindowRateLimiter
from apiguard.app.services.rate_limit.maintenance import CleanupJob, RateLimitMaintenance
from apiguard.app.services.rate_limit.models import (
    RateLimitConfig,
    RateLimitResult,
    RateLimitRule,
    RateLimitStats,
    RateLimitStatus,
    RequestContext,
)
from apiguard.app.services.rate_limit.resolver import (
    get_applicable_rules,
    match_path,
    rule_matches,
)
from apiguard.app.services.rate_limit.routes import (
    RouteLimitTable,
    RoutePolicy,
    default_route_table,
)

__all__ = [
    # Models
    "RateLimitConfig",
    "RateLimitResult",
    "RateLimitRule",
    "RateLimitStats",
    "RateLimitStatus",
    "RequestContext",
    # Rules
    "DEFAULT_RULES",
    "find_rule",
    "get_applicable_rules",
    "match_path",
    "rule_matches",
    "build_rate_limit_key",
    "full_counter_key",
    # Engine
    "SlidingWindowRateLimiter",
    "AdmissionCoordinator",
    "AdmissionDecision",
    "format_reset_time",
    # Routes
    "RouteLimitTable",
    "RoutePolicy",
    "default_route_table",
    # Maintenance
    "RateLimitMaintenance",
    "CleanupJob",
]

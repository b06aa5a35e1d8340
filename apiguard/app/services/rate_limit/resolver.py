"""Selection of the rate limit rules that apply to a request."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import List, Optional

from apiguard.app.services.rate_limit.catalog import DEFAULT_RULES
from apiguard.app.services.rate_limit.models import (
    RateLimitConfig,
    RateLimitRule,
    RequestContext,
)

OVERRIDE_RULE_NAME = "custom"


@lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> re.Pattern:
    """Translate a path glob into an anchored regex; '*' spans any characters."""
    body = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.compile(f"^{body}$")


def match_path(pattern: str, path: str) -> bool:
    """Match a request path against an exact path or a '*' glob."""
    if "*" in pattern:
        return _compile_glob(pattern).match(path) is not None
    return pattern == path


def rule_matches(rule: RateLimitRule, context: RequestContext) -> bool:
    """Check every matcher declared on the rule against the request."""
    if rule.path and not match_path(rule.path, context.path):
        return False
    if rule.method and rule.method != context.method.upper():
        return False
    if rule.user_type and rule.user_type != context.user_type:
        return False
    if rule.tenant_type and rule.tenant_type != context.tenant_type:
        return False
    return True


def override_rule(config: RateLimitConfig, path: Optional[str] = None) -> RateLimitRule:
    """Wrap a per-route config as a rule.

    The rule is IP-scoped and carries the route path so that overridden
    routes sharing a key prefix still get separate counters.
    """
    return RateLimitRule(name=OVERRIDE_RULE_NAME, config=config, path=path, per_ip=True)


def get_applicable_rules(
    context: RequestContext,
    override: Optional[RateLimitConfig] = None,
    rules: Optional[List[RateLimitRule]] = None,
    override_path: Optional[str] = None,
) -> List[RateLimitRule]:
    """Return the rules to check for a request, in evaluation order.

    Args:
        context: The request being admitted
        override: Per-route config; replaces the catalog entirely when given
        rules: Catalog to filter (defaults to DEFAULT_RULES)
        override_path: Route pattern the override was registered for

    Returns:
        Matching rules; an empty list means the request is not limited.
    """
    if override is not None:
        return [override_rule(override, override_path or context.path)]
    catalog = DEFAULT_RULES if rules is None else rules
    return [rule for rule in catalog if rule_matches(rule, context)]

"""Counter key composition."""

from apiguard.app.services.rate_limit.models import (
    RateLimitConfig,
    RateLimitRule,
    RequestContext,
)


def build_rate_limit_key(rule: RateLimitRule, context: RequestContext) -> str:
    """Compose the counter key for a rule.

    Only the identity parts the rule is scoped to are included, so unrelated
    rules never share a counter and a rule never splits on data it ignores.

    Args:
        rule: Rule being checked
        context: Request being admitted

    Returns:
        ':'-joined label:value segments, e.g. "ip:203.0.113.5:path:/auth/login:method:POST"
    """
    parts: list[str] = []

    by_user = rule.user_type in ("authenticated", "premium")
    by_tenant = rule.tenant_type is not None

    # A user- or tenant-scoped rule without that identity falls back to the
    # client IP rather than one counter shared by every such request
    missing_identity = (by_user and not context.user_id) or (
        by_tenant and not context.tenant_id
    )

    if rule.per_ip or rule.user_type == "anonymous" or missing_identity:
        parts.append(f"ip:{context.ip}")

    if by_user and context.user_id:
        parts.append(f"user:{context.user_id}")

    if by_tenant and context.tenant_id:
        parts.append(f"tenant:{context.tenant_id}")

    if rule.path:
        parts.append(f"path:{rule.path}")

    if rule.method:
        parts.append(f"method:{rule.method}")

    return ":".join(parts)


def full_counter_key(config: RateLimitConfig, composed_key: str) -> str:
    """Key of the counter in the store."""
    return f"{config.key_prefix}:{composed_key}"

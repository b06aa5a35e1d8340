"""Admission decisions across every rule that applies to a request."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from apiguard.app.core.logging import get_log_context, get_logger
from apiguard.app.exceptions import RateLimitExceededError
from apiguard.app.services.rate_limit.catalog import DEFAULT_RULES
from apiguard.app.services.rate_limit.keys import build_rate_limit_key
from apiguard.app.services.rate_limit.limiter import SlidingWindowRateLimiter
from apiguard.app.services.rate_limit.models import (
    RateLimitConfig,
    RateLimitResult,
    RateLimitRule,
    RequestContext,
)
from apiguard.app.services.rate_limit.resolver import get_applicable_rules

logger = get_logger(__name__)


def format_reset_time(reset_time_ms: int) -> str:
    """Epoch milliseconds as ISO-8601 UTC, e.g. 2026-10-18T09:15:00.000Z."""
    moment = datetime.fromtimestamp(reset_time_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class AdmissionDecision:
    """The binding rule and result for one request."""
    rule: RateLimitRule
    key: str
    result: RateLimitResult

    @property
    def allowed(self) -> bool:
        return self.result.allowed

    @property
    def limit(self) -> int:
        return self.result.count + self.result.remaining

    def headers(self) -> dict[str, str]:
        """Rate limit response headers for this decision."""
        headers = {
            "X-RateLimit-Rule": self.rule.name,
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.result.remaining),
            "X-RateLimit-Reset": format_reset_time(self.result.reset_time),
        }
        if self.result.retry_after is not None:
            headers["Retry-After"] = str(self.result.retry_after)
        return headers


class AdmissionCoordinator:
    """Runs the limiter for each applicable rule and picks one decision.

    The first disallowed result in rule order binds; when every rule admits
    the request, the first rule's result is reported. Declare the strictest
    rule first when the reported headers matter.
    """

    def __init__(
        self,
        limiter: SlidingWindowRateLimiter,
        rules: Optional[List[RateLimitRule]] = None,
    ) -> None:
        self.limiter = limiter
        self.rules = DEFAULT_RULES if rules is None else rules

    async def evaluate(
        self,
        context: RequestContext,
        override: Optional[RateLimitConfig] = None,
        override_path: Optional[str] = None,
    ) -> Optional[AdmissionDecision]:
        """Check every applicable rule without raising.

        Returns:
            The binding decision, or None when no rule applies.
        """
        rules = get_applicable_rules(
            context, override=override, rules=self.rules, override_path=override_path
        )
        if not rules:
            return None

        keys = [build_rate_limit_key(rule, context) for rule in rules]
        results = await self.limiter.check_multiple(
            (key, rule.config) for rule, key in zip(rules, keys)
        )

        binding = 0
        for index, result in enumerate(results):
            if not result.allowed:
                binding = index
                break

        return AdmissionDecision(rule=rules[binding], key=keys[binding], result=results[binding])

    async def enforce(
        self,
        context: RequestContext,
        override: Optional[RateLimitConfig] = None,
        override_path: Optional[str] = None,
    ) -> Optional[AdmissionDecision]:
        """Check the request and raise when it must be rejected.

        Raises:
            RateLimitExceededError: A rule rejected the request.
        """
        decision = await self.evaluate(context, override=override, override_path=override_path)
        if decision is None:
            return None

        if not decision.allowed:
            logger.warning(
                f"Rate limit exceeded: {context.identifier} - Rule: {decision.rule.name} "
                f"- Key: {decision.key}",
                extra=get_log_context(
                    rule=decision.rule.name,
                    key=decision.key,
                    client_ip=context.ip,
                    user_id=context.user_id,
                    tenant_id=context.tenant_id,
                ),
            )
            raise RateLimitExceededError(
                rule=decision.rule.name,
                limit=decision.rule.config.max_requests,
                remaining=decision.result.remaining,
                reset_time=decision.result.reset_time,
                retry_after=decision.result.retry_after,
                headers=decision.headers(),
            )

        logger.debug(
            f"Rate limit check passed: {context.identifier} - Rule: {decision.rule.name}"
        )
        return decision

"""Per-route rate limit policy table.

Routes that need their own limit, or none at all, are registered here once
at startup and the table is handed to the middleware.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from apiguard.app.services.rate_limit.models import RateLimitConfig
from apiguard.app.services.rate_limit.resolver import match_path


@dataclass(frozen=True)
class RoutePolicy:
    """What the middleware should do for one route."""
    skip: bool = False
    override: Optional[RateLimitConfig] = None
    pattern: Optional[str] = None


DEFAULT_POLICY = RoutePolicy()


@dataclass(frozen=True)
class _RouteEntry:
    pattern: str
    methods: Optional[frozenset[str]]
    policy: RoutePolicy

    def matches(self, method: str, path: str) -> bool:
        if self.methods is not None and method.upper() not in self.methods:
            return False
        return match_path(self.pattern, path)


class RouteLimitTable:
    """Ordered route patterns mapped to skip/override policies.

    The first registered entry that matches a request wins.

    Example:
        >>> table = RouteLimitTable()
        >>> table.skip("/health")
        >>> table.override("/reports/export", export_limit(), methods=["POST"])
    """

    def __init__(self) -> None:
        self._entries: List[_RouteEntry] = []

    def _add(self, pattern: str, methods: Optional[Iterable[str]], policy: RoutePolicy) -> "RouteLimitTable":
        method_set = frozenset(m.upper() for m in methods) if methods else None
        self._entries.append(_RouteEntry(pattern=pattern, methods=method_set, policy=policy))
        return self

    def skip(self, pattern: str, methods: Optional[Iterable[str]] = None) -> "RouteLimitTable":
        """Never rate limit matching routes."""
        return self._add(pattern, methods, RoutePolicy(skip=True, pattern=pattern))

    def override(
        self,
        pattern: str,
        config: RateLimitConfig,
        methods: Optional[Iterable[str]] = None,
    ) -> "RouteLimitTable":
        """Use config instead of the rule catalog for matching routes."""
        return self._add(pattern, methods, RoutePolicy(override=config, pattern=pattern))

    def lookup(self, method: str, path: str) -> RoutePolicy:
        for entry in self._entries:
            if entry.matches(method, path):
                return entry.policy
        return DEFAULT_POLICY

    def __len__(self) -> int:
        return len(self._entries)


def default_route_table() -> RouteLimitTable:
    """Table used when the application is not given one."""
    return (
        RouteLimitTable()
        .skip("/health")
        .skip("/docs")
        .skip("/docs/*")
        .skip("/redoc")
        .skip("/openapi.json")
        .skip("/admin/*")
    )

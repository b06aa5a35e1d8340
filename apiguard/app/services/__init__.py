"""Services package for the rate-limiting engine."""

from apiguard.app.services.rate_limit import (
    AdmissionCoordinator,
    RateLimitMaintenance,
    SlidingWindowRateLimiter,
)

__all__ = [
    "AdmissionCoordinator",
    "RateLimitMaintenance",
    "SlidingWindowRateLimiter",
]

"""Custom exceptions for the rate-limiting engine."""

from typing import Optional


class ApiGuardException(Exception):
    """Base class for engine exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "Rate limiting error"):
        self.message = message
        super().__init__(message)


class RateLimitExceededError(ApiGuardException):
    """Raised when a request is rejected by a rate limit rule.

    Carries everything a client needs to retry intelligently.
    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429

    def __init__(
        self,
        rule: str,
        limit: int,
        remaining: int,
        reset_time: int,
        retry_after: Optional[int] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        self.rule = rule
        self.limit = limit
        self.remaining = remaining
        self.reset_time = reset_time
        self.retry_after = retry_after
        self.headers = headers or {}
        super().__init__(f"Rate limit exceeded for {rule}")

    def to_response(self) -> dict:
        """Convert to the 429 response body."""
        return {
            "error": "rate_limit_exceeded",
            "statusCode": self.status_code,
            "message": self.message,
            "rule": self.rule,
            "retryAfter": self.retry_after,
            "limit": self.limit,
            "remaining": self.remaining,
            "resetTime": self.reset_time,
        }


class InvalidRateLimitConfigError(ApiGuardException, ValueError):
    """Raised when a rate limit rule or config is malformed.

    This is a programming error and is never masked by the engine.
    """
    status_code = 500

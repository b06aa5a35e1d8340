"""Rate limiting stage of the middleware chain.

Looks up the route's policy, builds the request context, asks the admission
coordinator for a decision and attaches the rate limit headers.
"""

from typing import Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from apiguard.app.core.context import build_request_context
from apiguard.app.exceptions import RateLimitExceededError
from apiguard.app.services.rate_limit.coordinator import AdmissionCoordinator
from apiguard.app.services.rate_limit.routes import RouteLimitTable, default_route_table


def rate_limit_response(exc: RateLimitExceededError) -> JSONResponse:
    """429 response for a rejected request."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response(),
        headers=exc.headers,
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce rate limits on requests.

    Routes marked as skipped in the route table, and OPTIONS requests, pass
    straight through.
    Routes with an override are limited by that config alone; every other
    route is checked against the rule catalog.
    """

    def __init__(
        self,
        app,
        coordinator: AdmissionCoordinator,
        route_table: Optional[RouteLimitTable] = None,
        enabled: bool = True,
    ):
        super().__init__(app)
        self.coordinator = coordinator
        self.route_table = route_table if route_table is not None else default_route_table()
        self.enabled = enabled

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        # Preflights are not API calls
        if not self.enabled or request.method == "OPTIONS":
            return await call_next(request)

        policy = self.route_table.lookup(request.method, request.url.path)
        if policy.skip:
            return await call_next(request)

        context = build_request_context(request)
        try:
            decision = await self.coordinator.enforce(
                context, override=policy.override, override_path=policy.pattern
            )
        except RateLimitExceededError as exc:
            return rate_limit_response(exc)

        response = await call_next(request)

        if decision is not None:
            response.headers.update(decision.headers())

        return response

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from apiguard.app.api.admin.router import router as admin_router
from apiguard.app.core.config import settings
from apiguard.app.core.counter_store import CounterStore, get_counter_store
from apiguard.app.core.logging import get_logger, setup_logging
from apiguard.app.exceptions import RateLimitExceededError
from apiguard.app.middleware.rate_limit import RateLimitMiddleware, rate_limit_response
from apiguard.app.middleware.request_id import RequestIdMiddleware
from apiguard.app.services.rate_limit.coordinator import AdmissionCoordinator
from apiguard.app.services.rate_limit.limiter import SlidingWindowRateLimiter
from apiguard.app.services.rate_limit.maintenance import CleanupJob, RateLimitMaintenance
from apiguard.app.services.rate_limit.models import RateLimitRule
from apiguard.app.services.rate_limit.routes import RouteLimitTable, default_route_table


def create_app(
    counter_store: Optional[CounterStore] = None,
    route_table: Optional[RouteLimitTable] = None,
    rules: Optional[List[RateLimitRule]] = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        counter_store: Store for the counters; defaults to the global store
        route_table: Per-route skip/override policies
        rules: Rule catalog; defaults to the built-in rules
        clock: Time source in seconds, injectable for tests

    Returns:
        Configured FastAPI application instance
    """
    # Setup logging
    setup_logging()
    logger = get_logger(__name__)

    store = counter_store if counter_store is not None else get_counter_store()
    limiter = SlidingWindowRateLimiter(
        store, clock=clock, atomic=settings.rate_limit_atomic_script
    )
    coordinator = AdmissionCoordinator(limiter, rules=rules)
    maintenance = RateLimitMaintenance(
        store,
        clock=clock,
        key_pattern=settings.rate_limit_key_pattern,
        rules=coordinator.rules,
    )
    cleanup_job = CleanupJob(
        maintenance,
        interval_seconds=settings.rate_limit_cleanup_interval_seconds,
        retention_ms=settings.cleanup_retention_ms,
    )
    routes = route_table if route_table is not None else default_route_table()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan context manager.

        Starts the cleanup job on startup; stops it and closes the counter
        store on shutdown.
        """
        if settings.rate_limit_cleanup_enabled:
            await cleanup_job.start()

        logger.info(
            "Application startup complete",
            extra={
                "store": type(store).__name__,
                "rules_loaded": len(coordinator.rules),
                "debug_mode": settings.debug,
            },
        )

        yield

        await cleanup_job.stop()
        await store.close()

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="ApiGuard",
        description="Distributed sliding-window rate limiting for a multi-tenant API",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.counter_store = store
    app.state.limiter = limiter
    app.state.coordinator = coordinator
    app.state.maintenance = maintenance
    app.state.cleanup_job = cleanup_job

    # Add middleware (order matters: last added = first executed)
    # Rate limit stage (innermost)
    app.add_middleware(
        RateLimitMiddleware,
        coordinator=coordinator,
        route_table=routes,
        enabled=settings.rate_limit_enabled,
    )

    # Request ID middleware, wraps the rate limit stage so its logs carry the id
    app.add_middleware(RequestIdMiddleware)

    # CORS middleware (outermost): answers preflights before they are counted
    # and decorates 429 responses so browsers can read them
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-RateLimit-Rule",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
        max_age=600,  # Cache preflight requests for 10 minutes
    )

    # Include routers
    app.include_router(admin_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Health check with counter store reachability."""
        health_status: dict[str, Any] = {"status": "ok", "components": {}}
        try:
            reachable = await store.ping()
            health_status["components"]["counter_store"] = {
                "status": "ok" if reachable else "error",
                "type": type(store).__name__,
            }
            if not reachable:
                health_status["status"] = "degraded"
        except Exception as e:
            health_status["status"] = "degraded"
            health_status["components"]["counter_store"] = {
                "status": "error",
                "error": str(e)[:100],  # Truncate for security
            }
        return health_status

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_exceeded_handler(
        request: Request, exc: RateLimitExceededError
    ) -> JSONResponse:
        """Handle RateLimitExceededError raised inside a route."""
        return rate_limit_response(exc)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns a traceback; debug mode adds the exception message.
        """
        request_id = getattr(request.state, "request_id", "unknown")

        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            },
        )

        if settings.debug:
            return JSONResponse(
                status_code=500,
                content={
                    "error": "internal_error",
                    "message": str(exc),
                    "exception_type": type(exc).__name__,
                    "request_id": request_id,
                },
            )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "Internal server error",
                "request_id": request_id,
            },
        )

    return app


# Create the application instance
app = create_app()

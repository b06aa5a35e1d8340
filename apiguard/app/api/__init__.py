"""API endpoints package for the rate-limiting engine."""

from apiguard.app.api.admin.router import router as admin_router

__all__ = [
    "admin_router",
]

from fastapi import APIRouter, Depends
from apiguard.app.middleware.auth import require_admin

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

from . import rate_limits

router.include_router(rate_limits.router, prefix="/rate-limits", tags=["admin-rate-limits"])

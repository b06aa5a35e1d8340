"""Request context extraction for rate limiting.

Identity is resolved upstream: authentication middleware is expected to set
user_id, tenant_id and optionally user_type / tenant_type on request.state.
"""

from typing import Optional

from starlette.requests import Request

from apiguard.app.core.config import settings
from apiguard.app.services.rate_limit.models import (
    TENANT_TYPES,
    USER_TYPES,
    RequestContext,
)


def get_client_ip(request: Request, trust_forwarded: Optional[bool] = None) -> str:
    """Get the real client IP address.

    Proxy headers are honoured only when trusted; X-Forwarded-For can
    contain a chain, the first hop is the original client.
    """
    if trust_forwarded is None:
        trust_forwarded = settings.rate_limit_trust_forwarded_headers

    if trust_forwarded:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()
            if client_ip:
                return client_ip

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

        cf_ip = request.headers.get("CF-Connecting-IP")
        if cf_ip:
            return cf_ip.strip()

    return request.client.host if request.client else "0.0.0.0"


def build_request_context(request: Request) -> RequestContext:
    """Build the rate limiting view of a request."""
    state = request.state
    user_id = getattr(state, "user_id", None)
    tenant_id = getattr(state, "tenant_id", None)

    user_type = getattr(state, "user_type", None)
    if user_type not in USER_TYPES:
        user_type = "authenticated" if user_id else "anonymous"

    tenant_type = getattr(state, "tenant_type", None)
    if tenant_type not in TENANT_TYPES:
        # Tenants without subscription info are treated as paid
        tenant_type = "paid" if tenant_id else None

    return RequestContext(
        ip=get_client_ip(request),
        path=request.url.path,
        method=request.method.upper(),
        user_type=user_type,
        tenant_type=tenant_type,
        user_id=str(user_id) if user_id else None,
        tenant_id=str(tenant_id) if tenant_id else None,
        user_agent=request.headers.get("User-Agent"),
    )

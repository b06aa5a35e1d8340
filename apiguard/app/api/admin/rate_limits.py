from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from apiguard.app.core.config import settings
from apiguard.app.exceptions import InvalidRateLimitConfigError
from apiguard.app.services.rate_limit.catalog import find_rule
from apiguard.app.services.rate_limit.maintenance import RateLimitMaintenance
from apiguard.app.services.rate_limit.models import RateLimitConfig

router = APIRouter()


def get_maintenance(request: Request) -> RateLimitMaintenance:
    """Maintenance service built by create_app."""
    return request.app.state.maintenance


@router.get("/rules")
async def list_rules(
    maintenance: RateLimitMaintenance = Depends(get_maintenance),
) -> list[dict[str, Any]]:
    """List the rule catalog in evaluation order."""
    return [rule.to_dict() for rule in maintenance.rules]


@router.get("/status")
async def counter_status(
    key: str,
    rule: Optional[str] = None,
    window_ms: Optional[int] = None,
    max_requests: Optional[int] = None,
    prefix: Optional[str] = None,
    maintenance: RateLimitMaintenance = Depends(get_maintenance),
) -> dict[str, Any]:
    """Usage of one counter, either by catalog rule name or explicit config."""
    if rule is not None:
        found = find_rule(rule, maintenance.rules)
        if found is None:
            raise HTTPException(status_code=404, detail=f"Rule not found: {rule}")
        config = found.config
    else:
        if window_ms is None or max_requests is None:
            raise HTTPException(
                status_code=400,
                detail="Either rule or window_ms and max_requests are required",
            )
        try:
            config = RateLimitConfig(
                window_ms=window_ms,
                max_requests=max_requests,
                key_prefix=prefix or settings.rate_limit_default_prefix,
            )
        except InvalidRateLimitConfigError as e:
            raise HTTPException(status_code=400, detail=str(e))

    status = await maintenance.status(key, config)
    return status.to_dict()


@router.get("/keys")
async def list_keys(
    pattern: Optional[str] = None,
    maintenance: RateLimitMaintenance = Depends(get_maintenance),
) -> dict[str, list[str]]:
    """List active counter keys."""
    return {"keys": await maintenance.list_active_keys(pattern)}


@router.get("/stats")
async def rate_limit_stats(
    top_n: Optional[int] = Query(default=None, ge=1),
    maintenance: RateLimitMaintenance = Depends(get_maintenance),
) -> dict[str, Any]:
    """Counters grouped by namespace with the busiest ones first."""
    stats = await maintenance.get_stats(top_n or settings.rate_limit_stats_top_n)
    return stats.to_dict()


@router.get("/blocked/ips")
async def blocked_ips(
    maintenance: RateLimitMaintenance = Depends(get_maintenance),
) -> list[str]:
    """IPs currently over at least one catalog limit."""
    return await maintenance.blocked_identities("ip")


@router.get("/blocked/users")
async def blocked_users(
    maintenance: RateLimitMaintenance = Depends(get_maintenance),
) -> list[str]:
    """Users currently over at least one catalog limit."""
    return await maintenance.blocked_identities("user")


@router.post("/cleanup")
async def run_cleanup(
    maintenance: RateLimitMaintenance = Depends(get_maintenance),
) -> dict[str, int]:
    """Run the cleanup sweep now."""
    removed = await maintenance.cleanup_expired_data(settings.cleanup_retention_ms)
    return {"removed": removed}


@router.delete("/user/{user_id}")
async def clear_user(
    user_id: str,
    maintenance: RateLimitMaintenance = Depends(get_maintenance),
) -> dict[str, int]:
    """Clear every counter scoped to a user."""
    return {"deleted": await maintenance.clear_identity("user", user_id)}


@router.delete("/ip/{ip}")
async def clear_ip(
    ip: str,
    maintenance: RateLimitMaintenance = Depends(get_maintenance),
) -> dict[str, int]:
    """Clear every counter scoped to an IP."""
    return {"deleted": await maintenance.clear_identity("ip", ip)}


@router.delete("/tenant/{tenant_id}")
async def clear_tenant(
    tenant_id: str,
    maintenance: RateLimitMaintenance = Depends(get_maintenance),
) -> dict[str, int]:
    """Clear every counter scoped to a tenant."""
    return {"deleted": await maintenance.clear_identity("tenant", tenant_id)}


# Composed keys may contain '/' (path segments), so this route is declared last.
@router.delete("/{key:path}", status_code=204)
async def reset_counter(
    key: str,
    prefix: Optional[str] = None,
    maintenance: RateLimitMaintenance = Depends(get_maintenance),
) -> Response:
    """Delete one counter so its next request starts a fresh window."""
    await maintenance.reset(key, prefix)
    return Response(status_code=204)

"""Tests for the rate limit admin API."""

import pytest
from fastapi.testclient import TestClient

from apiguard.app.core.config import settings
from apiguard.app.main import create_app
from apiguard.app.services.rate_limit.models import RequestContext

BASE = "/admin/rate-limits"


@pytest.fixture
def app(store, clock):
    return create_app(counter_store=store, clock=clock)


@pytest.fixture
def client(app):
    return TestClient(app)


async def _evaluate(app, context, times=1):
    for _ in range(times):
        await app.state.coordinator.evaluate(context)


ANON = RequestContext(ip="9.9.9.9", path="/auth/login", method="POST")
ALICE = RequestContext(
    ip="1.1.1.1", path="/items", method="GET",
    user_type="authenticated", user_id="alice",
)


class TestAdminAuth:
    """Admin endpoints require the bearer token."""

    def test_missing_token_rejected(self, client, admin_headers):
        assert client.get(f"{BASE}/rules").status_code == 401

    def test_wrong_token_rejected(self, client, admin_headers):
        response = client.get(f"{BASE}/rules", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or missing admin token"

    def test_admin_routes_are_not_rate_limited(self, client, admin_headers):
        response = client.get(f"{BASE}/rules", headers=admin_headers)
        assert response.status_code == 200
        assert "X-RateLimit-Rule" not in response.headers


class TestRules:
    """Tests for the catalog listing."""

    def test_list_rules(self, client, admin_headers):
        rules = client.get(f"{BASE}/rules", headers=admin_headers).json()

        assert len(rules) == 11
        login = next(rule for rule in rules if rule["name"] == "auth_login")
        assert login["path"] == "/auth/login"
        assert login["method"] == "POST"
        assert login["config"] == {
            "windowMs": 900_000,
            "maxRequests": 5,
            "keyPrefix": "rl:auth:login",
        }
        assert rules[0]["perIp"] is True


class TestStatus:
    """Tests for counter status lookups."""

    @pytest.mark.asyncio
    async def test_status_by_rule(self, app, client, admin_headers):
        await _evaluate(app, ANON, times=3)

        response = client.get(
            f"{BASE}/status",
            params={"key": "path:/auth/login:method:POST", "rule": "auth_login"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["key"] == "rl:auth:login:path:/auth/login:method:POST"
        assert data["currentCount"] == 3
        assert data["limit"] == 5
        assert data["remaining"] == 2
        assert data["windowMs"] == 900_000

    def test_status_by_explicit_config(self, client, admin_headers):
        response = client.get(
            f"{BASE}/status",
            params={"key": "ip:1.1.1.1", "window_ms": 60000, "max_requests": 10, "prefix": "rl:x"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["key"] == "rl:x:ip:1.1.1.1"
        assert response.json()["remaining"] == 10

    def test_status_uses_configured_default_prefix(self, client, admin_headers, monkeypatch):
        monkeypatch.setattr(settings, "rate_limit_default_prefix", "custom")

        response = client.get(
            f"{BASE}/status",
            params={"key": "ip:1.1.1.1", "window_ms": 60000, "max_requests": 10},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["key"] == "custom:ip:1.1.1.1"

    def test_unknown_rule_is_404(self, client, admin_headers):
        response = client.get(
            f"{BASE}/status", params={"key": "k", "rule": "nope"}, headers=admin_headers
        )
        assert response.status_code == 404

    def test_missing_config_is_400(self, client, admin_headers):
        response = client.get(f"{BASE}/status", params={"key": "k"}, headers=admin_headers)
        assert response.status_code == 400

    def test_invalid_config_is_400(self, client, admin_headers):
        response = client.get(
            f"{BASE}/status",
            params={"key": "k", "window_ms": 0, "max_requests": 1},
            headers=admin_headers,
        )
        assert response.status_code == 400


class TestKeysAndStats:
    """Tests for key listing and stats."""

    @pytest.mark.asyncio
    async def test_keys(self, app, client, admin_headers):
        await _evaluate(app, ALICE)

        response = client.get(f"{BASE}/keys", headers=admin_headers)

        assert response.json() == {
            "keys": ["rl:global:ip:ip:1.1.1.1", "rl:user:general:user:alice"]
        }

    @pytest.mark.asyncio
    async def test_keys_with_pattern(self, app, client, admin_headers):
        await _evaluate(app, ALICE)

        response = client.get(
            f"{BASE}/keys", params={"pattern": "rl:user:*"}, headers=admin_headers
        )

        assert response.json() == {"keys": ["rl:user:general:user:alice"]}

    @pytest.mark.asyncio
    async def test_stats(self, app, client, admin_headers):
        await _evaluate(app, ALICE, times=2)

        data = client.get(f"{BASE}/stats", params={"top_n": 1}, headers=admin_headers).json()

        assert data["totalKeys"] == 2
        assert data["activeKeys"] == 2
        assert data["keysByType"] == {"global": 1, "user": 1}
        assert len(data["topLimitedKeys"]) == 1
        assert data["topLimitedKeys"][0]["count"] == 2


class TestResets:
    """Tests for counter deletion endpoints."""

    @pytest.mark.asyncio
    async def test_delete_counter(self, app, client, admin_headers, store):
        await _evaluate(app, ANON, times=5)

        response = client.delete(
            f"{BASE}/path:/auth/login:method:POST",
            params={"prefix": "rl:auth:login"},
            headers=admin_headers,
        )

        assert response.status_code == 204
        assert await store.scan_keys("rl:auth:login:*") == []

    @pytest.mark.asyncio
    async def test_clear_user(self, app, client, admin_headers):
        await _evaluate(app, ALICE)

        response = client.delete(f"{BASE}/user/alice", headers=admin_headers)

        assert response.json() == {"deleted": 1}

    @pytest.mark.asyncio
    async def test_clear_ip(self, app, client, admin_headers):
        await _evaluate(app, ANON)

        response = client.delete(f"{BASE}/ip/9.9.9.9", headers=admin_headers)

        assert response.json() == {"deleted": 2}

    def test_clear_tenant_without_counters(self, client, admin_headers):
        response = client.delete(f"{BASE}/tenant/acme", headers=admin_headers)
        assert response.json() == {"deleted": 0}


class TestBlockedAndCleanup:
    """Tests for blocked listings and manual cleanup."""

    @pytest.mark.asyncio
    async def test_blocked_ips(self, app, client, admin_headers):
        await _evaluate(app, ANON, times=100)

        response = client.get(f"{BASE}/blocked/ips", headers=admin_headers)

        assert response.json() == ["9.9.9.9"]

    def test_blocked_users_empty(self, client, admin_headers):
        assert client.get(f"{BASE}/blocked/users", headers=admin_headers).json() == []

    @pytest.mark.asyncio
    async def test_cleanup(self, app, client, admin_headers, clock):
        await _evaluate(app, ALICE)
        clock.advance(25 * 3600)

        response = client.post(f"{BASE}/cleanup", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"removed": 0}

"""
tests/test_api_routes.py — FastAPI Route Integration Tests
===========================================================
Exercises the member and admin endpoints with the FastAPI TestClient
against the in-memory SQLite engine.

These tests verify:
- Auth guards on member and admin endpoints
- Business failures mapped to 4xx with a structured body
- Health endpoint availability
"""

from __future__ import annotations

import os
from unittest.mock import patch

import jwt
import pytest
from fastapi.testclient import TestClient

from crewquest.api.deps import JWT_ALGORITHM, JWT_SECRET, _load_jwt_secret, get_engine
from crewquest.database.models import EffectType


@pytest.fixture
def client(db_engine):
    """TestClient wired to the in-memory engine."""
    from crewquest.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def _token(sub: str, *, is_admin: bool = False) -> str:
    return jwt.encode(
        {"sub": sub, "username": f"user-{sub}", "is_admin": is_admin},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def _auth(sub: str = "u-1", *, is_admin: bool = False) -> dict:
    return {"Authorization": f"Bearer {_token(sub, is_admin=is_admin)}"}


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Auth guards
# ===========================================================================
class TestAuthGuards:
    MEMBER_ENDPOINTS = [
        ("get", "/api/inventory"),
        ("post", "/api/shop/purchase"),
        ("post", "/api/inventory/1/use"),
    ]

    @pytest.mark.parametrize(("method", "endpoint"), MEMBER_ENDPOINTS)
    def test_member_endpoints_reject_no_auth(self, client, method, endpoint):
        resp = getattr(client, method)(endpoint, **({"json": {"item_id": 1}} if method == "post" else {}))
        assert resp.status_code == 401

    def test_rejects_garbage_token(self, client):
        resp = client.get("/api/inventory", headers={"Authorization": "Bearer not.a.jwt"})
        assert resp.status_code == 401

    def test_adjust_requires_admin(self, client, make_profile):
        make_profile()
        body = {"target_user_id": "u-1", "reason": "x", "coins": 5}
        assert client.post("/api/admin/adjust", json=body).status_code == 401
        assert client.post("/api/admin/adjust", json=body, headers=_auth()).status_code == 403


class TestJwtSecretValidation:
    @pytest.mark.parametrize(
        ("secret", "message"),
        [
            ("", "not set"),
            ("change-me", "known weak default"),
            ("tooshort", "too short"),
        ],
    )
    def test_rejects_bad_secrets(self, secret, message):
        with patch.dict(os.environ, {"JWT_SECRET": secret}):
            with pytest.raises(RuntimeError, match=message):
                _load_jwt_secret()

    def test_accepts_strong_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": "a" * 64}):
            assert _load_jwt_secret() == "a" * 64


# ===========================================================================
# Member endpoints
# ===========================================================================
class TestProfileEndpoints:
    def test_get_profile(self, client, make_profile):
        make_profile(xp=1500, coins=40)
        resp = client.get("/api/profiles/u-1")
        assert resp.status_code == 200
        data = resp.json()
        assert data["level"] == 2
        assert data["xp_for_next_level"] == 2000
        assert data["coins"] == 40

    def test_unknown_profile(self, client):
        assert client.get("/api/profiles/ghost").status_code == 404


class TestShopFlow:
    def test_list_purchase_use(self, client, make_profile, make_item):
        make_profile(hp=80, coins=150)
        item_id = make_item(price=100, effect_value=30)

        items = client.get("/api/shop/items").json()
        assert [i["id"] for i in items] == [item_id]

        resp = client.post("/api/shop/purchase", json={"item_id": item_id}, headers=_auth())
        assert resp.status_code == 201
        inventory_id = resp.json()["inventory_id"]

        inventory = client.get("/api/inventory", headers=_auth()).json()
        assert [e["id"] for e in inventory] == [inventory_id]
        assert inventory[0]["effect_type"] == "HEAL_HP"

        used = client.post(f"/api/inventory/{inventory_id}/use", headers=_auth())
        assert used.status_code == 200
        assert used.json()["hp_delta"] == 20

        again = client.post(f"/api/inventory/{inventory_id}/use", headers=_auth())
        assert again.status_code == 409
        assert again.json()["detail"]["error"] == "AlreadyUsed"

    def test_insufficient_funds_is_409(self, client, make_profile, make_item):
        make_profile(coins=10)
        item_id = make_item(price=100)
        resp = client.post("/api/shop/purchase", json={"item_id": item_id}, headers=_auth())
        assert resp.status_code == 409
        assert resp.json()["detail"]["error_code"] == "InsufficientFunds"

    def test_missing_item_is_404(self, client, make_profile):
        make_profile(coins=10)
        resp = client.post("/api/shop/purchase", json={"item_id": 999}, headers=_auth())
        assert resp.status_code == 404

    def test_passive_item_is_409(self, client, make_profile, make_item):
        make_profile(coins=300)
        shield = make_item("Duty Shield", price=300, effect_type=EffectType.SKIP_DUTY)
        inventory_id = client.post(
            "/api/shop/purchase", json={"item_id": shield}, headers=_auth()
        ).json()["inventory_id"]
        resp = client.post(f"/api/inventory/{inventory_id}/use", headers=_auth())
        assert resp.status_code == 409
        assert resp.json()["detail"]["error"] == "PassiveItemError"

    def test_cannot_use_other_members_item(self, client, make_profile, make_item):
        make_profile("owner", coins=100)
        make_profile("other")
        item_id = make_item(price=100)
        inventory_id = client.post(
            "/api/shop/purchase", json={"item_id": item_id}, headers=_auth("owner")
        ).json()["inventory_id"]
        resp = client.post(f"/api/inventory/{inventory_id}/use", headers=_auth("other"))
        assert resp.status_code == 404


class TestHistoryEndpoint:
    def test_logs_with_filter_and_summary(self, client, make_profile, make_item):
        make_profile(coins=200)
        item_id = make_item(price=100)
        client.post("/api/shop/purchase", json={"item_id": item_id}, headers=_auth())

        resp = client.get("/api/profiles/u-1/logs", params={"filter": "SPENT"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 1
        assert data["entries"][0]["action_kind"] == "SHOP_PURCHASE"
        assert data["summary"]["expense"] == 100
        assert len(data["summary"]["trend"]) == 7

        penalties = client.get("/api/profiles/u-1/logs", params={"filter": "PENALTY"}).json()
        assert penalties["total"] == 0

    def test_bad_filter_is_422(self, client):
        resp = client.get("/api/profiles/u-1/logs", params={"filter": "NOPE"})
        assert resp.status_code == 422
        assert resp.json()["detail"]["error"] == "ValidationError"

    def test_filter_is_case_insensitive(self, client, make_profile):
        make_profile()
        resp = client.get("/api/profiles/u-1/logs", params={"filter": "earned"})
        assert resp.status_code == 200
        assert resp.json()["total"] == 0


# ===========================================================================
# Admin endpoints
# ===========================================================================
class TestAdminEndpoints:
    def test_adjust(self, client, make_profile):
        make_profile(coins=10)
        resp = client.post(
            "/api/admin/adjust",
            json={"target_user_id": "u-1", "reason": "Fixed the printer", "coins": 90},
            headers=_auth("admin-1", is_admin=True),
        )
        assert resp.status_code == 200
        assert resp.json()["coin_delta"] == 90
        assert client.get("/api/profiles/u-1").json()["coins"] == 100

        audit = client.get("/api/admin/audit", headers=_auth("admin-1", is_admin=True)).json()
        assert audit[0]["actor_id"] == "admin-1"
        assert audit[0]["reason"] == "Fixed the printer"

    def test_adjust_blank_reason_is_422(self, client, make_profile):
        make_profile()
        resp = client.post(
            "/api/admin/adjust",
            json={"target_user_id": "u-1", "reason": "  ", "coins": 90},
            headers=_auth("admin-1", is_admin=True),
        )
        assert resp.status_code == 422

    def test_update_config_section(self, client):
        headers = _auth("admin-1", is_admin=True)
        resp = client.put(
            "/api/admin/config/item_mechanics",
            json={"value": {"shop_tax_rate": 5}},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["ITEM_MECHANICS"]["shop_tax_rate"] == 5
        assert client.get("/api/admin/config", headers=headers).json()["ITEM_MECHANICS"]["shop_tax_rate"] == 5

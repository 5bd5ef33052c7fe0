from __future__ import annotations

from datetime import timedelta

import pytest

from database import utc_now
from models.plan import Plan
from models.restaurant import STATUS_INACTIVE
from seeds.plans_seed import DEFAULT_PLANS, seed_plans

JSON = {"Accept": "application/json"}


def test_owner_cannot_use_admin_api(client, owner):
    _, headers = owner
    assert client.get("/api/v1/admin/users", headers=headers).status_code == 403


def test_admin_creates_user_with_working_key(client, admin):
    _, headers = admin

    response = client.post(
        "/api/v1/admin/users",
        json={"username": "mario", "email": "Mario@Pizzeria.de"},
        headers=headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "mario@pizzeria.de"
    assert body["api_key"].startswith("trv_live_")
    me = client.get("/api/v1/me", headers={"X-API-Key": body["api_key"]}).json()
    assert me["username"] == "mario"

    again = client.post(
        "/api/v1/admin/users", json={"username": "mario", "email": "other@pizzeria.de"}, headers=headers
    )
    assert again.status_code == 409


def test_plan_crud(client, admin):
    _, headers = admin
    created = client.post(
        "/api/v1/admin/plans",
        json={"name": "Team", "price": 29.0, "max_tables": 10, "features": ["review_alerts"]},
        headers=headers,
    ).json()

    patched = client.patch(f"/api/v1/admin/plans/{created['id']}", json={"price": 25.0}, headers=headers).json()
    assert patched["price"] == 25.0

    public = client.get("/plans").json()["items"]
    assert [p["name"] for p in public] == ["Team"]

    client.delete(f"/api/v1/admin/plans/{created['id']}", headers=headers)
    assert client.get("/plans").json()["items"] == []
    assert len(client.get("/api/v1/admin/plans", headers=headers).json()["items"]) == 1


def test_plan_update_rejects_null_price(client, admin, factory):
    _, headers = admin
    plan = factory.plan()

    response = client.patch(f"/api/v1/admin/plans/{plan.id}", json={"price": None}, headers=headers)

    assert response.status_code == 422


def test_subscription_lifecycle(client, admin, factory):
    _, headers = admin
    plan = factory.plan()
    restaurant = factory.restaurant(subscription_status=STATUS_INACTIVE)
    _, qr = factory.table_with_qr(restaurant)
    assert client.get(f"/scan/{qr.code}", headers=JSON, follow_redirects=False).status_code == 403

    sub = client.post(
        f"/api/v1/admin/restaurants/{restaurant.id}/subscriptions",
        json={"plan_id": plan.id},
        headers=headers,
    )
    assert sub.status_code == 201
    sub_id = sub.json()["id"]
    assert client.get(f"/scan/{qr.code}", follow_redirects=False).status_code == 302

    conflict = client.post(
        f"/api/v1/admin/restaurants/{restaurant.id}/subscriptions",
        json={"plan_id": plan.id},
        headers=headers,
    )
    assert conflict.status_code == 409

    assert client.post(f"/api/v1/admin/subscriptions/{sub_id}/activate", headers=headers).json()["status"] == "active"

    cancelled = client.post(
        f"/api/v1/admin/subscriptions/{sub_id}/cancel", json={"reason": "Zahlung offen"}, headers=headers
    ).json()
    assert cancelled["status"] == "cancelled"
    response = client.get(f"/scan/{qr.code}", headers=JSON, follow_redirects=False)
    assert response.status_code == 403
    assert response.json()["error"] == "subscription_inactive"

    again = client.post(f"/api/v1/admin/subscriptions/{sub_id}/cancel", json={}, headers=headers)
    assert again.status_code == 400


def test_admin_filters_restaurants_by_status(client, admin, factory):
    _, headers = admin
    factory.restaurant(subscription_status="active")
    factory.restaurant(subscription_status="cancelled")

    items = client.get("/api/v1/admin/restaurants?status=cancelled", headers=headers).json()["items"]
    assert [r["subscription_status"] for r in items] == ["cancelled"]
    assert client.get("/api/v1/admin/restaurants?status=bogus", headers=headers).status_code == 400


def test_admin_deactivates_any_restaurant(client, admin, factory):
    _, headers = admin
    restaurant = factory.restaurant()
    factory.table_with_qr(restaurant)

    body = client.post(f"/api/v1/admin/restaurants/{restaurant.id}/deactivate", headers=headers).json()
    assert body["tables_deactivated"] == 1


def test_manual_review_sweep(client, admin, factory, db, attribution):
    _, headers = admin
    restaurant = factory.restaurant()
    _, qr = factory.table_with_qr(restaurant)
    now = utc_now()
    scan = factory.scan(qr, now - timedelta(minutes=5))
    attribution.register_scan(db, scan.id, now=now - timedelta(minutes=5))

    body = client.post("/api/v1/admin/review-sweep", headers=headers).json()

    assert body["checked"] == 1
    assert body["matched"] == 0


def test_review_sweep_without_api_key_503(client, admin):
    from main import app
    from utils.services import get_review_attribution

    _, headers = admin
    app.dependency_overrides[get_review_attribution] = lambda: None
    assert client.post("/api/v1/admin/review-sweep", headers=headers).status_code == 503


def test_seed_plans_is_idempotent(db):
    assert seed_plans(db) == len(DEFAULT_PLANS)
    assert seed_plans(db) == 0
    business = db.query(Plan).filter(Plan.name == "Business").one()
    assert business.max_tables == -1


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "database": "ok"}


@pytest.mark.asyncio
async def test_health_async(async_client):
    response = await async_client.get("/health")
    assert response.status_code == 200

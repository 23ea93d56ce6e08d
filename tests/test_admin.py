"""
tests/test_admin.py
Tests for admin-only endpoints: stats, account moderation, order overview,
vouchers, banners and the admin log.
"""

import logging
import uuid
from datetime import date, time, timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from shared.models.models import (
    BalanceTransaction,
    Order,
    OrderStatus,
    PaymentMethod,
    Profile,
    TransactionType,
    Voucher,
)
from tests.conftest import auth_headers


async def _order(db, customer, service, **kwargs) -> Order:
    order = Order(
        user_id=customer.id,
        service_id=service.id,
        service_name=service.name,
        total_price=service.base_price,
        duration_minutes=service.duration_minutes,
        scheduled_date=date.today() + timedelta(days=2),
        scheduled_time=time(9, 0),
        address="Jl. Thamrin 5",
        payment_method=PaymentMethod.CASH,
        **kwargs,
    )
    db.add(order)
    await db.commit()
    return order


# ── Access Control ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_user_cannot_access_admin_endpoints(client: AsyncClient, user):
    """Regular users get 403 on all admin endpoints."""
    response = await client.get("/admin/verifications/pending", headers=auth_headers(user))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unauthenticated_cannot_access_admin(client: AsyncClient):
    response = await client.get("/admin/stats")
    assert response.status_code == 401


# ── Stats ─────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_stats_on_empty_platform(client: AsyncClient, admin_user):
    response = await client.get("/admin/stats", headers=auth_headers(admin_user))
    assert response.status_code == 200
    assert response.json() == {
        "total_users": 0,
        "total_mitra": 0,
        "total_orders": 0,
        "total_revenue": 0,
    }


@pytest.mark.asyncio
async def test_stats_count_verified_mitra_and_commission_revenue(
    client: AsyncClient, db, admin_user, user, other_user, mitra_user, unverified_mitra, service
):
    order = await _order(db, user, service, status=OrderStatus.ACCEPTED, mitra_id=mitra_user.id)
    await _order(db, other_user, service)
    db.add(
        BalanceTransaction(
            user_id=mitra_user.id,
            type=TransactionType.COMMISSION,
            amount=Decimal("-30000"),
            order_id=order.id,
        )
    )
    db.add(BalanceTransaction(user_id=user.id, type=TransactionType.TOPUP, amount=Decimal("50000")))
    await db.commit()

    data = (await client.get("/admin/stats", headers=auth_headers(admin_user))).json()
    assert data["total_users"] == 2
    assert data["total_mitra"] == 1
    assert data["total_orders"] == 2
    assert data["total_revenue"] == 30000


# ── Account Moderation ─────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_list_users_filters_by_role(client: AsyncClient, admin_user, user, mitra_user):
    response = await client.get(
        "/admin/users", headers=auth_headers(admin_user), params={"role": "mitra"}
    )
    assert response.status_code == 200
    assert [p["id"] for p in response.json()] == [str(mitra_user.id)]

    everyone = await client.get("/admin/users", headers=auth_headers(admin_user))
    assert len(everyone.json()) == 3


@pytest.mark.asyncio
async def test_block_and_unblock_user(client: AsyncClient, db, admin_user, user, caplog):
    headers = auth_headers(admin_user)

    with caplog.at_level(logging.INFO, logger="services.admin.router"):
        blocked = await client.post(f"/admin/users/{user.id}/block", headers=headers)
    assert blocked.status_code == 200
    assert blocked.json()["is_blocked"] is True
    assert "action=BLOCK_USER" in caplog.text

    denied = await client.get("/orders", headers=auth_headers(user))
    assert denied.status_code == 403
    assert denied.json()["code"] == "ACCOUNT_BLOCKED"

    unblocked = await client.post(f"/admin/users/{user.id}/unblock", headers=headers)
    assert unblocked.json()["is_blocked"] is False
    assert await db.scalar(select(Profile.is_blocked).where(Profile.id == user.id)) is False
    assert (await client.get("/orders", headers=auth_headers(user))).status_code == 200


@pytest.mark.asyncio
async def test_admin_cannot_block_self(client: AsyncClient, admin_user):
    response = await client.post(
        f"/admin/users/{admin_user.id}/block", headers=auth_headers(admin_user)
    )
    assert response.status_code == 422
    assert response.json()["code"] == "CANNOT_BLOCK_SELF"


@pytest.mark.asyncio
async def test_block_unknown_user_returns_404(client: AsyncClient, admin_user):
    response = await client.post(
        f"/admin/users/{uuid.uuid4()}/block", headers=auth_headers(admin_user)
    )
    assert response.status_code == 404


# ── Orders ─────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_admin_sees_all_orders(client: AsyncClient, db, admin_user, user, other_user, service):
    await _order(db, user, service)
    await _order(db, other_user, service)

    response = await client.get("/admin/orders", headers=auth_headers(admin_user))
    assert response.status_code == 200
    assert {o["user_id"] for o in response.json()} == {str(user.id), str(other_user.id)}


# ── Vouchers ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_voucher_normalises_code(client: AsyncClient, db, admin_user):
    response = await client.post(
        "/admin/vouchers",
        headers=auth_headers(admin_user),
        json={"code": " promo10 ", "title": "Promo", "amount": 10000, "usage_limit": 5},
    )
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["code"] == "PROMO10"
    assert data["used_count"] == 0
    assert await db.scalar(select(Voucher.amount).where(Voucher.code == "PROMO10")) == Decimal("10000")


@pytest.mark.asyncio
async def test_duplicate_voucher_code_conflicts(client: AsyncClient, admin_user):
    payload = {"code": "DUP", "title": "Dup", "amount": 1000}
    headers = auth_headers(admin_user)
    assert (await client.post("/admin/vouchers", headers=headers, json=payload)).status_code == 201

    again = await client.post("/admin/vouchers", headers=headers, json=payload)
    assert again.status_code == 409
    assert again.json()["code"] == "VOUCHER_CODE_TAKEN"


@pytest.mark.asyncio
async def test_deactivated_voucher_cannot_be_redeemed(client: AsyncClient, admin_user, user):
    headers = auth_headers(admin_user)
    created = await client.post(
        "/admin/vouchers", headers=headers, json={"code": "BYE", "title": "Bye", "amount": 5000}
    )
    off = await client.post(f"/admin/vouchers/{created.json()['id']}/deactivate", headers=headers)
    assert off.status_code == 200

    redeem = await client.post("/vouchers/redeem", headers=auth_headers(user), json={"code": "BYE"})
    assert redeem.status_code == 404

    listed = await client.get("/admin/vouchers", headers=headers)
    assert listed.json()[0]["is_active"] is False


# ── Banners ────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_banner_create_and_deactivate(client: AsyncClient, admin_user):
    headers = auth_headers(admin_user)
    created = await client.post(
        "/admin/banners",
        headers=headers,
        json={"title": "Diskon", "image_url": "https://cdn.test/d.png", "order_index": 1},
    )
    assert created.status_code == 201
    assert [b["title"] for b in (await client.get("/banners")).json()] == ["Diskon"]

    await client.post(f"/admin/banners/{created.json()['id']}/deactivate", headers=headers)
    assert (await client.get("/banners")).json() == []


@pytest.mark.asyncio
async def test_deactivate_unknown_banner(client: AsyncClient, admin_user):
    response = await client.post(
        f"/admin/banners/{uuid.uuid4()}/deactivate", headers=auth_headers(admin_user)
    )
    assert response.status_code == 404

"""
tests/test_orders.py
Order placement, the partner lifecycle, commission charging and its
all-or-nothing guarantee.
"""

import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from shared.models.models import BalanceTransaction, MitraProfile, Order, Service, UserRole
from services.order.router import calculate_commission
from tests.conftest import auth_headers, make_account, set_mitra_balance


def _order_payload(service, **overrides):
    payload = {
        "service_id": str(service.id),
        "scheduled_date": (date.today() + timedelta(days=1)).isoformat(),
        "scheduled_time": "10:00:00",
        "address": "Jl. Sudirman 10, Jakarta",
        "payment_method": "cash",
        "notes": "Pagar warna hijau",
    }
    payload.update(overrides)
    return payload


async def _place(client, user, service, **overrides):
    response = await client.post(
        "/orders", headers=auth_headers(user), json=_order_payload(service, **overrides)
    )
    assert response.status_code == 201, response.text
    return response.json()


async def _mitra_balance(db, mitra) -> Decimal:
    return await db.scalar(select(MitraProfile.balance).where(MitraProfile.mitra_id == mitra.id))


async def _order_row(db, order_id):
    return (
        await db.execute(select(Order.status, Order.mitra_id).where(Order.id == uuid.UUID(order_id)))
    ).one()


async def _ledger_count(db) -> int:
    return await db.scalar(select(func.count(BalanceTransaction.id)))


# ── Commission ─────────────────────────────────────────────────────────────────

def test_commission_is_twenty_percent():
    assert calculate_commission(Decimal("150000")) == Decimal("30000.00")


def test_commission_rounds_half_up_to_cents():
    assert calculate_commission(Decimal("0.125")) == Decimal("0.03")


# ── Placement ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_order_copies_service_price(client: AsyncClient, user, service):
    data = await _place(client, user, service)
    assert data["status"] == "pending"
    assert data["mitra_id"] is None
    assert data["total_price"] == 150000
    assert data["duration_minutes"] == 120
    assert data["service_name"] == "Cleaning Service"
    assert data["payment_method"] == "cash"


@pytest.mark.asyncio
async def test_create_order_unknown_service(client: AsyncClient, user, service):
    response = await client.post(
        "/orders",
        headers=auth_headers(user),
        json=_order_payload(service, service_id="00000000-0000-0000-0000-000000000000"),
    )
    assert response.status_code == 404
    assert response.json()["code"] == "SERVICE_NOT_FOUND"


@pytest.mark.asyncio
async def test_create_order_for_inactive_service_rejected(client: AsyncClient, db, user):
    svc = Service(name="Retired", base_price=Decimal("1000"), duration_minutes=30, is_active=False)
    db.add(svc)
    await db.commit()
    response = await client.post("/orders", headers=auth_headers(user), json=_order_payload(svc))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_create_order_in_past_rejected(client: AsyncClient, user, service):
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    response = await client.post(
        "/orders", headers=auth_headers(user), json=_order_payload(service, scheduled_date=yesterday)
    )
    assert response.status_code == 422
    assert response.json()["code"] == "SCHEDULE_IN_PAST"


@pytest.mark.asyncio
async def test_balance_payment_does_not_debit_customer(client: AsyncClient, user, service):
    await _place(client, user, service, payment_method="balance")
    response = await client.get("/balance", headers=auth_headers(user))
    assert response.json()["balance"] == 0


@pytest.mark.asyncio
async def test_mitra_cannot_place_orders(client: AsyncClient, mitra_user, service):
    response = await client.post(
        "/orders", headers=auth_headers(mitra_user), json=_order_payload(service)
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_customers_only_see_their_own_orders(client: AsyncClient, user, other_user, service):
    await _place(client, user, service)
    await _place(client, other_user, service)

    mine = await client.get("/orders", headers=auth_headers(user))
    assert len(mine.json()) == 1
    assert mine.json()[0]["user_id"] == str(user.id)


# ── Acceptance ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_accept_binds_order_and_charges_commission(client: AsyncClient, db, user, mitra_user, service):
    order = await _place(client, user, service)

    response = await client.post(f"/orders/{order['id']}/accept", headers=auth_headers(mitra_user))
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["order"]["status"] == "accepted"
    assert data["order"]["mitra_id"] == str(mitra_user.id)
    assert data["commission"] == 30000
    assert data["balance"] == 70000

    assert await _mitra_balance(db, mitra_user) == Decimal("70000")
    txn = (
        await db.execute(
            select(BalanceTransaction.amount, BalanceTransaction.type, BalanceTransaction.description)
            .where(BalanceTransaction.user_id == mitra_user.id)
        )
    ).one()
    assert txn.amount == Decimal("-30000")
    assert txn.type.value == "commission"
    assert txn.description == "Biaya komisi layanan"


@pytest.mark.asyncio
async def test_accepted_order_leaves_the_feed(client: AsyncClient, user, mitra_user, service):
    order = await _place(client, user, service)
    feed = await client.get("/mitra/orders/available", headers=auth_headers(mitra_user))
    assert [o["id"] for o in feed.json()] == [order["id"]]

    await client.post(f"/orders/{order['id']}/accept", headers=auth_headers(mitra_user))
    feed = await client.get("/mitra/orders/available", headers=auth_headers(mitra_user))
    assert feed.json() == []

    assigned = await client.get("/orders", headers=auth_headers(mitra_user))
    assert [o["id"] for o in assigned.json()] == [order["id"]]


@pytest.mark.asyncio
async def test_accept_with_insufficient_balance_writes_nothing(
    client: AsyncClient, db, user, mitra_user, service
):
    await set_mitra_balance(db, mitra_user, "29999.99")
    order = await _place(client, user, service)

    response = await client.post(f"/orders/{order['id']}/accept", headers=auth_headers(mitra_user))
    assert response.status_code == 400
    assert response.json()["code"] == "INSUFFICIENT_BALANCE"

    row = await _order_row(db, order["id"])
    assert row.status.value == "pending"
    assert row.mitra_id is None
    assert await _mitra_balance(db, mitra_user) == Decimal("29999.99")
    assert await _ledger_count(db) == 0


@pytest.mark.asyncio
async def test_second_mitra_cannot_accept(client: AsyncClient, db, user, mitra_user, service):
    rival = await make_account(
        db, "rival@example.com", UserRole.MITRA, "Rival", is_verified=True, balance=Decimal("100000")
    )
    order = await _place(client, user, service)

    first = await client.post(f"/orders/{order['id']}/accept", headers=auth_headers(mitra_user))
    second = await client.post(f"/orders/{order['id']}/accept", headers=auth_headers(rival))
    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json()["code"] == "ORDER_NOT_AVAILABLE"
    assert await _mitra_balance(db, rival) == Decimal("100000")
    assert await _ledger_count(db) == 1


@pytest.mark.asyncio
async def test_failure_mid_accept_rolls_back_everything(
    client: AsyncClient, db, user, mitra_user, service, monkeypatch
):
    order = await _place(client, user, service)

    def broken_ledger(**kwargs):
        raise SQLAlchemyError("ledger write failed")

    monkeypatch.setattr("services.order.router.BalanceTransaction", broken_ledger)

    response = await client.post(f"/orders/{order['id']}/accept", headers=auth_headers(mitra_user))
    assert response.status_code == 503
    assert response.json()["code"] == "STORE_UNAVAILABLE"

    row = await _order_row(db, order["id"])
    assert row.status.value == "pending"
    assert row.mitra_id is None
    assert await _mitra_balance(db, mitra_user) == Decimal("100000")
    assert await _ledger_count(db) == 0


@pytest.mark.asyncio
async def test_unverified_mitra_cannot_accept(client: AsyncClient, user, unverified_mitra, service):
    order = await _place(client, user, service)
    response = await client.post(
        f"/orders/{order['id']}/accept", headers=auth_headers(unverified_mitra)
    )
    assert response.status_code == 403


# ── Start / complete / review ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_full_lifecycle_and_review(client: AsyncClient, user, mitra_user, service):
    order = await _place(client, user, service)
    mitra = auth_headers(mitra_user)

    await client.post(f"/orders/{order['id']}/accept", headers=mitra)

    started = await client.post(f"/orders/{order['id']}/start", headers=mitra)
    assert started.status_code == 200
    assert started.json()["status"] == "in_progress"
    assert started.json()["started_at"] is not None

    completed = await client.post(f"/orders/{order['id']}/complete", headers=mitra)
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"

    review = await client.post(
        f"/orders/{order['id']}/review",
        headers=auth_headers(user),
        json={"rating": 5, "review": "Rapi dan cepat"},
    )
    assert review.status_code == 200
    assert review.json()["rating"] == 5

    again = await client.post(
        f"/orders/{order['id']}/review", headers=auth_headers(user), json={"rating": 1}
    )
    assert again.status_code == 409
    assert again.json()["code"] == "ALREADY_REVIEWED"


@pytest.mark.asyncio
async def test_cannot_complete_before_start(client: AsyncClient, user, mitra_user, service):
    order = await _place(client, user, service)
    mitra = auth_headers(mitra_user)
    await client.post(f"/orders/{order['id']}/accept", headers=mitra)

    response = await client.post(f"/orders/{order['id']}/complete", headers=mitra)
    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_TRANSITION"


@pytest.mark.asyncio
async def test_other_mitra_cannot_start_order(client: AsyncClient, db, user, mitra_user, service):
    other = await make_account(db, "other.mitra@example.com", UserRole.MITRA, is_verified=True)
    order = await _place(client, user, service)
    await client.post(f"/orders/{order['id']}/accept", headers=auth_headers(mitra_user))

    response = await client.post(f"/orders/{order['id']}/start", headers=auth_headers(other))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_review_requires_completed_order(client: AsyncClient, user, service):
    order = await _place(client, user, service)
    response = await client.post(
        f"/orders/{order['id']}/review", headers=auth_headers(user), json={"rating": 4}
    )
    assert response.status_code == 400
    assert response.json()["code"] == "ORDER_NOT_COMPLETED"


@pytest.mark.asyncio
async def test_review_rating_out_of_range(client: AsyncClient, user, service):
    order = await _place(client, user, service)
    response = await client.post(
        f"/orders/{order['id']}/review", headers=auth_headers(user), json={"rating": 6}
    )
    assert response.status_code == 422

"""
tests/test_chat.py
Direct messages between customer and partner.
"""

import uuid
from datetime import date, time
from decimal import Decimal

import pytest
from httpx import AsyncClient

from shared.models.models import Order, OrderStatus
from tests.conftest import auth_headers


@pytest.mark.asyncio
async def test_send_and_read_thread_both_ways(client: AsyncClient, user, mitra_user):
    sent = await client.post(
        f"/chat/{mitra_user.id}", headers=auth_headers(user), json={"message": "  Halo, jam 10 ya  "}
    )
    assert sent.status_code == 201, sent.text
    data = sent.json()
    assert data["message"] == "Halo, jam 10 ya"
    assert data["sender_name"] == "Budi Pelanggan"
    assert data["receiver_name"] == "Andi Mitra"
    assert data["is_read"] is False

    await client.post(
        f"/chat/{user.id}", headers=auth_headers(mitra_user), json={"message": "Siap, sampai jumpa"}
    )

    thread = await client.get(f"/chat/{mitra_user.id}", headers=auth_headers(user))
    assert [m["message"] for m in thread.json()] == ["Halo, jam 10 ya", "Siap, sampai jumpa"]

    mirrored = await client.get(f"/chat/{user.id}", headers=auth_headers(mitra_user))
    assert [m["id"] for m in mirrored.json()] == [m["id"] for m in thread.json()]


@pytest.mark.asyncio
async def test_thread_excludes_other_conversations(client: AsyncClient, user, other_user, mitra_user):
    await client.post(f"/chat/{mitra_user.id}", headers=auth_headers(user), json={"message": "A"})
    await client.post(f"/chat/{mitra_user.id}", headers=auth_headers(other_user), json={"message": "B"})

    thread = await client.get(f"/chat/{mitra_user.id}", headers=auth_headers(user))
    assert [m["message"] for m in thread.json()] == ["A"]


@pytest.mark.asyncio
async def test_blank_message_rejected(client: AsyncClient, user, mitra_user):
    response = await client.post(
        f"/chat/{mitra_user.id}", headers=auth_headers(user), json={"message": "   "}
    )
    assert response.status_code == 422
    assert response.json()["code"] == "FIELD_REQUIRED"


@pytest.mark.asyncio
async def test_cannot_message_self(client: AsyncClient, user):
    response = await client.post(f"/chat/{user.id}", headers=auth_headers(user), json={"message": "hi"})
    assert response.status_code == 422
    assert response.json()["code"] == "INVALID_RECIPIENT"


@pytest.mark.asyncio
async def test_unknown_recipient(client: AsyncClient, user):
    response = await client.post(
        "/chat/00000000-0000-0000-0000-000000000000",
        headers=auth_headers(user),
        json={"message": "hi"},
    )
    assert response.status_code == 404
    assert response.json()["code"] == "RECIPIENT_NOT_FOUND"


@pytest.mark.asyncio
async def test_blocked_account_cannot_chat(client: AsyncClient, blocked_user, mitra_user):
    response = await client.post(
        f"/chat/{mitra_user.id}", headers=auth_headers(blocked_user), json={"message": "hi"}
    )
    assert response.status_code == 403


async def _assigned_order(db, customer, mitra) -> Order:
    order = Order(
        user_id=customer.id,
        mitra_id=mitra.id,
        service_name="Cleaning Service",
        total_price=Decimal("150000"),
        duration_minutes=120,
        scheduled_date=date(2030, 1, 15),
        scheduled_time=time(10, 0),
        address="Jl. Sudirman 10, Jakarta",
        status=OrderStatus.ACCEPTED,
    )
    db.add(order)
    await db.commit()
    return order


@pytest.mark.asyncio
async def test_order_thread_between_its_participants(client: AsyncClient, db, user, mitra_user):
    order = await _assigned_order(db, user, mitra_user)
    await client.post(f"/chat/{mitra_user.id}", headers=auth_headers(user), json={"message": "umum"})
    sent = await client.post(
        f"/chat/{mitra_user.id}",
        headers=auth_headers(user),
        json={"message": "soal pesanan", "order_id": str(order.id)},
    )
    assert sent.status_code == 201, sent.text
    assert sent.json()["order_id"] == str(order.id)

    thread = await client.get(
        f"/chat/{user.id}", headers=auth_headers(mitra_user), params={"order_id": str(order.id)}
    )
    assert thread.status_code == 200
    assert [m["message"] for m in thread.json()] == ["soal pesanan"]


@pytest.mark.asyncio
async def test_message_for_unknown_order_is_404(client: AsyncClient, user, mitra_user):
    response = await client.post(
        f"/chat/{mitra_user.id}",
        headers=auth_headers(user),
        json={"message": "hi", "order_id": str(uuid.uuid4())},
    )
    assert response.status_code == 404
    assert response.json()["code"] == "ORDER_NOT_FOUND"


@pytest.mark.asyncio
async def test_outsider_cannot_use_someone_elses_order_thread(
    client: AsyncClient, db, user, other_user, mitra_user
):
    order = await _assigned_order(db, user, mitra_user)

    sent = await client.post(
        f"/chat/{mitra_user.id}",
        headers=auth_headers(other_user),
        json={"message": "nyasar", "order_id": str(order.id)},
    )
    assert sent.status_code == 403
    assert sent.json()["code"] == "NOT_ORDER_PARTICIPANT"

    read = await client.get(
        f"/chat/{mitra_user.id}", headers=auth_headers(other_user), params={"order_id": str(order.id)}
    )
    assert read.status_code == 403

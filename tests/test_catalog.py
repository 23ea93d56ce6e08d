"""
tests/test_catalog.py
Public service catalog and banners.
"""

from decimal import Decimal

import pytest
from httpx import AsyncClient

from shared.models.models import Banner, Service


@pytest.mark.asyncio
async def test_services_are_public_and_alphabetical(client: AsyncClient, db, service):
    db.add(Service(name="AC Service", base_price=Decimal("200000"), duration_minutes=90))
    db.add(Service(name="Zombie", base_price=Decimal("1"), duration_minutes=1, is_active=False))
    await db.commit()

    response = await client.get("/services")
    assert response.status_code == 200
    assert [s["name"] for s in response.json()] == ["AC Service", "Cleaning Service"]
    assert response.json()[1]["base_price"] == 150000


@pytest.mark.asyncio
async def test_banners_follow_order_index(client: AsyncClient, db):
    db.add(Banner(title="Kedua", image_url="https://cdn.test/2.png", order_index=2))
    db.add(Banner(title="Pertama", image_url="https://cdn.test/1.png", order_index=1))
    db.add(Banner(title="Mati", image_url="https://cdn.test/x.png", order_index=0, is_active=False))
    await db.commit()

    response = await client.get("/banners")
    assert [b["title"] for b in response.json()] == ["Pertama", "Kedua"]


@pytest.mark.asyncio
async def test_seed_services_fills_only_an_empty_catalog(db):
    from tasks.seed_catalog import DEFAULT_SERVICES, seed_services

    assert await seed_services(db) == len(DEFAULT_SERVICES)
    assert await seed_services(db) == 0


@pytest.mark.asyncio
async def test_health_reports_components(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["database"] == "ok"
    assert "X-Request-ID" in response.headers

"""
tests/conftest.py
Shared fixtures: in-memory SQLite, fake Redis, recorded blob storage,
an httpx client bound to the app, and seeded accounts for every role.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("BOOTSTRAP_ADMIN_EMAIL", "")
os.environ.setdefault("BOOTSTRAP_ADMIN_PASSWORD", "")

from decimal import Decimal
from typing import Dict

import httpx
import pytest
import pytest_asyncio
from fakeredis import aioredis as fake_aioredis
from sqlalchemy import update

import shared.models.models  # noqa: F401
from config.database import AsyncSessionLocal, Base, engine
from config.redis_client import get_redis
from config.storage import BlobStorage, get_storage
from main import app
from shared.models.models import (
    Identity,
    MitraProfile,
    Profile,
    Service,
    UserProfile,
    UserRole,
)
from shared.utils.security import create_access_token, hash_password

TEST_PASSWORD = "secret123"


def auth_headers(profile: Profile) -> Dict[str, str]:
    """Bearer header for a seeded profile."""
    token, _ = create_access_token(
        str(profile.id), profile.role.value, f"{profile.id}@test.local"
    )
    return {"Authorization": f"Bearer {token}"}


async def make_account(
    db,
    email: str,
    role: UserRole,
    full_name: str = "Test Account",
    is_verified: bool = False,
    is_blocked: bool = False,
    balance: Decimal = Decimal("0"),
) -> Profile:
    identity = Identity(email=email, password_hash=hash_password(TEST_PASSWORD))
    db.add(identity)
    await db.flush()

    profile = Profile(
        id=identity.id,
        full_name=full_name,
        phone="081234567890",
        role=role,
        is_verified=is_verified,
        is_blocked=is_blocked,
    )
    db.add(profile)
    if role == UserRole.USER:
        db.add(UserProfile(user_id=identity.id, balance=balance))
    elif role == UserRole.MITRA:
        db.add(MitraProfile(mitra_id=identity.id, balance=balance, service_types=[]))
    await db.commit()
    return profile


async def set_mitra_balance(db, profile: Profile, amount) -> None:
    await db.execute(
        update(MitraProfile).where(MitraProfile.mitra_id == profile.id).values(balance=Decimal(amount))
    )
    await db.commit()


class RecordingStorage:
    """Captures PUT requests that BlobStorage sends, keyed by object path."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.status_code in (200, 201):
            key = request.url.path.split("/object/", 1)[1]
            self.objects[key] = request.content
            self.content_types[key] = request.headers["content-type"]
            return httpx.Response(self.status_code, json={"Key": key})
        return httpx.Response(self.status_code, json={"error": "boom"})


# ── Infrastructure ─────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with AsyncSessionLocal() as session:
        yield session
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def redis():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def recorder() -> RecordingStorage:
    return RecordingStorage()


@pytest.fixture
def storage(recorder: RecordingStorage) -> BlobStorage:
    return BlobStorage(
        "http://storage.test/storage/v1",
        "service-key",
        timeout=5.0,
        transport=httpx.MockTransport(recorder.handler),
    )


@pytest_asyncio.fixture
async def client(db, redis, storage):
    app.dependency_overrides[get_redis] = lambda: redis
    app.dependency_overrides[get_storage] = lambda: storage
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


# ── Accounts ───────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def user(db) -> Profile:
    return await make_account(db, "user@example.com", UserRole.USER, "Budi Pelanggan")


@pytest_asyncio.fixture
async def other_user(db) -> Profile:
    return await make_account(db, "user2@example.com", UserRole.USER, "Sari Pelanggan")


@pytest_asyncio.fixture
async def mitra_user(db) -> Profile:
    """Verified partner with enough balance for one commission on the test service."""
    return await make_account(
        db, "mitra@example.com", UserRole.MITRA, "Andi Mitra",
        is_verified=True, balance=Decimal("100000"),
    )


@pytest_asyncio.fixture
async def unverified_mitra(db) -> Profile:
    return await make_account(db, "newmitra@example.com", UserRole.MITRA, "Dewi Mitra")


@pytest_asyncio.fixture
async def admin_user(db) -> Profile:
    return await make_account(db, "admin@example.com", UserRole.ADMIN, "Admin", is_verified=True)


@pytest_asyncio.fixture
async def blocked_user(db) -> Profile:
    return await make_account(db, "blocked@example.com", UserRole.USER, "Blocked", is_blocked=True)


@pytest_asyncio.fixture
async def service(db) -> Service:
    svc = Service(
        name="Cleaning Service",
        description="Pembersihan rumah standar",
        base_price=Decimal("150000"),
        duration_minutes=120,
    )
    db.add(svc)
    await db.commit()
    return svc


@pytest_asyncio.fixture
async def store(client):
    """API client SDK talking to the same in-process app as `client`."""
    from client.store import StoreClient

    sdk = StoreClient("http://test", transport=httpx.ASGITransport(app=app))
    yield sdk
    await sdk.aclose()

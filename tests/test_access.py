"""
tests/test_access.py
Role router: view resolution order, path canonicalisation, and the
server-side RoleRequired gate built on the same rules.
"""

from types import SimpleNamespace

import pytest
from httpx import AsyncClient

from shared.models.models import UserRole
from shared.utils.access import Screen, resolve_view
from tests.conftest import auth_headers


def _profile(role="user", is_verified=False, is_blocked=False):
    return SimpleNamespace(role=role, is_verified=is_verified, is_blocked=is_blocked)


# ── resolve_view ───────────────────────────────────────────────────────────────

def test_loading_wins_over_everything():
    assert resolve_view(_profile(is_blocked=True), loading=True).screen == Screen.LOADING


def test_no_identity_or_profile_shows_auth():
    assert resolve_view(None).screen == Screen.AUTH
    assert resolve_view(_profile(), identity=None).screen == Screen.AUTH


def test_blocked_takes_precedence_over_pending_verification():
    decision = resolve_view(_profile(role="mitra", is_verified=False, is_blocked=True))
    assert decision.screen == Screen.BLOCKED
    assert decision.can_sign_out


def test_unverified_mitra_is_pending():
    decision = resolve_view(_profile(role="mitra"))
    assert decision.screen == Screen.PENDING_VERIFICATION
    assert decision.can_sign_out
    assert not decision.allowed


def test_unverified_user_is_not_gated():
    assert resolve_view(_profile(role="user", is_verified=False)).allowed


def test_unknown_role_is_invalid():
    decision = resolve_view(_profile(role="superuser"))
    assert decision.screen == Screen.INVALID_ROLE
    assert decision.can_sign_out


def test_enum_roles_are_normalised():
    decision = resolve_view(_profile(role=UserRole.MITRA, is_verified=True), path="/mitra")
    assert decision.screen == Screen.DASHBOARD
    assert decision.role == "mitra"


@pytest.mark.parametrize(
    "role, path",
    [("user", "/dashboard"), ("mitra", "/mitra"), ("admin", "/admin")],
)
def test_root_redirects_to_canonical_path(role, path):
    decision = resolve_view(_profile(role=role, is_verified=True), path="/")
    assert decision.screen == Screen.DASHBOARD
    assert decision.redirect == path


def test_subpath_of_own_dashboard_is_allowed():
    decision = resolve_view(_profile(role="user"), path="/dashboard/orders")
    assert decision.allowed
    assert decision.redirect is None


def test_other_role_path_is_denied_never_rendered():
    decision = resolve_view(_profile(role="user"), path="/admin")
    assert decision.screen == Screen.ACCESS_DENIED
    assert decision.path == "/dashboard"
    assert not decision.can_sign_out


def test_unknown_path_redirects_home():
    decision = resolve_view(_profile(role="admin", is_verified=True), path="/nowhere")
    assert decision.redirect == "/admin"


# ── RoleRequired ───────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_blocked_account_fails_role_gate(client: AsyncClient, blocked_user):
    response = await client.get("/orders", headers=auth_headers(blocked_user))
    assert response.status_code == 403
    assert response.json()["code"] == "ACCOUNT_BLOCKED"


@pytest.mark.asyncio
async def test_unverified_mitra_cannot_see_order_feed(client: AsyncClient, unverified_mitra):
    response = await client.get("/mitra/orders/available", headers=auth_headers(unverified_mitra))
    assert response.status_code == 403
    assert response.json()["code"] == "VERIFICATION_PENDING"


@pytest.mark.asyncio
async def test_unverified_mitra_can_reach_own_profile(client: AsyncClient, unverified_mitra):
    response = await client.get("/mitra/profile", headers=auth_headers(unverified_mitra))
    assert response.status_code == 200
    assert response.json()["is_active"] is True


@pytest.mark.asyncio
async def test_user_cannot_use_mitra_endpoints(client: AsyncClient, user):
    response = await client.get("/mitra/orders/available", headers=auth_headers(user))
    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_mitra_cannot_use_admin_endpoints(client: AsyncClient, mitra_user):
    response = await client.get("/admin/stats", headers=auth_headers(mitra_user))
    assert response.status_code == 403

"""
shared/middleware/auth.py
FastAPI dependency functions for authentication and authorization.
JWT is validated here; role gating reuses the same view resolution as the client.
"""

import uuid
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import SessionGuard, get_redis
from shared.models.models import Identity, Profile, UserRole
from shared.utils.access import Screen, resolve_view, role_value
from shared.utils.errors import AuthError, ForbiddenError
from shared.utils.security import decode_access_token

security = HTTPBearer(auto_error=False)

_BEARER = {"WWW-Authenticate": "Bearer"}


class TokenData:
    def __init__(self, payload: dict, raw: str):
        self.user_id: uuid.UUID = uuid.UUID(payload["sub"])
        self.role: str = payload.get("role", "")
        self.email: str = payload["email"]
        self.jti: str = payload["jti"]
        self.payload = payload
        self.raw = raw


async def get_token_data(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    redis=Depends(get_redis),
) -> TokenData:
    """
    Extract and validate JWT from Authorization header.
    Checks deny-list in Redis to handle revoked tokens (sign-out).
    """
    if not credentials:
        raise AuthError("Authentication required", headers=_BEARER)

    try:
        payload = decode_access_token(credentials.credentials)
        token = TokenData(payload, credentials.credentials)
    except (JWTError, KeyError, ValueError):
        raise AuthError("Invalid or expired token", code="INVALID_TOKEN", headers=_BEARER)

    if await SessionGuard(redis).is_denied(token.jti):
        raise AuthError("Token has been revoked", code="TOKEN_REVOKED", headers=_BEARER)

    return token


async def get_current_identity(
    token_data: TokenData = Depends(get_token_data),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    """Load the Identity named by the JWT sub claim."""
    identity = await db.scalar(select(Identity).where(Identity.id == token_data.user_id))
    if not identity:
        raise AuthError("User not found", headers=_BEARER)
    return identity


async def get_current_profile(
    token_data: TokenData = Depends(get_token_data),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    """
    Load the caller's Profile without any gating, so blocked or unverified
    accounts can still read their own state and sign out.
    """
    profile = await db.scalar(select(Profile).where(Profile.id == token_data.user_id))
    if not profile:
        raise AuthError("Profile not found", code="PROFILE_NOT_FOUND")
    return profile


class RoleRequired:
    """
    Dependency factory for role-based access control.

    A request passes only when the caller's profile resolves to the dashboard
    screen and its role is one of `roles`. With `allow_unverified`, a mitra
    still awaiting verification is let through (blocked accounts never are).
    """

    def __init__(self, *roles: UserRole, allow_unverified: bool = False):
        self.roles = {role_value(r) for r in roles}
        self.allow_unverified = allow_unverified

    async def __call__(self, profile: Profile = Depends(get_current_profile)) -> Profile:
        decision = resolve_view(profile)

        if decision.screen == Screen.BLOCKED:
            raise ForbiddenError("Account is blocked", code="ACCOUNT_BLOCKED")
        if decision.screen == Screen.PENDING_VERIFICATION and not self.allow_unverified:
            raise ForbiddenError("Account is awaiting verification", code="VERIFICATION_PENDING")
        if decision.screen == Screen.INVALID_ROLE:
            raise ForbiddenError("Account role is not recognised", code="INVALID_ROLE")

        if decision.role not in self.roles:
            raise ForbiddenError(f"Required role: {sorted(self.roles)}")
        return profile


# Convenience role dependencies
require_user = RoleRequired(UserRole.USER)
require_mitra = RoleRequired(UserRole.MITRA)
require_mitra_applicant = RoleRequired(UserRole.MITRA, allow_unverified=True)
require_admin = RoleRequired(UserRole.ADMIN)
require_any = RoleRequired(UserRole.USER, UserRole.MITRA, UserRole.ADMIN)

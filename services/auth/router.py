"""
services/auth/router.py
Email/password authentication endpoints.
Implements: Sign-up → Sign-in → Session → Refresh → Sign-out
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Request, Response, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import SessionGuard, get_redis
from config.settings import settings
from shared.middleware.auth import TokenData, get_current_profile, get_token_data
from shared.models.models import (
    Identity,
    MitraProfile,
    Profile,
    RefreshToken,
    UserProfile,
    UserRole,
)
from shared.schemas.schemas import (
    CurrentSessionResponse,
    IdentityResponse,
    MessageResponse,
    ProfileResponse,
    RefreshRequest,
    SessionResponse,
    SignInRequest,
    SignOutRequest,
    SignUpRequest,
    TokenResponse,
    ViewResponse,
)
from shared.utils.access import resolve_view
from shared.utils.errors import INVALID_CREDENTIALS_MESSAGE, AuthError, ValidationError
from shared.utils.security import (
    access_token_lifetime,
    create_access_token,
    hash_password,
    hash_token,
    issue_refresh_token,
    seconds_until_expiry,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

REFRESH_COOKIE_PATH = "/auth"


# ── Helpers ───────────────────────────────────────────────────

def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _validate_signup(data: SignUpRequest) -> str:
    full_name = data.full_name.strip()
    if not full_name or not data.password:
        raise ValidationError("Semua field wajib diisi", code="FIELD_REQUIRED")
    if len(data.password) < settings.MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password minimal {settings.MIN_PASSWORD_LENGTH} karakter",
            code="PASSWORD_TOO_SHORT",
        )
    if data.confirm_password is not None and data.confirm_password != data.password:
        raise ValidationError("Password tidak cocok", code="PASSWORD_MISMATCH")
    return full_name


async def _issue_tokens(
    identity: Identity,
    role: str,
    db: AsyncSession,
    response: Response,
    request: Request,
) -> tuple[str, str]:
    """Issue access + refresh tokens. Store the refresh token hash and set the cookie."""
    access_token, _ = create_access_token(str(identity.id), role, identity.email)

    refresh = issue_refresh_token()
    db.add(
        RefreshToken(
            identity_id=identity.id,
            token_hash=refresh.digest,
            expires_at=refresh.expires_at,
            user_agent=request.headers.get("user-agent"),
            ip_address=request.client.host if request.client else None,
        )
    )

    # httpOnly cookie for browser clients; API clients use the body
    response.set_cookie(
        key="refresh_token",
        value=refresh.raw,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS * 86400,
        path=REFRESH_COOKIE_PATH,
    )
    return access_token, refresh.raw


def _session_response(
    identity: Identity, profile: Optional[Profile], access_token: str, raw_refresh: str
) -> SessionResponse:
    return SessionResponse(
        access_token=access_token,
        refresh_token=raw_refresh,
        expires_in=access_token_lifetime(),
        user=IdentityResponse.model_validate(identity),
        profile=ProfileResponse.model_validate(profile) if profile else None,
    )


# ── Endpoints ─────────────────────────────────────────────────

@router.post(
    "/signup",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account",
)
async def sign_up(
    data: SignUpRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """
    Create Identity, Profile and the role extension row in one transaction,
    then sign the new account in. Public sign-up accepts `user` and `mitra`.
    """
    full_name = _validate_signup(data)
    email = data.email.lower()

    if await db.scalar(select(Identity.id).where(Identity.email == email)):
        raise AuthError("Email sudah terdaftar", code="EMAIL_TAKEN", status_code=status.HTTP_409_CONFLICT)

    role = UserRole(data.role)
    identity = Identity(email=email, password_hash=hash_password(data.password))
    db.add(identity)
    try:
        await db.flush()
    except IntegrityError:
        raise AuthError("Email sudah terdaftar", code="EMAIL_TAKEN", status_code=status.HTTP_409_CONFLICT)

    profile = Profile(id=identity.id, full_name=full_name, role=role)
    db.add(profile)
    if role == UserRole.MITRA:
        db.add(MitraProfile(mitra_id=identity.id, service_types=[]))
    else:
        db.add(UserProfile(user_id=identity.id))

    identity.last_sign_in_at = datetime.now(timezone.utc)
    access_token, raw_refresh = await _issue_tokens(identity, role.value, db, response, request)
    await db.commit()

    logger.info(f"New {role.value} account {identity.id}")
    return _session_response(identity, profile, access_token, raw_refresh)


@router.post("/signin", response_model=SessionResponse, summary="Sign in with email/password")
async def sign_in(
    data: SignInRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """Credential failures all collapse into the same friendly message."""
    identity = await db.scalar(select(Identity).where(Identity.email == data.email.lower()))
    if not identity or not verify_password(data.password, identity.password_hash):
        raise AuthError(INVALID_CREDENTIALS_MESSAGE, code="INVALID_CREDENTIALS")

    profile = await db.scalar(select(Profile).where(Profile.id == identity.id))
    role = profile.role.value if profile else ""

    identity.last_sign_in_at = datetime.now(timezone.utc)
    access_token, raw_refresh = await _issue_tokens(identity, role, db, response, request)
    await db.commit()

    return _session_response(identity, profile, access_token, raw_refresh)


@router.get("/session", response_model=CurrentSessionResponse, summary="Current session")
async def get_session(
    token_data: TokenData = Depends(get_token_data),
    db: AsyncSession = Depends(get_db),
):
    """
    Identity + profile for the bearer token, and the view the role router
    would pick for it. A missing profile is returned as null.
    """
    identity = await db.scalar(select(Identity).where(Identity.id == token_data.user_id))
    if not identity:
        raise AuthError("User not found")
    profile = await db.scalar(select(Profile).where(Profile.id == identity.id))

    decision = resolve_view(profile)
    return CurrentSessionResponse(
        identity=IdentityResponse.model_validate(identity),
        profile=ProfileResponse.model_validate(profile) if profile else None,
        view=ViewResponse(
            screen=decision.screen.value,
            role=decision.role,
            path=decision.path,
            redirect=decision.redirect,
            can_sign_out=decision.can_sign_out,
        ),
    )


@router.post("/refresh", response_model=TokenResponse, summary="Refresh access token")
async def refresh_token(
    request: Request,
    response: Response,
    data: Optional[RefreshRequest] = None,
    refresh_token_cookie: Optional[str] = Cookie(None, alias="refresh_token"),
    db: AsyncSession = Depends(get_db),
):
    """
    Issue a new access token using a valid refresh token.
    Implements refresh token rotation: the old token is revoked.
    """
    raw_token = (data.refresh_token if data else None) or refresh_token_cookie
    if not raw_token:
        raise AuthError("Refresh token required")

    db_token = await db.scalar(
        select(RefreshToken).where(
            RefreshToken.token_hash == hash_token(raw_token),
            RefreshToken.is_revoked == False,
        )
    )
    if not db_token:
        raise AuthError("Invalid or revoked refresh token", code="INVALID_TOKEN")
    if _as_utc(db_token.expires_at) < datetime.now(timezone.utc):
        raise AuthError("Refresh token expired", code="INVALID_TOKEN")

    identity = await db.scalar(select(Identity).where(Identity.id == db_token.identity_id))
    if not identity:
        raise AuthError("User not found")
    profile = await db.scalar(select(Profile).where(Profile.id == identity.id))

    db_token.is_revoked = True
    access_token, raw_refresh = await _issue_tokens(
        identity, profile.role.value if profile else "", db, response, request
    )
    await db.commit()

    return TokenResponse(
        access_token=access_token,
        refresh_token=raw_refresh,
        expires_in=access_token_lifetime(),
    )


@router.post("/signout", response_model=MessageResponse, summary="Sign out")
async def sign_out(
    response: Response,
    data: Optional[SignOutRequest] = None,
    refresh_token_cookie: Optional[str] = Cookie(None, alias="refresh_token"),
    token_data: TokenData = Depends(get_token_data),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """Deny-list the access token in Redis and revoke the refresh token."""
    ttl = seconds_until_expiry(token_data.payload)
    if ttl > 0:
        await SessionGuard(redis).deny_token(token_data.jti, ttl)

    raw_refresh = (data.refresh_token if data else None) or refresh_token_cookie
    if raw_refresh:
        db_token = await db.scalar(
            select(RefreshToken).where(
                RefreshToken.token_hash == hash_token(raw_refresh),
                RefreshToken.identity_id == token_data.user_id,
            )
        )
        if db_token:
            db_token.is_revoked = True

    response.delete_cookie(key="refresh_token", path=REFRESH_COOKIE_PATH)
    await db.commit()

    return MessageResponse(message="Signed out successfully")


@router.get("/me", response_model=ProfileResponse, summary="Get current profile")
async def get_me(profile: Profile = Depends(get_current_profile)):
    """Returns the authenticated caller's profile."""
    return ProfileResponse.model_validate(profile)

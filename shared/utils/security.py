"""
shared/utils/security.py
Session credentials for GetLife identities: bcrypt password hashes, signed
access tokens, and opaque refresh tokens stored only as SHA-256 digests.
"""

import hashlib
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from config.settings import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"


class IssuedRefreshToken(NamedTuple):
    raw: str            # handed to the client once
    digest: str         # persisted in refresh_tokens.token_hash
    expires_at: datetime


# ── Access tokens ─────────────────────────────────────────────

def access_token_lifetime() -> int:
    """Access token lifetime in seconds, as reported in `expires_in`."""
    return settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60


def create_access_token(
    identity_id: str,
    role: str,
    email: str,
    extra: Optional[dict] = None,
) -> tuple[str, str]:
    """
    Sign an access token for an identity.
    Returns (token, jti); the jti is what sign-out puts on the deny-list.
    """
    jti = uuid.uuid4().hex
    issued_at = datetime.now(timezone.utc)

    claims = {
        "sub": str(identity_id),
        "role": role,
        "email": email,
        "jti": jti,
        "iat": issued_at,
        "exp": issued_at + timedelta(seconds=access_token_lifetime()),
        "type": ACCESS_TOKEN_TYPE,
    }
    claims.update(extra or {})

    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM), jti


def decode_access_token(token: str) -> dict:
    """Verified claims of an access token. Raises JWTError when invalid or expired."""
    claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    if claims.get("type") != ACCESS_TOKEN_TYPE:
        raise JWTError("Not an access token")
    return claims


def seconds_until_expiry(claims: dict) -> int:
    """How long a deny-list entry for these claims must live."""
    remaining = claims.get("exp", 0) - datetime.now(timezone.utc).timestamp()
    return max(0, int(remaining))


# ── Refresh tokens ────────────────────────────────────────────

def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def issue_refresh_token() -> IssuedRefreshToken:
    raw = secrets.token_urlsafe(64)
    return IssuedRefreshToken(
        raw=raw,
        digest=hash_token(raw),
        expires_at=datetime.now(timezone.utc) + timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS),
    )


# ── Passwords ─────────────────────────────────────────────────

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

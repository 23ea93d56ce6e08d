"""
tasks/bootstrap_admin.py
Create the first admin account when none exists.

Runs automatically during app startup when BOOTSTRAP_ADMIN_EMAIL and
BOOTSTRAP_ADMIN_PASSWORD are set, and can be run by hand:

    BOOTSTRAP_ADMIN_EMAIL=... BOOTSTRAP_ADMIN_PASSWORD=... python -m tasks.bootstrap_admin

Idempotent: does nothing if any admin profile is present.
"""

import asyncio
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import close_db, init_db, session_scope
from config.settings import settings
from shared.models.models import Identity, Profile, UserRole
from shared.utils.security import hash_password

logger = logging.getLogger(__name__)


async def ensure_admin(
    db: AsyncSession,
    email: str,
    password: str,
    full_name: str = "Admin",
) -> Optional[Profile]:
    """
    Create a verified admin Identity + Profile unless an admin already exists.
    Returns the new profile, or None when nothing was created.
    """
    existing = await db.scalar(select(Profile.id).where(Profile.role == UserRole.ADMIN).limit(1))
    if existing:
        logger.info("Admin account already present, bootstrap skipped")
        return None

    email = email.strip().lower()
    if await db.scalar(select(Identity.id).where(Identity.email == email)):
        logger.warning(f"Bootstrap admin email {email} belongs to a non-admin account, skipped")
        return None

    identity = Identity(email=email, password_hash=hash_password(password))
    db.add(identity)
    await db.flush()

    profile = Profile(
        id=identity.id,
        full_name=full_name,
        role=UserRole.ADMIN,
        is_verified=True,
    )
    db.add(profile)
    await db.commit()

    logger.info(f"Bootstrap admin created: {email}")
    return profile


async def bootstrap_admin() -> Optional[Profile]:
    """
    Best-effort startup hook. Failures are logged and never propagate,
    so a misconfigured bootstrap cannot stop the API from starting.
    """
    if not settings.bootstrap_admin_enabled:
        return None

    try:
        async with session_scope() as db:
            return await ensure_admin(
                db,
                settings.BOOTSTRAP_ADMIN_EMAIL,
                settings.BOOTSTRAP_ADMIN_PASSWORD,
                settings.BOOTSTRAP_ADMIN_NAME,
            )
    except Exception as e:
        logger.error(f"Admin bootstrap failed: {e}", exc_info=True)
        return None


async def _main() -> None:
    await init_db()
    try:
        if not settings.bootstrap_admin_enabled:
            logger.error("BOOTSTRAP_ADMIN_EMAIL and BOOTSTRAP_ADMIN_PASSWORD must be set")
            return
        await bootstrap_admin()
    finally:
        await close_db()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(_main())

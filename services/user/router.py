"""
services/user/router.py
Profile settings and the customer extension (address, coordinates).
"""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.middleware.auth import get_current_profile, require_user
from shared.models.models import Profile, UserProfile
from shared.schemas.schemas import (
    ProfileResponse,
    ProfileUpdateRequest,
    UserProfileResponse,
    UserProfileUpdate,
)
from shared.utils.errors import NotFoundError, ValidationError

router = APIRouter(prefix="/users", tags=["Users"])


@router.put("/me", response_model=ProfileResponse)
async def update_me(
    data: ProfileUpdateRequest,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    """
    Update the caller's name and phone.
    Only non-None fields in the request body are updated; role and flags are never writable here.
    """
    updates = data.model_dump(exclude_none=True)
    if "full_name" in updates:
        updates["full_name"] = updates["full_name"].strip()
        if not updates["full_name"]:
            raise ValidationError("Nama wajib diisi", code="FIELD_REQUIRED")
    if not updates:
        return ProfileResponse.model_validate(profile)

    for field, value in updates.items():
        setattr(profile, field, value)

    await db.commit()
    await db.refresh(profile)
    return ProfileResponse.model_validate(profile)


async def _get_user_profile(profile: Profile, db: AsyncSession) -> UserProfile:
    user_profile = await db.scalar(select(UserProfile).where(UserProfile.user_id == profile.id))
    if not user_profile:
        raise NotFoundError("User profile not found")
    return user_profile


@router.get("/me/profile", response_model=UserProfileResponse)
async def get_user_profile(
    profile: Profile = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return UserProfileResponse.model_validate(await _get_user_profile(profile, db))


@router.put("/me/profile", response_model=UserProfileResponse)
async def update_user_profile(
    data: UserProfileUpdate,
    profile: Profile = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Update the default service address and coordinates."""
    user_profile = await _get_user_profile(profile, db)
    for field, value in data.model_dump(exclude_none=True).items():
        setattr(user_profile, field, value)

    await db.commit()
    await db.refresh(user_profile)
    return UserProfileResponse.model_validate(user_profile)

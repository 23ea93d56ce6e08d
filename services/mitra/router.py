"""
services/mitra/router.py
Partner (mitra) endpoints: profile, active toggle, open order feed,
and identity-document submission for verification.
"""

import logging
import mimetypes
import time
from pathlib import PurePath
from typing import List, Optional

from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from config.storage import BlobStorage, get_storage
from shared.middleware.auth import require_mitra, require_mitra_applicant
from shared.models.models import (
    MitraProfile,
    MitraVerification,
    Order,
    OrderStatus,
    Profile,
    VerificationStatus,
)
from shared.schemas.schemas import (
    MitraProfileResponse,
    MitraProfileUpdate,
    MitraVerificationResponse,
    OrderResponse,
)
from shared.utils.errors import BusinessRuleError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mitra", tags=["Mitra"])


# ── Helpers ───────────────────────────────────────────────────

async def _get_mitra_profile(mitra: Profile, db: AsyncSession) -> MitraProfile:
    mitra_profile = await db.scalar(select(MitraProfile).where(MitraProfile.mitra_id == mitra.id))
    if not mitra_profile:
        raise NotFoundError("Mitra profile not found", code="MITRA_PROFILE_NOT_FOUND")
    return mitra_profile


def _is_allowed_document(content_type: Optional[str]) -> bool:
    return bool(content_type) and (
        content_type.startswith("image/") or content_type == "application/pdf"
    )


def _extension(upload: UploadFile) -> str:
    suffix = PurePath(upload.filename or "").suffix.lstrip(".").lower()
    if suffix:
        return suffix
    guessed = mimetypes.guess_extension(upload.content_type or "") or ".bin"
    return guessed.lstrip(".")


def document_path(owner_id, kind: str, ext: str, timestamp: Optional[int] = None) -> str:
    """Blob path for one document, scoped under the owner's identity id."""
    stamp = timestamp if timestamp is not None else int(time.time() * 1000)
    return f"{owner_id}/{kind}_{stamp}.{ext}"


async def _read_document(upload: UploadFile, label: str) -> bytes:
    if not _is_allowed_document(upload.content_type):
        raise ValidationError(
            f"{label} harus berupa gambar atau PDF", code="INVALID_DOCUMENT_TYPE"
        )
    content = await upload.read()
    if len(content) > settings.DOCUMENT_MAX_BYTES:
        raise ValidationError(
            f"Ukuran {label} maksimal {settings.DOCUMENT_MAX_BYTES // (1024 * 1024)}MB",
            code="DOCUMENT_TOO_LARGE",
        )
    return content


# ── Profile ───────────────────────────────────────────────────

@router.get("/profile", response_model=MitraProfileResponse)
async def get_my_profile(
    mitra: Profile = Depends(require_mitra_applicant),
    db: AsyncSession = Depends(get_db),
):
    return MitraProfileResponse.model_validate(await _get_mitra_profile(mitra, db))


@router.put("/profile", response_model=MitraProfileResponse)
async def update_my_profile(
    data: MitraProfileUpdate,
    mitra: Profile = Depends(require_mitra_applicant),
    db: AsyncSession = Depends(get_db),
):
    """Update description and offered service types."""
    mitra_profile = await _get_mitra_profile(mitra, db)
    for field, value in data.model_dump(exclude_none=True).items():
        setattr(mitra_profile, field, value)

    await db.commit()
    await db.refresh(mitra_profile)
    return MitraProfileResponse.model_validate(mitra_profile)


@router.post("/profile/toggle-active", response_model=MitraProfileResponse)
async def toggle_active(
    mitra: Profile = Depends(require_mitra),
    db: AsyncSession = Depends(get_db),
):
    """Flip whether the partner is currently taking work."""
    mitra_profile = await _get_mitra_profile(mitra, db)
    mitra_profile.is_active = not mitra_profile.is_active
    await db.commit()
    await db.refresh(mitra_profile)

    logger.info(f"Mitra {mitra.id} is_active={mitra_profile.is_active}")
    return MitraProfileResponse.model_validate(mitra_profile)


# ── Order feed ────────────────────────────────────────────────

@router.get("/orders/available", response_model=List[OrderResponse])
async def list_available_orders(
    mitra: Profile = Depends(require_mitra),
    db: AsyncSession = Depends(get_db),
):
    """Pending orders nobody has accepted yet, newest first."""
    result = await db.execute(
        select(Order)
        .where(Order.status == OrderStatus.PENDING, Order.mitra_id.is_(None))
        .order_by(Order.created_at.desc())
    )
    return [OrderResponse.model_validate(o) for o in result.scalars()]


# ── Verification documents ────────────────────────────────────

@router.post(
    "/verification",
    response_model=MitraVerificationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_verification(
    ktp_file: Optional[UploadFile] = File(None),
    kk_file: Optional[UploadFile] = File(None),
    mitra: Profile = Depends(require_mitra_applicant),
    db: AsyncSession = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    """
    Upload KTP and KK documents and open a pending verification request.
    Both files are required. Blobs are stored under the caller's identity id;
    the request row is only written once both uploads succeed.
    """
    if not ktp_file or not ktp_file.filename or not kk_file or not kk_file.filename:
        raise BusinessRuleError(
            "Dokumen KTP dan KK wajib diunggah", code="DOCUMENTS_REQUIRED"
        )
    if mitra.is_verified:
        raise BusinessRuleError(
            "Akun sudah terverifikasi", code="ALREADY_VERIFIED", status_code=status.HTTP_409_CONFLICT
        )

    pending = await db.scalar(
        select(MitraVerification.id).where(
            MitraVerification.mitra_id == mitra.id,
            MitraVerification.status == VerificationStatus.PENDING,
        )
    )
    if pending:
        raise BusinessRuleError(
            "Dokumen sedang ditinjau",
            code="VERIFICATION_ALREADY_SUBMITTED",
            status_code=status.HTTP_409_CONFLICT,
        )

    ktp_content = await _read_document(ktp_file, "KTP")
    kk_content = await _read_document(kk_file, "KK")

    bucket = settings.STORAGE_DOCUMENTS_BUCKET
    stamp = int(time.time() * 1000)
    ktp_path = await storage.upload(
        bucket, document_path(mitra.id, "ktp", _extension(ktp_file), stamp), ktp_content, ktp_file.content_type
    )
    kk_path = await storage.upload(
        bucket, document_path(mitra.id, "kk", _extension(kk_file), stamp), kk_content, kk_file.content_type
    )

    verification = MitraVerification(
        mitra_id=mitra.id,
        ktp_image=ktp_path,
        kk_image=kk_path,
        status=VerificationStatus.PENDING,
    )
    db.add(verification)
    await db.commit()
    await db.refresh(verification)

    logger.info(f"Verification {verification.id} submitted by mitra {mitra.id}")
    return MitraVerificationResponse.model_validate(verification)


@router.get("/verification", response_model=MitraVerificationResponse)
async def get_my_verification(
    mitra: Profile = Depends(require_mitra_applicant),
    db: AsyncSession = Depends(get_db),
):
    """Latest submission and its review outcome."""
    verification = await db.scalar(
        select(MitraVerification)
        .where(MitraVerification.mitra_id == mitra.id)
        .order_by(MitraVerification.submitted_at.desc())
        .limit(1)
    )
    if not verification:
        raise NotFoundError("No verification submitted", code="VERIFICATION_NOT_FOUND")
    return MitraVerificationResponse.model_validate(verification)

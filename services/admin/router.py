"""
services/admin/router.py
Admin-only endpoints: mitra verification queue, account moderation,
platform stats, order overview, vouchers and banners.

Every mutation is written to the admin log before returning.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.middleware.auth import require_admin
from shared.models.models import (
    BalanceTransaction,
    Banner,
    MitraVerification,
    Order,
    Profile,
    TransactionType,
    UserRole,
    VerificationStatus,
    Voucher,
)
from shared.schemas.schemas import (
    AdminStatsResponse,
    BannerCreate,
    BannerResponse,
    MessageResponse,
    MitraVerificationResponse,
    OrderResponse,
    PendingVerificationResponse,
    ProfileResponse,
    RejectVerificationRequest,
    VoucherCreate,
    VoucherResponse,
)
from shared.utils.errors import BusinessRuleError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


# ── Helpers ────────────────────────────────────────────────────────────────────

def _log(admin: Profile, action: str, entity_type: str, entity_id, payload: Optional[dict] = None):
    """Structured record of an admin mutation."""
    logger.info(
        f"admin={admin.id} action={action} entity={entity_type}:{entity_id} payload={payload or {}}"
    )


async def _review(
    verification_id: UUID,
    admin: Profile,
    new_status: VerificationStatus,
    db: AsyncSession,
    reason: Optional[str] = None,
) -> MitraVerification:
    """Close a pending submission. Only pending rows can be reviewed, exactly once."""
    verification = await db.scalar(
        select(MitraVerification).where(MitraVerification.id == verification_id)
    )
    if not verification:
        raise NotFoundError("Verification not found", code="VERIFICATION_NOT_FOUND")

    result = await db.execute(
        update(MitraVerification)
        .where(
            MitraVerification.id == verification_id,
            MitraVerification.status == VerificationStatus.PENDING,
        )
        .values(
            status=new_status,
            rejection_reason=reason,
            reviewed_at=datetime.now(timezone.utc),
            reviewed_by=admin.id,
        )
    )
    if result.rowcount != 1:
        raise BusinessRuleError(
            "Verification has already been reviewed",
            code="ALREADY_REVIEWED",
            status_code=status.HTTP_409_CONFLICT,
        )

    if new_status == VerificationStatus.APPROVED:
        await db.execute(
            update(Profile).where(Profile.id == verification.mitra_id).values(is_verified=True)
        )
    return verification


# ── Mitra Verification Queue ───────────────────────────────────────────────────

@router.get("/verifications/pending", response_model=List[PendingVerificationResponse])
async def get_pending_verifications(
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Pending submissions, newest first, with the partner's name and phone."""
    result = await db.execute(
        select(MitraVerification, Profile)
        .join(Profile, Profile.id == MitraVerification.mitra_id)
        .where(MitraVerification.status == VerificationStatus.PENDING)
        .order_by(MitraVerification.submitted_at.desc())
    )
    return [
        PendingVerificationResponse(
            **MitraVerificationResponse.model_validate(row[0]).model_dump(),
            full_name=row[1].full_name,
            phone=row[1].phone,
        )
        for row in result.all()
    ]


@router.post("/verifications/{verification_id}/approve", response_model=MitraVerificationResponse)
async def approve_verification(
    verification_id: UUID,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Approve a submission and mark the partner verified, in one transaction."""
    verification = await _review(verification_id, admin, VerificationStatus.APPROVED, db)
    _log(admin, "APPROVE_VERIFICATION", "MitraVerification", verification_id,
         {"mitra_id": str(verification.mitra_id)})
    await db.commit()
    await db.refresh(verification)
    return MitraVerificationResponse.model_validate(verification)


@router.post("/verifications/{verification_id}/reject", response_model=MitraVerificationResponse)
async def reject_verification(
    verification_id: UUID,
    data: RejectVerificationRequest,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Reject with a reason. The partner stays unverified and may resubmit."""
    verification = await _review(
        verification_id, admin, VerificationStatus.REJECTED, db, reason=data.reason.strip()
    )
    _log(admin, "REJECT_VERIFICATION", "MitraVerification", verification_id,
         {"reason": data.reason})
    await db.commit()
    await db.refresh(verification)
    return MitraVerificationResponse.model_validate(verification)


# ── Stats ──────────────────────────────────────────────────────────────────────

@router.get("/stats", response_model=AdminStatsResponse)
async def get_stats(
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Headline counters. Revenue is the total commission collected."""
    total_users = await db.scalar(
        select(func.count(Profile.id)).where(Profile.role == UserRole.USER)
    )
    total_mitra = await db.scalar(
        select(func.count(Profile.id)).where(
            Profile.role == UserRole.MITRA, Profile.is_verified == True
        )
    )
    total_orders = await db.scalar(select(func.count(Order.id)))
    total_revenue = await db.scalar(
        select(func.coalesce(func.sum(func.abs(BalanceTransaction.amount)), 0)).where(
            BalanceTransaction.type == TransactionType.COMMISSION
        )
    )
    return AdminStatsResponse(
        total_users=total_users or 0,
        total_mitra=total_mitra or 0,
        total_orders=total_orders or 0,
        total_revenue=float(total_revenue or 0),
    )


# ── Account Moderation ─────────────────────────────────────────────────────────

@router.get("/users", response_model=List[ProfileResponse])
async def list_users(
    role: Optional[UserRole] = Query(None),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    query = select(Profile).order_by(Profile.created_at.desc())
    if role:
        query = query.where(Profile.role == role)
    result = await db.execute(query)
    return [ProfileResponse.model_validate(p) for p in result.scalars()]


async def _set_blocked(target_id: UUID, blocked: bool, admin: Profile, db: AsyncSession) -> Profile:
    if target_id == admin.id:
        raise ValidationError("Admin cannot block their own account", code="CANNOT_BLOCK_SELF")
    target = await db.scalar(select(Profile).where(Profile.id == target_id))
    if not target:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")

    target.is_blocked = blocked
    _log(admin, "BLOCK_USER" if blocked else "UNBLOCK_USER", "Profile", target_id)
    await db.commit()
    await db.refresh(target)
    return target


@router.post("/users/{user_id}/block", response_model=ProfileResponse)
async def block_user(
    user_id: UUID,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Blocked accounts resolve to the blocked screen and fail every role gate."""
    return ProfileResponse.model_validate(await _set_blocked(user_id, True, admin, db))


@router.post("/users/{user_id}/unblock", response_model=ProfileResponse)
async def unblock_user(
    user_id: UUID,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return ProfileResponse.model_validate(await _set_blocked(user_id, False, admin, db))


# ── Orders ─────────────────────────────────────────────────────────────────────

@router.get("/orders", response_model=List[OrderResponse])
async def list_orders(
    limit: int = Query(100, ge=1, le=500),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Order).order_by(Order.created_at.desc()).limit(limit))
    return [OrderResponse.model_validate(o) for o in result.scalars()]


# ── Vouchers ───────────────────────────────────────────────────────────────────

@router.post("/vouchers", response_model=VoucherResponse, status_code=status.HTTP_201_CREATED)
async def create_voucher(
    data: VoucherCreate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    voucher = Voucher(**data.model_dump(exclude={"amount"}), amount=Decimal(str(data.amount)))
    db.add(voucher)
    try:
        await db.flush()
    except IntegrityError:
        raise BusinessRuleError(
            f"Voucher code {data.code} already exists",
            code="VOUCHER_CODE_TAKEN",
            status_code=status.HTTP_409_CONFLICT,
        )

    _log(admin, "CREATE_VOUCHER", "Voucher", voucher.id, {"code": data.code, "amount": data.amount})
    await db.commit()
    await db.refresh(voucher)
    return VoucherResponse.model_validate(voucher)


@router.get("/vouchers", response_model=List[VoucherResponse])
async def list_vouchers(
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Voucher).order_by(Voucher.created_at.desc()))
    return [VoucherResponse.model_validate(v) for v in result.scalars()]


@router.post("/vouchers/{voucher_id}/deactivate", response_model=MessageResponse)
async def deactivate_voucher(
    voucher_id: UUID,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        update(Voucher).where(Voucher.id == voucher_id).values(is_active=False)
    )
    if result.rowcount != 1:
        raise NotFoundError("Voucher not found", code="VOUCHER_NOT_FOUND")
    _log(admin, "DEACTIVATE_VOUCHER", "Voucher", voucher_id)
    await db.commit()
    return MessageResponse(message="Voucher deactivated")


# ── Banners ────────────────────────────────────────────────────────────────────

@router.post("/banners", response_model=BannerResponse, status_code=status.HTTP_201_CREATED)
async def create_banner(
    data: BannerCreate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    banner = Banner(**data.model_dump())
    db.add(banner)
    await db.flush()
    _log(admin, "CREATE_BANNER", "Banner", banner.id, {"title": data.title})
    await db.commit()
    await db.refresh(banner)
    return BannerResponse.model_validate(banner)


@router.post("/banners/{banner_id}/deactivate", response_model=MessageResponse)
async def deactivate_banner(
    banner_id: UUID,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(update(Banner).where(Banner.id == banner_id).values(is_active=False))
    if result.rowcount != 1:
        raise NotFoundError("Banner not found", code="BANNER_NOT_FOUND")
    _log(admin, "DEACTIVATE_BANNER", "Banner", banner_id)
    await db.commit()
    return MessageResponse(message="Banner deactivated")

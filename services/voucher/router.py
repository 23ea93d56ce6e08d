"""
services/voucher/router.py
Voucher listing and redemption.

Each customer may redeem a voucher once. The (voucher_id, user_id) unique
constraint on voucher_usage is what enforces that under concurrency; the
pre-checks only exist to return a precise error without touching the ledger.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.middleware.auth import require_user
from shared.models.models import (
    BalanceTransaction,
    Profile,
    TransactionType,
    UserProfile,
    Voucher,
    VoucherUsage,
)
from shared.schemas.schemas import RedeemVoucherRequest, RedeemVoucherResponse, VoucherResponse
from shared.utils.errors import BusinessRuleError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vouchers", tags=["Vouchers"])


def _redeemable():
    """Filter for vouchers that are active and not past valid_until."""
    return (
        Voucher.is_active == True,
        or_(Voucher.valid_until.is_(None), Voucher.valid_until >= date.today()),
    )


def _already_used() -> BusinessRuleError:
    return BusinessRuleError(
        "Voucher sudah pernah digunakan",
        code="VOUCHER_ALREADY_USED",
        status_code=status.HTTP_409_CONFLICT,
    )


def _limit_reached() -> BusinessRuleError:
    return BusinessRuleError(
        "Kuota voucher sudah habis",
        code="VOUCHER_LIMIT_REACHED",
        status_code=status.HTTP_409_CONFLICT,
    )


@router.get("/available", response_model=List[VoucherResponse])
async def list_available_vouchers(
    profile: Profile = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Voucher).where(*_redeemable()).order_by(Voucher.created_at.desc())
    )
    return [VoucherResponse.model_validate(v) for v in result.scalars()]


@router.post("/redeem", response_model=RedeemVoucherResponse)
async def redeem_voucher(
    data: RedeemVoucherRequest,
    profile: Profile = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Redeem a voucher code for a balance credit.
    1. Code must match an active, unexpired voucher (404)
    2. Caller must not have used it before (409)
    3. Usage limit must not be exhausted (409)
    4. Record usage, bump used_count, credit balance, append ledger row
    """
    if not data.code:
        raise ValidationError("Kode voucher wajib diisi", code="FIELD_REQUIRED")

    voucher = await db.scalar(select(Voucher).where(Voucher.code == data.code, *_redeemable()))
    if not voucher:
        raise BusinessRuleError(
            "Voucher tidak ditemukan atau sudah kadaluarsa",
            code="VOUCHER_NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
        )

    used = await db.scalar(
        select(VoucherUsage.id).where(
            VoucherUsage.voucher_id == voucher.id,
            VoucherUsage.user_id == profile.id,
        )
    )
    if used:
        raise _already_used()
    if voucher.usage_limit is not None and voucher.used_count >= voucher.usage_limit:
        raise _limit_reached()

    amount = Decimal(voucher.amount)
    db.add(VoucherUsage(voucher_id=voucher.id, user_id=profile.id, amount=amount))
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race against a concurrent redemption by the same user
        raise _already_used()

    counted = await db.execute(
        update(Voucher)
        .where(
            Voucher.id == voucher.id,
            or_(Voucher.usage_limit.is_(None), Voucher.used_count < Voucher.usage_limit),
        )
        .values(used_count=Voucher.used_count + 1)
    )
    if counted.rowcount != 1:
        raise _limit_reached()

    credited = await db.execute(
        update(UserProfile)
        .where(UserProfile.user_id == profile.id)
        .values(balance=UserProfile.balance + amount)
    )
    if credited.rowcount != 1:
        raise NotFoundError("Balance account not found", code="BALANCE_NOT_FOUND")

    db.add(
        BalanceTransaction(
            user_id=profile.id,
            type=TransactionType.VOUCHER,
            amount=amount,
            description=f"Voucher {voucher.code} - {voucher.title}",
            voucher_id=voucher.id,
        )
    )
    await db.commit()
    await db.refresh(voucher)

    balance = await db.scalar(select(UserProfile.balance).where(UserProfile.user_id == profile.id))
    logger.info(f"Voucher {voucher.code} redeemed by {profile.id} for {amount}")
    return RedeemVoucherResponse(
        balance=float(balance),
        amount=float(amount),
        voucher=VoucherResponse.model_validate(voucher),
    )

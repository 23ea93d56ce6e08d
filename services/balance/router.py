"""
services/balance/router.py
Customer top-up and balance/ledger reads for customers and partners.
Top-up is a simulated credit: no payment gateway is involved.
"""

import logging
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from shared.middleware.auth import RoleRequired, require_user
from shared.models.models import (
    BalanceTransaction,
    MitraProfile,
    Profile,
    TransactionType,
    UserProfile,
    UserRole,
)
from shared.schemas.schemas import (
    BalanceResponse,
    BalanceTransactionResponse,
    TopUpRequest,
    TopUpResponse,
)
from shared.utils.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/balance", tags=["Balance"])

require_balance_holder = RoleRequired(UserRole.USER, UserRole.MITRA)


async def current_balance(profile: Profile, db: AsyncSession) -> Decimal:
    """Balance lives on the role extension row: UserProfile or MitraProfile."""
    if profile.role == UserRole.MITRA:
        balance = await db.scalar(
            select(MitraProfile.balance).where(MitraProfile.mitra_id == profile.id)
        )
    else:
        balance = await db.scalar(
            select(UserProfile.balance).where(UserProfile.user_id == profile.id)
        )
    if balance is None:
        raise NotFoundError("Balance account not found", code="BALANCE_NOT_FOUND")
    return Decimal(balance)


@router.post("/topup", response_model=TopUpResponse, status_code=status.HTTP_201_CREATED)
async def top_up(
    data: TopUpRequest,
    profile: Profile = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Credit one of the fixed denominations to the customer balance.
    The credit and its ledger row commit together.
    """
    denominations = settings.topup_denominations_list
    if data.amount not in denominations:
        raise ValidationError(
            f"Nominal top up harus salah satu dari {denominations}",
            code="INVALID_DENOMINATION",
        )

    amount = Decimal(data.amount)
    result = await db.execute(
        update(UserProfile)
        .where(UserProfile.user_id == profile.id)
        .values(balance=UserProfile.balance + amount)
    )
    if result.rowcount != 1:
        raise NotFoundError("Balance account not found", code="BALANCE_NOT_FOUND")

    txn = BalanceTransaction(
        user_id=profile.id,
        type=TransactionType.TOPUP,
        amount=amount,
        description="Top up saldo",
    )
    db.add(txn)
    await db.commit()
    await db.refresh(txn)

    balance = await current_balance(profile, db)
    logger.info(f"Top-up {amount} for {profile.id}, balance now {balance}")
    return TopUpResponse(
        balance=float(balance),
        transaction=BalanceTransactionResponse.model_validate(txn),
    )


@router.get("", response_model=BalanceResponse)
async def get_balance(
    profile: Profile = Depends(require_balance_holder),
    db: AsyncSession = Depends(get_db),
):
    return BalanceResponse(balance=float(await current_balance(profile, db)), role=profile.role)


@router.get("/transactions", response_model=List[BalanceTransactionResponse])
async def list_transactions(
    limit: int = Query(50, ge=1, le=200),
    profile: Profile = Depends(require_balance_holder),
    db: AsyncSession = Depends(get_db),
):
    """Caller's ledger, newest first."""
    result = await db.execute(
        select(BalanceTransaction)
        .where(BalanceTransaction.user_id == profile.id)
        .order_by(BalanceTransaction.created_at.desc())
        .limit(limit)
    )
    return [BalanceTransactionResponse.model_validate(t) for t in result.scalars()]

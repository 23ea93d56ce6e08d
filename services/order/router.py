"""
services/order/router.py
Order lifecycle.
States: pending → accepted → in_progress → completed

Acceptance charges the partner a commission on the order price. Binding the
order, debiting the partner balance and writing the ledger row happen in one
transaction, each guarded by a conditional UPDATE so concurrent accepts or
debits cannot interleave.
"""

import logging
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from shared.middleware.auth import RoleRequired, require_mitra, require_user
from shared.models.models import (
    BalanceTransaction,
    MitraProfile,
    Order,
    OrderStatus,
    PaymentMethod,
    Profile,
    Service,
    TransactionType,
    UserRole,
)
from shared.schemas.schemas import (
    AcceptOrderResponse,
    OrderCreateRequest,
    OrderResponse,
    OrderReviewRequest,
)
from shared.utils.errors import (
    BusinessRuleError,
    NotFoundError,
    ValidationError,
    insufficient_balance,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])

require_customer_or_mitra = RoleRequired(UserRole.USER, UserRole.MITRA)


# ── Helpers ───────────────────────────────────────────────────

def calculate_commission(total_price: Decimal) -> Decimal:
    """Partner commission on an order, rounded to cents."""
    percent = Decimal(str(settings.MITRA_COMMISSION_PERCENT))
    return (Decimal(total_price) * percent / Decimal(100)).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )


async def _get_order_or_404(order_id: UUID, db: AsyncSession) -> Order:
    order = await db.scalar(select(Order).where(Order.id == order_id))
    if not order:
        raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")
    return order


def _not_available() -> BusinessRuleError:
    return BusinessRuleError(
        "Order is no longer available",
        code="ORDER_NOT_AVAILABLE",
        status_code=status.HTTP_409_CONFLICT,
    )


async def _advance(
    order_id: UUID,
    mitra: Profile,
    from_status: OrderStatus,
    to_status: OrderStatus,
    stamp: str,
    db: AsyncSession,
) -> Order:
    """Move one of the partner's own orders a single step along the lifecycle."""
    order = await _get_order_or_404(order_id, db)
    if order.mitra_id != mitra.id:
        raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")

    now = datetime.now(timezone.utc)
    result = await db.execute(
        update(Order)
        .where(Order.id == order.id, Order.mitra_id == mitra.id, Order.status == from_status)
        .values(status=to_status, updated_at=now, **{stamp: now})
    )
    if result.rowcount != 1:
        raise BusinessRuleError(
            f"Cannot move order from {order.status.value} to {to_status.value}",
            code="INVALID_TRANSITION",
            status_code=status.HTTP_409_CONFLICT,
        )

    await db.commit()
    await db.refresh(order)
    logger.info(f"Order {order.id} {from_status.value} → {to_status.value}")
    return order


# ── Customer ──────────────────────────────────────────────────

@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    data: OrderCreateRequest,
    profile: Profile = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Place an order for a catalog service.
    Price and duration are copied from the service now, so later catalog
    edits do not change existing orders. No payment is captured here, and
    the `balance` method does not debit the customer balance.
    """
    service = await db.scalar(
        select(Service).where(Service.id == data.service_id, Service.is_active == True)
    )
    if not service:
        raise NotFoundError("Service not found", code="SERVICE_NOT_FOUND")
    if data.scheduled_date < date.today():
        raise ValidationError("Tanggal layanan sudah lewat", code="SCHEDULE_IN_PAST")

    order = Order(
        user_id=profile.id,
        service_id=service.id,
        service_name=service.name,
        total_price=service.base_price,
        duration_minutes=service.duration_minutes,
        scheduled_date=data.scheduled_date,
        scheduled_time=data.scheduled_time,
        address=data.address.strip(),
        latitude=data.latitude,
        longitude=data.longitude,
        payment_method=PaymentMethod(data.payment_method),
        notes=data.notes,
        status=OrderStatus.PENDING,
    )
    db.add(order)
    await db.commit()
    await db.refresh(order)

    logger.info(f"Order {order.id} placed by {profile.id} for {service.name}")
    return OrderResponse.model_validate(order)


@router.get("", response_model=List[OrderResponse])
async def list_my_orders(
    profile: Profile = Depends(require_customer_or_mitra),
    db: AsyncSession = Depends(get_db),
):
    """Customers see the orders they placed; partners see the orders bound to them."""
    owner = Order.mitra_id if profile.role == UserRole.MITRA else Order.user_id
    result = await db.execute(
        select(Order).where(owner == profile.id).order_by(Order.created_at.desc())
    )
    return [OrderResponse.model_validate(o) for o in result.scalars()]


@router.post("/{order_id}/review", response_model=OrderResponse)
async def review_order(
    order_id: UUID,
    data: OrderReviewRequest,
    profile: Profile = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Rate a completed order. One review per order."""
    order = await _get_order_or_404(order_id, db)
    if order.user_id != profile.id:
        raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")
    if order.status != OrderStatus.COMPLETED:
        raise BusinessRuleError("Only completed orders can be reviewed", code="ORDER_NOT_COMPLETED")
    if order.rating is not None:
        raise BusinessRuleError(
            "Order already reviewed", code="ALREADY_REVIEWED", status_code=status.HTTP_409_CONFLICT
        )

    order.rating = data.rating
    order.review = data.review
    await db.commit()
    await db.refresh(order)
    return OrderResponse.model_validate(order)


# ── Partner ───────────────────────────────────────────────────

@router.post("/{order_id}/accept", response_model=AcceptOrderResponse)
async def accept_order(
    order_id: UUID,
    mitra: Profile = Depends(require_mitra),
    db: AsyncSession = Depends(get_db),
):
    """
    Accept a pending order and pay the platform commission.
    1. Order must still be pending and unassigned (409 otherwise)
    2. Partner balance must cover the commission (400, nothing written)
    3. Bind order, debit balance, append ledger row; all or nothing
    """
    order = await _get_order_or_404(order_id, db)
    if order.status != OrderStatus.PENDING or order.mitra_id is not None:
        raise _not_available()

    commission = calculate_commission(order.total_price)
    mitra_profile = await db.scalar(
        select(MitraProfile).where(MitraProfile.mitra_id == mitra.id)
    )
    if not mitra_profile:
        raise NotFoundError("Mitra profile not found", code="MITRA_PROFILE_NOT_FOUND")
    if Decimal(mitra_profile.balance) < commission:
        raise insufficient_balance(commission)

    now = datetime.now(timezone.utc)
    bound = await db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == OrderStatus.PENDING, Order.mitra_id.is_(None))
        .values(mitra_id=mitra.id, status=OrderStatus.ACCEPTED, updated_at=now)
    )
    if bound.rowcount != 1:
        raise _not_available()

    debited = await db.execute(
        update(MitraProfile)
        .where(MitraProfile.mitra_id == mitra.id, MitraProfile.balance >= commission)
        .values(balance=MitraProfile.balance - commission)
    )
    if debited.rowcount != 1:
        # Balance was spent by a concurrent request; the order binding rolls back too
        raise insufficient_balance(commission)

    db.add(
        BalanceTransaction(
            user_id=mitra.id,
            type=TransactionType.COMMISSION,
            amount=-commission,
            description="Biaya komisi layanan",
            order_id=order.id,
        )
    )
    await db.commit()
    await db.refresh(order)
    await db.refresh(mitra_profile)

    logger.info(f"Order {order.id} accepted by {mitra.id}, commission {commission}")
    return AcceptOrderResponse(
        order=OrderResponse.model_validate(order),
        commission=float(commission),
        balance=float(mitra_profile.balance),
    )


@router.post("/{order_id}/start", response_model=OrderResponse)
async def start_order(
    order_id: UUID,
    mitra: Profile = Depends(require_mitra),
    db: AsyncSession = Depends(get_db),
):
    order = await _advance(
        order_id, mitra, OrderStatus.ACCEPTED, OrderStatus.IN_PROGRESS, "started_at", db
    )
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/complete", response_model=OrderResponse)
async def complete_order(
    order_id: UUID,
    mitra: Profile = Depends(require_mitra),
    db: AsyncSession = Depends(get_db),
):
    order = await _advance(
        order_id, mitra, OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED, "completed_at", db
    )
    return OrderResponse.model_validate(order)

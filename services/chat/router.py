"""
services/chat/router.py
Direct messages between two accounts, optionally scoped to an order.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config.database import get_db
from shared.middleware.auth import require_any
from shared.models.models import ChatMessage, Order, Profile
from shared.schemas.schemas import ChatMessageCreate, ChatMessageResponse
from shared.utils.errors import ForbiddenError, NotFoundError, ValidationError

router = APIRouter(prefix="/chat", tags=["Chat"])


def _to_response(msg: ChatMessage) -> ChatMessageResponse:
    return ChatMessageResponse(
        id=msg.id,
        sender_id=msg.sender_id,
        receiver_id=msg.receiver_id,
        order_id=msg.order_id,
        message=msg.message,
        is_read=msg.is_read,
        created_at=msg.created_at,
        sender_name=msg.sender.full_name if msg.sender else None,
        receiver_name=msg.receiver.full_name if msg.receiver else None,
    )


async def _check_order_pair(db: AsyncSession, order_id: UUID, me: UUID, other: UUID) -> None:
    """An order thread belongs to the order's customer and its assigned mitra only."""
    row = (
        await db.execute(select(Order.user_id, Order.mitra_id).where(Order.id == order_id))
    ).one_or_none()
    if row is None:
        raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")
    if {row.user_id, row.mitra_id} != {me, other}:
        raise ForbiddenError("Percakapan ini bukan milik Anda", code="NOT_ORDER_PARTICIPANT")


@router.get("/{other_id}", response_model=List[ChatMessageResponse])
async def get_thread(
    other_id: UUID,
    order_id: Optional[UUID] = Query(None),
    profile: Profile = Depends(require_any),
    db: AsyncSession = Depends(get_db),
):
    """Both directions of the conversation, oldest first."""
    query = (
        select(ChatMessage)
        .options(selectinload(ChatMessage.sender), selectinload(ChatMessage.receiver))
        .where(
            or_(
                and_(ChatMessage.sender_id == profile.id, ChatMessage.receiver_id == other_id),
                and_(ChatMessage.sender_id == other_id, ChatMessage.receiver_id == profile.id),
            )
        )
    )
    if order_id:
        await _check_order_pair(db, order_id, profile.id, other_id)
        query = query.where(ChatMessage.order_id == order_id)

    result = await db.execute(query.order_by(ChatMessage.created_at.asc()))
    return [_to_response(m) for m in result.scalars()]


@router.post("/{other_id}", response_model=ChatMessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    other_id: UUID,
    data: ChatMessageCreate,
    profile: Profile = Depends(require_any),
    db: AsyncSession = Depends(get_db),
):
    text = data.message.strip()
    if not text:
        raise ValidationError("Pesan tidak boleh kosong", code="FIELD_REQUIRED")
    if other_id == profile.id:
        raise ValidationError("Tidak dapat mengirim pesan ke diri sendiri", code="INVALID_RECIPIENT")

    receiver = await db.scalar(select(Profile).where(Profile.id == other_id))
    if not receiver:
        raise NotFoundError("Recipient not found", code="RECIPIENT_NOT_FOUND")
    if data.order_id:
        await _check_order_pair(db, data.order_id, profile.id, receiver.id)

    msg = ChatMessage(
        sender_id=profile.id,
        receiver_id=receiver.id,
        order_id=data.order_id,
        message=text,
        is_read=False,
    )
    db.add(msg)
    await db.commit()

    msg = await db.scalar(
        select(ChatMessage)
        .options(selectinload(ChatMessage.sender), selectinload(ChatMessage.receiver))
        .where(ChatMessage.id == msg.id)
        .execution_options(populate_existing=True)
    )
    return _to_response(msg)

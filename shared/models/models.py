"""
shared/models/models.py
All SQLAlchemy ORM models for the GetLife home-services platform.
UUID primary keys throughout; column types stay portable across PostgreSQL and SQLite.
"""

import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum as PyEnum
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    String,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from config.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls):
    """Persist enum values ("mitra"), not member names ("MITRA")."""
    return Enum(
        enum_cls,
        values_callable=lambda e: [m.value for m in e],
        native_enum=False,
        length=20,
    )


Money = Numeric(12, 2)


# ── Enumerations ──────────────────────────────────────────────

class UserRole(str, PyEnum):
    USER = "user"
    MITRA = "mitra"
    ADMIN = "admin"


class VerificationStatus(str, PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class OrderStatus(str, PyEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethod(str, PyEnum):
    BALANCE = "balance"
    CASH = "cash"


class TransactionType(str, PyEnum):
    TOPUP = "topup"
    COMMISSION = "commission"
    VOUCHER = "voucher"


# ── Mixins ────────────────────────────────────────────────────

class TimestampMixin:
    """Adds created_at and updated_at to any model."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


# ── Auth ──────────────────────────────────────────────────────

class Identity(TimestampMixin, Base):
    """Authenticated subject with an email/password credential. 1:1 with Profile."""
    __tablename__ = "identities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    last_sign_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    profile: Mapped[Optional["Profile"]] = relationship(back_populates="identity", uselist=False)
    refresh_tokens: Mapped[List["RefreshToken"]] = relationship(back_populates="identity")

    __table_args__ = (Index("ix_identities_email", "email"),)

    def __repr__(self) -> str:
        return f"<Identity {self.email}>"


class RefreshToken(Base):
    """Refresh tokens stored for rotation and revocation."""
    __tablename__ = "refresh_tokens"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    identity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("identities.id", ondelete="CASCADE"), nullable=False
    )
    token_hash: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)

    identity: Mapped["Identity"] = relationship(back_populates="refresh_tokens")

    __table_args__ = (Index("ix_refresh_tokens_identity_id", "identity_id"),)


# ── Profiles ──────────────────────────────────────────────────

class Profile(TimestampMixin, Base):
    """Domain user record: role plus verification/block flags. Keyed by the identity id."""
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("identities.id", ondelete="CASCADE"), primary_key=True
    )
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    role: Mapped[UserRole] = mapped_column(_enum(UserRole), nullable=False, default=UserRole.USER)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    identity: Mapped["Identity"] = relationship(back_populates="profile")
    user_profile: Mapped[Optional["UserProfile"]] = relationship(back_populates="profile", uselist=False)
    mitra_profile: Mapped[Optional["MitraProfile"]] = relationship(back_populates="profile", uselist=False)

    __table_args__ = (Index("ix_profiles_role", "role"),)

    def __repr__(self) -> str:
        return f"<Profile {self.full_name} ({self.role})>"


class UserProfile(Base):
    """Customer extension. Balance is credited by top-up and voucher redemption."""
    __tablename__ = "user_profiles"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True
    )
    balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    profile: Mapped["Profile"] = relationship(back_populates="user_profile")


class MitraProfile(Base):
    """Partner extension. Balance is debited by order commission."""
    __tablename__ = "mitra_profiles"

    mitra_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True
    )
    balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    service_types: Mapped[List[str]] = mapped_column(JSON, default=list)
    profile_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    profile: Mapped["Profile"] = relationship(back_populates="mitra_profile")


class MitraVerification(Base):
    """
    Identity documents submitted by a partner.
    Status transitions: pending → approved | rejected (admin only).
    """
    __tablename__ = "mitra_verifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    mitra_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    ktp_image: Mapped[str] = mapped_column(Text, nullable=False)
    kk_image: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[VerificationStatus] = mapped_column(
        _enum(VerificationStatus), default=VerificationStatus.PENDING, nullable=False
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=True
    )

    mitra: Mapped["Profile"] = relationship(foreign_keys=[mitra_id])

    __table_args__ = (
        Index("ix_mitra_verifications_status", "status"),
        Index("ix_mitra_verifications_mitra_id", "mitra_id"),
    )


# ── Catalog ───────────────────────────────────────────────────

class Service(Base):
    """Catalog entry. Read-only for customers and partners."""
    __tablename__ = "services"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    base_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class Banner(Base):
    """Marketing carousel entry."""
    __tablename__ = "banners"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    link_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


# ── Orders ────────────────────────────────────────────────────

class Order(TimestampMixin, Base):
    """
    Service order.
    Status transitions: pending → accepted → in_progress → completed.
    Price and duration are copied from the Service at submit time.
    """
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("profiles.id"), nullable=False)
    mitra_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=True
    )
    service_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("services.id"), nullable=True
    )
    service_name: Mapped[str] = mapped_column(String(255), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    # Schedule
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    scheduled_time: Mapped[time] = mapped_column(Time, nullable=False)

    # Location
    address: Mapped[str] = mapped_column(Text, nullable=False)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    payment_method: Mapped[PaymentMethod] = mapped_column(
        _enum(PaymentMethod), nullable=False, default=PaymentMethod.BALANCE
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[OrderStatus] = mapped_column(
        _enum(OrderStatus), nullable=False, default=OrderStatus.PENDING
    )

    rating: Mapped[Optional[int]] = mapped_column(SmallInteger, nullable=True)
    review: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="ck_order_rating_range"),
        Index("ix_orders_user_id", "user_id"),
        Index("ix_orders_mitra_id", "mitra_id"),
        Index("ix_orders_status", "status"),
    )


# ── Ledger ────────────────────────────────────────────────────

class BalanceTransaction(Base):
    """Append-only ledger. One row per balance-affecting event; never updated or deleted."""
    __tablename__ = "balance_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("profiles.id"), nullable=False)
    type: Mapped[TransactionType] = mapped_column(_enum(TransactionType), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)  # signed
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("orders.id"), nullable=True)
    voucher_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("vouchers.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_balance_transactions_user_id", "user_id"),
        Index("ix_balance_transactions_type", "type"),
    )


# ── Vouchers ──────────────────────────────────────────────────

class Voucher(Base):
    """Promotional code redeemable once per user for a fixed balance credit."""
    __tablename__ = "vouchers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)  # upper-case
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    valid_until: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class VoucherUsage(Base):
    """One row per (voucher, user). The unique constraint is the single-use guard."""
    __tablename__ = "voucher_usage"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    voucher_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("vouchers.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("voucher_id", "user_id", name="uq_voucher_usage_voucher_user"),
    )


# ── Chat ──────────────────────────────────────────────────────

class ChatMessage(Base):
    """Append-only message between two identities, optionally scoped to an order."""
    __tablename__ = "chat_messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sender_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("profiles.id"), nullable=False)
    receiver_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("profiles.id"), nullable=False)
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("orders.id"), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    sender: Mapped["Profile"] = relationship(foreign_keys=[sender_id])
    receiver: Mapped["Profile"] = relationship(foreign_keys=[receiver_id])

    __table_args__ = (
        Index("ix_chat_messages_pair", "sender_id", "receiver_id"),
        Index("ix_chat_messages_order_id", "order_id"),
    )

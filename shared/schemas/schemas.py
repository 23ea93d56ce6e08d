"""
shared/schemas/schemas.py
All Pydantic v2 request/response schemas for the platform.
"""

import uuid
from datetime import date, datetime, time
from enum import Enum
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr, Field, field_validator


# ── Base ──────────────────────────────────────────────────────

class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# ORM enum columns come back as str-enum members
EnumStr = Annotated[str, BeforeValidator(lambda v: v.value if isinstance(v, Enum) else v)]


# ── Auth ──────────────────────────────────────────────────────

class SignUpRequest(BaseSchema):
    email: EmailStr
    password: str
    confirm_password: Optional[str] = None
    full_name: str = Field(..., max_length=255)
    role: Literal["user", "mitra"] = "user"


class SignInRequest(BaseSchema):
    email: EmailStr
    password: str


class RefreshRequest(BaseSchema):
    refresh_token: str


class SignOutRequest(BaseSchema):
    refresh_token: Optional[str] = None


class IdentityResponse(BaseSchema):
    id: uuid.UUID
    email: str
    created_at: datetime
    last_sign_in_at: Optional[datetime] = None


class ProfileResponse(BaseSchema):
    id: uuid.UUID
    full_name: Optional[str]
    phone: Optional[str]
    role: EnumStr
    is_verified: bool
    is_blocked: bool
    created_at: datetime
    updated_at: datetime


class ViewResponse(BaseSchema):
    screen: str
    role: Optional[str] = None
    path: Optional[str] = None
    redirect: Optional[str] = None
    can_sign_out: bool = False


class SessionResponse(BaseSchema):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    user: IdentityResponse
    profile: Optional[ProfileResponse] = None


class TokenResponse(BaseSchema):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class CurrentSessionResponse(BaseSchema):
    identity: IdentityResponse
    profile: Optional[ProfileResponse]
    view: ViewResponse


# ── Profiles ──────────────────────────────────────────────────

class ProfileUpdateRequest(BaseSchema):
    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = Field(None, pattern=r"^\+?[0-9]{8,15}$")


class UserProfileResponse(BaseSchema):
    user_id: uuid.UUID
    balance: float
    address: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]


class UserProfileUpdate(BaseSchema):
    address: Optional[str] = Field(None, max_length=1000)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class MitraProfileResponse(BaseSchema):
    mitra_id: uuid.UUID
    balance: float
    is_active: bool
    description: Optional[str]
    service_types: List[str] = []
    profile_image: Optional[str]


class MitraProfileUpdate(BaseSchema):
    description: Optional[str] = Field(None, max_length=2000)
    service_types: Optional[List[str]] = None


# ── Catalog ───────────────────────────────────────────────────

class ServiceResponse(BaseSchema):
    id: uuid.UUID
    name: str
    description: Optional[str]
    base_price: float
    duration_minutes: int
    is_active: bool


class BannerCreate(BaseSchema):
    title: str = Field(..., min_length=1, max_length=255)
    image_url: str
    link_url: Optional[str] = None
    order_index: int = 0


class BannerResponse(BannerCreate):
    id: uuid.UUID
    is_active: bool


# ── Orders ────────────────────────────────────────────────────

class OrderCreateRequest(BaseSchema):
    service_id: uuid.UUID
    scheduled_date: date
    scheduled_time: time
    address: str = Field(..., min_length=1, max_length=1000)
    payment_method: Literal["balance", "cash"] = "balance"
    notes: Optional[str] = Field(None, max_length=1000)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class OrderResponse(BaseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    mitra_id: Optional[uuid.UUID]
    service_id: Optional[uuid.UUID]
    service_name: str
    total_price: float
    duration_minutes: int
    scheduled_date: date
    scheduled_time: time
    address: str
    latitude: Optional[float]
    longitude: Optional[float]
    payment_method: EnumStr
    notes: Optional[str]
    status: EnumStr
    rating: Optional[int]
    review: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: datetime


class OrderReviewRequest(BaseSchema):
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(None, max_length=2000)


class AcceptOrderResponse(BaseSchema):
    order: OrderResponse
    commission: float
    balance: float


# ── Balance ───────────────────────────────────────────────────

class TopUpRequest(BaseSchema):
    amount: int


class BalanceResponse(BaseSchema):
    balance: float
    role: EnumStr


class BalanceTransactionResponse(BaseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    type: EnumStr
    amount: float
    description: Optional[str]
    order_id: Optional[uuid.UUID]
    voucher_id: Optional[uuid.UUID]
    created_at: datetime


class TopUpResponse(BaseSchema):
    balance: float
    transaction: BalanceTransactionResponse


# ── Vouchers ──────────────────────────────────────────────────

class VoucherCreate(BaseSchema):
    code: str = Field(..., min_length=3, max_length=50)
    title: str = Field(..., min_length=1, max_length=255)
    amount: float = Field(..., gt=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    valid_until: Optional[date] = None

    @field_validator("code")
    @classmethod
    def normalise_code(cls, v: str) -> str:
        return v.strip().upper()


class VoucherResponse(BaseSchema):
    id: uuid.UUID
    code: str
    title: str
    amount: float
    usage_limit: Optional[int]
    used_count: int
    valid_until: Optional[date]
    is_active: bool


class RedeemVoucherRequest(BaseSchema):
    code: str = Field(..., max_length=50)

    @field_validator("code")
    @classmethod
    def normalise_code(cls, v: str) -> str:
        return v.strip().upper()


class RedeemVoucherResponse(BaseSchema):
    balance: float
    amount: float
    voucher: VoucherResponse


# ── Verification ──────────────────────────────────────────────

class MitraVerificationResponse(BaseSchema):
    id: uuid.UUID
    mitra_id: uuid.UUID
    ktp_image: str
    kk_image: str
    status: EnumStr
    rejection_reason: Optional[str]
    submitted_at: datetime
    reviewed_at: Optional[datetime]
    reviewed_by: Optional[uuid.UUID]


class PendingVerificationResponse(MitraVerificationResponse):
    full_name: Optional[str] = None
    phone: Optional[str] = None


class RejectVerificationRequest(BaseSchema):
    reason: str = Field(..., min_length=3, max_length=500)


# ── Chat ──────────────────────────────────────────────────────

class ChatMessageCreate(BaseSchema):
    message: str = Field(..., max_length=4000)
    order_id: Optional[uuid.UUID] = None


class ChatMessageResponse(BaseSchema):
    id: uuid.UUID
    sender_id: uuid.UUID
    receiver_id: uuid.UUID
    order_id: Optional[uuid.UUID]
    message: str
    is_read: bool
    created_at: datetime
    sender_name: Optional[str] = None
    receiver_name: Optional[str] = None


# ── Admin ─────────────────────────────────────────────────────

class AdminStatsResponse(BaseSchema):
    total_users: int
    total_mitra: int
    total_orders: int
    total_revenue: float


# ── Generic ───────────────────────────────────────────────────

class MessageResponse(BaseSchema):
    message: str
    success: bool = True


class ErrorResponse(BaseSchema):
    detail: str
    code: Optional[str] = None

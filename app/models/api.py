"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.

Request bodies accept the camelCase field names used by the web client
(celebrityId, mpesaCode, ...) and the snake_case attribute names.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator

# Money travels as Decimal internally and as a JSON number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class SubscriptionTier(str, Enum):
    """Subscription service level."""

    STARTER = "starter"
    BASIC_PRO = "basic_pro"
    PRIME_PLUS = "prime_plus"
    VIP_ELITE = "vip_elite"


class DurationType(str, Enum):
    """Billing period."""

    ONE_WEEK = "1_week"
    TWO_WEEKS = "2_weeks"
    ONE_MONTH = "1_month"


class PaymentStatus(str, Enum):
    """Claimed amount compared against the expected catalog price."""

    UNDERPAID = "underpaid"
    PAID = "paid"
    OVERPAID = "overpaid"


class PaymentType(str, Enum):
    """How a payment record came to exist."""

    STANDARD = "standard"
    PROMOTIONAL_OFFER = "promotional_offer"


class ReminderType(str, Enum):
    """Expiry reminder kinds, keyed by days until expiry."""

    THREE_DAYS = "3_days"
    ONE_DAY = "1_day"
    EXPIRY_DAY = "expiry_day"


class ReminderStatus(str, Enum):
    """Delivery outcome of a reminder attempt."""

    SENT = "sent"
    FAILED = "failed"


class RequestModel(BaseModel):
    """Base for request bodies - camelCase aliases, snake_case names also accepted."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


# ============================================================================
# Payment Submission Models
# ============================================================================


class PaymentSubmissionRequest(RequestModel):
    """POST /v1/payments/submit request body."""

    celebrity_id: UUID = Field(..., alias="celebrityId")
    phone_number: str = Field(..., alias="phoneNumber", min_length=1, max_length=32)
    mpesa_code: str = Field(..., alias="mpesaCode", min_length=1, max_length=64)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    tier: SubscriptionTier | None = None
    duration: DurationType | None = None
    expected_amount: Decimal | None = Field(
        None, alias="expectedAmount", ge=0, max_digits=12, decimal_places=2
    )


class PaymentRecordResponse(BaseModel):
    """Persisted payment claim."""

    id: UUID
    celebrity_id: UUID
    phone_number: str
    mpesa_code: str
    amount: Money
    expected_amount: Money
    subscription_tier: SubscriptionTier | None
    duration_type: DurationType | None
    payment_status: PaymentStatus
    credit_balance: Money
    is_verified: bool
    verified_at: datetime | None
    verified_by: str | None
    payment_date: datetime
    payment_type: PaymentType


class PaymentSubmissionResponse(BaseModel):
    """POST /v1/payments/submit response."""

    success: bool = True
    message: str
    warning: str
    payment_status: PaymentStatus
    credit_balance: Money
    data: PaymentRecordResponse


# ============================================================================
# Admin Workflow Models
# ============================================================================


class VerifyPaymentRequest(RequestModel):
    """POST /admin/payments/verify request body."""

    payment_id: UUID = Field(..., alias="paymentId")


class VerifyPaymentResponse(BaseModel):
    """POST /admin/payments/verify response."""

    success: bool = True
    message: str
    is_underpaid: bool = Field(False, serialization_alias="isUnderpaid")
    already_verified: bool = Field(False, serialization_alias="alreadyVerified")
    subscription_end: datetime | None = None
    failed_steps: list[str] = Field(default_factory=list)


class PromotionalActivationRequest(RequestModel):
    """POST /admin/promotions/activate request body."""

    celebrity_id: UUID = Field(..., alias="celebrityId")
    offer_amount: Decimal = Field(..., alias="offerAmount", ge=0, max_digits=12, decimal_places=2)


class PromotionalActivationResponse(BaseModel):
    """POST /admin/promotions/activate response."""

    success: bool = True
    message: str
    payment_id: UUID
    subscription_end: datetime
    failed_steps: list[str] = Field(default_factory=list)


class ForceExpireRequest(RequestModel):
    """POST /admin/subscriptions/force-expire request body."""

    celebrity_ids: list[UUID] = Field(..., alias="celebrityIds")


class ForceExpireResponse(BaseModel):
    """POST /admin/subscriptions/force-expire response."""

    success: bool = True
    message: str
    subscriptions_expired: int
    profiles_updated: int


# ============================================================================
# Subscription / Catalog Models
# ============================================================================


class SubscriptionStatusResponse(BaseModel):
    """GET /v1/subscriptions/{celebrity_id} response."""

    celebrity_id: UUID
    subscription_tier: SubscriptionTier | None
    duration_type: DurationType | None
    subscription_start: datetime | None
    subscription_end: datetime | None
    is_active: bool
    effectively_active: bool
    amount_paid: Money | None
    last_payment_id: UUID | None


class ExpiredSubscriptionItem(BaseModel):
    """Expired subscription row for the admin follow-up list."""

    celebrity_id: UUID
    stage_name: str | None
    phone_number: str | None
    subscription_tier: SubscriptionTier | None
    subscription_end: datetime
    days_expired: int


class ExpiredSubscriptionListResponse(BaseModel):
    """GET /admin/subscriptions/expired response."""

    subscriptions: list[ExpiredSubscriptionItem]
    total: int


class PackageResponse(BaseModel):
    """Subscription package price."""

    tier_name: SubscriptionTier
    duration_type: DurationType
    price: Money
    is_active: bool
    display_order: int


class PackageUpsertRequest(RequestModel):
    """PUT /admin/packages request body."""

    tier_name: SubscriptionTier = Field(..., alias="tier")
    duration_type: DurationType = Field(..., alias="duration")
    price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    is_active: bool = Field(True, alias="isActive")
    display_order: int = Field(0, alias="displayOrder", ge=0)


# ============================================================================
# Admin Review Models
# ============================================================================


class PaymentListItem(PaymentRecordResponse):
    """Payment row enriched with the celebrity's stage name."""

    stage_name: str | None = None


class PaymentStats(BaseModel):
    """Aggregates shown above the admin payment list."""

    total_payments: int
    total_amount: Money
    verified_payments: int
    verified_amount: Money
    pending_payments: int
    pending_amount: Money


class PaymentListResponse(BaseModel):
    """GET /admin/payments response."""

    payments: list[PaymentListItem]
    stats: PaymentStats


class ReminderRunResponse(BaseModel):
    """POST /admin/reminders/send response."""

    success: bool = True
    message: str
    reminders_sent: int
    reminders_failed: int


# ============================================================================
# Admin Auth Models
# ============================================================================


class AdminCredentialsRequest(RequestModel):
    """Admin signup/signin request body."""

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8, max_length=256)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Lower-case and sanity check the email address."""
        if "@" not in v:
            raise ValueError("email must be a valid email address")
        return v.lower()


class AdminCreateRequest(AdminCredentialsRequest):
    """POST /admin/auth/admins request body."""

    is_super_admin: bool = Field(False, alias="isSuperAdmin")


class AdminResponse(BaseModel):
    """Admin user (without credentials)."""

    id: UUID
    email: str
    is_super_admin: bool


class AdminSignupResponse(BaseModel):
    """POST /admin/auth/signup and /admin/auth/admins response."""

    success: bool = True
    admin: AdminResponse


class AdminSigninResponse(BaseModel):
    """POST /admin/auth/signin response."""

    success: bool = True
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    admin: AdminResponse


# ============================================================================
# Envelope / Health Models
# ============================================================================


class ErrorResponse(BaseModel):
    """Error envelope returned for every failed request."""

    success: bool = False
    error: str
    message: str
    stage: str | None = None
    completed_steps: list[str] | None = None


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    database: str
    timestamp: datetime

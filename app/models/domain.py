"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from app.models.api import (
    DurationType,
    PaymentStatus,
    PaymentType,
    ReminderType,
    SubscriptionTier,
)

ZERO = Decimal("0")

DURATION_DAYS: dict[DurationType, int] = {
    DurationType.ONE_WEEK: 7,
    DurationType.TWO_WEEKS: 14,
    DurationType.ONE_MONTH: 30,
}
DEFAULT_DURATION_DAYS = 30


def duration_days(duration: DurationType | str | None) -> int:
    """Map a duration type to its day count; unknown or missing durations bill as a month."""
    if duration is None:
        return DEFAULT_DURATION_DAYS
    try:
        return DURATION_DAYS[DurationType(duration)]
    except ValueError:
        return DEFAULT_DURATION_DAYS


def subscription_end_from(start: datetime, duration: DurationType | str | None) -> datetime:
    """Compute the end of a subscription period starting at ``start``."""
    return start + timedelta(days=duration_days(duration))


@dataclass(frozen=True)
class PaymentAssessment:
    """Outcome of comparing a claimed amount with the expected price."""

    payment_status: PaymentStatus
    credit_balance: Decimal


def assess_payment(amount: Decimal, expected_amount: Decimal) -> PaymentAssessment:
    """
    Classify a payment claim.

    amount < expected  -> underpaid, no credit
    amount == expected -> paid, no credit
    amount > expected  -> overpaid, credit = amount - expected
    """
    if amount < expected_amount:
        return PaymentAssessment(PaymentStatus.UNDERPAID, ZERO)
    if amount == expected_amount:
        return PaymentAssessment(PaymentStatus.PAID, ZERO)
    return PaymentAssessment(PaymentStatus.OVERPAID, amount - expected_amount)


def is_underpaid(amount: Decimal, expected_amount: Decimal | None) -> bool:
    """Underpayment only counts when an expected price was actually set."""
    if not expected_amount:
        return False
    return amount < expected_amount


def is_effectively_active(
    is_active: bool, subscription_end: datetime | None, now: datetime
) -> bool:
    """A subscription counts as active only while flagged active AND not past its end."""
    return is_active and subscription_end is not None and subscription_end > now


def format_amount(value: Decimal) -> str:
    """Render money for human-readable messages (no decimals for whole amounts)."""
    if value == value.to_integral_value():
        return f"{value:,.0f}"
    return f"{value:,.2f}"


# ============================================================================
# Caller Identity
# ============================================================================


@dataclass(frozen=True)
class CallerIdentity:
    """Authenticated caller resolved from a bearer token."""

    user_id: str
    email: str

    def __post_init__(self) -> None:
        """Validate identity fields."""
        if not self.user_id:
            raise ValueError("user_id cannot be empty")
        if "@" not in self.email:
            raise ValueError(f"Invalid caller email: {self.email}")


@dataclass(frozen=True)
class AdminIdentity:
    """Caller confirmed to be present in the admin set."""

    admin_id: UUID
    user_id: str
    email: str
    is_super_admin: bool


# ============================================================================
# Workflow Intents and Results
# ============================================================================


@dataclass(frozen=True)
class PaymentSubmission:
    """Payment claim before persistence - immutable intent."""

    celebrity_id: UUID
    phone_number: str
    mpesa_code: str
    amount: Decimal
    tier: SubscriptionTier | None = None
    duration: DurationType | None = None
    expected_amount: Decimal | None = None


@dataclass(frozen=True)
class PaymentData:
    """Immutable payment record snapshot."""

    payment_id: UUID
    celebrity_id: UUID
    phone_number: str
    mpesa_code: str
    amount: Decimal
    expected_amount: Decimal
    subscription_tier: SubscriptionTier | None
    duration_type: DurationType | None
    payment_status: PaymentStatus
    credit_balance: Decimal
    is_verified: bool
    verified_at: datetime | None
    verified_by: str | None
    payment_date: datetime
    payment_type: PaymentType


@dataclass(frozen=True)
class SubmissionResult:
    """Result of a payment submission."""

    payment: PaymentData
    message: str
    warning: str
    subscription_recorded: bool


@dataclass(frozen=True)
class VerificationResult:
    """Result of an admin payment verification."""

    message: str
    is_underpaid: bool
    already_verified: bool
    subscription_end: datetime | None = None
    failed_steps: tuple[str, ...] = ()


@dataclass(frozen=True)
class PromotionResult:
    """Result of a promotional activation."""

    message: str
    payment_id: UUID
    subscription_end: datetime
    failed_steps: tuple[str, ...] = ()


@dataclass(frozen=True)
class ExpiryResult:
    """Result of a forced expiry run."""

    requested: int
    subscriptions_expired: int
    profiles_updated: int


@dataclass(frozen=True)
class DueReminder:
    """A subscription that needs an expiry reminder today."""

    celebrity_id: UUID
    subscription_id: UUID
    celebrity_name: str
    phone_number: str
    subscription_tier: SubscriptionTier | None
    subscription_end: datetime
    reminder_type: ReminderType
    days_until_expiry: int


@dataclass
class ReminderRunSummary:
    """Counts from one reminder dispatch run."""

    sent: int = 0
    failed: int = 0
    failures: list[str] = field(default_factory=list)

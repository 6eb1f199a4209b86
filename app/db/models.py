"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class AwareDateTime(TypeDecorator[datetime]):
    """DateTime that is always stored as UTC and loaded timezone-aware."""

    impl = DateTime
    cache_ok = True

    def __init__(self) -> None:
        super().__init__(timezone=True)

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is not None:
            return value.astimezone(UTC)
        return value

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


MONEY = Numeric(12, 2)


class CelebrityProfile(Base):
    """
    ORM model for celebrity_profiles table.

    Only the columns the billing workflow reads or writes are mapped here;
    the directory front-end owns the rest of the profile.
    """

    __tablename__ = "celebrity_profiles"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    stage_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Flags derived from subscription state - always written as a pair
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(AwareDateTime(), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        AwareDateTime(), nullable=False, default=utc_now, onupdate=utc_now
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<CelebrityProfile(id={self.id}, stage_name={self.stage_name}, "
            f"is_verified={self.is_verified}, is_available={self.is_available})>"
        )


class SubscriptionPackage(Base):
    """
    ORM model for subscription_packages table.

    Price catalog keyed by (tier_name, duration_type).
    """

    __tablename__ = "subscription_packages"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tier_name: Mapped[str] = mapped_column(String(50), nullable=False)
    duration_type: Mapped[str] = mapped_column(String(20), nullable=False)
    price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(AwareDateTime(), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        AwareDateTime(), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_package_price_non_negative"),
        UniqueConstraint("tier_name", "duration_type", name="uq_package_tier_duration"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<SubscriptionPackage(tier={self.tier_name}, duration={self.duration_type}, "
            f"price={self.price}, is_active={self.is_active})>"
        )


class PaymentVerification(Base):
    """
    ORM model for payment_verifications table.

    One row per submitted payment claim. payment_status and credit_balance
    are written by the service layer from assess_payment(), never set directly.
    """

    __tablename__ = "payment_verifications"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    celebrity_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("celebrity_profiles.id", ondelete="CASCADE"), nullable=False
    )

    # Payer supplied identifiers (normalized)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False)
    mpesa_code: Mapped[str] = mapped_column(String(128), nullable=False)

    # Amounts
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    expected_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    credit_balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))

    # What the payment buys (absent for free-form payments)
    subscription_tier: Mapped[str | None] = mapped_column(String(50), nullable=True)
    duration_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_type: Mapped[str] = mapped_column(String(30), nullable=False, default="standard")

    # Verification - is_verified only ever moves false -> true
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified_at: Mapped[datetime | None] = mapped_column(AwareDateTime(), nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    payment_date: Mapped[datetime] = mapped_column(AwareDateTime(), nullable=False, default=utc_now)
    created_at: Mapped[datetime] = mapped_column(AwareDateTime(), nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payment_amount_non_negative"),
        CheckConstraint("expected_amount >= 0", name="ck_payment_expected_non_negative"),
        CheckConstraint("credit_balance >= 0", name="ck_payment_credit_non_negative"),
        CheckConstraint(
            "payment_status IN ('underpaid', 'paid', 'overpaid')",
            name="ck_payment_status_valid",
        ),
        Index("idx_payments_celebrity_id", "celebrity_id"),
        Index("idx_payments_created_at", "created_at"),
        Index("idx_payments_is_verified", "is_verified"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<PaymentVerification(id={self.id}, celebrity_id={self.celebrity_id}, "
            f"amount={self.amount}, status={self.payment_status}, verified={self.is_verified})>"
        )


class CelebritySubscription(Base):
    """
    ORM model for celebrity_subscriptions table.

    At most one row per celebrity (celebrity_id is unique); writers upsert.
    """

    __tablename__ = "celebrity_subscriptions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    celebrity_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("celebrity_profiles.id", ondelete="CASCADE"), nullable=False
    )

    subscription_tier: Mapped[str | None] = mapped_column(String(50), nullable=True)
    duration_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    subscription_start: Mapped[datetime | None] = mapped_column(AwareDateTime(), nullable=True)
    subscription_end: Mapped[datetime | None] = mapped_column(AwareDateTime(), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    amount_paid: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    last_payment_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("payment_verifications.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(AwareDateTime(), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        AwareDateTime(), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("celebrity_id", name="uq_subscription_celebrity"),
        Index("idx_subscriptions_end", "subscription_end"),
        Index("idx_subscriptions_active", "is_active"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<CelebritySubscription(celebrity_id={self.celebrity_id}, "
            f"tier={self.subscription_tier}, active={self.is_active}, "
            f"end={self.subscription_end})>"
        )


class AdminUser(Base):
    """
    ORM model for admin_users table.

    Membership in this table is what makes a caller an admin.
    """

    __tablename__ = "admin_users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    is_super_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_login_at: Mapped[datetime | None] = mapped_column(AwareDateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(AwareDateTime(), nullable=False, default=utc_now)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<AdminUser(id={self.id}, email={self.email}, super={self.is_super_admin})>"


class SubscriptionReminderLog(Base):
    """
    ORM model for subscription_reminder_logs table.

    One row per reminder delivery attempt, successful or not.
    """

    __tablename__ = "subscription_reminder_logs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    celebrity_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("celebrity_profiles.id", ondelete="CASCADE"), nullable=False
    )
    subscription_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("celebrity_subscriptions.id", ondelete="CASCADE"), nullable=False
    )
    reminder_type: Mapped[str] = mapped_column(String(20), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False)
    message_sent: Mapped[str] = mapped_column(Text, nullable=False)
    twilio_message_sid: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(AwareDateTime(), nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("status IN ('sent', 'failed')", name="ck_reminder_status_valid"),
        Index("idx_reminder_logs_subscription", "subscription_id", "reminder_type"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<SubscriptionReminderLog(subscription_id={self.subscription_id}, "
            f"type={self.reminder_type}, status={self.status})>"
        )

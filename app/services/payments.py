"""
Payment Service - Payment submission, admin verification and review.

NO DICTIONARIES - All operations use strongly typed domain models.

Multi-record writes run through WorkflowRun: every step commits on its own
and the result reports which steps failed.
"""

import re
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.models import CelebrityProfile, PaymentVerification
from app.exceptions import (
    CelebrityNotFoundError,
    PaymentNotFoundError,
    ValidationError,
    WriteVerificationError,
)
from app.models.api import (
    DurationType,
    PaymentListItem,
    PaymentStats,
    PaymentStatus,
    PaymentType,
    SubscriptionTier,
)
from app.models.domain import (
    ZERO,
    AdminIdentity,
    PaymentData,
    PaymentSubmission,
    SubmissionResult,
    VerificationResult,
    assess_payment,
    format_amount,
    is_underpaid,
    subscription_end_from,
)
from app.observability.logging import get_logger
from app.observability.metrics import metrics
from app.services.pricing import PricingCatalog
from app.services.subscriptions import SubscriptionService
from app.services.workflow import WorkflowRun

logger = get_logger(__name__)

SUBMISSION_MESSAGE = "Payment verification submitted successfully"


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def to_payment_data(payment: PaymentVerification) -> PaymentData:
    """Snapshot an ORM payment row."""
    return PaymentData(
        payment_id=payment.id,
        celebrity_id=payment.celebrity_id,
        phone_number=payment.phone_number,
        mpesa_code=payment.mpesa_code,
        amount=payment.amount,
        expected_amount=payment.expected_amount,
        subscription_tier=(
            SubscriptionTier(payment.subscription_tier) if payment.subscription_tier else None
        ),
        duration_type=DurationType(payment.duration_type) if payment.duration_type else None,
        payment_status=PaymentStatus(payment.payment_status),
        credit_balance=payment.credit_balance,
        is_verified=payment.is_verified,
        verified_at=payment.verified_at,
        verified_by=payment.verified_by,
        payment_date=payment.payment_date,
        payment_type=PaymentType(payment.payment_type),
    )


def payment_warning(
    status: PaymentStatus, amount: Decimal, expected: Decimal, credit: Decimal
) -> str:
    """Human readable note about the amount paid versus the amount expected."""
    currency = settings.currency_label
    if status == PaymentStatus.UNDERPAID:
        return (
            f"Payment ({currency} {format_amount(amount)}) is less than expected "
            f"({currency} {format_amount(expected)}). "
            "Subscription will be disabled until full payment is received."
        )
    if status == PaymentStatus.OVERPAID:
        return (
            f"Payment received! Extra {currency} {format_amount(credit)} "
            "will be credited to your account for future use."
        )
    return ""


def normalize_submission(submission: PaymentSubmission) -> PaymentSubmission:
    """
    Trim and upper-case the payer identifiers and check them against the
    configured formats.

    Raises:
        ValidationError: Missing or malformed field
    """
    phone_number = (submission.phone_number or "").strip()
    mpesa_code = (submission.mpesa_code or "").strip().upper()

    if not phone_number:
        raise ValidationError("phoneNumber is required", field="phoneNumber")
    if not mpesa_code:
        raise ValidationError("mpesaCode is required", field="mpesaCode")
    if not re.fullmatch(settings.phone_number_pattern, phone_number):
        raise ValidationError(
            "Invalid phone number format. Use +254XXXXXXXXX", field="phoneNumber"
        )
    if not re.fullmatch(settings.reference_code_pattern, mpesa_code):
        raise ValidationError("Invalid M-Pesa transaction code format", field="mpesaCode")
    if submission.amount <= 0 or submission.amount > settings.max_payment_amount:
        raise ValidationError(
            f"Amount must be greater than 0 and at most {settings.max_payment_amount}",
            field="amount",
        )
    if submission.expected_amount is not None and submission.expected_amount < 0:
        raise ValidationError("expectedAmount must not be negative", field="expectedAmount")

    return PaymentSubmission(
        celebrity_id=submission.celebrity_id,
        phone_number=phone_number,
        mpesa_code=mpesa_code,
        amount=submission.amount,
        tier=submission.tier,
        duration=submission.duration,
        expected_amount=submission.expected_amount,
    )


class PaymentService:
    """
    Payment claims and their verification.

    Writes follow the pattern:
    1. Execute write
    2. Flush to database
    3. Read back and verify
    4. Commit (one transaction per workflow step)
    """

    def __init__(self, session: AsyncSession, now: Callable[[], datetime] = _utc_now) -> None:
        self.session = session
        self._now = now
        self.pricing = PricingCatalog(session)
        self.subscriptions = SubscriptionService(session, now=now)

    async def submit_payment(self, submission: PaymentSubmission) -> SubmissionResult:
        """
        Record a payment claim.

        Steps:
        1. insert_payment - primary
        2. record_pending_subscription - secondary, only when a tier is given

        Raises:
            ValidationError: Malformed input
            CelebrityNotFoundError: Unknown celebrity
            WorkflowStepError: The payment insert failed
        """
        submission = normalize_submission(submission)

        if await self.session.get(CelebrityProfile, submission.celebrity_id) is None:
            raise CelebrityNotFoundError(submission.celebrity_id)

        if submission.expected_amount is not None:
            expected = submission.expected_amount
        elif submission.tier is not None and submission.duration is not None:
            expected = await self.pricing.get_price(submission.tier, submission.duration)
        else:
            expected = ZERO

        assessment = assess_payment(submission.amount, expected)
        now = self._now()
        run = WorkflowRun("submit_payment", self.session)

        async def insert_payment() -> PaymentData:
            payment = PaymentVerification(
                celebrity_id=submission.celebrity_id,
                phone_number=submission.phone_number,
                mpesa_code=submission.mpesa_code,
                amount=submission.amount,
                expected_amount=expected,
                payment_status=assessment.payment_status.value,
                credit_balance=assessment.credit_balance,
                subscription_tier=submission.tier.value if submission.tier else None,
                duration_type=submission.duration.value if submission.duration else None,
                payment_type=PaymentType.STANDARD.value,
                is_verified=False,
                payment_date=now,
                created_at=now,
            )
            self.session.add(payment)
            await self.session.flush()

            verified = await self.session.get(PaymentVerification, payment.id)
            if verified is None:
                raise WriteVerificationError(f"Payment {payment.id} not found after insert")
            return to_payment_data(verified)

        payment = await run.step("insert_payment", insert_payment)
        assert payment is not None

        subscription_recorded = False
        if submission.tier is not None:
            duration = submission.duration or DurationType.ONE_MONTH
            recorded = await run.step(
                "record_pending_subscription",
                lambda: self.subscriptions.upsert_subscription(
                    celebrity_id=submission.celebrity_id,
                    tier=submission.tier,
                    duration=duration,
                    start=now,
                    end=subscription_end_from(now, duration),
                    is_active=False,
                    amount_paid=submission.amount,
                    last_payment_id=payment.payment_id,
                ),
                secondary=True,
            )
            subscription_recorded = recorded is not None

        metrics.record_payment_submission(assessment.payment_status.value, float(submission.amount))
        logger.info(
            "payment_submitted",
            payment_id=str(payment.payment_id),
            celebrity_id=str(submission.celebrity_id),
            amount=str(submission.amount),
            expected_amount=str(expected),
            payment_status=assessment.payment_status.value,
            subscription_recorded=subscription_recorded,
        )

        return SubmissionResult(
            payment=payment,
            message=SUBMISSION_MESSAGE,
            warning=payment_warning(
                assessment.payment_status, submission.amount, expected, assessment.credit_balance
            ),
            subscription_recorded=subscription_recorded,
        )

    async def verify_payment(self, payment_id: UUID, admin: AdminIdentity) -> VerificationResult:
        """
        Verify a payment and, when fully paid, activate the subscription.

        Steps:
        1. mark_verified - primary
        2. activate_subscription - primary, skipped when underpaid or untiered
        3. update_profile_flags - secondary

        Raises:
            PaymentNotFoundError: Unknown payment
            WorkflowStepError: A primary step failed
        """
        payment = await self._lock_payment(payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)

        underpaid = is_underpaid(payment.amount, payment.expected_amount)

        if payment.is_verified:
            # Release the row lock without writing anything
            await self.session.rollback()
            metrics.record_verification("already_verified")
            logger.info("payment_already_verified", payment_id=str(payment_id))
            return VerificationResult(
                message="Payment already verified",
                is_underpaid=underpaid,
                already_verified=True,
            )

        snapshot = to_payment_data(payment)
        now = self._now()
        run = WorkflowRun("verify_payment", self.session)

        async def mark_verified() -> None:
            payment.is_verified = True
            payment.verified_at = now
            payment.verified_by = str(admin.admin_id)
            await self.session.flush()

            verified = await self.session.get(PaymentVerification, payment_id)
            if verified is None or not verified.is_verified:
                raise WriteVerificationError(f"Payment {payment_id} not verified after update")

        await run.step("mark_verified", mark_verified)

        message = "Payment verified successfully"
        subscription_end: datetime | None = None

        if underpaid:
            message = "Payment verified but subscription not activated due to insufficient amount"
            metrics.record_verification("underpaid")

        elif snapshot.subscription_tier is not None and snapshot.duration_type is not None:
            subscription_end = subscription_end_from(now, snapshot.duration_type)
            await run.step(
                "activate_subscription",
                lambda: self.subscriptions.upsert_subscription(
                    celebrity_id=snapshot.celebrity_id,
                    tier=snapshot.subscription_tier,
                    duration=snapshot.duration_type,
                    start=now,
                    end=subscription_end,
                    is_active=True,
                    amount_paid=snapshot.amount,
                    last_payment_id=snapshot.payment_id,
                ),
            )
            await run.step(
                "update_profile_flags",
                lambda: self.subscriptions.activate_profile(snapshot.celebrity_id),
                secondary=True,
            )

            message = "Payment verified and subscription activated"
            if snapshot.credit_balance > 0:
                message += (
                    f". {settings.currency_label} {format_amount(snapshot.credit_balance)} "
                    "credited to celebrity account."
                )
            metrics.record_verification("activated")
            metrics.record_activation("verification")

        else:
            metrics.record_verification("verified")

        logger.info(
            "payment_verified",
            payment_id=str(payment_id),
            celebrity_id=str(snapshot.celebrity_id),
            admin_email=admin.email,
            is_underpaid=underpaid,
            completed_steps=run.completed_steps,
            failed_steps=run.failed_steps,
        )

        return VerificationResult(
            message=message,
            is_underpaid=underpaid,
            already_verified=False,
            subscription_end=subscription_end,
            failed_steps=tuple(run.failed_steps),
        )

    async def list_payments(
        self,
        verified: bool | None = None,
        celebrity_id: UUID | None = None,
        limit: int = 200,
    ) -> tuple[list[PaymentListItem], PaymentStats]:
        """Payments newest first with the celebrity's stage name, plus totals."""
        stmt = (
            select(PaymentVerification, CelebrityProfile.stage_name)
            .outerjoin(CelebrityProfile, CelebrityProfile.id == PaymentVerification.celebrity_id)
            .order_by(PaymentVerification.created_at.desc())
            .limit(limit)
        )
        if verified is not None:
            stmt = stmt.where(PaymentVerification.is_verified.is_(verified))
        if celebrity_id is not None:
            stmt = stmt.where(PaymentVerification.celebrity_id == celebrity_id)

        rows = (await self.session.execute(stmt)).all()

        items: list[PaymentListItem] = []
        verified_count = 0
        total_amount = verified_amount = ZERO
        for payment, stage_name in rows:
            data = to_payment_data(payment)
            items.append(
                PaymentListItem(
                    id=data.payment_id,
                    celebrity_id=data.celebrity_id,
                    phone_number=data.phone_number,
                    mpesa_code=data.mpesa_code,
                    amount=data.amount,
                    expected_amount=data.expected_amount,
                    subscription_tier=data.subscription_tier,
                    duration_type=data.duration_type,
                    payment_status=data.payment_status,
                    credit_balance=data.credit_balance,
                    is_verified=data.is_verified,
                    verified_at=data.verified_at,
                    verified_by=data.verified_by,
                    payment_date=data.payment_date,
                    payment_type=data.payment_type,
                    stage_name=stage_name,
                )
            )
            total_amount += data.amount
            if data.is_verified:
                verified_count += 1
                verified_amount += data.amount

        stats = PaymentStats(
            total_payments=len(items),
            total_amount=total_amount,
            verified_payments=verified_count,
            verified_amount=verified_amount,
            pending_payments=len(items) - verified_count,
            pending_amount=total_amount - verified_amount,
        )
        return items, stats

    async def _lock_payment(self, payment_id: UUID) -> PaymentVerification | None:
        stmt = (
            select(PaymentVerification)
            .where(PaymentVerification.id == payment_id)
            .with_for_update()
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

"""
Subscription Service - Subscription lifecycle and profile flag maintenance.

NO DICTIONARIES - All operations use strongly typed domain models.

Lifecycle:
    submission   -> upserted inactive
    verification -> upserted active, profile flags (true, true)
    promotion    -> inserted active, profile flags (true, true)
    forced expiry-> back-dated and inactive, profile flags (false, false)
"""

from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.models import CelebrityProfile, CelebritySubscription, PaymentVerification
from app.exceptions import (
    CelebrityNotFoundError,
    SubscriptionNotFoundError,
    ValidationError,
    WriteVerificationError,
)
from app.models.api import (
    DurationType,
    ExpiredSubscriptionItem,
    PaymentType,
    SubscriptionStatusResponse,
    SubscriptionTier,
)
from app.models.domain import (
    AdminIdentity,
    ExpiryResult,
    PromotionResult,
    assess_payment,
    is_effectively_active,
    subscription_end_from,
)
from app.observability.logging import get_logger
from app.observability.metrics import metrics
from app.services.workflow import WorkflowRun

logger = get_logger(__name__)


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def _optional_tier(value: str | None) -> SubscriptionTier | None:
    return SubscriptionTier(value) if value else None


def _optional_duration(value: str | None) -> DurationType | None:
    return DurationType(value) if value else None


class SubscriptionService:
    """
    Subscription writes and reads.

    Write helpers (upsert_subscription, set_profile_flags, ...) flush but do
    not commit; the calling WorkflowRun commits each step.
    """

    def __init__(self, session: AsyncSession, now: Callable[[], datetime] = _utc_now) -> None:
        self.session = session
        self._now = now

    # ========================================================================
    # Write helpers
    # ========================================================================

    async def upsert_subscription(
        self,
        *,
        celebrity_id: UUID,
        tier: SubscriptionTier | str | None,
        duration: DurationType | str | None,
        start: datetime,
        end: datetime,
        is_active: bool,
        amount_paid: Decimal | None,
        last_payment_id: UUID | None,
    ) -> CelebritySubscription:
        """
        Create or overwrite the celebrity's single subscription row.

        Must be the only pending write in the session: a lost insert race
        rolls the transaction back and retries as an update.
        """

        def apply(subscription: CelebritySubscription) -> None:
            subscription.subscription_tier = SubscriptionTier(tier).value if tier else None
            subscription.duration_type = DurationType(duration).value if duration else None
            subscription.subscription_start = start
            subscription.subscription_end = end
            subscription.is_active = is_active
            subscription.amount_paid = amount_paid
            subscription.last_payment_id = last_payment_id

        subscription = await self._lock_subscription(celebrity_id)

        if subscription is None:
            subscription = CelebritySubscription(celebrity_id=celebrity_id)
            apply(subscription)
            self.session.add(subscription)
            try:
                await self.session.flush()
            except IntegrityError:
                # Another writer inserted first - overwrite theirs (last writer wins)
                await self.session.rollback()
                subscription = await self._lock_subscription(celebrity_id)
                if subscription is None:
                    raise WriteVerificationError(
                        f"Subscription upsert for {celebrity_id} failed due to race condition"
                    ) from None
                logger.info("subscription_upsert_race_resolved", celebrity_id=str(celebrity_id))

        apply(subscription)
        await self.session.flush()

        verified = await self.session.get(CelebritySubscription, subscription.id)
        if verified is None or verified.is_active != is_active:
            raise WriteVerificationError(f"Subscription for {celebrity_id} not found after upsert")

        return verified

    async def set_profile_flags(self, celebrity_ids: Sequence[UUID], value: bool) -> int:
        """Write the (is_verified, is_available) pair; returns rows updated."""
        result = await self.session.execute(
            update(CelebrityProfile)
            .where(CelebrityProfile.id.in_(list(celebrity_ids)))
            .values(is_verified=value, is_available=value)
        )
        return int(result.rowcount or 0)  # type: ignore[attr-defined]

    async def activate_profile(self, celebrity_id: UUID) -> int:
        """Mark one celebrity verified and available."""
        updated = await self.set_profile_flags([celebrity_id], True)
        if updated != 1:
            raise WriteVerificationError(f"Profile {celebrity_id} flags not updated")
        return updated

    async def _lock_subscription(self, celebrity_id: UUID) -> CelebritySubscription | None:
        stmt = (
            select(CelebritySubscription)
            .where(CelebritySubscription.celebrity_id == celebrity_id)
            .with_for_update()
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def _expire_subscriptions(self, celebrity_ids: Sequence[UUID], ended_at: datetime) -> int:
        result = await self.session.execute(
            update(CelebritySubscription)
            .where(CelebritySubscription.celebrity_id.in_(list(celebrity_ids)))
            .values(subscription_end=ended_at, is_active=False, updated_at=self._now())
        )
        return int(result.rowcount or 0)  # type: ignore[attr-defined]

    # ========================================================================
    # Admin workflows
    # ========================================================================

    async def activate_promotional_offer(
        self,
        celebrity_id: UUID,
        offer_amount: Decimal,
        admin: AdminIdentity,
    ) -> PromotionResult:
        """
        Grant a promotional subscription.

        Steps:
        1. insert_payment - verified promotional payment record
        2. insert_subscription - active subscription (plain insert; an
           existing subscription fails this step)
        3. update_profile_flags - secondary
        """
        if offer_amount < 0:
            raise ValidationError("offerAmount must not be negative", field="offerAmount")

        celebrity = await self.session.get(CelebrityProfile, celebrity_id)
        if celebrity is None:
            raise CelebrityNotFoundError(celebrity_id)
        stage_name = celebrity.stage_name
        phone_number = celebrity.phone_number or ""

        now = self._now()
        tier = SubscriptionTier(settings.promotional_tier)
        duration = DurationType(settings.promotional_duration)
        end = subscription_end_from(now, duration)
        assessment = assess_payment(offer_amount, offer_amount)
        reference = f"PROMO_OFFER_{celebrity_id}_{int(now.timestamp() * 1000)}"

        run = WorkflowRun("activate_promotional_offer", self.session)

        async def insert_payment() -> UUID:
            payment = PaymentVerification(
                celebrity_id=celebrity_id,
                phone_number=phone_number,
                mpesa_code=reference,
                amount=offer_amount,
                expected_amount=offer_amount,
                payment_status=assessment.payment_status.value,
                credit_balance=assessment.credit_balance,
                subscription_tier=tier.value,
                duration_type=duration.value,
                payment_type=PaymentType.PROMOTIONAL_OFFER.value,
                is_verified=True,
                verified_at=now,
                verified_by=str(admin.admin_id),
                payment_date=now,
            )
            self.session.add(payment)
            await self.session.flush()
            if await self.session.get(PaymentVerification, payment.id) is None:
                raise WriteVerificationError(f"Payment {payment.id} not found after insert")
            return payment.id

        payment_id = await run.step("insert_payment", insert_payment)
        assert payment_id is not None

        async def insert_subscription() -> UUID:
            subscription = CelebritySubscription(
                celebrity_id=celebrity_id,
                subscription_tier=tier.value,
                duration_type=duration.value,
                subscription_start=now,
                subscription_end=end,
                is_active=True,
                amount_paid=offer_amount,
                last_payment_id=payment_id,
            )
            self.session.add(subscription)
            await self.session.flush()
            return subscription.id

        await run.step("insert_subscription", insert_subscription)
        await run.step(
            "update_profile_flags", lambda: self.activate_profile(celebrity_id), secondary=True
        )

        metrics.record_activation("promotion")
        logger.info(
            "promotional_offer_activated",
            celebrity_id=str(celebrity_id),
            payment_id=str(payment_id),
            offer_amount=str(offer_amount),
            subscription_end=end.isoformat(),
            admin_email=admin.email,
            failed_steps=run.failed_steps,
        )

        return PromotionResult(
            message=f"Promotional offer activated successfully for {stage_name}",
            payment_id=payment_id,
            subscription_end=end,
            failed_steps=tuple(run.failed_steps),
        )

    async def force_expire(
        self, celebrity_ids: Sequence[UUID], admin: AdminIdentity
    ) -> ExpiryResult:
        """
        Immediately end the listed celebrities' subscriptions.

        Steps (both primary):
        1. expire_subscriptions - end = now - backdate, is_active = false
        2. clear_profile_flags - (false, false)
        """
        ids = list(dict.fromkeys(celebrity_ids))
        if not ids:
            logger.info("subscriptions_force_expired", requested=0, admin_email=admin.email)
            return ExpiryResult(requested=0, subscriptions_expired=0, profiles_updated=0)

        ended_at = self._now() - timedelta(minutes=settings.forced_expiry_backdate_minutes)
        run = WorkflowRun("force_expire", self.session)

        expired = await run.step(
            "expire_subscriptions", lambda: self._expire_subscriptions(ids, ended_at)
        )
        cleared = await run.step("clear_profile_flags", lambda: self.set_profile_flags(ids, False))

        metrics.record_forced_expiry(expired or 0)
        logger.info(
            "subscriptions_force_expired",
            requested=len(ids),
            subscriptions_expired=expired,
            profiles_updated=cleared,
            admin_email=admin.email,
        )

        return ExpiryResult(
            requested=len(ids),
            subscriptions_expired=expired or 0,
            profiles_updated=cleared or 0,
        )

    # ========================================================================
    # Reads
    # ========================================================================

    async def get_status(self, celebrity_id: UUID) -> SubscriptionStatusResponse:
        """Current subscription with the time-derived effectively_active flag."""
        stmt = select(CelebritySubscription).where(
            CelebritySubscription.celebrity_id == celebrity_id
        )
        subscription = (await self.session.execute(stmt)).scalar_one_or_none()
        if subscription is None:
            raise SubscriptionNotFoundError(celebrity_id)

        return SubscriptionStatusResponse(
            celebrity_id=subscription.celebrity_id,
            subscription_tier=_optional_tier(subscription.subscription_tier),
            duration_type=_optional_duration(subscription.duration_type),
            subscription_start=subscription.subscription_start,
            subscription_end=subscription.subscription_end,
            is_active=subscription.is_active,
            effectively_active=is_effectively_active(
                subscription.is_active, subscription.subscription_end, self._now()
            ),
            amount_paid=subscription.amount_paid,
            last_payment_id=subscription.last_payment_id,
        )

    async def list_expired(self, limit: int = 100) -> list[ExpiredSubscriptionItem]:
        """Subscriptions whose end has passed, most recently expired first."""
        now = self._now()
        stmt = (
            select(CelebritySubscription, CelebrityProfile)
            .join(CelebrityProfile, CelebrityProfile.id == CelebritySubscription.celebrity_id)
            .where(CelebritySubscription.subscription_end < now)
            .order_by(CelebritySubscription.subscription_end.desc())
            .limit(limit)
        )
        rows = (await self.session.execute(stmt)).all()

        items: list[ExpiredSubscriptionItem] = []
        for subscription, profile in rows:
            ended = subscription.subscription_end
            assert ended is not None
            items.append(
                ExpiredSubscriptionItem(
                    celebrity_id=subscription.celebrity_id,
                    stage_name=profile.stage_name,
                    phone_number=profile.phone_number,
                    subscription_tier=_optional_tier(subscription.subscription_tier),
                    subscription_end=ended,
                    days_expired=(now - ended).days,
                )
            )
        return items

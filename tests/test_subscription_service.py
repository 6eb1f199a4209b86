"""
Tests for SubscriptionService: promotional activation, forced expiry and reads.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.db.models import CelebrityProfile, CelebritySubscription, PaymentVerification
from app.exceptions import (
    CelebrityNotFoundError,
    SubscriptionNotFoundError,
    ValidationError,
    WorkflowStepError,
    WriteVerificationError,
)
from app.models.api import DurationType, PaymentStatus, PaymentType, SubscriptionTier
from app.models.domain import AdminIdentity, ExpiryResult
from app.services.subscriptions import SubscriptionService

NOW = datetime(2026, 10, 19, 9, 30, tzinfo=UTC)


@pytest.fixture
def admin() -> AdminIdentity:
    return AdminIdentity(
        admin_id=uuid4(), user_id="admin-1", email="ops@example.com", is_super_admin=True
    )


@pytest.fixture
def service(db_session) -> SubscriptionService:
    return SubscriptionService(db_session, now=lambda: NOW)


@pytest.fixture
def add_subscription(session_factory):
    """Insert a subscription row directly."""

    async def _add(
        celebrity_id,
        end: datetime,
        is_active: bool = True,
        tier: str = "basic_pro",
        start: datetime | None = None,
    ) -> None:
        async with session_factory() as session:
            session.add(
                CelebritySubscription(
                    celebrity_id=celebrity_id,
                    subscription_tier=tier,
                    duration_type="1_month",
                    subscription_start=start or end - timedelta(days=30),
                    subscription_end=end,
                    is_active=is_active,
                    amount_paid=Decimal("2000"),
                )
            )
            await session.commit()

    return _add


async def load_subscription(session_factory, celebrity_id) -> CelebritySubscription | None:
    async with session_factory() as session:
        stmt = select(CelebritySubscription).where(
            CelebritySubscription.celebrity_id == celebrity_id
        )
        return (await session.execute(stmt)).scalar_one_or_none()


async def load_profile(session_factory, celebrity_id) -> CelebrityProfile:
    async with session_factory() as session:
        profile = await session.get(CelebrityProfile, celebrity_id)
        assert profile is not None
        return profile


class TestActivatePromotionalOffer:
    """Tests for SubscriptionService.activate_promotional_offer."""

    async def test_free_offer_grants_top_tier_week(
        self, service, make_celebrity, session_factory, admin
    ):
        celebrity_id = await make_celebrity(stage_name="Amani")

        result = await service.activate_promotional_offer(celebrity_id, Decimal("0"), admin)

        assert result.message == "Promotional offer activated successfully for Amani"
        assert result.subscription_end == NOW + timedelta(days=7)
        assert result.failed_steps == ()

        async with session_factory() as session:
            payment = await session.get(PaymentVerification, result.payment_id)
        assert payment is not None
        assert payment.payment_type == PaymentType.PROMOTIONAL_OFFER.value
        assert payment.is_verified is True
        assert payment.verified_by == str(admin.admin_id)
        assert payment.amount == Decimal("0")
        assert payment.payment_status == PaymentStatus.PAID.value
        assert payment.mpesa_code.startswith(f"PROMO_OFFER_{celebrity_id}_")
        assert payment.subscription_tier == SubscriptionTier.VIP_ELITE.value
        assert payment.duration_type == DurationType.ONE_WEEK.value

        subscription = await load_subscription(session_factory, celebrity_id)
        assert subscription is not None
        assert subscription.is_active is True
        assert subscription.subscription_tier == "vip_elite"
        assert subscription.subscription_end == NOW + timedelta(days=7)
        assert subscription.last_payment_id == result.payment_id

        profile = await load_profile(session_factory, celebrity_id)
        assert profile.is_verified is True
        assert profile.is_available is True

    async def test_paid_offer_records_amount(self, service, make_celebrity, session_factory, admin):
        celebrity_id = await make_celebrity()

        result = await service.activate_promotional_offer(celebrity_id, Decimal("1500"), admin)

        async with session_factory() as session:
            payment = await session.get(PaymentVerification, result.payment_id)
        assert payment is not None
        assert payment.amount == Decimal("1500")
        assert payment.expected_amount == Decimal("1500")
        assert payment.credit_balance == Decimal("0")

    async def test_existing_subscription_fails_insert(
        self, service, make_celebrity, add_subscription, session_factory, admin
    ):
        celebrity_id = await make_celebrity()
        await add_subscription(celebrity_id, end=NOW + timedelta(days=2))

        with pytest.raises(WorkflowStepError) as exc_info:
            await service.activate_promotional_offer(celebrity_id, Decimal("0"), admin)

        assert exc_info.value.step == "insert_subscription"
        assert exc_info.value.completed_steps == ["insert_payment"]

        # The promotional payment stays committed
        async with session_factory() as session:
            payments = (
                (
                    await session.execute(
                        select(PaymentVerification).where(
                            PaymentVerification.celebrity_id == celebrity_id
                        )
                    )
                )
                .scalars()
                .all()
            )
        assert len(payments) == 1
        assert payments[0].payment_type == "promotional_offer"

        subscription = await load_subscription(session_factory, celebrity_id)
        assert subscription is not None
        assert subscription.subscription_tier == "basic_pro"

    async def test_unknown_celebrity(self, service, admin):
        with pytest.raises(CelebrityNotFoundError):
            await service.activate_promotional_offer(uuid4(), Decimal("0"), admin)

    async def test_negative_offer_rejected(self, service, make_celebrity, admin):
        celebrity_id = await make_celebrity()
        with pytest.raises(ValidationError):
            await service.activate_promotional_offer(celebrity_id, Decimal("-5"), admin)

    async def test_profile_flag_failure_is_reported(
        self, service, make_celebrity, session_factory, admin
    ):
        celebrity_id = await make_celebrity()

        with patch.object(
            SubscriptionService,
            "activate_profile",
            AsyncMock(side_effect=SQLAlchemyError("deadlock detected")),
        ):
            result = await service.activate_promotional_offer(celebrity_id, Decimal("0"), admin)

        assert result.failed_steps == ("update_profile_flags",)
        subscription = await load_subscription(session_factory, celebrity_id)
        assert subscription is not None
        assert subscription.is_active is True


class TestUpsertSubscription:
    """Tests for SubscriptionService.upsert_subscription."""

    async def upsert_pending(self, service, celebrity_id):
        return await service.upsert_subscription(
            celebrity_id=celebrity_id,
            tier=SubscriptionTier.STARTER,
            duration=DurationType.ONE_WEEK,
            start=NOW,
            end=NOW + timedelta(days=7),
            is_active=False,
            amount_paid=Decimal("200"),
            last_payment_id=None,
        )

    async def test_concurrent_insert_overwrites_other_writer(
        self, service, db_session, make_celebrity, add_subscription, session_factory
    ):
        celebrity_id = await make_celebrity()
        # Another writer's row lands after this writer's lock found nothing
        await add_subscription(celebrity_id, end=NOW + timedelta(days=30), tier="basic_pro")

        real_lock = service._lock_subscription
        calls = []

        async def lock_missing_first(target_id):
            calls.append(target_id)
            if len(calls) == 1:
                return None
            return await real_lock(target_id)

        with patch.object(service, "_lock_subscription", lock_missing_first):
            subscription = await self.upsert_pending(service, celebrity_id)
        await db_session.commit()

        assert len(calls) == 2
        assert subscription.subscription_tier == "starter"
        assert subscription.is_active is False

        async with session_factory() as session:
            rows = (
                await session.execute(
                    select(CelebritySubscription).where(
                        CelebritySubscription.celebrity_id == celebrity_id
                    )
                )
            ).scalars().all()
        assert len(rows) == 1
        assert rows[0].subscription_tier == "starter"
        assert rows[0].duration_type == "1_week"
        assert rows[0].is_active is False

    async def test_concurrent_insert_without_winner_row(
        self, service, make_celebrity, add_subscription
    ):
        celebrity_id = await make_celebrity()
        await add_subscription(celebrity_id, end=NOW + timedelta(days=30))

        with patch.object(service, "_lock_subscription", AsyncMock(return_value=None)):
            with pytest.raises(WriteVerificationError):
                await self.upsert_pending(service, celebrity_id)


class TestForceExpire:
    """Tests for SubscriptionService.force_expire."""

    async def test_expires_and_hides_profiles(
        self, service, make_celebrity, add_subscription, session_factory, admin
    ):
        first = await make_celebrity(is_verified=True, is_available=True)
        second = await make_celebrity(stage_name="Zawadi", is_verified=True, is_available=True)
        await add_subscription(first, end=NOW + timedelta(days=10))
        await add_subscription(second, end=NOW + timedelta(days=3))

        result = await service.force_expire([first, second], admin)

        assert result.requested == 2
        assert result.subscriptions_expired == 2
        assert result.profiles_updated == 2

        for celebrity_id in (first, second):
            subscription = await load_subscription(session_factory, celebrity_id)
            assert subscription is not None
            assert subscription.is_active is False
            assert subscription.subscription_end == NOW - timedelta(minutes=60)

            profile = await load_profile(session_factory, celebrity_id)
            assert profile.is_verified is False
            assert profile.is_available is False

    async def test_profile_without_subscription_is_still_hidden(
        self, service, make_celebrity, session_factory, admin
    ):
        celebrity_id = await make_celebrity(is_verified=True, is_available=True)

        result = await service.force_expire([celebrity_id], admin)

        assert result.subscriptions_expired == 0
        assert result.profiles_updated == 1
        profile = await load_profile(session_factory, celebrity_id)
        assert profile.is_available is False

    async def test_duplicate_ids_counted_once(self, service, make_celebrity, admin):
        celebrity_id = await make_celebrity()
        result = await service.force_expire([celebrity_id, celebrity_id], admin)
        assert result.requested == 1

    async def test_empty_list_is_a_no_op(self, service, admin):
        result = await service.force_expire([], admin)
        assert result == ExpiryResult(requested=0, subscriptions_expired=0, profiles_updated=0)

    async def test_flag_failure_after_expiry(
        self, service, make_celebrity, add_subscription, session_factory, admin
    ):
        celebrity_id = await make_celebrity(is_verified=True, is_available=True)
        await add_subscription(celebrity_id, end=NOW + timedelta(days=10))

        with patch.object(
            SubscriptionService,
            "set_profile_flags",
            AsyncMock(side_effect=SQLAlchemyError("connection reset")),
        ):
            with pytest.raises(WorkflowStepError) as exc_info:
                await service.force_expire([celebrity_id], admin)

        assert exc_info.value.step == "clear_profile_flags"
        assert exc_info.value.completed_steps == ["expire_subscriptions"]

        subscription = await load_subscription(session_factory, celebrity_id)
        assert subscription is not None
        assert subscription.is_active is False
        profile = await load_profile(session_factory, celebrity_id)
        assert profile.is_available is True


class TestGetStatus:
    """Tests for SubscriptionService.get_status."""

    async def test_active_subscription(self, service, make_celebrity, add_subscription):
        celebrity_id = await make_celebrity()
        await add_subscription(celebrity_id, end=NOW + timedelta(days=5))

        status = await service.get_status(celebrity_id)

        assert status.is_active is True
        assert status.effectively_active is True
        assert status.subscription_tier == SubscriptionTier.BASIC_PRO

    async def test_lapsed_subscription_not_effectively_active(
        self, service, make_celebrity, add_subscription
    ):
        celebrity_id = await make_celebrity()
        await add_subscription(celebrity_id, end=NOW - timedelta(hours=1))

        status = await service.get_status(celebrity_id)

        assert status.is_active is True
        assert status.effectively_active is False

    async def test_missing_subscription(self, service, make_celebrity):
        celebrity_id = await make_celebrity()
        with pytest.raises(SubscriptionNotFoundError):
            await service.get_status(celebrity_id)


class TestListExpired:
    """Tests for SubscriptionService.list_expired."""

    async def test_lists_past_end_most_recent_first(
        self, service, make_celebrity, add_subscription
    ):
        recent = await make_celebrity(stage_name="Recent")
        older = await make_celebrity(stage_name="Older")
        current = await make_celebrity(stage_name="Current")
        await add_subscription(recent, end=NOW - timedelta(days=1, hours=2), is_active=False)
        await add_subscription(older, end=NOW - timedelta(days=10), is_active=False)
        await add_subscription(current, end=NOW + timedelta(days=3))

        items = await service.list_expired()

        assert [item.stage_name for item in items] == ["Recent", "Older"]
        assert [item.days_expired for item in items] == [1, 10]
        assert items[0].phone_number == "+254712345678"

    async def test_limit(self, service, make_celebrity, add_subscription):
        for index in range(3):
            celebrity_id = await make_celebrity(stage_name=f"Celebrity {index}")
            await add_subscription(celebrity_id, end=NOW - timedelta(days=index + 1))

        assert len(await service.list_expired(limit=2)) == 2

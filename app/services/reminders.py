"""
Reminder Service - WhatsApp expiry reminders for active subscriptions.

A subscription gets at most one successful reminder of each type per
subscription period:
    3_days     - ends in 3 calendar days
    1_day      - ends tomorrow
    expiry_day - ends today
"""

import re
from collections.abc import Callable
from datetime import UTC, datetime, time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import CelebrityProfile, CelebritySubscription, SubscriptionReminderLog
from app.exceptions import ExternalServiceError
from app.models.api import ReminderStatus, ReminderType, SubscriptionTier
from app.models.domain import DueReminder, ReminderRunSummary
from app.observability.logging import get_logger
from app.observability.metrics import metrics
from app.services.whatsapp import TwilioWhatsAppClient

logger = get_logger(__name__)

REMINDER_DAYS: dict[int, ReminderType] = {
    3: ReminderType.THREE_DAYS,
    1: ReminderType.ONE_DAY,
    0: ReminderType.EXPIRY_DAY,
}


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def format_whatsapp_phone(phone_number: str) -> str:
    """
    Normalize a stored phone number to E.164 for WhatsApp.

    07.../01...  -> +2547... / +2541...
    7.../1...    -> +2547... / +2541...
    anything else gets a leading + if it lacks one
    """
    phone = re.sub(r"[^0-9+]", "", phone_number)
    if phone.startswith(("07", "01")):
        return "+254" + phone[1:]
    if phone.startswith(("7", "1")):
        return "+254" + phone
    if not phone.startswith("+"):
        return "+" + phone
    return phone


def format_reminder_message(reminder: DueReminder, brand_name: str) -> str:
    """Render the reminder text for a due subscription."""
    end = reminder.subscription_end
    expiry_date = f"{end:%B} {end.day}, {end.year}"
    tier = reminder.subscription_tier.value if reminder.subscription_tier else "premium"
    tier_name = tier.replace("_", " ").upper()
    name = reminder.celebrity_name
    sign_off = f"Thank you for being part of {brand_name}! 💎"

    if reminder.reminder_type == ReminderType.THREE_DAYS:
        return (
            f"🔔 Hi {name}!\n\n"
            f"This is a friendly reminder from {brand_name}. Your {tier_name} subscription "
            f"will expire in 3 DAYS on {expiry_date}.\n\n"
            "To continue enjoying premium visibility and features, please renew your "
            "subscription soon.\n\n"
            "If you've already renewed, please ignore this message.\n\n"
            f"{sign_off}"
        )
    if reminder.reminder_type == ReminderType.ONE_DAY:
        return (
            f"⚠️ URGENT: Hi {name}!\n\n"
            f"Your {tier_name} subscription expires TOMORROW ({expiry_date})!\n\n"
            "Don't lose your premium profile visibility. Renew today to maintain your "
            "position on our homepage.\n\n"
            "Contact us immediately to renew your subscription.\n\n"
            f"{sign_off}"
        )
    return (
        f"🚨 FINAL NOTICE: Hi {name}!\n\n"
        f"Your {tier_name} subscription EXPIRES TODAY ({expiry_date})!\n\n"
        "Your profile will be removed from our homepage at midnight if not renewed.\n\n"
        "Renew NOW to avoid interruption in your profile visibility.\n\n"
        f"{sign_off}"
    )


class ReminderService:
    """Finds subscriptions due a reminder and delivers them."""

    def __init__(
        self,
        session: AsyncSession,
        client: TwilioWhatsAppClient,
        brand_name: str,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.session = session
        self.client = client
        self.brand_name = brand_name
        self._now = now

    async def find_due_reminders(self) -> list[DueReminder]:
        """Active subscriptions ending 3, 1 or 0 calendar days from today."""
        now = self._now()
        today = now.date()
        start_of_today = datetime.combine(today, time.min, tzinfo=UTC)

        stmt = (
            select(CelebritySubscription, CelebrityProfile)
            .join(CelebrityProfile, CelebrityProfile.id == CelebritySubscription.celebrity_id)
            .where(
                CelebritySubscription.is_active.is_(True),
                CelebritySubscription.subscription_end >= start_of_today,
                CelebrityProfile.phone_number.is_not(None),
            )
            .order_by(CelebritySubscription.subscription_end)
        )
        rows = (await self.session.execute(stmt)).all()

        due: list[DueReminder] = []
        for subscription, profile in rows:
            end = subscription.subscription_end
            if end is None or not profile.phone_number:
                continue
            days = (end.astimezone(UTC).date() - today).days
            reminder_type = REMINDER_DAYS.get(days)
            if reminder_type is None:
                continue
            if await self._already_sent(subscription, reminder_type):
                continue

            due.append(
                DueReminder(
                    celebrity_id=subscription.celebrity_id,
                    subscription_id=subscription.id,
                    celebrity_name=profile.stage_name,
                    phone_number=profile.phone_number,
                    subscription_tier=(
                        SubscriptionTier(subscription.subscription_tier)
                        if subscription.subscription_tier
                        else None
                    ),
                    subscription_end=end,
                    reminder_type=reminder_type,
                    days_until_expiry=days,
                )
            )
        return due

    async def send_due_reminders(self) -> ReminderRunSummary:
        """
        Send every due reminder and log each attempt.

        A failed delivery is logged and counted; it does not stop the run.
        """
        reminders = await self.find_due_reminders()
        summary = ReminderRunSummary()

        logger.info("reminder_run_started", due=len(reminders))

        for reminder in reminders:
            message = format_reminder_message(reminder, self.brand_name)
            phone = format_whatsapp_phone(reminder.phone_number)
            sid: str | None = None
            error: str | None = None

            try:
                sid = await self.client.send_message(phone, message)
            except ExternalServiceError as e:
                error = e.message

            status = ReminderStatus.SENT if error is None else ReminderStatus.FAILED
            self.session.add(
                SubscriptionReminderLog(
                    celebrity_id=reminder.celebrity_id,
                    subscription_id=reminder.subscription_id,
                    reminder_type=reminder.reminder_type.value,
                    phone_number=reminder.phone_number,
                    message_sent=message,
                    twilio_message_sid=sid,
                    status=status.value,
                    error_message=error,
                    created_at=self._now(),
                )
            )
            await self.session.commit()
            metrics.record_reminder(reminder.reminder_type.value, status.value)

            if error is None:
                summary.sent += 1
                logger.info(
                    "reminder_sent",
                    celebrity_id=str(reminder.celebrity_id),
                    reminder_type=reminder.reminder_type.value,
                    message_sid=sid,
                )
            else:
                summary.failed += 1
                summary.failures.append(f"{reminder.celebrity_name}: {error}")
                logger.warning(
                    "reminder_failed",
                    celebrity_id=str(reminder.celebrity_id),
                    reminder_type=reminder.reminder_type.value,
                    error=error,
                )

        logger.info("reminder_run_complete", sent=summary.sent, failed=summary.failed)
        return summary

    async def _already_sent(
        self, subscription: CelebritySubscription, reminder_type: ReminderType
    ) -> bool:
        stmt = select(SubscriptionReminderLog.id).where(
            SubscriptionReminderLog.subscription_id == subscription.id,
            SubscriptionReminderLog.reminder_type == reminder_type.value,
            SubscriptionReminderLog.status == ReminderStatus.SENT.value,
        )
        if subscription.subscription_start is not None:
            stmt = stmt.where(
                SubscriptionReminderLog.created_at >= subscription.subscription_start
            )
        return (await self.session.execute(stmt.limit(1))).first() is not None

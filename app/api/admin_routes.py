"""
Admin API routes for payment verification and subscription management.

All endpoints require an authenticated admin bearer token.
"""

from collections.abc import AsyncIterator
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.admin_dependencies import get_current_admin
from app.config import get_settings
from app.db.session import get_read_db, get_write_db
from app.models.api import (
    ExpiredSubscriptionListResponse,
    ForceExpireRequest,
    ForceExpireResponse,
    PackageResponse,
    PackageUpsertRequest,
    PaymentListResponse,
    PromotionalActivationRequest,
    PromotionalActivationResponse,
    ReminderRunResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from app.models.domain import AdminIdentity
from app.observability.logging import get_logger, log_context
from app.services.payments import PaymentService
from app.services.pricing import PricingCatalog
from app.services.reminders import ReminderService
from app.services.subscriptions import SubscriptionService
from app.services.whatsapp import TwilioWhatsAppClient

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


async def get_whatsapp_client() -> AsyncIterator[TwilioWhatsAppClient]:
    """Twilio client built from settings; fails with 502 when credentials are missing."""
    settings = get_settings()
    client = TwilioWhatsAppClient(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_whatsapp_number,
        api_base=settings.twilio_api_base,
    )
    try:
        yield client
    finally:
        await client.close()


# ============================================================================
# Payments
# ============================================================================


@router.post("/payments/verify", response_model=VerifyPaymentResponse)
async def verify_payment(
    request: VerifyPaymentRequest,
    admin: AdminIdentity = Depends(get_current_admin),
    db: AsyncSession = Depends(get_write_db),
) -> VerifyPaymentResponse:
    """
    Verify a submitted payment.

    Fully paid tiered payments activate the celebrity's subscription and
    mark the profile verified and available. Verifying twice is a no-op.
    """
    with log_context(admin_email=admin.email):
        result = await PaymentService(db).verify_payment(request.payment_id, admin)

    return VerifyPaymentResponse(
        message=result.message,
        is_underpaid=result.is_underpaid,
        already_verified=result.already_verified,
        subscription_end=result.subscription_end,
        failed_steps=list(result.failed_steps),
    )


@router.get("/payments", response_model=PaymentListResponse)
async def list_payments(
    verified: bool | None = Query(None),
    celebrity_id: UUID | None = Query(None, alias="celebrityId"),
    limit: int = Query(200, ge=1, le=1000),
    admin: AdminIdentity = Depends(get_current_admin),
    db: AsyncSession = Depends(get_read_db),
) -> PaymentListResponse:
    """Payments newest first, with totals for verified and pending amounts."""
    payments, stats = await PaymentService(db).list_payments(
        verified=verified, celebrity_id=celebrity_id, limit=limit
    )
    return PaymentListResponse(payments=payments, stats=stats)


# ============================================================================
# Subscriptions
# ============================================================================


@router.post("/promotions/activate", response_model=PromotionalActivationResponse)
async def activate_promotional_offer(
    request: PromotionalActivationRequest,
    admin: AdminIdentity = Depends(get_current_admin),
    db: AsyncSession = Depends(get_write_db),
) -> PromotionalActivationResponse:
    """Grant a one-week top-tier promotional subscription."""
    with log_context(admin_email=admin.email):
        result = await SubscriptionService(db).activate_promotional_offer(
            request.celebrity_id, request.offer_amount, admin
        )

    return PromotionalActivationResponse(
        message=result.message,
        payment_id=result.payment_id,
        subscription_end=result.subscription_end,
        failed_steps=list(result.failed_steps),
    )


@router.post("/subscriptions/force-expire", response_model=ForceExpireResponse)
async def force_expire_subscriptions(
    request: ForceExpireRequest,
    admin: AdminIdentity = Depends(get_current_admin),
    db: AsyncSession = Depends(get_write_db),
) -> ForceExpireResponse:
    """End the listed celebrities' subscriptions now and hide their profiles."""
    with log_context(admin_email=admin.email):
        result = await SubscriptionService(db).force_expire(request.celebrity_ids, admin)

    return ForceExpireResponse(
        message=f"Expired and unverified {result.requested} celebrities",
        subscriptions_expired=result.subscriptions_expired,
        profiles_updated=result.profiles_updated,
    )


@router.get("/subscriptions/expired", response_model=ExpiredSubscriptionListResponse)
async def list_expired_subscriptions(
    limit: int = Query(100, ge=1, le=1000),
    admin: AdminIdentity = Depends(get_current_admin),
    db: AsyncSession = Depends(get_read_db),
) -> ExpiredSubscriptionListResponse:
    """Subscriptions past their end date, for renewal follow-up."""
    items = await SubscriptionService(db).list_expired(limit=limit)
    return ExpiredSubscriptionListResponse(subscriptions=items, total=len(items))


# ============================================================================
# Pricing
# ============================================================================


@router.get("/packages", response_model=list[PackageResponse])
async def list_all_packages(
    admin: AdminIdentity = Depends(get_current_admin),
    db: AsyncSession = Depends(get_read_db),
) -> list[PackageResponse]:
    """All packages, including inactive ones."""
    return await PricingCatalog(db).list_packages(active_only=False)


@router.put("/packages", response_model=PackageResponse)
async def upsert_package(
    request: PackageUpsertRequest,
    admin: AdminIdentity = Depends(get_current_admin),
    db: AsyncSession = Depends(get_write_db),
) -> PackageResponse:
    """Create or update a package price."""
    logger.info(
        "package_upsert_requested",
        admin_email=admin.email,
        tier=request.tier_name.value,
        duration=request.duration_type.value,
    )
    return await PricingCatalog(db).upsert_package(
        tier=request.tier_name,
        duration=request.duration_type,
        price=request.price,
        is_active=request.is_active,
        display_order=request.display_order,
    )


# ============================================================================
# Reminders
# ============================================================================


@router.post("/reminders/send", response_model=ReminderRunResponse)
async def send_reminders(
    admin: AdminIdentity = Depends(get_current_admin),
    db: AsyncSession = Depends(get_write_db),
    client: TwilioWhatsAppClient = Depends(get_whatsapp_client),
) -> ReminderRunResponse:
    """Send WhatsApp reminders for subscriptions ending in 3, 1 or 0 days."""
    service = ReminderService(db, client, brand_name=get_settings().reminder_brand_name)
    summary = await service.send_due_reminders()

    if summary.sent == 0 and summary.failed == 0:
        message = "No reminders to send"
    else:
        message = f"Sent {summary.sent} reminders, {summary.failed} failed"

    return ReminderRunResponse(
        message=message,
        reminders_sent=summary.sent,
        reminders_failed=summary.failed,
    )

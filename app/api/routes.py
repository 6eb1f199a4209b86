"""
API Routes - Public FastAPI endpoints for payment submission and lookups.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_read_db, get_write_db
from app.models.api import (
    HealthResponse,
    PackageResponse,
    PaymentRecordResponse,
    PaymentSubmissionRequest,
    PaymentSubmissionResponse,
    SubscriptionStatusResponse,
)
from app.models.domain import PaymentData, PaymentSubmission
from app.observability.logging import get_logger
from app.services.payments import PaymentService
from app.services.pricing import PricingCatalog
from app.services.subscriptions import SubscriptionService

logger = get_logger(__name__)

router = APIRouter()


def to_record_response(payment: PaymentData) -> PaymentRecordResponse:
    return PaymentRecordResponse(
        id=payment.payment_id,
        celebrity_id=payment.celebrity_id,
        phone_number=payment.phone_number,
        mpesa_code=payment.mpesa_code,
        amount=payment.amount,
        expected_amount=payment.expected_amount,
        subscription_tier=payment.subscription_tier,
        duration_type=payment.duration_type,
        payment_status=payment.payment_status,
        credit_balance=payment.credit_balance,
        is_verified=payment.is_verified,
        verified_at=payment.verified_at,
        verified_by=payment.verified_by,
        payment_date=payment.payment_date,
        payment_type=payment.payment_type,
    )


@router.post(
    "/v1/payments/submit",
    response_model=PaymentSubmissionResponse,
    status_code=status.HTTP_200_OK,
)
async def submit_payment(
    request: PaymentSubmissionRequest,
    db: AsyncSession = Depends(get_write_db),
) -> PaymentSubmissionResponse:
    """
    Submit an M-Pesa payment claim for admin verification.

    The claim is classified against the catalog price (or the explicit
    expectedAmount) and, when a tier is given, an inactive subscription is
    recorded for the celebrity.
    """
    service = PaymentService(db)
    result = await service.submit_payment(
        PaymentSubmission(
            celebrity_id=request.celebrity_id,
            phone_number=request.phone_number,
            mpesa_code=request.mpesa_code,
            amount=request.amount,
            tier=request.tier,
            duration=request.duration,
            expected_amount=request.expected_amount,
        )
    )

    return PaymentSubmissionResponse(
        message=result.message,
        warning=result.warning,
        payment_status=result.payment.payment_status,
        credit_balance=result.payment.credit_balance,
        data=to_record_response(result.payment),
    )


@router.get("/v1/packages", response_model=list[PackageResponse])
async def list_packages(db: AsyncSession = Depends(get_read_db)) -> list[PackageResponse]:
    """Active subscription packages with their prices."""
    return await PricingCatalog(db).list_packages(active_only=True)


@router.get("/v1/subscriptions/{celebrity_id}", response_model=SubscriptionStatusResponse)
async def get_subscription(
    celebrity_id: UUID,
    db: AsyncSession = Depends(get_read_db),
) -> SubscriptionStatusResponse:
    """Current subscription for a celebrity, including whether it is in force right now."""
    return await SubscriptionService(db).get_status(celebrity_id)


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_read_db)) -> HealthResponse | JSONResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("health_check_failed", error=str(exc))
        unhealthy = HealthResponse(
            status="unhealthy", database="disconnected", timestamp=datetime.now(UTC)
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=unhealthy.model_dump(mode="json"),
        )

    return HealthResponse(status="healthy", database="connected", timestamp=datetime.now(UTC))

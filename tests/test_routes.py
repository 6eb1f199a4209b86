"""
Tests for public API routes.

Exercises payment submission, package listing, subscription lookup and
health checks through the ASGI app with the in-memory database.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from sqlalchemy.exc import OperationalError

from app.db.models import CelebritySubscription
from app.db.session import get_read_db


def submission_body(celebrity_id, **overrides) -> dict:
    body = {
        "celebrityId": str(celebrity_id),
        "phoneNumber": "+254712345678",
        "mpesaCode": "qwe1234567",
        "amount": 200,
        "tier": "starter",
        "duration": "1_week",
    }
    body.update(overrides)
    return body


class TestSubmitPaymentRoute:
    """Tests for POST /v1/payments/submit."""

    async def test_exact_payment(self, client, make_celebrity, packages):
        celebrity_id = await make_celebrity()

        response = await client.post("/v1/payments/submit", json=submission_body(celebrity_id))

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Payment verification submitted successfully"
        assert body["warning"] == ""
        assert body["payment_status"] == "paid"
        assert body["credit_balance"] == 0
        assert body["data"]["mpesa_code"] == "QWE1234567"
        assert body["data"]["expected_amount"] == 200
        assert body["data"]["is_verified"] is False
        assert body["data"]["payment_type"] == "standard"

    async def test_underpayment_warning(self, client, make_celebrity, packages):
        celebrity_id = await make_celebrity()

        response = await client.post(
            "/v1/payments/submit",
            json=submission_body(celebrity_id, amount=1000, tier="basic_pro", duration="1_month"),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["payment_status"] == "underpaid"
        assert body["warning"] == (
            "Payment (KSH 1,000) is less than expected (KSH 2,000). "
            "Subscription will be disabled until full payment is received."
        )

    async def test_overpayment_credit(self, client, make_celebrity, packages):
        celebrity_id = await make_celebrity()

        response = await client.post(
            "/v1/payments/submit",
            json=submission_body(celebrity_id, amount=3500, tier="prime_plus", duration="2_weeks"),
        )

        body = response.json()
        assert body["payment_status"] == "overpaid"
        assert body["credit_balance"] == 500

    async def test_missing_amount(self, client, make_celebrity):
        celebrity_id = await make_celebrity()
        body = submission_body(celebrity_id)
        del body["amount"]

        response = await client.post("/v1/payments/submit", json=body)

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["error"] == "validation"
        assert response.json()["message"].startswith("amount:")

    async def test_malformed_phone(self, client, make_celebrity):
        celebrity_id = await make_celebrity()

        response = await client.post(
            "/v1/payments/submit", json=submission_body(celebrity_id, phoneNumber="0712345678")
        )

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "validation",
            "message": "Invalid phone number format. Use +254XXXXXXXXX",
        }

    async def test_unknown_celebrity(self, client):
        response = await client.post("/v1/payments/submit", json=submission_body(uuid4()))

        assert response.status_code == 404
        assert response.json()["error"] == "celebrity_not_found"


class TestPackagesRoute:
    """Tests for GET /v1/packages."""

    async def test_lists_active_packages(self, client, packages):
        response = await client.get("/v1/packages")

        assert response.status_code == 200
        items = response.json()
        assert len(items) == 12
        assert items[0] == {
            "tier_name": "vip_elite",
            "duration_type": "1_month",
            "price": 10000.0,
            "is_active": True,
            "display_order": 1,
        }


class TestSubscriptionRoute:
    """Tests for GET /v1/subscriptions/{celebrity_id}."""

    async def test_current_subscription(self, client, make_celebrity, session_factory):
        celebrity_id = await make_celebrity()
        end = datetime.now(UTC) + timedelta(days=5)
        async with session_factory() as session:
            session.add(
                CelebritySubscription(
                    celebrity_id=celebrity_id,
                    subscription_tier="vip_elite",
                    duration_type="1_week",
                    subscription_start=end - timedelta(days=7),
                    subscription_end=end,
                    is_active=True,
                    amount_paid=Decimal("3500"),
                )
            )
            await session.commit()

        response = await client.get(f"/v1/subscriptions/{celebrity_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["subscription_tier"] == "vip_elite"
        assert body["is_active"] is True
        assert body["effectively_active"] is True
        assert body["amount_paid"] == 3500

    async def test_no_subscription(self, client, make_celebrity):
        celebrity_id = await make_celebrity()

        response = await client.get(f"/v1/subscriptions/{celebrity_id}")

        assert response.status_code == 404
        assert response.json()["error"] == "subscription_not_found"

    async def test_malformed_id(self, client):
        response = await client.get("/v1/subscriptions/not-a-uuid")
        assert response.status_code == 400


class TestHealthRoute:
    """Tests for GET /health."""

    async def test_healthy(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["database"] == "connected"

    async def test_database_down(self, client):
        from app.main import app

        broken = MagicMock()
        broken.execute = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("down")))

        async def override():
            yield broken

        app.dependency_overrides[get_read_db] = override

        response = await client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert response.json()["database"] == "disconnected"

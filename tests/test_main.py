"""
Tests for Main Application wiring.

Covers the JSON error envelope, preflight handling and utility endpoints.
"""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from app.exceptions import (
    AuthorizationError,
    ExternalServiceError,
    PaymentNotFoundError,
    ValidationError,
    WorkflowStepError,
)
from app.main import error_code
from app.services.pricing import PricingCatalog


class TestErrorCode:
    """Tests for exception -> error code conversion."""

    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (ValidationError("bad"), "validation"),
            (AuthorizationError("admin"), "authorization"),
            (PaymentNotFoundError(uuid4()), "payment_not_found"),
            (WorkflowStepError("force_expire", "clear_profile_flags", [], "boom"), "workflow_step"),
            (ExternalServiceError("twilio", "down"), "external_service"),
        ],
    )
    def test_snake_case_without_suffix(self, error, code):
        assert error_code(error) == code


class TestErrorEnvelope:
    """Every failure is answered with the same JSON envelope."""

    async def test_unhandled_error_is_500_without_details(self, client):
        with patch.object(
            PricingCatalog, "list_packages", AsyncMock(side_effect=RuntimeError("secret detail"))
        ):
            response = await client.get("/v1/packages")

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "error": "internal",
            "message": "An unexpected error occurred",
        }

    async def test_workflow_failure_includes_stage(self, client, admin_headers, make_celebrity):
        celebrity_id = await make_celebrity()
        with patch(
            "app.api.admin_routes.SubscriptionService.force_expire",
            AsyncMock(
                side_effect=WorkflowStepError(
                    "force_expire",
                    "clear_profile_flags",
                    ["expire_subscriptions"],
                    "(OperationalError) timeout [SQL: UPDATE celebrity_profiles]",
                )
            ),
        ):
            response = await client.post(
                "/admin/subscriptions/force-expire",
                json={"celebrityIds": [str(celebrity_id)]},
                headers=admin_headers,
            )

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "error": "workflow_step",
            "message": "Database error: force_expire failed at clear_profile_flags",
            "stage": "clear_profile_flags",
            "completed_steps": ["expire_subscriptions"],
        }
        assert "SQL" not in response.json()["message"]

    async def test_malformed_json(self, client):
        response = await client.post(
            "/v1/payments/submit",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation"


class TestUtilityEndpoints:
    """Tests for root, preflight and metrics endpoints."""

    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "running"

    async def test_options_always_succeeds(self, client):
        response = await client.options("/admin/payments/verify")

        assert response.status_code == 200
        assert response.json() == {"success": True}

    async def test_metrics(self, client):
        await client.get("/")

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "subscriptions_http_requests_total" in response.text

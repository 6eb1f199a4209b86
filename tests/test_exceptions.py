"""
Tests for exception classes.

Covers status codes, typed attributes and string representations.
"""

from uuid import uuid4

import pytest

from app.exceptions import (
    AdminSignupClosedError,
    AuthenticationError,
    AuthorizationError,
    BillingError,
    CelebrityNotFoundError,
    DatabaseError,
    DuplicateAdminError,
    ExternalServiceError,
    PaymentNotFoundError,
    ResourceNotFoundError,
    SubscriptionNotFoundError,
    ValidationError,
    WorkflowStepError,
    WriteVerificationError,
)


class TestBillingError:
    """Tests for base BillingError."""

    def test_billing_error_is_exception(self):
        assert issubclass(BillingError, Exception)

    def test_default_status_is_500(self):
        assert BillingError("boom").status_code == 500


class TestStatusCodes:
    """Each error kind maps to one HTTP status."""

    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (ValidationError("amount is required", field="amount"), 400),
            (AuthenticationError("Missing authorization header"), 401),
            (AuthorizationError("admin"), 403),
            (AdminSignupClosedError(), 403),
            (PaymentNotFoundError(uuid4()), 404),
            (CelebrityNotFoundError(uuid4()), 404),
            (SubscriptionNotFoundError(uuid4()), 404),
            (DuplicateAdminError("ops@example.com"), 409),
            (DatabaseError("connection lost"), 500),
            (WriteVerificationError("row missing"), 500),
            (WorkflowStepError("verify_payment", "mark_verified", [], "boom"), 500),
            (ExternalServiceError("twilio", "HTTP 401"), 502),
        ],
    )
    def test_status_code(self, error, status_code):
        assert isinstance(error, BillingError)
        assert error.status_code == status_code


class TestValidationError:
    """Tests for ValidationError."""

    def test_message_is_plain(self):
        error = ValidationError("mpesaCode is required", field="mpesaCode")
        assert str(error) == "mpesaCode is required"
        assert error.field == "mpesaCode"

    def test_field_optional(self):
        assert ValidationError("bad").field is None


class TestAuthErrors:
    """Tests for authentication and authorization errors."""

    def test_authentication_message(self):
        error = AuthenticationError("Token expired")
        assert str(error) == "Authentication failed: Token expired"
        assert error.message == "Token expired"

    def test_authorization_default_message(self):
        error = AuthorizationError("admin:super")
        assert error.required_permission == "admin:super"
        assert "admin:super" in str(error)

    def test_authorization_custom_message(self):
        error = AuthorizationError("admin", "Admin access required")
        assert str(error) == "Admin access required"

    def test_signup_closed_is_authorization_error(self):
        error = AdminSignupClosedError()
        assert isinstance(error, AuthorizationError)
        assert error.required_permission == "admin:signup"


class TestNotFoundErrors:
    """Tests for ResourceNotFoundError subclasses."""

    def test_payment_not_found(self):
        payment_id = uuid4()
        error = PaymentNotFoundError(payment_id)
        assert isinstance(error, ResourceNotFoundError)
        assert error.payment_id == payment_id
        assert str(error) == f"Payment not found: {payment_id}"

    def test_celebrity_not_found(self):
        celebrity_id = uuid4()
        error = CelebrityNotFoundError(celebrity_id)
        assert error.resource == "Celebrity"
        assert error.identifier == str(celebrity_id)

    def test_subscription_not_found(self):
        celebrity_id = uuid4()
        assert SubscriptionNotFoundError(celebrity_id).celebrity_id == celebrity_id


class TestWorkflowStepError:
    """Tests for WorkflowStepError."""

    def test_carries_stage_and_completed_steps(self):
        error = WorkflowStepError(
            "activate_promotional_offer",
            "insert_subscription",
            ("insert_payment",),
            "duplicate key",
        )
        assert isinstance(error, DatabaseError)
        assert error.step == "insert_subscription"
        assert error.completed_steps == ["insert_payment"]
        assert error.cause == "duplicate key"
        assert str(error) == (
            "Database error: activate_promotional_offer failed at insert_subscription"
        )
        assert "duplicate key" not in str(error)

    def test_completed_steps_is_a_copy(self):
        completed = ["mark_verified"]
        error = WorkflowStepError("verify_payment", "activate_subscription", completed, "boom")
        completed.append("later")
        assert error.completed_steps == ["mark_verified"]


class TestExternalServiceError:
    """Tests for ExternalServiceError."""

    def test_message(self):
        error = ExternalServiceError("twilio", "Twilio credentials not configured")
        assert error.service == "twilio"
        assert error.message == "Twilio credentials not configured"
        assert str(error) == "twilio error: Twilio credentials not configured"

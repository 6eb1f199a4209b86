"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.

Every exception carries the HTTP status it maps to; app.main converts them
into the JSON error envelope.
"""

from collections.abc import Sequence
from uuid import UUID


class BillingError(Exception):
    """Base exception for all billing errors."""

    status_code: int = 500


class ValidationError(BillingError):
    """Raised when a request is missing fields or carries malformed values."""

    status_code = 400

    def __init__(self, message: str, field: str | None = None) -> None:
        self.message = message
        self.field = field
        super().__init__(message)


class AuthenticationError(BillingError):
    """Raised when the caller cannot be resolved to an authenticated identity."""

    status_code = 401

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class AuthorizationError(BillingError):
    """Raised when an authenticated caller lacks the required privilege."""

    status_code = 403

    def __init__(self, required_permission: str, message: str | None = None) -> None:
        self.required_permission = required_permission
        super().__init__(
            message or f"Authorization failed: missing permission {required_permission}"
        )


class AdminSignupClosedError(AuthorizationError):
    """Raised when self-service admin signup is attempted after the first admin exists."""

    def __init__(self) -> None:
        super().__init__(
            "admin:signup", "Admin registration is disabled. Admin accounts already exist."
        )


class ResourceNotFoundError(BillingError):
    """Raised when a referenced entity does not exist."""

    status_code = 404

    def __init__(self, resource: str, identifier: str) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class PaymentNotFoundError(ResourceNotFoundError):
    """Raised when a payment record doesn't exist."""

    def __init__(self, payment_id: UUID) -> None:
        self.payment_id = payment_id
        super().__init__("Payment", str(payment_id))


class CelebrityNotFoundError(ResourceNotFoundError):
    """Raised when a celebrity profile doesn't exist."""

    def __init__(self, celebrity_id: UUID) -> None:
        self.celebrity_id = celebrity_id
        super().__init__("Celebrity", str(celebrity_id))


class SubscriptionNotFoundError(ResourceNotFoundError):
    """Raised when a celebrity has no subscription record."""

    def __init__(self, celebrity_id: UUID) -> None:
        self.celebrity_id = celebrity_id
        super().__init__("Subscription", str(celebrity_id))


class DuplicateAdminError(BillingError):
    """Raised when an admin with the same email already exists."""

    status_code = 409

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"Admin already exists: {email}")


class DatabaseError(BillingError):
    """Raised when a store read or write fails unexpectedly."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Database error: {message}")


class WriteVerificationError(BillingError):
    """Raised when database write verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Write verification failed: {message}")


class WorkflowStepError(DatabaseError):
    """Raised when a primary step of a multi-write workflow fails.

    Steps that completed before the failure stay committed. The message names
    only the workflow and step; the store error is kept on ``cause``.
    """

    def __init__(
        self,
        workflow: str,
        step: str,
        completed_steps: Sequence[str],
        cause: str,
    ) -> None:
        self.workflow = workflow
        self.step = step
        self.completed_steps = list(completed_steps)
        self.cause = cause
        super().__init__(f"{workflow} failed at {step}")


class ExternalServiceError(BillingError):
    """Raised when a best-effort external collaborator fails."""

    status_code = 502

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        self.message = message
        super().__init__(f"{service} error: {message}")

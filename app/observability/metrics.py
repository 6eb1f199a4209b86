"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    ERROR_TYPE = "error_type"
    WORKFLOW = "workflow"
    STEP = "step"


class SubscriptionMetrics:
    """
    Centralized metrics for the subscription API.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Payment submissions and verifications
    - Subscription activations and forced expiries
    - Reminder deliveries
    - Partial-failure workflow inconsistencies
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "subscriptions_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "subscriptions_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "subscriptions_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "subscriptions_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Payment Metrics
        # ====================================================================
        self.payments_submitted_total = Counter(
            "subscriptions_payments_submitted_total",
            "Total payment claims submitted",
            ["payment_status"],
        )

        self.payment_amount = Histogram(
            "subscriptions_payment_amount",
            "Submitted payment amounts (whole currency units)",
            buckets=(200, 500, 1000, 2000, 3500, 5000, 10000, 25000, 50000, 100000),
        )

        self.payment_verifications_total = Counter(
            "subscriptions_payment_verifications_total",
            "Total admin payment verifications",
            ["outcome"],
        )

        # ====================================================================
        # Subscription Metrics
        # ====================================================================
        self.subscription_activations_total = Counter(
            "subscriptions_activations_total",
            "Total subscription activations",
            ["source"],
        )

        self.forced_expiries_total = Counter(
            "subscriptions_forced_expiries_total",
            "Total subscriptions force-expired by admins",
        )

        self.reminders_total = Counter(
            "subscriptions_reminders_total",
            "Total expiry reminders attempted",
            ["reminder_type", "status"],
        )

        # ====================================================================
        # Database Metrics
        # ====================================================================
        self.workflow_inconsistencies_total = Counter(
            "subscriptions_workflow_inconsistencies_total",
            "Secondary workflow steps that failed after earlier steps committed",
            [MetricLabels.WORKFLOW, MetricLabels.STEP],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "subscriptions_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_payment_submission(self, payment_status: str, amount: float) -> None:
        """Record a persisted payment claim."""
        self.payments_submitted_total.labels(payment_status=payment_status).inc()
        self.payment_amount.observe(amount)

    def record_verification(self, outcome: str) -> None:
        """Record an admin verification outcome (activated, underpaid, already_verified)."""
        self.payment_verifications_total.labels(outcome=outcome).inc()

    def record_activation(self, source: str) -> None:
        """Record a subscription activation (verification or promotion)."""
        self.subscription_activations_total.labels(source=source).inc()

    def record_forced_expiry(self, count: int) -> None:
        """Record force-expired subscriptions."""
        self.forced_expiries_total.inc(count)

    def record_reminder(self, reminder_type: str, status: str) -> None:
        """Record a reminder delivery attempt."""
        self.reminders_total.labels(reminder_type=reminder_type, status=status).inc()

    def record_inconsistency(self, workflow: str, step: str) -> None:
        """Record a secondary step failure that left committed state behind."""
        self.workflow_inconsistencies_total.labels(workflow=workflow, step=step).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = SubscriptionMetrics()


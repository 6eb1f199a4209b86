"""
Tests for logging context, metrics helpers and tracing spans.
"""

import logging

import structlog
from prometheus_client import REGISTRY

from app.observability.logging import QUIET_LOGGERS, get_logger, log_context, setup_logging
from app.observability.metrics import metrics
from app.observability.tracing import trace_operation


def sample(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestLogContext:
    """Tests for log_context."""

    def test_binds_and_unbinds(self):
        with log_context(admin_email="ops@example.com"):
            assert structlog.contextvars.get_contextvars()["admin_email"] == "ops@example.com"

        assert "admin_email" not in structlog.contextvars.get_contextvars()

    def test_get_logger_accepts_events(self):
        logger = get_logger("tests")
        logger.info("test_event", value=1)

    def test_setup_quiets_http_client_loggers(self):
        setup_logging()

        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING


class TestMetrics:
    """Tests for SubscriptionMetrics helpers."""

    def test_record_inconsistency(self):
        labels = {"workflow": "verify_payment", "step": "update_profile_flags"}
        before = sample("subscriptions_workflow_inconsistencies_total", **labels)

        metrics.record_inconsistency("verify_payment", "update_profile_flags")

        assert sample("subscriptions_workflow_inconsistencies_total", **labels) == before + 1

    def test_record_verification(self):
        before = sample("subscriptions_payment_verifications_total", outcome="underpaid")

        metrics.record_verification("underpaid")

        after = sample("subscriptions_payment_verifications_total", outcome="underpaid")
        assert after == before + 1

    def test_record_forced_expiry(self):
        before = sample("subscriptions_forced_expiries_total")

        metrics.record_forced_expiry(3)

        assert sample("subscriptions_forced_expiries_total") == before + 3


class TestTraceOperation:
    """Tests for trace_operation with tracing disabled."""

    def test_yields_span_and_returns(self):
        with trace_operation("verify_payment.mark_verified", secondary=False) as span:
            assert span is not None

"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from leadhub.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    ERROR_TYPE = "error_type"
    PURCHASE_KIND = "purchase_kind"
    OUTCOME = "outcome"
    SOURCE = "source"
    VIEW_TYPE = "view_type"


class LeadHubMetrics:
    """
    Centralized metrics for the LeadHub API.

    Covers:
    - HTTP requests (rate, duration, in-flight)
    - Payment sessions (created, verification outcomes)
    - LeadCoin flows (credited by source, spent by view type)
    - Errors by type
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "leadhub_service",
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
            "leadhub_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "leadhub_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "leadhub_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Payment Metrics
        # ====================================================================
        self.payment_sessions_created_total = Counter(
            "leadhub_payment_sessions_created_total",
            "Payment sessions created with the payment provider",
            [MetricLabels.PURCHASE_KIND],
        )

        self.payment_verifications_total = Counter(
            "leadhub_payment_verifications_total",
            "Payment verification checks by outcome",
            [MetricLabels.PURCHASE_KIND, MetricLabels.OUTCOME],
        )

        # ====================================================================
        # LeadCoin Metrics
        # ====================================================================
        self.lead_coins_credited_total = Counter(
            "leadhub_lead_coins_credited_total",
            "LeadCoins added to user balances",
            [MetricLabels.SOURCE],
        )

        self.lead_coins_spent_total = Counter(
            "leadhub_lead_coins_spent_total",
            "LeadCoins spent on lead views",
            [MetricLabels.VIEW_TYPE],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "leadhub_errors_total",
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

    def record_payment_session(self, purchase_kind: str) -> None:
        """Record a created payment session."""
        self.payment_sessions_created_total.labels(purchase_kind=purchase_kind).inc()

    def record_verification(self, purchase_kind: str, outcome: str) -> None:
        """Record a payment verification outcome."""
        self.payment_verifications_total.labels(
            purchase_kind=purchase_kind, outcome=outcome
        ).inc()

    def record_coins_credited(self, source: str, amount: int) -> None:
        """Record LeadCoins added to a balance."""
        self.lead_coins_credited_total.labels(source=source).inc(amount)

    def record_coins_spent(self, view_type: str, amount: int) -> None:
        """Record LeadCoins spent on a lead view."""
        self.lead_coins_spent_total.labels(view_type=view_type).inc(amount)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = LeadHubMetrics()

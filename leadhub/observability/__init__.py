"""
Observability module - Logging, Metrics, and Tracing.
"""

from leadhub.observability.logging import get_logger, log_context, setup_logging
from leadhub.observability.metrics import metrics
from leadhub.observability.tracing import setup_tracing

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
]

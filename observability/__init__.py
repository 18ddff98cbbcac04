"""
Observability for the product search backend.

Provides:
- Structured logging with correlation IDs
- Prometheus metrics for provider fan-out and feed imports
- Request middleware
"""

from .logging import correlation_id_context, get_correlation_id, get_logger, setup_logging
from .metrics import (
    feed_import_rows_total,
    metrics_registry,
    search_provider_duration_seconds,
    search_provider_requests_total,
    searches_total,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "correlation_id_context",
    "get_correlation_id",
    "metrics_registry",
    "search_provider_duration_seconds",
    "search_provider_requests_total",
    "searches_total",
    "feed_import_rows_total",
]

"""
Prometheus metrics for provider fan-out, feed ingestion and the HTTP layer.
"""

from prometheus_client import REGISTRY, Counter, Gauge, Histogram

metrics_registry = REGISTRY

# HTTP
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
    registry=metrics_registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=metrics_registry,
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests in progress",
    ["method", "endpoint"],
    registry=metrics_registry,
)

# Search providers
search_provider_duration_seconds = Histogram(
    "search_provider_duration_seconds",
    "Per-provider search duration in seconds",
    ["provider", "status"],  # status: ok, error, timeout
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
    registry=metrics_registry,
)

search_provider_requests_total = Counter(
    "search_provider_requests_total",
    "Total per-provider search calls",
    ["provider", "status"],
    registry=metrics_registry,
)

searches_total = Counter(
    "searches_total",
    "Total product searches served",
    ["mode"],  # aggregated, single, ean
    registry=metrics_registry,
)

# Feed ingestion
feed_import_rows_total = Counter(
    "feed_import_rows_total",
    "Catalog rows processed by feed imports",
    ["provider", "outcome"],  # outcome: imported, failed
    registry=metrics_registry,
)

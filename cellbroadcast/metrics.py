"""
Prometheus metrics for the cell broadcast store.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Provider operation counter (operation, match, result)
- Change notification counter (uri)

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

# HTTP request counter with labels for method, path, and status code
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# Request latency histogram in seconds
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# Provider call outcomes
# result: ok, soft_failure, permission_denied, invalid_argument, error
provider_operations_total = Counter(
    "provider_operations_total",
    "Total cell broadcast provider operations",
    labelnames=["operation", "match", "result"]
)

change_notifications_total = Counter(
    "change_notifications_total",
    "Total change notifications emitted",
    labelnames=["uri"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    # Normalize path to avoid high-cardinality labels
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_provider_operation(operation: str, match: str, result: str) -> None:
    """
    Record the outcome of a provider call.

    Args:
        operation: query, insert, update or delete
        match: Resolved address (all, history, no_match)
        result: One of ok, soft_failure, permission_denied, invalid_argument, error
    """
    provider_operations_total.labels(
        operation=operation,
        match=match,
        result=result
    ).inc()


def record_change_notification(uri: str) -> None:
    """Count one change event sent for `uri`."""
    change_notifications_total.labels(uri=uri).inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST

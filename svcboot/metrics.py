"""Request and database metrics."""

from opentelemetry import metrics

# Instruments are no-ops until telemetry installs a meter provider
meter = metrics.get_meter(__name__)

http_request_duration = meter.create_histogram(
    name="http_request_duration_seconds",
    description="Duration of HTTP requests in seconds",
    unit="s",
)

http_requests_total = meter.create_counter(
    name="http_requests_total",
    description="Total number of HTTP requests",
)

http_request_errors = meter.create_counter(
    name="http_request_errors_total",
    description="Total number of HTTP request errors",
)

db_query_duration = meter.create_histogram(
    name="db_query_duration_seconds",
    description="Duration of database queries in seconds",
    unit="s",
)


def record_http_request(method: str, endpoint: str, status_code: int, duration: float):
    """Record HTTP request metrics."""
    labels = {"method": method, "endpoint": endpoint, "status_code": str(status_code)}

    http_request_duration.record(duration, labels)
    http_requests_total.add(1, labels)

    if status_code >= 400:
        http_request_errors.add(1, labels)


def record_db_query(operation: str, duration: float):
    """Record database query metrics."""
    db_query_duration.record(duration, {"operation": operation})

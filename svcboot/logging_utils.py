import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import Request

from .request_utils import get_client_ip


def log_api_request(
    request: Request,
    response_status: int,
    process_time_ms: float | None = None,
    logger_name: str = "api",
) -> None:
    """Log HTTP requests with consistent format.

    Args:
        request: FastAPI request object
        response_status: HTTP response status code
        process_time_ms: Request processing time in milliseconds
        logger_name: Name of the logger to use
    """
    logger = logging.getLogger(logger_name)

    log_data = {
        "method": request.method,
        "path": request.url.path,
        "status_code": response_status,
        "client_ip": get_client_ip(request),
        "user_agent": request.headers.get("user-agent", "Unknown")[:100],
    }

    if process_time_ms is not None:
        log_data["process_time_ms"] = str(round(process_time_ms, 2))

    # Different log levels based on status code
    if response_status >= 500:
        log_level = logging.ERROR
    elif response_status >= 400:
        log_level = logging.WARNING
    else:
        log_level = logging.INFO

    message = f"{request.method} {request.url.path} - {response_status}"
    if process_time_ms is not None:
        message += f" ({process_time_ms:.1f}ms)"

    logger.log(log_level, message, extra=log_data)


def log_startup_info(
    service_name: str,
    mount_prefix: str,
    database_url: str | None,
    debug_mode: bool,
) -> None:
    """Log service startup information.

    Args:
        service_name: Registered service name
        mount_prefix: Path prefix the router is mounted under
        database_url: Redacted connection string, if the service has a database
        debug_mode: Whether debug mode is enabled
    """
    logger = logging.getLogger("system")

    extra: dict[str, Any] = {
        "service": service_name,
        "mount_prefix": mount_prefix,
        "database": database_url or "none",
        "debug_mode": debug_mode,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    logger.info("Service startup", extra=extra)

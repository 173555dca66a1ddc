"""Global exception handlers mapping errors to Problem Details responses."""

from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..domain.exceptions import (
    ConfigurationError,
    MalformedBodyError,
    PayloadTooLargeError,
    ServiceError,
)
from ..logging_config import get_logger
from .problem_details import ProblemDetail, ProblemDetailFactory, problem_response


def problem_for_service_error(error: ServiceError, instance: str) -> ProblemDetail:
    """Convert service errors to the matching problem document."""
    if isinstance(error, PayloadTooLargeError):
        return ProblemDetailFactory.payload_too_large(error.limit, instance)
    if isinstance(error, MalformedBodyError):
        return ProblemDetailFactory.malformed_body(str(error), instance)
    if isinstance(error, ConfigurationError):
        return ProblemDetailFactory.configuration_error(str(error), instance)
    return ProblemDetailFactory.internal_server_error(instance=instance)


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Global handler for service-specific errors."""
    logger = get_logger(__name__)
    logger.warning(
        "Service error occurred",
        error_type=type(exc).__name__,
        error_message=str(exc),
        path=request.url.path,
        method=request.method,
    )
    return problem_response(problem_for_service_error(exc, request.url.path))


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Render framework HTTP errors (unknown paths, wrong methods) as problems."""
    try:
        title = HTTPStatus(exc.status_code).phrase
    except ValueError:
        title = "HTTP Error"

    detail = exc.detail if exc.detail != title else None
    problem = ProblemDetailFactory.http_error(
        exc.status_code, title, detail=detail, instance=request.url.path
    )
    return problem_response(problem, headers=getattr(exc, "headers", None))


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Global handler for Pydantic validation errors."""
    logger = get_logger(__name__)
    logger.warning(
        "Request validation error occurred",
        errors=exc.errors(),
        path=request.url.path,
        method=request.method,
    )

    field_errors = []
    for error in exc.errors():
        field_name = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        field_errors.append(
            {
                "field": field_name or "unknown",
                "code": error["type"],
                "message": error["msg"],
            }
        )

    problem = ProblemDetailFactory.validation_failed(
        detail="Request validation failed",
        instance=request.url.path,
        field_errors=field_errors,
    )
    return problem_response(problem)


async def database_error_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    """Global handler for database errors."""
    logger = get_logger(__name__)
    logger.error(
        "Database error occurred",
        error_type=type(exc).__name__,
        error_message=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    problem = ProblemDetailFactory.internal_server_error(
        detail="A database error occurred. Please try again.",
        instance=request.url.path,
    )
    return problem_response(problem)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global handler for unexpected errors."""
    logger = get_logger(__name__)
    logger.error(
        "Unexpected error occurred",
        error_type=type(exc).__name__,
        error_message=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    problem = ProblemDetailFactory.internal_server_error(instance=request.url.path)
    return problem_response(problem)


def register_error_handlers(app: FastAPI) -> None:
    app.exception_handler(ServiceError)(service_error_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(SQLAlchemyError)(database_error_handler)
    app.exception_handler(Exception)(general_exception_handler)

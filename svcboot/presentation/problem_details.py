"""RFC 7807 Problem Details for HTTP error responses."""

from typing import Any, Final

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

PROBLEM_TYPE_BASE: Final = "https://svcboot.dev/problems"
PROBLEM_MEDIA_TYPE: Final = "application/problem+json"


class ErrorCodes:
    """Machine-readable error codes used in field errors."""

    VALIDATION_FAILED: Final = "validation_failed"
    FIELD_REQUIRED: Final = "field_required"
    MALFORMED_BODY: Final = "malformed_body"
    PAYLOAD_TOO_LARGE: Final = "payload_too_large"
    NOT_FOUND: Final = "not_found"
    REQUEST_TIMEOUT: Final = "request_timeout"
    CONFIGURATION_ERROR: Final = "configuration_error"
    INTERNAL_ERROR: Final = "internal_error"


class ProblemDetail(BaseModel):
    """Problem Details object as described by RFC 7807."""

    type: str = Field(description="URI identifying the problem type")
    title: str = Field(description="Short, human-readable summary")
    status: int = Field(description="HTTP status code")
    detail: str | None = Field(default=None, description="Occurrence explanation")
    instance: str | None = Field(default=None, description="Request path")
    code: str | None = Field(default=None, description="Machine-readable error code")


class ValidationProblemDetail(ProblemDetail):
    errors: list[dict[str, Any]] | None = Field(
        default=None, description="Field-level validation errors"
    )


class PayloadTooLargeProblemDetail(ProblemDetail):
    limit: int = Field(description="Maximum accepted body size in bytes")


def _problem_type(slug: str) -> str:
    return f"{PROBLEM_TYPE_BASE}/{slug}"


class ProblemDetailFactory:
    """Builds the problem documents returned by the services."""

    @staticmethod
    def malformed_body(detail: str, instance: str | None = None) -> ProblemDetail:
        return ProblemDetail(
            type=_problem_type("malformed-body"),
            title="Malformed Request Body",
            status=400,
            detail=detail,
            instance=instance,
            code=ErrorCodes.MALFORMED_BODY,
        )

    @staticmethod
    def validation_failed(
        detail: str,
        instance: str | None = None,
        field_errors: list[dict[str, Any]] | None = None,
    ) -> ValidationProblemDetail:
        return ValidationProblemDetail(
            type=_problem_type("validation-failed"),
            title="Validation Failed",
            status=400,
            detail=detail,
            instance=instance,
            code=ErrorCodes.VALIDATION_FAILED,
            errors=field_errors,
        )

    @staticmethod
    def payload_too_large(
        limit: int, instance: str | None = None
    ) -> PayloadTooLargeProblemDetail:
        return PayloadTooLargeProblemDetail(
            type=_problem_type("payload-too-large"),
            title="Payload Too Large",
            status=413,
            detail=f"Request body exceeds the {limit} byte limit",
            instance=instance,
            code=ErrorCodes.PAYLOAD_TOO_LARGE,
            limit=limit,
        )

    @staticmethod
    def http_error(
        status: int, title: str, detail: str | None = None, instance: str | None = None
    ) -> ProblemDetail:
        """Generic problem for framework-raised HTTP errors (404, 405, ...)."""
        slug = title.lower().replace(" ", "-")
        return ProblemDetail(
            type=_problem_type(slug),
            title=title,
            status=status,
            detail=detail,
            instance=instance,
            code=ErrorCodes.NOT_FOUND if status == 404 else None,
        )

    @staticmethod
    def gateway_timeout(timeout: float, instance: str | None = None) -> ProblemDetail:
        return ProblemDetail(
            type=_problem_type("request-timeout"),
            title="Request Timeout",
            status=504,
            detail=f"The request did not complete within {timeout:g} seconds",
            instance=instance,
            code=ErrorCodes.REQUEST_TIMEOUT,
        )

    @staticmethod
    def configuration_error(
        detail: str, instance: str | None = None
    ) -> ProblemDetail:
        return ProblemDetail(
            type=_problem_type("configuration-error"),
            title="Service Misconfigured",
            status=500,
            detail=detail,
            instance=instance,
            code=ErrorCodes.CONFIGURATION_ERROR,
        )

    @staticmethod
    def internal_server_error(
        detail: str = "An unexpected error occurred. Please try again.",
        instance: str | None = None,
    ) -> ProblemDetail:
        return ProblemDetail(
            type=_problem_type("internal-server-error"),
            title="Internal Server Error",
            status=500,
            detail=detail,
            instance=instance,
            code=ErrorCodes.INTERNAL_ERROR,
        )


def problem_response(
    problem: ProblemDetail, headers: dict[str, str] | None = None
) -> JSONResponse:
    """Render a problem as an ``application/problem+json`` response."""
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        media_type=PROBLEM_MEDIA_TYPE,
        headers=headers,
    )

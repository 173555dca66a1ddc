import json
import time
from collections.abc import Awaitable, Callable
from typing import Any

import anyio
from fastapi import Request, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .domain.exceptions import (
    MalformedBodyError,
    PayloadTooLargeError,
    RequestBodyError,
)
from .logging_config import get_logger
from .logging_utils import log_api_request
from .metrics import record_http_request
from .presentation.error_handlers import (
    general_exception_handler,
    problem_for_service_error,
)
from .presentation.problem_details import ProblemDetailFactory, problem_response
from .request_utils import BodyKind, expand_form_items, get_body_kind

CallNext = Callable[[Request], Awaitable[Response]]


async def log_requests_middleware(request: Request, call_next: CallNext) -> Response:
    """Middleware to log all HTTP requests with timing information.

    Args:
        request: FastAPI request object
        call_next: Next middleware/route handler in the chain

    Returns:
        Response from the route handler
    """
    start_time = time.perf_counter()

    response = await call_next(request)

    duration = time.perf_counter() - start_time

    log_api_request(
        request=request,
        response_status=response.status_code,
        process_time_ms=duration * 1000,
    )

    # Label by route template when one matched, to keep cardinality bounded
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    record_http_request(request.method, endpoint, response.status_code, duration)

    return response


async def unhandled_errors_middleware(
    request: Request, call_next: CallNext
) -> Response:
    """Turn unexpected exceptions into 500 problem responses.

    Runs inside the CORS layer so error responses still carry CORS headers.
    """
    try:
        return await call_next(request)
    except Exception as exc:
        return await general_exception_handler(request, exc)


def _reject_constant(name: str) -> Any:
    raise MalformedBodyError(f"Invalid JSON body: {name} is not valid JSON")


async def _read_body(request: Request, kind: BodyKind, limit: int) -> Any:
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > limit:
        raise PayloadTooLargeError(limit, int(declared))

    # Stop reading as soon as the limit is passed, Content-Length or not
    chunks: list[bytes] = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > limit:
            raise PayloadTooLargeError(limit, received)
        chunks.append(chunk)
    raw = b"".join(chunks)
    # Request.body() and form() reuse the cached bytes downstream
    request._body = raw
    if not raw:
        return {}

    if kind == "json":
        try:
            parsed = json.loads(raw, parse_constant=_reject_constant)
        except ValueError as e:
            raise MalformedBodyError(f"Invalid JSON body: {e}") from e
        # Strict mode: only objects and arrays are accepted at the top level
        if not isinstance(parsed, dict | list):
            raise MalformedBodyError("JSON body must be an object or an array")
        return parsed

    try:
        form = await request.form()
    except StarletteHTTPException as e:
        raise MalformedBodyError(f"Invalid URL-encoded body: {e.detail}") from e
    return expand_form_items(form.multi_items())


async def parse_body_middleware(request: Request, call_next: CallNext) -> Response:
    """Parse JSON and URL-encoded bodies into ``request.state.body``.

    Bodies over the configured limit are answered with 413 and malformed
    ones with 400 before any route handler runs. Other content types pass
    through with an empty body mapping.
    """
    request.state.body = {}
    kind = get_body_kind(request)
    if kind is None:
        return await call_next(request)

    limit: int = request.app.state.settings.body_limit
    try:
        request.state.body = await _read_body(request, kind, limit)
    except RequestBodyError as exc:
        logger = get_logger(__name__)
        logger.warning(
            "Rejected request body",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )
        return problem_response(problem_for_service_error(exc, request.url.path))

    return await call_next(request)


class RequestTimeoutMiddleware:
    """Cancel requests that have not started a response within ``timeout``.

    A request cancelled before its response started gets a 504 problem
    response; one cancelled mid-stream is cut off.
    """

    def __init__(self, app: ASGIApp, timeout: float | None = None):
        self.app = app
        self.timeout = timeout

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or self.timeout is None:
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        with anyio.move_on_after(self.timeout) as cancel_scope:
            await self.app(scope, receive, send_wrapper)

        if not cancel_scope.cancelled_caught or response_started:
            return

        logger = get_logger(__name__)
        logger.warning(
            "Request timed out",
            path=scope["path"],
            method=scope["method"],
            timeout_seconds=self.timeout,
        )
        problem = ProblemDetailFactory.gateway_timeout(self.timeout, scope["path"])
        await problem_response(problem)(scope, receive, send)

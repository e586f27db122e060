"""Global exception handler funnel for consistent error responses.

One handler is registered for every error type so that quota middleware
failures, store outages and route errors all take the same path:

- status >= 500 -> logged at error level as an internal server error
- 400 <= status < 500 -> logged at warning level as a client error
- no status -> logged at error level as an unhandled error, generic 500 body

All responses share one body shape and carry the transaction id, both in
the body and in the ``X-Transaction-ID`` header. Stack traces are logged,
never returned.
"""

from __future__ import annotations

import traceback
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from admission.core.context import ensure_transaction
from admission.core.errors import AppError

GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."


def _status_of(exc: Exception) -> int | None:
    if isinstance(exc, RequestValidationError):
        return 422
    status_code = getattr(exc, "status_code", None)
    return status_code if isinstance(status_code, int) else None


def build_error_context(request: Request, exc: Exception, transaction_id: str) -> dict[str, Any]:
    """Collect request details logged alongside a failure."""

    return {
        "error": str(exc),
        "error_type": type(exc).__name__,
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        "path": request.url.path,
        "method": request.method,
        "user_agent": request.headers.get("user-agent"),
        "ip": request.headers.get("x-forwarded-for")
        or request.headers.get("x-real-ip")
        or "unknown",
        "transaction_id": transaction_id,
    }


def render_error_response(exc: Exception, transaction_id: str) -> JSONResponse:
    """Render any error as ``{"error": {code, message, transaction_id}}``.

    Classified errors keep their status and message; anything else becomes
    a generic 500 so internals never reach the client.
    """

    headers: dict[str, str] = {"X-Transaction-ID": transaction_id}
    error_content: dict[str, Any] = {"transaction_id": transaction_id}

    if isinstance(exc, AppError):
        status_code = exc.status_code
        error_content.update(code=exc.code, message=exc.message)
        if exc.details:
            error_content["details"] = exc.details
    elif isinstance(exc, RequestValidationError):
        status_code = 422
        error_content.update(
            code="validation_error",
            message="Request validation failed",
            details={"errors": jsonable_encoder(exc.errors())},
        )
    elif isinstance(exc, StarletteHTTPException):
        status_code = exc.status_code
        error_content.update(code=f"http_{exc.status_code}", message=str(exc.detail))
        if exc.headers:
            headers.update(exc.headers)
    else:
        status_code = 500
        error_content.update(code="internal_server_error", message=GENERIC_ERROR_MESSAGE)

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers,
    )


async def funnel_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log ``exc`` with full request context and render the error body.

    Args:
        request: FastAPI request object.
        exc: Any exception raised in the middleware chain or a route.

    Returns:
        JSONResponse with status derived from the error.
    """
    ctx = ensure_transaction(request)
    error_context = build_error_context(request, exc, ctx.transaction_id)
    status_code = _status_of(exc)

    if status_code is not None and status_code >= 500:
        ctx.logger.error("http.internal_error", extra=error_context)
    elif status_code is not None and status_code >= 400:
        ctx.logger.warning("http.client_error", extra=error_context)
    else:
        ctx.logger.error("http.unhandled_error", extra=error_context)

    return render_error_response(exc, ctx.transaction_id)


def setup_exception_handlers(app) -> None:
    """Register the funnel for every error type.

    Errors raised inside HTTP middleware bypass type-specific handlers and
    reach only the ``Exception`` handler, so the same funnel is registered
    there too.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(AppError)(funnel_exception_handler)
    app.exception_handler(StarletteHTTPException)(funnel_exception_handler)
    app.exception_handler(RequestValidationError)(funnel_exception_handler)
    app.exception_handler(Exception)(funnel_exception_handler)

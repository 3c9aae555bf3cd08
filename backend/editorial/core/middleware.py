"""
HTTP middleware: request ids, access logging, the last-resort error envelope
and security headers.
"""
import time
import logging
from typing import Callable
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from editorial.core.logging_config import clear_request_context, generate_request_id, set_request_context
from editorial.models import ErrorResponse

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 1.0


class LoggingMiddleware(BaseHTTPMiddleware):
    """Access log line per request, tagged with the acting user when known."""

    def __init__(self, app: ASGIApp, slow_request_seconds: float = SLOW_REQUEST_SECONDS):
        super().__init__(app)
        self.slow_request_seconds = slow_request_seconds

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        request_id = getattr(request.state, "request_id", "-")
        actor = request.headers.get("x-user-id", "anonymous")

        logger.info(f"[{request_id}] {request.method} {request.url.path} by {actor}")
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(
            level,
            f"[{request_id}] {response.status_code} {request.method} {request.url.path} "
            f"in {elapsed:.4f}s"
        )
        if elapsed > self.slow_request_seconds:
            logger.warning(f"[{request_id}] slow request: {request.method} {request.url.path} took {elapsed:.2f}s")

        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Assigns the request id and catches anything the exception handlers did not.

    Workflow errors (``ApplicationError``) are rendered by the app's exception
    handler before they reach this point; only unexpected failures land here.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = generate_request_id()
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"[{request_id}] unhandled error on {request.method} {request.url.path}: {e}", exc_info=True)
            body = ErrorResponse(
                message="Internal server error",
                error_code="INTERNAL_ERROR",
                details={"request_id": request_id}
            )
            response = JSONResponse(status_code=500, content=body.dict())
        finally:
            clear_request_context()

        response.headers["X-Request-ID"] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def setup_middleware(app):
    """Register middleware; the last one added runs outermost."""
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

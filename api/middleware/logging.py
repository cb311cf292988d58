# WORKFLOW: Structured logging middleware for request/response monitoring.
# Used by: All API endpoints, operational monitoring, debugging
# Functions:
# 1. _log_request() - Log incoming request details (method, path, body)
# 2. _log_response() - Log response details (status, timing, content type)
# 3. _log_error() - Log error details with context
#
# Logging flow: Request -> Log request -> Process -> Log response/error
# Import requests are slow (remote fetch + many inserts), so timing is logged per request.

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
import time
import structlog
from typing import Callable
import json

logger = structlog.get_logger()

MAX_LOGGED_BODY = 1000


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for structured request/response logging."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and log details."""
        start_time = time.time()

        await self._log_request(request)

        try:
            response = await call_next(request)
        except Exception as e:
            await self._log_error(request, e, time.time() - start_time)
            raise

        await self._log_response(request, response, time.time() - start_time)
        return response

    async def _log_request(self, request: Request):
        """Log incoming request details."""
        body = None
        if request.method in ["POST", "PUT", "PATCH"]:
            raw = await request.body()
            if raw:
                text = raw.decode(errors="replace")[:MAX_LOGGED_BODY]
                try:
                    body = json.loads(text)
                except ValueError:
                    body = text

        logger.info(
            "Incoming request",
            method=request.method,
            path=request.url.path,
            query_params=dict(request.query_params),
            body=body,
            client_ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent")
        )

    async def _log_response(self, request: Request, response: Response, process_time: float):
        """Log response details."""
        logger.info(
            "Response sent",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time_ms=round(process_time * 1000, 2),
            content_length=response.headers.get("content-length"),
            content_type=response.headers.get("content-type")
        )

    async def _log_error(self, request: Request, error: Exception, process_time: float):
        """Log error details."""
        logger.error(
            "Request failed",
            method=request.method,
            path=request.url.path,
            error_type=type(error).__name__,
            error_message=str(error),
            process_time_ms=round(process_time * 1000, 2)
        )

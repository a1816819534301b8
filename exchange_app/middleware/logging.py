"""Logging middleware for HTTP request/response tracking."""

import time
from collections.abc import Callable
from typing import Any

import uuid_utils.compat as uuid
from fastapi import Request, Response
from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware

from exchange_app.logging_config import get_logger

logger = get_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log HTTP requests and responses using structlog context binding."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and log details.

        Args:
            request: The incoming request
            call_next: The next middleware/route handler

        Returns:
            The response from downstream handlers
        """
        request_id = str(uuid.uuid7())
        method = request.method
        path = request.url.path

        request_logger = logger.bind(
            request_id=request_id,
            method=method,
            endpoint=path,
            client_ip=self._get_client_ip(request),
            user_agent=request.headers.get("user-agent", ""),
        )
        request.state.request_id = request_id
        request.state.logger = request_logger

        start_time = time.time()
        request_logger.info(f"Incoming request: {method} {path}")

        try:
            response = await call_next(request)
        except Exception as e:
            request_logger.error(
                f"Request failed: {method} {path} - {e!s}",
                response_time_ms=self._elapsed_ms(start_time),
                exc_info=True,
                **self._user_fields(request),
            )
            raise

        request_logger.info(
            f"Request completed: {method} {path} - {response.status_code}",
            status_code=response.status_code,
            response_time_ms=self._elapsed_ms(start_time),
            **self._user_fields(request),
        )
        response.headers["X-Request-ID"] = request_id
        return response

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return round((time.time() - start_time) * 1000, 2)

    @staticmethod
    def _user_fields(request: Request) -> dict[str, Any]:
        """Return the authenticated user id, also tagging the current span."""
        user_context = getattr(request.state, "user_context", None)
        if not user_context:
            return {}

        current_span = trace.get_current_span()
        if current_span.is_recording():
            current_span.set_attribute("user.id", user_context.user_id)
        return {"user_id": user_context.user_id}

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP address from request.

        Args:
            request: The HTTP request

        Returns:
            Client IP address
        """
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        if request.client:
            return request.client.host

        return "unknown"

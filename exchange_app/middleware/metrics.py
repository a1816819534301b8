"""Prometheus metrics middleware for FastAPI."""

import re
import time
from collections.abc import Callable

from fastapi import Request, Response
from prometheus_client import Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_COUNT = Counter(
    "http_requests_total", "Total number of HTTP requests", ["method", "endpoint", "status_code"]
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds", "HTTP request duration in seconds", ["method", "endpoint"]
)

IN_PROGRESS_REQUESTS = Gauge(
    "http_requests_in_progress", "Number of HTTP requests currently being processed"
)

CURRENCY_CONVERSIONS_TOTAL = Counter(
    "currency_conversions_total",
    "Total number of currency conversions attempted",
    ["from_currency", "to_currency", "status"],
)

RATES_LOOKUPS_TOTAL = Counter(
    "exchange_rates_lookups_total",
    "Exchange rate lookups by where the answer came from",
    ["source"],
)

DATABASE_OPERATIONS_TOTAL = Counter(
    "database_operations_total",
    "Total number of database operations",
    ["operation", "table", "status"],
)

_UUID_SEGMENT = re.compile(r"/[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}")
_NUMERIC_SEGMENT = re.compile(r"/\d+")


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect Prometheus metrics for HTTP requests."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and collect metrics."""
        if request.url.path == "/metrics":
            return await call_next(request)

        endpoint = self._get_endpoint_pattern(request)
        method = request.method

        IN_PROGRESS_REQUESTS.inc()
        start_time = time.time()

        try:
            response = await call_next(request)
            REQUEST_COUNT.labels(
                method=method, endpoint=endpoint, status_code=str(response.status_code)
            ).inc()
            return response

        except Exception:
            REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code="500").inc()
            raise

        finally:
            REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(
                time.time() - start_time
            )
            IN_PROGRESS_REQUESTS.dec()

    def _get_endpoint_pattern(self, request: Request) -> str:
        """Extract endpoint pattern from request for consistent labeling."""
        route = request.scope.get("route")
        if route is not None and hasattr(route, "path"):
            return route.path

        # Unmatched routes: collapse ids so label cardinality stays bounded
        path = _UUID_SEGMENT.sub("/{uuid}", request.url.path)
        return _NUMERIC_SEGMENT.sub("/{id}", path)


def get_metrics() -> str:
    """Get current metrics in Prometheus format."""
    return generate_latest().decode("utf-8")


def record_currency_conversion(from_currency: str, to_currency: str, *, success: bool = True):
    """Record currency conversion metrics."""
    status = "success" if success else "error"
    CURRENCY_CONVERSIONS_TOTAL.labels(
        from_currency=from_currency, to_currency=to_currency, status=status
    ).inc()


def record_rates_lookup(source: str):
    """Record where an exchange rates answer came from (or ``unavailable``)."""
    RATES_LOOKUPS_TOTAL.labels(source=source).inc()


def record_database_operation(operation: str, table: str, *, success: bool = True):
    """Record database operation metrics."""
    status = "success" if success else "error"
    DATABASE_OPERATIONS_TOTAL.labels(operation=operation, table=table, status=status).inc()

"""Main FastAPI application for the currency exchange API."""

from contextlib import asynccontextmanager

import aiohttp
from fastapi import FastAPI, Response

from exchange_app.config import settings
from exchange_app.database import create_tables
from exchange_app.logging_config import get_logger
from exchange_app.middleware.auth import AuthenticationMiddleware
from exchange_app.middleware.logging import LoggingMiddleware
from exchange_app.middleware.metrics import PrometheusMiddleware, get_metrics
from exchange_app.routers import exchange_rates, health, user
from exchange_app.tracing_config import configure_tracing, instrument_application

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting Currency Exchange API application")

    try:
        configure_tracing(service_name="exchange-api")
        instrument_application()
        logger.info("OpenTelemetry tracing configured successfully")
    except Exception:
        # Tracing is optional; the API serves requests without it
        logger.error("Failed to configure tracing", exc_info=True)

    try:
        create_tables()
        logger.info("Database tables created successfully")
    except Exception:
        logger.error("Failed to create database tables", exc_info=True)
        raise

    if not settings.open_exchange_rates_api_key:
        logger.warning("OPEN_EXCHANGE_RATES_API_KEY is not set; rate fetches will fail")

    app.state.http_session = aiohttp.ClientSession()
    logger.info("Currency Exchange API application started successfully")
    try:
        yield
    finally:
        await app.state.http_session.close()
        logger.info("Shutting down Currency Exchange API application")


app = FastAPI(
    title="Currency Exchange API",
    description="Exchange rates, currency conversion and transaction history",
    version="1.0.0",
    lifespan=lifespan,
)

# Last added runs first: metrics wrap logging, which wraps authentication
app.add_middleware(AuthenticationMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(PrometheusMiddleware)

app.include_router(health.router)
app.include_router(exchange_rates.router)
app.include_router(user.router)


@app.get("/api")
async def api_info() -> dict[str, str | dict[str, str]]:
    """API information endpoint.

    Returns:
        API information and available endpoints
    """
    return {
        "message": "Currency Exchange API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "rates": "/api/exchange-rates",
            "convert": "/api/exchange-rates/convert",
            "transactions": "/api/user/transactions",
            "metrics": "/metrics",
        },
    }


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=get_metrics(), media_type="text/plain")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("exchange_app.main:app", host=settings.api_host, port=settings.api_port)

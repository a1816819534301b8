"""Health check endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from exchange_app.database import get_db

router = APIRouter(tags=["health"])

SERVICE_NAME = "currency-exchange-api"


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Basic health check endpoint.

    Returns:
        Health status and timestamp
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "service": SERVICE_NAME,
    }


@router.get("/health/detailed")
def detailed_health_check(db: Session = Depends(get_db)) -> dict[str, str | dict[str, str]]:
    """Detailed health check including database connectivity."""
    checks: dict[str, str] = {}
    status = "healthy"

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except SQLAlchemyError as e:
        status = "unhealthy"
        checks["database"] = f"unhealthy: {e!s}"

    return {
        "status": status,
        "timestamp": datetime.now(UTC).isoformat(),
        "service": SERVICE_NAME,
        "checks": checks,
    }

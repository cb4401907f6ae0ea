"""
Health check endpoints - used by load balancers, Docker healthcheck, and the dashboard.

- GET /api/health       - basic liveness (always 200 if app running)
- GET /api/health/ready - readiness check (database + messaging session)
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from whatsrelay.api.dashboard import uptime_seconds
from whatsrelay.database import get_db
from whatsrelay.schemas.api_responses import ok

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["health"])

VERSION = "1.0.0"


@router.get("/health")
async def health_check(request: Request):
    """Basic liveness check - returns 200 if the app is running."""
    return ok({
        "status": "healthy",
        "uptime": uptime_seconds(request),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
    })


@router.get("/health/ready")
async def readiness_check(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Readiness check - verifies database connectivity and reports the session status.
    The messaging session is informational: a disconnected phone does not make the
    relay unready.
    """
    checks = {"database": await _check_database(db)}

    state = getattr(request.app.state, "connection_state", None)
    checks["messaging"] = {"healthy": True, "status": state.status if state else "unknown"}

    all_healthy = all(c["healthy"] for c in checks.values())
    return ok({
        "status": "ready" if all_healthy else "degraded",
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


async def _check_database(db: AsyncSession) -> dict:
    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        return {"healthy": True}
    except Exception as e:
        logger.error("Database health check failed: %s", str(e))
        return {"healthy": False, "error": str(e)}

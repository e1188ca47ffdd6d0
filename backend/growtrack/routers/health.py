"""Liveness and readiness probes."""

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from growtrack.config import settings
from growtrack.database import engine

router = APIRouter(tags=["health"])

SERVICE = "GrowTrack"


def _stamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
async def health_check():
    """Process is up. Does not touch the database."""
    return {
        "status": "ok",
        "service": SERVICE,
        "environment": settings.environment,
        "timestamp": _stamp(),
    }


@router.get("/health/ready")
async def readiness_check():
    """503 until the database answers a trivial query."""
    database = "ok"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # reported in the probe body
        database = f"error: {str(exc)[:100]}"

    ready = database == "ok"
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "healthy" if ready else "unhealthy",
            "service": SERVICE,
            "checks": {"service": "ok", "database": database, "dialect": engine.dialect.name},
            "timestamp": _stamp(),
        },
    )

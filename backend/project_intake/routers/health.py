"""Health check endpoints for load balancers and monitoring."""

from datetime import datetime

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from project_intake.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Lightweight health check (no storage check)."""
    return {
        "status": "ok",
        "service": "project-intake",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check():
    """Readiness check; probes the database only when drafts live there."""
    checks = {"service": "ok", "draft_store": settings.draft_backend}
    overall_healthy = True

    if settings.draft_backend == "database":
        from project_intake.database import engine

        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except Exception as e:
            checks["database"] = f"error: {str(e)[:100]}"
            overall_healthy = False

    return JSONResponse(
        status_code=status.HTTP_200_OK if overall_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if overall_healthy else "unhealthy",
            "service": "project-intake",
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )

# WORKFLOW: Health check endpoints for monitoring and operational status.
# Used by: Load balancers, monitoring systems, operational dashboards
# Endpoints:
# 1. /healthz - Basic health check (always returns healthy)
# 2. /readyz - Readiness check with database connectivity
# 3. /livez - Liveness check for Kubernetes probes
#
# Health flow: Health check request -> Service status check -> Health response
# Readiness flow: Readiness check -> Database connectivity -> Ready/Not ready

from fastapi import APIRouter
import logging
from datetime import datetime, timezone

from db.session import check_db_connection
from core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def health_check():
    """
    Basic health check endpoint.

    Returns:
        Health status of the API
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.version,
        "environment": settings.environment
    }


@router.get("/readyz")
async def readiness_check():
    """
    Readiness check endpoint.

    The service is ready when the database accepts connections. The Flex API
    is not probed; it is only needed while an import runs.

    Returns:
        Readiness status with detailed checks
    """
    checks = {
        "database": check_db_connection(),
    }

    is_ready = all(checks.values())
    if not is_ready:
        logger.warning(f"Readiness check failed: {checks}")

    return {
        "status": "ready" if is_ready else "not_ready",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
        "version": settings.version
    }


@router.get("/livez")
async def liveness_check():
    """
    Liveness check endpoint.

    Returns:
        Liveness status
    """
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

"""Health checks: /health/ answers while the process runs, /health/ready gates on the database."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from tutorassist.infrastructure import database

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])

SERVICE = {"service": "tutorassist-api", "version": "1.0.0"}


@router.get("/")
async def liveness():
    return {"status": "healthy", **SERVICE}


@router.get("/ready")
async def readiness():
    # Read the module attribute per request; tests and shutdown replace it
    manager = database.db_manager
    if manager is not None and await manager.health_check():
        return {"status": "ready", "checks": {"database": "healthy"}}
    logger.warning("Not ready: database unavailable")
    return JSONResponse(
        status_code=503, content={"status": "not_ready", "reason": "database_unavailable", **SERVICE},
    )

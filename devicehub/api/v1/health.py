"""
Liveness and readiness checks for DeviceHub.

``/health`` answers without touching the database; ``/readiness`` requires
the device registry to be reachable.
"""

from datetime import datetime, timezone
from typing import Annotated
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from devicehub import __version__
from devicehub.config import settings
from devicehub.database import get_db

logger = structlog.get_logger()

router = APIRouter(tags=["health"])

SERVICE_NAME = "devicehub-api"


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    environment: str
    timestamp: datetime
    bridge: str
    heartbeat_interval_seconds: int


class ReadinessResponse(BaseModel):
    status: str
    database: str


@router.get("/health", response_model=HealthResponse, summary="Service health")
async def health_check():
    """Report service identity and the settings devices depend on."""
    return HealthResponse(
        status="healthy",
        service=SERVICE_NAME,
        version=__version__,
        environment=settings.ENV,
        timestamp=datetime.now(timezone.utc),
        bridge=settings.BRIDGE_SERVER_NAME,
        heartbeat_interval_seconds=settings.HEARTBEAT_INTERVAL_SECONDS,
    )


@router.get("/readiness", response_model=ReadinessResponse, summary="Registry readiness")
async def readiness_check(db: Annotated[AsyncSession, Depends(get_db)]):
    """
    Check that the device registry answers a trivial query.

    Returns 503 when it does not.
    """
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("readiness_database_unreachable", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=ReadinessResponse(status="not_ready", database="unreachable").model_dump(),
        )

    return ReadinessResponse(status="ready", database="connected")


@router.get("/ping", summary="Connectivity check")
async def ping():
    """Reachability check that touches nothing."""
    return {"message": "pong", "service": SERVICE_NAME}

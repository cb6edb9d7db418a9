"""
Capture API endpoints.

All routes are device-scoped: the owning device is always the one resolved
by the authorization gate.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from devicehub.api.dependencies import get_current_device
from devicehub.database import get_db
from devicehub.errors import NotFound
from devicehub.models.capture import SensorType
from devicehub.schemas.capture import CaptureCreate, CaptureResponse, CaptureSummary
from devicehub.services import capture_service
from devicehub.services.device_service import DeviceContext


router = APIRouter(prefix="/captures", tags=["captures"])


@router.post("", response_model=CaptureResponse, status_code=status.HTTP_201_CREATED)
async def submit_capture(
    capture_in: CaptureCreate,
    context: Annotated[DeviceContext, Depends(get_current_device)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """
    Submit a sensor capture for the authenticated device.

    A ``device_id`` in the body is ignored.
    """
    return await capture_service.create_capture(
        db,
        context.device_id,
        capture_in.sensor_type.value,
        capture_in.data,
    )


@router.get("", response_model=List[CaptureSummary])
async def list_captures(
    context: Annotated[DeviceContext, Depends(get_current_device)],
    db: Annotated[AsyncSession, Depends(get_db)],
    sensor_type: Optional[SensorType] = None,
    limit: Annotated[int, Query(ge=1, le=capture_service.MAX_LIST_LIMIT)] = 20,
):
    """List the authenticated device's captures, newest first."""
    return await capture_service.list_captures(
        db,
        context.device_id,
        sensor_type=sensor_type.value if sensor_type else None,
        limit=limit,
    )


@router.get("/{capture_id}", response_model=CaptureResponse)
async def get_capture(
    capture_id: int,
    context: Annotated[DeviceContext, Depends(get_current_device)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Get one of the authenticated device's captures."""
    capture = await capture_service.get_capture(db, context.device_id, capture_id)
    if capture is None:
        raise NotFound("Capture not found")
    return capture

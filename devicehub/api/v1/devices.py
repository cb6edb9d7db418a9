"""
Device API endpoints.

Handles registration (open) and device-scoped device info.
"""
from typing import Annotated, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Header, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from devicehub.api.dependencies import PREVIOUS_DEVICE_ID_HEADER, get_current_device
from devicehub.database import get_db
from devicehub.errors import NotFound, ValidationError
from devicehub.schemas.device import (
    DeviceInfo,
    DeviceRegistrationRequest,
    DeviceRegistrationResponse,
    PushTokenRequest,
    PushTokenResponse,
)
from devicehub.services.device_service import DeviceContext, save_push_token
from devicehub.services.registration_service import register_device


router = APIRouter(prefix="/devices", tags=["devices"])


def _parse_legacy_id(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    try:
        return str(UUID(value.strip()))
    except ValueError:
        raise ValidationError(f"{PREVIOUS_DEVICE_ID_HEADER} must be a UUID")


@router.post(
    "/register",
    response_model=DeviceRegistrationResponse,
    status_code=status.HTTP_200_OK,
    responses={201: {"model": DeviceRegistrationResponse, "description": "Device created"}},
)
async def register(
    registration: DeviceRegistrationRequest,
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)],
    previous_device_id: Annotated[Optional[str], Header(alias=PREVIOUS_DEVICE_ID_HEADER)] = None,
):
    """
    Register a device, or refresh an existing registration.

    Open endpoint: no credential is required. Re-registering with the same
    stable hardware id returns the same device id and credential unless
    ``rotate_credential`` is set.

    Args:
        registration: Registration data
        response: Used to set 201 on creation
        db: Database session
        previous_device_id: Device id the client held before hardware-id support

    Returns:
        Device id, name, credential and timestamps
    """
    legacy_id = _parse_legacy_id(previous_device_id)
    result = await register_device(db, registration, legacy_id=legacy_id)
    if result.created:
        response.status_code = status.HTTP_201_CREATED
    return result.device


@router.get("/me", response_model=DeviceInfo)
async def get_my_device(
    context: Annotated[DeviceContext, Depends(get_current_device)],
):
    """Get the authenticated device's info."""
    return context.device


@router.post("/me/push-token", response_model=PushTokenResponse)
async def set_push_token(
    body: PushTokenRequest,
    context: Annotated[DeviceContext, Depends(get_current_device)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Save the push delivery token for the authenticated device."""
    await save_push_token(db, context.device, body.push_token)
    return PushTokenResponse(device_id=context.device_id)


@router.get("/{device_id}", response_model=DeviceInfo)
async def get_device(
    device_id: str,
    context: Annotated[DeviceContext, Depends(get_current_device)],
):
    """
    Get a device by ID.

    Only the caller's own device is visible; any other id is reported as not
    found, whether or not it exists.
    """
    if device_id != context.device_id:
        raise NotFound("Device not found")
    return context.device

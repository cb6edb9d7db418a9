"""
Pydantic schemas for device registration and device info.
"""
from datetime import datetime
from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


HARDWARE_ID_PATTERN = r"^[A-Za-z0-9._:\-]+$"


class DeviceRegistrationRequest(BaseModel):
    """
    Schema for registering (or re-registering) a device.

    Older clients send ``vendor_id`` and ``regenerate_token``; both are
    accepted as aliases.
    """
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        validation_alias=AliasChoices("name", "display_name"),
        description="Display name of the device"
    )
    stable_hardware_id: Optional[str] = Field(
        None,
        min_length=1,
        max_length=64,
        pattern=HARDWARE_ID_PATTERN,
        validation_alias=AliasChoices("stable_hardware_id", "vendor_id", "hw_id"),
        description="Identifier that persists across reinstalls on the same device"
    )
    rotate_credential: bool = Field(
        False,
        validation_alias=AliasChoices("rotate_credential", "regenerate_token", "rotate"),
        description="Issue a new credential, invalidating the previous one"
    )

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class DeviceRegistrationResponse(BaseModel):
    """Schema for device registration response. The only place a credential is returned."""
    id: str
    name: str
    credential: str
    registered_at: datetime
    last_seen_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DeviceInfo(BaseModel):
    """Schema for device info returned to the device itself."""
    id: str
    name: str
    registered_at: datetime
    last_seen_at: Optional[datetime] = None
    last_bridge_call_at: Optional[datetime] = None
    owner_user_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PushTokenRequest(BaseModel):
    """Schema for saving the device's push delivery token."""
    push_token: str = Field(..., min_length=10, max_length=256)


class PushTokenResponse(BaseModel):
    ok: bool = True
    device_id: str

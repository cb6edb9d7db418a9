"""
Pydantic schemas for users, sessions and device ownership.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field


class IdentityTokenExchange(BaseModel):
    """Schema for exchanging an external identity token for a session."""
    id_token: str = Field(..., min_length=1)
    display_name: Optional[str] = Field(None, max_length=100)


class UserResponse(BaseModel):
    """Schema for user response."""
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SessionResponse(BaseModel):
    """Session token is only returned in the body for native clients."""
    user: UserResponse
    token: Optional[str] = None
    token_type: str = "bearer"


class LinkDeviceRequest(BaseModel):
    """Schema for linking a device to the signed-in user."""
    device_id: UUID


class LinkDeviceResponse(BaseModel):
    linked: bool
    device_id: str
    already_linked: bool = False


class LinkedDevice(BaseModel):
    id: str
    name: str
    last_seen_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MeResponse(BaseModel):
    user: UserResponse
    devices: List[LinkedDevice]


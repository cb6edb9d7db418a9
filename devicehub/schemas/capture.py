"""
Pydantic schemas for sensor captures.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field

from devicehub.models.capture import SensorType


class CaptureCreate(BaseModel):
    """
    Schema for submitting a capture.

    ``device_id`` is accepted for older clients but never used; the owner is
    always the authenticated device.
    """
    sensor_type: SensorType
    data: Dict[str, Any]
    device_id: Optional[str] = Field(None, description="Ignored; the authenticated device owns the capture")


class CaptureSummary(BaseModel):
    id: int
    device_id: str
    sensor_type: str
    captured_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CaptureResponse(CaptureSummary):
    data: Dict[str, Any]

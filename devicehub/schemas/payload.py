"""
Pydantic schemas for large payload uploads.
"""
from datetime import datetime
from typing import Any, List
from pydantic import BaseModel, Field


class PayloadUpload(BaseModel):
    kind: str = Field(..., min_length=1, max_length=32, pattern=r"^[a-z0-9_\-]+$")
    data: Any


class PayloadInfo(BaseModel):
    key: str
    size: int
    uploaded: datetime


class PayloadListResponse(BaseModel):
    device_id: str
    count: int
    items: List[PayloadInfo]


class PayloadStored(BaseModel):
    ok: bool = True
    key: str

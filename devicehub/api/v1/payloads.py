"""
Payload API endpoints.

Stores and serves large per-device payloads. Keys are always built from the
authenticated device's id.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Path
from fastapi.responses import Response

from devicehub.api.dependencies import get_current_device
from devicehub.errors import NotFound
from devicehub.schemas.payload import PayloadInfo, PayloadListResponse, PayloadStored, PayloadUpload
from devicehub.services.device_service import DeviceContext
from devicehub.storage.payload_store import PayloadStore, device_prefix, get_payload_store


router = APIRouter(prefix="/payloads", tags=["payloads"])


@router.post("", response_model=PayloadStored)
async def upload_payload(
    upload: PayloadUpload,
    context: Annotated[DeviceContext, Depends(get_current_device)],
    store: Annotated[PayloadStore, Depends(get_payload_store)],
):
    """Store a payload under the authenticated device's prefix."""
    key = await store.put(context.device_id, upload.kind, upload.data)
    return PayloadStored(key=key)


@router.get("", response_model=PayloadListResponse)
async def list_payloads(
    context: Annotated[DeviceContext, Depends(get_current_device)],
    store: Annotated[PayloadStore, Depends(get_payload_store)],
):
    """List the authenticated device's payloads, newest first."""
    objects = await store.list(context.device_id, limit=100)
    items = [PayloadInfo(key=obj.key, size=obj.size, uploaded=obj.uploaded) for obj in objects]
    return PayloadListResponse(device_id=context.device_id, count=len(items), items=items)


@router.get("/{name}")
async def download_payload(
    name: Annotated[str, Path(pattern=r"^[A-Za-z0-9_\-.]+\.json$")],
    context: Annotated[DeviceContext, Depends(get_current_device)],
    store: Annotated[PayloadStore, Depends(get_payload_store)],
):
    """Download one of the authenticated device's payloads."""
    content = await store.get(f"{device_prefix(context.device_id)}{name}")
    if content is None:
        raise NotFound("Payload not found")
    return Response(content=content, media_type="application/json")

"""
Capture service: device-scoped reads and writes of sensor captures.

Every function takes the resolved device id and filters by it; no function
accepts a device id from a request body.
"""
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from devicehub.core.clock import utcnow
from devicehub.models import Capture

logger = structlog.get_logger()

MAX_LIST_LIMIT = 100


async def create_capture(
    db: AsyncSession,
    device_id: str,
    sensor_type: str,
    data: Dict[str, Any],
) -> Capture:
    capture = Capture(device_id=device_id, sensor_type=sensor_type, data=data, captured_at=utcnow())
    db.add(capture)
    await db.commit()
    await db.refresh(capture)
    logger.info("capture_created", device_id=device_id, capture_id=capture.id, sensor_type=sensor_type)
    return capture


async def list_captures(
    db: AsyncSession,
    device_id: str,
    sensor_type: Optional[str] = None,
    limit: int = 20,
) -> List[Capture]:
    """
    List a device's captures, newest first.

    Args:
        db: Database session
        device_id: Resolved device id
        sensor_type: Optional sensor type filter
        limit: Maximum rows (clamped to 1..MAX_LIST_LIMIT)
    """
    limit = max(1, min(limit, MAX_LIST_LIMIT))
    query = select(Capture).where(Capture.device_id == device_id)
    if sensor_type:
        query = query.where(Capture.sensor_type == sensor_type)
    query = query.order_by(Capture.captured_at.desc(), Capture.id.desc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_capture(db: AsyncSession, device_id: str, capture_id: int) -> Optional[Capture]:
    result = await db.execute(
        select(Capture).where(Capture.id == capture_id, Capture.device_id == device_id)
    )
    return result.scalar_one_or_none()


async def get_latest_capture(
    db: AsyncSession,
    device_id: str,
    sensor_type: Optional[str] = None,
) -> Optional[Capture]:
    captures = await list_captures(db, device_id, sensor_type=sensor_type, limit=1)
    return captures[0] if captures else None

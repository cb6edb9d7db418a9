"""
Ownership service: links devices to users.

Once a device is linked to a user it stays pinned to that user; a link
attempt by anyone else is a conflict, never a silent reassignment.
"""
from dataclasses import dataclass
from typing import List

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from devicehub.errors import Conflict, NotFound
from devicehub.models import Device, User
from devicehub.services.device_service import get_device_by_id

logger = structlog.get_logger()


@dataclass
class LinkResult:
    device_id: str
    already_linked: bool


async def link_device(db: AsyncSession, device_id: str, user: User) -> LinkResult:
    """
    Link a device to a user, enforcing single-owner pinning.

    The ownership check is part of the UPDATE's WHERE clause, so two users
    racing to claim the same device cannot both succeed.

    Args:
        db: Database session
        device_id: Device to link
        user: Authenticated user claiming the device

    Returns:
        LinkResult (``already_linked`` when the user already owned it)

    Raises:
        NotFound: Device does not exist
        Conflict: Device is pinned to a different user
    """
    device = await get_device_by_id(db, device_id)
    if device is None:
        raise NotFound("Device not found")

    user_id = user.id
    if device.owner_user_id == user_id:
        return LinkResult(device_id=device_id, already_linked=True)

    stmt = (
        update(Device)
        .where(
            Device.id == device_id,
            or_(Device.owner_user_id.is_(None), Device.owner_user_id == user_id),
        )
        .values(owner_user_id=user_id)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        logger.warning("ownership_conflict", device_id=device_id, user_id=user_id)
        raise Conflict("Device is already linked to another account")

    await db.commit()
    await db.refresh(device)
    logger.info("device_linked", device_id=device_id, user_id=user_id)
    return LinkResult(device_id=device_id, already_linked=False)


async def list_user_devices(db: AsyncSession, user: User) -> List[Device]:
    result = await db.execute(
        select(Device).where(Device.owner_user_id == user.id).order_by(Device.registered_at)
    )
    return list(result.scalars().all())

"""
Device service: registry lookups, caller resolution and liveness writes.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from devicehub.config import settings
from devicehub.core.clock import utcnow
from devicehub.errors import Forbidden, Unauthenticated
from devicehub.models import Device
from devicehub.telemetry import auth_failures_counter

logger = structlog.get_logger()

HEARTBEAT_COLUMNS = ("last_seen_at", "last_bridge_call_at")


@dataclass
class DeviceContext:
    """The caller a request was resolved to. Downstream code scopes by ``device_id`` only."""
    device: Device
    via: str  # "credential" or "device_id"

    @property
    def device_id(self) -> str:
        return self.device.id


async def get_device_by_id(db: AsyncSession, device_id: str) -> Optional[Device]:
    result = await db.execute(select(Device).where(Device.id == device_id))
    return result.scalar_one_or_none()


async def get_device_by_credential(db: AsyncSession, credential: str) -> Optional[Device]:
    result = await db.execute(select(Device).where(Device.credential == credential))
    return result.scalar_one_or_none()


async def get_device_by_hardware_id(db: AsyncSession, hardware_id: str) -> Optional[Device]:
    result = await db.execute(select(Device).where(Device.stable_hardware_id == hardware_id))
    return result.scalar_one_or_none()


def _reject(error_cls, message: str, reason: str, **context):
    auth_failures_counter.add(1, {"reason": reason})
    logger.info("device_auth_failed", reason=reason, **context)
    return error_cls(message)


async def resolve_device(
    db: AsyncSession,
    credential: Optional[str],
    asserted_device_id: Optional[str] = None,
) -> DeviceContext:
    """
    Resolve a request's caller to exactly one device row.

    The credential is server-issued and authoritative, so when one is
    presented it wins over any client-asserted device id (which may come from
    a stale client cache). The asserted id is only a fallback for clients
    that send no credential, and only matches an existing row exactly.

    Args:
        db: Database session
        credential: Bearer credential, if presented
        asserted_device_id: Client-asserted device id, if presented

    Returns:
        DeviceContext for the resolved device

    Raises:
        Unauthenticated: Neither credential nor device id presented
        Forbidden: Credential or device id presented but unmatched
    """
    if credential:
        device = await get_device_by_credential(db, credential)
        if device is None:
            raise _reject(Forbidden, "Invalid device credential", "invalid_credential")
        return DeviceContext(device=device, via="credential")

    if asserted_device_id:
        device = await get_device_by_id(db, asserted_device_id)
        if device is None:
            raise _reject(Forbidden, "Unknown device", "unknown_device", device_id=asserted_device_id)
        return DeviceContext(device=device, via="device_id")

    raise _reject(Unauthenticated, "Missing device credential", "missing_credential")


async def touch_heartbeat(
    db: AsyncSession,
    device: Device,
    column: str = "last_seen_at",
    now: Optional[datetime] = None,
) -> bool:
    """
    Record liveness for a device, at most once per heartbeat interval.

    The staleness guard lives in the UPDATE's WHERE clause, so a burst of
    calls from one device collapses to a single persisted write per window
    no matter how many requests race. The write runs in a savepoint: a
    failure is logged and leaves the request's session and ``device`` usable.

    Args:
        db: Request database session
        device: Resolved device; its in-memory column is updated on a write
        column: ``last_seen_at`` or ``last_bridge_call_at``
        now: Timestamp to record (defaults to the current UTC time)

    Returns:
        True if a write happened
    """
    if column not in HEARTBEAT_COLUMNS:
        raise ValueError(f"Unknown heartbeat column: {column}")

    now = now or utcnow()
    threshold = now - timedelta(seconds=settings.HEARTBEAT_INTERVAL_SECONDS)
    target = getattr(Device, column)

    stmt = (
        update(Device)
        .where(Device.id == device.id, or_(target.is_(None), target < threshold))
        .values({column: now})
        .execution_options(synchronize_session=False)
    )
    try:
        async with db.begin_nested():
            result = await db.execute(stmt)
    except SQLAlchemyError as e:
        logger.warning("heartbeat_write_failed", device_id=device.id, column=column, error=str(e))
        return False

    await db.commit()
    if result.rowcount != 1:
        return False

    set_committed_value(device, column, now)
    return True


async def save_push_token(db: AsyncSession, device: Device, push_token: str) -> Device:
    device.push_token = push_token
    await db.commit()
    logger.info("push_token_saved", device_id=device.id)
    return device

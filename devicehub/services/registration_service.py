"""
Registration service: decides whether a registration creates, updates or
adopts a device row.

Resolution order:
    1. A row with the same stable hardware id is refreshed (idempotent path).
    2. A legacy row (id == previous device id, no hardware id yet) adopts the
       hardware id, keeping its credential.
    3. Otherwise a new row is created.

The unique constraints on ``stable_hardware_id`` and ``credential`` are the
final arbiter under concurrent requests: a write that violates them is rolled
back and the registration is resolved again, this time as an update.
"""
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from devicehub.core.clock import utcnow
from devicehub.core.credentials import generate_credential, generate_id, rotate_credential
from devicehub.errors import Internal
from devicehub.models import Device
from devicehub.schemas.device import DeviceRegistrationRequest
from devicehub.services.device_service import get_device_by_hardware_id
from devicehub.telemetry import registrations_counter

logger = structlog.get_logger()

MAX_RESOLVE_ATTEMPTS = 3

OUTCOME_CREATED = "created"
OUTCOME_UPDATED = "updated"
OUTCOME_ROTATED = "rotated"
OUTCOME_ADOPTED = "adopted"


@dataclass
class RegistrationResult:
    device: Device
    outcome: str

    @property
    def created(self) -> bool:
        return self.outcome == OUTCOME_CREATED


async def register_device(
    db: AsyncSession,
    request: DeviceRegistrationRequest,
    legacy_id: Optional[str] = None,
) -> RegistrationResult:
    """
    Register a device, or refresh/adopt an existing row.

    Each attempt runs in its own transaction and is committed as a whole, so
    a failed attempt never leaves a partial create/update/adopt behind.

    Args:
        db: Database session
        request: Validated registration request
        legacy_id: Previously issued device id sent by the client, if any

    Returns:
        RegistrationResult with the device row and the outcome

    Raises:
        Internal: The registration kept conflicting after several attempts
    """
    for attempt in range(1, MAX_RESOLVE_ATTEMPTS + 1):
        try:
            result = await _resolve(db, request, legacy_id)
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.info(
                "registration_conflict",
                attempt=attempt,
                has_hardware_id=request.stable_hardware_id is not None,
                error=str(e.orig),
            )
            continue

        registrations_counter.add(1, {"outcome": result.outcome})
        logger.info("device_registered", device_id=result.device.id, outcome=result.outcome)
        return result

    logger.error("registration_unresolved", attempts=MAX_RESOLVE_ATTEMPTS)
    raise Internal()


async def _resolve(
    db: AsyncSession,
    request: DeviceRegistrationRequest,
    legacy_id: Optional[str],
) -> RegistrationResult:
    now = utcnow()
    hardware_id = request.stable_hardware_id

    if hardware_id:
        device = await get_device_by_hardware_id(db, hardware_id)
        if device is not None:
            device.name = request.name
            device.last_seen_at = now
            outcome = OUTCOME_UPDATED
            if request.rotate_credential:
                rotate_credential(device)
                outcome = OUTCOME_ROTATED
            await db.flush()
            return RegistrationResult(device=device, outcome=outcome)

        if legacy_id:
            adopted = await _adopt_legacy(db, legacy_id, request, now)
            if adopted is not None:
                return RegistrationResult(device=adopted, outcome=OUTCOME_ADOPTED)

    device = Device(
        id=generate_id(),
        name=request.name,
        stable_hardware_id=hardware_id,
        credential=generate_credential(),
        registered_at=now,
    )
    db.add(device)
    await db.flush()
    return RegistrationResult(device=device, outcome=OUTCOME_CREATED)


async def _adopt_legacy(
    db: AsyncSession,
    legacy_id: str,
    request: DeviceRegistrationRequest,
    now,
) -> Optional[Device]:
    """
    Backfill the hardware id onto a pre-hardware-id row.

    The ``stable_hardware_id IS NULL`` guard is part of the UPDATE itself, so
    a row can be adopted only once even under concurrent registrations.
    """
    values = {
        "stable_hardware_id": request.stable_hardware_id,
        "name": request.name,
        "last_seen_at": now,
    }
    if request.rotate_credential:
        values["credential"] = generate_credential()

    stmt = (
        update(Device)
        .where(Device.id == legacy_id, Device.stable_hardware_id.is_(None))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        return None

    device = await db.get(Device, legacy_id, populate_existing=True)
    logger.info("device_adopted", device_id=legacy_id, rotated=request.rotate_credential)
    return device

"""
Tests for device registration: idempotency, rotation, legacy adoption and
conflicting concurrent registrations.
"""
import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from devicehub.models import Device
from devicehub.schemas.device import DeviceRegistrationRequest
from devicehub.services import registration_service
from devicehub.services.registration_service import OUTCOME_CREATED, OUTCOME_UPDATED, register_device

REGISTER = "/api/v1/devices/register"


@pytest.mark.asyncio
async def test_register_creates_device(client: AsyncClient):
    response = await client.post(REGISTER, json={"name": "Phone", "stable_hardware_id": "VID-1"})

    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Phone"
    assert data["id"]
    assert len(data["credential"]) >= 32
    assert data["last_seen_at"] is None


@pytest.mark.asyncio
async def test_register_same_hardware_id_is_idempotent(client: AsyncClient, db_session: AsyncSession):
    first = await client.post(REGISTER, json={"name": "Phone", "hw_id": "VID-1"})
    second = await client.post(REGISTER, json={"name": "Phone", "hw_id": "VID-1"})

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["credential"] == first.json()["credential"]
    assert second.json()["last_seen_at"] is not None

    count = await db_session.scalar(select(func.count()).select_from(Device))
    assert count == 1


@pytest.mark.asyncio
async def test_reregister_updates_name(client: AsyncClient):
    first = await client.post(REGISTER, json={"name": "Phone", "hw_id": "VID-1"})
    second = await client.post(REGISTER, json={"name": "Kitchen Phone", "hw_id": "VID-1"})

    assert second.json()["id"] == first.json()["id"]
    assert second.json()["name"] == "Kitchen Phone"


@pytest.mark.asyncio
async def test_register_without_hardware_id_always_creates(client: AsyncClient):
    first = await client.post(REGISTER, json={"name": "Phone"})
    second = await client.post(REGISTER, json={"name": "Phone"})

    assert first.status_code == 201
    assert second.status_code == 201
    assert first.json()["id"] != second.json()["id"]
    assert first.json()["credential"] != second.json()["credential"]


@pytest.mark.asyncio
async def test_distinct_hardware_ids_get_distinct_devices(client: AsyncClient):
    a = (await client.post(REGISTER, json={"name": "A", "hw_id": "VID-A"})).json()
    b = (await client.post(REGISTER, json={"name": "B", "hw_id": "VID-B"})).json()

    assert a["id"] != b["id"]
    assert a["credential"] != b["credential"]


@pytest.mark.asyncio
async def test_rotation_scenario(client: AsyncClient):
    """Create, repeat, rotate; the old credential stops working at once."""
    created = await client.post(REGISTER, json={"name": "Phone", "hw_id": "VID-1"})
    assert created.status_code == 201
    device_id = created.json()["id"]
    t1 = created.json()["credential"]

    repeated = await client.post(REGISTER, json={"name": "Phone", "hw_id": "VID-1"})
    assert repeated.status_code == 200
    assert repeated.json()["id"] == device_id
    assert repeated.json()["credential"] == t1

    rotated = await client.post(REGISTER, json={"name": "Phone", "hw_id": "VID-1", "rotate": True})
    assert rotated.status_code == 200
    assert rotated.json()["id"] == device_id
    t2 = rotated.json()["credential"]
    assert t2 != t1

    old = await client.get("/api/v1/devices/me", headers={"Authorization": f"Bearer {t1}"})
    assert old.status_code == 403

    new = await client.get("/api/v1/devices/me", headers={"Authorization": f"Bearer {t2}"})
    assert new.status_code == 200
    assert new.json()["id"] == device_id


@pytest.mark.asyncio
async def test_legacy_aliases_accepted(client: AsyncClient):
    first = await client.post(REGISTER, json={"display_name": "Phone", "vendor_id": "VID-9"})
    rotated = await client.post(REGISTER, json={"name": "Phone", "vendor_id": "VID-9", "regenerate_token": True})

    assert rotated.json()["id"] == first.json()["id"]
    assert rotated.json()["credential"] != first.json()["credential"]


@pytest.mark.asyncio
async def test_legacy_device_is_adopted(client: AsyncClient, legacy_device: Device):
    response = await client.post(
        REGISTER,
        json={"name": "Phone", "hw_id": "VID-1"},
        headers={"X-Previous-Device-ID": legacy_device.id},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == legacy_device.id
    assert data["credential"] == legacy_device.credential
    assert data["name"] == "Phone"

    again = await client.post(REGISTER, json={"name": "Phone", "hw_id": "VID-1"})
    assert again.json()["id"] == legacy_device.id


@pytest.mark.asyncio
async def test_legacy_device_adopted_only_once(client: AsyncClient, legacy_device: Device):
    await client.post(
        REGISTER,
        json={"name": "Phone", "hw_id": "VID-1"},
        headers={"X-Previous-Device-ID": legacy_device.id},
    )
    other = await client.post(
        REGISTER,
        json={"name": "Tablet", "hw_id": "VID-2"},
        headers={"X-Previous-Device-ID": legacy_device.id},
    )

    assert other.status_code == 201
    assert other.json()["id"] != legacy_device.id


@pytest.mark.asyncio
async def test_unknown_legacy_id_creates(client: AsyncClient):
    response = await client.post(
        REGISTER,
        json={"name": "Phone", "hw_id": "VID-1"},
        headers={"X-Previous-Device-ID": str(uuid.uuid4())},
    )

    assert response.status_code == 201


@pytest.mark.asyncio
async def test_malformed_legacy_id_rejected(client: AsyncClient):
    response = await client.post(
        REGISTER,
        json={"name": "Phone", "hw_id": "VID-1"},
        headers={"X-Previous-Device-ID": "not-a-uuid"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {},
        {"name": ""},
        {"name": "   "},
        {"name": "x" * 101},
        {"name": "Phone", "stable_hardware_id": "has spaces"},
        {"name": "Phone", "stable_hardware_id": "x" * 65},
    ],
)
async def test_invalid_registration_is_400(client: AsyncClient, body):
    response = await client.post(REGISTER, json=body)

    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "validation_error"
    assert data["issues"]


@pytest.mark.asyncio
async def test_stale_read_resolves_to_existing_row(db_session: AsyncSession, monkeypatch):
    """A racing insert that hits the unique hardware id re-resolves as an update."""
    request = DeviceRegistrationRequest(name="Phone", stable_hardware_id="VID-1")
    first = await register_device(db_session, request)
    assert first.outcome == OUTCOME_CREATED
    device_id = first.device.id

    real_lookup = registration_service.get_device_by_hardware_id
    calls = {"n": 0}

    async def stale_lookup(db, hardware_id):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return await real_lookup(db, hardware_id)

    monkeypatch.setattr(registration_service, "get_device_by_hardware_id", stale_lookup)

    second = await register_device(db_session, request)

    assert calls["n"] == 2
    assert second.outcome == OUTCOME_UPDATED
    assert second.device.id == device_id
    count = await db_session.scalar(select(func.count()).select_from(Device))
    assert count == 1


@pytest.mark.asyncio
async def test_legacy_adoption_with_rotation(
    client: AsyncClient, db_session: AsyncSession, legacy_device: Device
):
    old_credential = legacy_device.credential
    before = await client.get("/api/v1/devices/me", headers={"Authorization": f"Bearer {old_credential}"})
    assert before.status_code == 200

    response = await client.post(
        REGISTER,
        json={"name": "Phone", "hw_id": "VID-1", "rotate_credential": True},
        headers={"X-Previous-Device-ID": legacy_device.id},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == legacy_device.id
    assert data["credential"] != old_credential

    stored = await db_session.execute(
        select(Device).where(Device.id == legacy_device.id).execution_options(populate_existing=True)
    )
    row = stored.scalar_one()
    assert row.stable_hardware_id == "VID-1"
    assert row.credential == data["credential"]

    old = await client.get("/api/v1/devices/me", headers={"Authorization": f"Bearer {old_credential}"})
    new = await client.get("/api/v1/devices/me", headers={"Authorization": f"Bearer {data['credential']}"})
    assert old.status_code == 403
    assert new.status_code == 200
    assert new.json()["id"] == legacy_device.id

"""
Tests for debounced liveness writes.
"""
from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from devicehub.config import settings
from devicehub.core.clock import utcnow
from devicehub.models import Device
from devicehub.services.device_service import touch_heartbeat


async def _reload(db: AsyncSession, device_id: str) -> Device:
    result = await db.execute(
        select(Device).where(Device.id == device_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_burst_collapses_to_one_write(db_session: AsyncSession, legacy_device: Device):
    now = utcnow()

    writes = [await touch_heartbeat(db_session, legacy_device, now=now) for _ in range(100)]

    assert writes.count(True) == 1
    assert writes[0] is True


@pytest.mark.asyncio
async def test_write_allowed_after_interval(db_session: AsyncSession, legacy_device: Device):
    now = utcnow()
    interval = timedelta(seconds=settings.HEARTBEAT_INTERVAL_SECONDS)

    assert await touch_heartbeat(db_session, legacy_device, now=now) is True
    assert await touch_heartbeat(db_session, legacy_device, now=now + interval / 2) is False
    assert legacy_device.last_seen_at == now
    assert await touch_heartbeat(db_session, legacy_device, now=now + interval + timedelta(seconds=1)) is True


@pytest.mark.asyncio
async def test_bridge_heartbeat_is_independent(db_session: AsyncSession, legacy_device: Device):
    now = utcnow()

    assert await touch_heartbeat(db_session, legacy_device, column="last_seen_at", now=now) is True
    assert await touch_heartbeat(db_session, legacy_device, column="last_bridge_call_at", now=now) is True

    device = await _reload(db_session, legacy_device.id)
    assert device.last_seen_at == now
    assert device.last_bridge_call_at == now


@pytest.mark.asyncio
async def test_unknown_column_rejected(db_session: AsyncSession, legacy_device: Device):
    with pytest.raises(ValueError):
        await touch_heartbeat(db_session, legacy_device, column="name")


@pytest.mark.asyncio
async def test_unknown_device_writes_nothing(db_session: AsyncSession):
    ghost = Device(id="no-such-device", name="Ghost")

    assert await touch_heartbeat(db_session, ghost) is False
    assert ghost.last_seen_at is None


@pytest.mark.asyncio
async def test_scoped_requests_touch_last_seen_once(
    client: AsyncClient, db_session: AsyncSession, register
):
    device = await register(hw_id="VID-1")
    headers = {"Authorization": f"Bearer {device['credential']}"}

    for _ in range(5):
        response = await client.get("/api/v1/devices/me", headers=headers)
        assert response.status_code == 200

    stored = await _reload(db_session, device["id"])
    first_seen = stored.last_seen_at
    assert first_seen is not None

    await client.get("/api/v1/devices/me", headers=headers)
    stored = await _reload(db_session, device["id"])
    assert stored.last_seen_at == first_seen


def fail_device_updates(monkeypatch):
    """Make every UPDATE on the devices table raise, leaving other statements alone."""
    original = AsyncSession.execute

    async def execute(self, statement, *args, **kwargs):
        if getattr(statement, "is_update", False) and statement.table.name == "devices":
            raise OperationalError("UPDATE devices", {}, Exception("database is locked"))
        return await original(self, statement, *args, **kwargs)

    monkeypatch.setattr(AsyncSession, "execute", execute)


@pytest.mark.asyncio
async def test_failed_write_leaves_device_usable(
    db_session: AsyncSession, legacy_device: Device, monkeypatch
):
    fail_device_updates(monkeypatch)

    assert await touch_heartbeat(db_session, legacy_device) is False

    assert legacy_device.name == "Old Phone"
    assert legacy_device.last_seen_at is None


@pytest.mark.asyncio
async def test_failed_write_does_not_fail_request(client: AsyncClient, register, monkeypatch):
    device = await register(hw_id="VID-1")
    fail_device_updates(monkeypatch)

    response = await client.get(
        "/api/v1/devices/me", headers={"Authorization": f"Bearer {device['credential']}"}
    )

    assert response.status_code == 200
    assert response.json()["id"] == device["id"]
    assert response.json()["last_seen_at"] is None


@pytest.mark.asyncio
async def test_failed_write_does_not_fail_bridge_call(client: AsyncClient, register, monkeypatch):
    device = await register(hw_id="VID-1")
    fail_device_updates(monkeypatch)

    response = await client.post(
        "/mcp",
        json={"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "get_device_info", "arguments": {}}},
        headers={"Authorization": f"Bearer {device['credential']}"},
    )

    assert response.status_code == 200
    assert device["id"] in response.json()["result"]["content"][0]["text"]


@pytest.mark.asyncio
async def test_first_scoped_call_reports_fresh_last_seen(client: AsyncClient, register):
    device = await register(hw_id="VID-1")
    assert device["last_seen_at"] is None

    response = await client.get(
        "/api/v1/devices/me", headers={"Authorization": f"Bearer {device['credential']}"}
    )

    assert response.status_code == 200
    assert response.json()["last_seen_at"] is not None

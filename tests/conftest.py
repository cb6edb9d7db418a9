"""
Test Fixtures and Utilities

Shared fixtures: an in-memory database per test, the app wired to it, and
helpers for registering devices and signing users in.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["IDENTITY_PROVIDER_KEY"] = "test-identity-key"
os.environ["IDENTITY_PROVIDER_ALGORITHMS"] = "HS256"
os.environ["TELEMETRY_ENABLED"] = "false"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from devicehub.core.security import create_access_token
from devicehub.database import get_db
from devicehub.main import app
from devicehub.models import Base, Device
from devicehub.services.user_service import upsert_user_from_identity
from devicehub.storage.payload_store import LocalDiskPayloadStore, get_payload_store


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def payload_store(tmp_path):
    return LocalDiskPayloadStore(str(tmp_path / "payloads"))


@pytest_asyncio.fixture
async def client(session_factory, payload_store):
    """HTTP client bound to the app, with the database and payload store overridden."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payload_store] = lambda: payload_store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Register a device through the API and return the response JSON."""

    async def _register(name="Phone", hw_id=None, **extra):
        body = {"name": name, **extra}
        if hw_id is not None:
            body["stable_hardware_id"] = hw_id
        response = await client.post("/api/v1/devices/register", json=body)
        assert response.status_code in (200, 201), response.text
        return response.json()

    return _register


@pytest_asyncio.fixture
async def legacy_device(db_session):
    """A device row created before hardware ids existed."""
    device = Device(name="Old Phone")
    db_session.add(device)
    await db_session.commit()
    return device


@pytest.fixture
def sign_in(db_session):
    """Create a user and return (user, session token)."""

    async def _sign_in(subject: str, display_name=None):
        user = await upsert_user_from_identity(db_session, subject=subject, display_name=display_name)
        return user, create_access_token(data={"sub": user.id})

    return _sign_in

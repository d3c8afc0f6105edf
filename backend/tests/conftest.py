from __future__ import annotations

import asyncio
import os
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path

# Base SQLite fichier dédiée aux tests (avant tout import de beacon : settings / engine)
_DB_FILE = Path(tempfile.mkdtemp(prefix="beacon-tests-")) / "beacon.db"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_FILE}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ENV"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest  # noqa: E402

import beacon.models  # noqa: E402,F401
from beacon.core.credentials import TokenSettings, generate_api_key, hash_password  # noqa: E402
from beacon.db.base import Base  # noqa: E402
from beacon.db.session import AsyncSessionLocal, engine  # noqa: E402
from beacon.models.project import Project  # noqa: E402
from beacon.models.user import User  # noqa: E402

FIXED_NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


async def reset_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def token_settings() -> TokenSettings:
    return TokenSettings(secret="test-secret", algorithm="HS256", ttl_seconds=3600, api_key_token_days=3650)


@pytest.fixture
async def db():
    await reset_schema()
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
async def project(db):
    """Un propriétaire + un projet, commités."""
    owner = User(
        id=uuid.uuid4(),
        email="owner@example.com",
        password_hash=hash_password("owner-password"),
        name="Owner",
        role="user",
    )
    db.add(owner)
    await db.flush()

    p = Project(id=uuid.uuid4(), name="Demo", api_key=generate_api_key(), owner_id=owner.id)
    db.add(p)
    await db.commit()
    return p


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from beacon.api.deps import get_now
    from beacon.core.rate_limit import rate_limiter
    from beacon.main import app

    asyncio.run(reset_schema())
    rate_limiter.reset()

    app.dependency_overrides[get_now] = lambda: FIXED_NOW
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

"""
Shared fixtures: a throwaway SQLite database per test, an entity store on
top of it, a small factory for seeding records, and an API client wired to
the same database with Redis mocked out.
"""

from __future__ import annotations

import itertools
import uuid
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlmodel import SQLModel

import percival.models  # noqa: F401
from percival.core.auth import create_jwt
from percival.core.config import Settings
from percival.core.database import build_engine, build_session_factory, get_session_factory
from percival.main import app
from percival.services.store import EntityStore
from percival_shared.schemas.common import Actor, EntityKind, UserRole

# Identity used to seed users; it is not itself a stored user
SYSTEM = Actor(id=uuid.uuid4(), role=UserRole.ADMIN)


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'percival.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings():
    return Settings(_env_file=None, publish_activity=False)


@pytest.fixture
def store(session, settings):
    return EntityStore(session, settings)


class Factory:
    """Seeds records through the store so every row is audited like production data."""

    def __init__(self, store: EntityStore):
        self.store = store
        self._seq = itertools.count(1)

    async def user(self, **fields) -> Actor:
        n = next(self._seq)
        data = {"email": f"user{n}@example.com", "password_hash": "hash", "display_name": f"User {n}"}
        data.update(fields)
        user = await self.store.create(EntityKind.USER, data, SYSTEM)
        return Actor(id=user.id, role=UserRole(user.role))

    async def project(self, actor: Actor, **fields):
        data = {"name": f"Project {next(self._seq)}"}
        data.update(fields)
        return await self.store.create(EntityKind.PROJECT, data, actor)

    async def task(self, actor: Actor, project, **fields):
        data = {"project_id": str(project.id), "title": f"Task {next(self._seq)}"}
        data.update(fields)
        return await self.store.create(EntityKind.TASK, data, actor)

    async def milestone(self, actor: Actor, project, **fields):
        data = {"project_id": str(project.id), "name": f"Milestone {next(self._seq)}"}
        data.update(fields)
        return await self.store.create(EntityKind.MILESTONE, data, actor)

    async def time_entry(self, actor: Actor, task, hours, work_date: date = date(2024, 3, 1), **fields):
        data = {"task_id": str(task.id), "hours": hours, "work_date": work_date.isoformat()}
        data.update(fields)
        return await self.store.create(EntityKind.TIME_ENTRY, data, actor)

    async def member(self, actor: Actor, project, user: Actor):
        return await self.store.create(
            EntityKind.PROJECT_MEMBERSHIP,
            {"project_id": str(project.id), "user_id": str(user.id)},
            actor,
        )


@pytest.fixture
def factory(store):
    return Factory(store)


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


@pytest.fixture
def redis_client():
    client = MagicMock()
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[])
    client.pipeline.return_value = pipe
    client.ping = AsyncMock(return_value=True)
    return client


@pytest.fixture
async def client(session_factory, redis_client):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    with patch("percival.core.events.get_redis", AsyncMock(return_value=redis_client)), patch(
        "percival.core.redis.get_redis", AsyncMock(return_value=redis_client)
    ):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    app.dependency_overrides.clear()


def auth_headers(user_id: uuid.UUID, role: UserRole = UserRole.MEMBER) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_jwt(user_id, role)}"}


@pytest.fixture
def headers_for():
    return auth_headers

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from app.core.security import Identity
from app.models.enums import UserRole
from app.models.tables import Profile
from app.services.profile_service import ProfileSync


IDENTITY = Identity(id="user_abc", email="jane@example.com", display_name="Jane Doe", image_url="https://img/1.png")


class BrokenSession:
    def __init__(self):
        self.rollbacks = 0

    def get_bind(self):
        raise OperationalError("bind", {}, Exception("db down"))

    async def execute(self, *args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("db down"))

    async def rollback(self):
        self.rollbacks += 1


@pytest.mark.asyncio
async def test_sync_creates_profile(session):
    profile = await ProfileSync().sync(session, IDENTITY)
    assert profile is not None
    assert profile.id == "user_abc"
    assert profile.email == "jane@example.com"
    assert profile.display_name == "Jane Doe"
    assert profile.role == UserRole.USER


@pytest.mark.asyncio
async def test_sync_updates_mirror_but_keeps_role(session):
    session.add(Profile(id="user_abc", email="old@example.com", display_name="Old", role=UserRole.GIFT))
    await session.commit()

    profile = await ProfileSync().sync(session, IDENTITY)
    assert profile.email == "jane@example.com"
    assert profile.display_name == "Jane Doe"
    assert profile.role == UserRole.GIFT


@pytest.mark.asyncio
async def test_sync_is_idempotent(session):
    sync = ProfileSync()
    await sync.sync(session, IDENTITY)
    await sync.sync(session, IDENTITY)
    rows = (await session.execute(Profile.__table__.select())).fetchall()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_sync_failure_is_swallowed():
    db = BrokenSession()
    assert await ProfileSync().sync(db, IDENTITY) is None
    assert db.rollbacks == 1


@pytest.mark.asyncio
async def test_update_display_name_creates_missing_profile(session):
    profile = await ProfileSync().update_display_name(session, IDENTITY, "Captain Jane")
    assert profile.display_name == "Captain Jane"
    assert profile.email == "jane@example.com"

# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Tests for the declarative Base and TimestampMixin."""

from datetime import datetime

import pytest
from sqlalchemy import String
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import Mapped, mapped_column

from querychain.data.registry import EntityRegistry
from querychain.data.relational.sqlalchemy import Base, TimestampMixin


class Note(TimestampMixin, Base):
    __tablename__ = "entity_notes"

    id: Mapped[int] = mapped_column(primary_key=True)
    body: Mapped[str] = mapped_column(String(200))


@pytest.fixture
async def async_engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(async_engine):
    async with AsyncSession(async_engine) as session:
        yield session


class TestTimestampMixin:
    @pytest.mark.asyncio
    async def test_timestamps_are_set_on_insert(self, session: AsyncSession):
        note = Note(body="hello")
        session.add(note)
        await session.flush()
        assert isinstance(note.inserted_at, datetime)
        assert isinstance(note.updated_at, datetime)

    @pytest.mark.asyncio
    async def test_updated_at_is_refreshed_on_update(self, session: AsyncSession):
        note = Note(body="hello")
        session.add(note)
        await session.flush()
        note.body = "changed"
        await session.flush()
        await session.refresh(note)
        assert note.updated_at is not None
        assert Note.__table__.c.updated_at.onupdate is not None


class TestBaseScan:
    def test_scan_registers_subclasses(self):
        registry = EntityRegistry()
        registry.scan(Base)
        entity = registry.resolve("Note")
        assert entity.model is Note
        assert "inserted_at" in entity.fields

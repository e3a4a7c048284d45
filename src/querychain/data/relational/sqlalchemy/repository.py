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
"""Async persistence runtime built on SQLAlchemy 2.0.

:class:`Repo` executes compiled query plans and record writes. It works
either on a caller-owned ``AsyncSession`` (flushes only; the caller commits)
or on an ``async_sessionmaker``, opening one session per call and committing
writes. Use ``expire_on_commit=False`` on the factory so returned records
stay readable after the session closes.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import structlog
from sqlalchemy import select
from sqlalchemy.exc import MultipleResultsFound
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from querychain.compiler.plan import QueryPlan
from querychain.config.store import QueryOptions
from querychain.data.changeset import Changeset
from querychain.data.registry import EntityRegistry, EntityType, default_registry
from querychain.data.relational.sqlalchemy.query_compiler import CompiledSelect, PlanCompiler
from querychain.kernel.exceptions import (
    InfrastructureException,
    MultipleResultsException,
    ResourceNotFoundException,
)
from querychain.kernel.types import SaveResult

logger = structlog.get_logger("querychain.repo")

T = TypeVar("T")


class Repo:
    """SQLAlchemy persistence runtime.

    Args:
        session: A session owned by the caller.
        session_factory: Factory used when no session is given.
        registry: Registry used to resolve entity names inside plans.
    """

    def __init__(
        self,
        session: AsyncSession | None = None,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        registry: EntityRegistry | None = None,
    ) -> None:
        self._session = session
        self._session_factory = session_factory
        self._registry = registry or default_registry

    @asynccontextmanager
    async def _session_scope(self, write: bool = False) -> AsyncIterator[AsyncSession]:
        if self._session is not None:
            yield self._session
            return
        if self._session_factory is None:
            raise InfrastructureException(
                "No AsyncSession configured — pass session or session_factory to Repo",
                code="NO_SESSION",
            )
        async with self._session_factory() as session:
            if not write:
                yield session
                return
            async with session.begin():
                yield session

    def compile(self, plan: QueryPlan, options: QueryOptions | None = None) -> CompiledSelect:
        return PlanCompiler(self._registry, options).compile(plan)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, changeset: Changeset[T]) -> SaveResult[T]:
        """Insert the changeset's record; validation errors come back as a failed result."""
        if not changeset.valid:
            return SaveResult.failure(changeset.errors)
        record = changeset.apply()
        async with self._session_scope(write=True) as session:
            session.add(record)
            await session.flush()
            await session.refresh(record)
        logger.info("record_saved", action="insert", entity=type(record).__name__)
        return SaveResult.success(record)

    async def update(self, changeset: Changeset[T]) -> SaveResult[T]:
        """Apply the changeset to the stored row with the record's primary key."""
        if not changeset.valid:
            return SaveResult.failure(changeset.errors)
        async with self._session_scope(write=True) as session:
            record = await session.merge(changeset.record)
            for key, value in changeset.changes.items():
                setattr(record, key, value)
            await session.flush()
            await session.refresh(record)
        logger.info("record_saved", action="update", entity=type(record).__name__, changes=sorted(changeset.changes))
        return SaveResult.success(record)

    async def delete(self, record: T) -> T:
        """Delete *record*.

        Raises:
            ResourceNotFoundException: If no row has the record's primary key.
        """
        entity = self._registry.entity_for(type(record))
        key = tuple(entity.primary_key_values(record).values())
        async with self._session_scope(write=True) as session:
            current = await session.get(entity.model, key if len(key) > 1 else key[0])
            if current is None:
                raise ResourceNotFoundException(
                    f"{entity.name} with primary key {key} does not exist",
                    code="NOT_FOUND",
                    context={"entity": entity.name, "primary_key": list(key)},
                )
            await session.delete(current)
            await session.flush()
        logger.info("record_deleted", entity=entity.name)
        return current

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get(self, entity: EntityType, id: Any) -> Any | None:
        """Find a record by primary key; a tuple for composite keys."""
        async with self._session_scope() as session:
            return await session.get(entity.model, id)

    async def get_by(self, entity: EntityType, clauses: Mapping[str, Any]) -> Any | None:
        """Find the single record matching all *clauses*, or ``None``."""
        stmt = select(entity.model).filter_by(**clauses)
        async with self._session_scope() as session:
            result = await session.execute(stmt)
            try:
                return result.scalars().one_or_none()
            except MultipleResultsFound as exc:
                raise _multiple(entity) from exc

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    async def all(self, plan: QueryPlan, options: QueryOptions | None = None) -> list[Any]:
        compiled = self.compile(plan, options)
        async with self._session_scope() as session:
            result = await session.execute(compiled.statement)
            rows = result.all()
        logger.debug("query_executed", mode="all", entity=compiled.entity.name, rows=len(rows))
        return [compiled.build(row) for row in rows]

    async def one(self, plan: QueryPlan, options: QueryOptions | None = None) -> Any | None:
        """Fetch at most one row.

        Raises:
            MultipleResultsException: If more than one row matches.
        """
        compiled = self.compile(plan, options)
        async with self._session_scope() as session:
            result = await session.execute(compiled.statement)
            try:
                row = result.one_or_none()
            except MultipleResultsFound as exc:
                raise _multiple(compiled.entity) from exc
        logger.debug("query_executed", mode="one", entity=compiled.entity.name)
        return None if row is None else compiled.build(row)

    async def aggregate(self, plan: QueryPlan, options: QueryOptions | None = None) -> Any:
        """Fetch the single row of an ungrouped aggregate selection."""
        compiled = PlanCompiler(self._registry, options).compile_aggregate(plan)
        async with self._session_scope() as session:
            result = await session.execute(compiled.statement)
            row = result.one()
        logger.debug("query_executed", mode="aggregate", entity=compiled.entity.name)
        return compiled.build(row)

    async def count(self, plan: QueryPlan, options: QueryOptions | None = None) -> int:
        compiled = self.compile(plan, options)
        async with self._session_scope() as session:
            result = await session.execute(compiled.count_statement())
            return result.scalar_one()

    async def exists(self, plan: QueryPlan, options: QueryOptions | None = None) -> bool:
        compiled = self.compile(plan, options)
        async with self._session_scope() as session:
            result = await session.execute(compiled.exists_statement())
            return bool(result.scalar_one())

    async def stream(self, plan: QueryPlan, options: QueryOptions | None = None) -> AsyncIterator[Any]:
        """Yield shaped rows as the database produces them."""
        compiled = self.compile(plan, options)
        async with self._session_scope() as session:
            result = await session.stream(compiled.statement)
            async for row in result:
                yield compiled.build(row)


def _multiple(entity: EntityType) -> MultipleResultsException:
    return MultipleResultsException(
        f"Expected at most one {entity.name}, got several",
        code="MULTIPLE_RESULTS",
        context={"entity": entity.name},
    )

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
"""Outbound ports: schema resolver and persistence runtime interfaces."""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

from querychain.kernel.types import SaveResult

if TYPE_CHECKING:
    from querychain.compiler.plan import QueryPlan
    from querychain.config.store import QueryOptions
    from querychain.data.changeset import Changeset
    from querychain.data.registry import EntityType

T = TypeVar("T")


@runtime_checkable
class SchemaResolverPort(Protocol):
    """Resolve a bare or qualified name to an entity type."""

    def resolve(self, name: Any, options: QueryOptions | None = None) -> EntityType: ...


@runtime_checkable
class PersistencePort(Protocol):
    """Persistence runtime that executes finished query plans and record writes."""

    async def insert(self, changeset: Changeset[T]) -> SaveResult[T]: ...

    async def update(self, changeset: Changeset[T]) -> SaveResult[T]: ...

    async def delete(self, record: T) -> T: ...

    async def get(self, entity: EntityType, id: Any) -> Any | None: ...

    async def get_by(self, entity: EntityType, clauses: Mapping[str, Any]) -> Any | None: ...

    async def all(self, plan: QueryPlan, options: QueryOptions | None = None) -> list[Any]: ...

    async def one(self, plan: QueryPlan, options: QueryOptions | None = None) -> Any | None: ...

    async def aggregate(self, plan: QueryPlan, options: QueryOptions | None = None) -> Any: ...

    async def count(self, plan: QueryPlan, options: QueryOptions | None = None) -> int: ...

    async def exists(self, plan: QueryPlan, options: QueryOptions | None = None) -> bool: ...

    def stream(self, plan: QueryPlan, options: QueryOptions | None = None) -> AsyncIterator[Any]: ...

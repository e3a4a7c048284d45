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
"""Record operations — assign, save, update and delete single records.

``save`` is an upsert keyed on the primary key: records without one, or
whose key is not stored yet, are inserted; otherwise the stored row is
updated with the record's field values. Only changed fields are written,
so saving the same values twice converges to the same row.

Non-raising variants return :class:`~querychain.kernel.types.SaveResult`;
``*_or_raise`` variants raise :class:`ValidationException` instead::

    result = await save(User(name="Bob", age=21))
    user = await save_or_raise(user)
    user = await update_or_raise(user, {"age": 22})
    await delete(user)
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeVar

from querychain.config.store import QueryOptions
from querychain.execution import ExecutionAdapter, default_adapter
from querychain.kernel.exceptions import MissingPrimaryKeyException
from querychain.kernel.types import SaveResult

T = TypeVar("T")


def assign(
    target: Any,
    params: Mapping[str, Any] | None = None,
    *,
    options: QueryOptions | None = None,
    adapter: ExecutionAdapter | None = None,
) -> Any:
    """Set fields on a record, or build a new record from an entity name.

    Keys that are not fields of the entity are ignored.
    """
    adapter = adapter or default_adapter
    params = dict(params or {})
    if isinstance(target, str | type):
        entity = adapter.registry.resolve(target, adapter.options(options))
        return entity.new({k: v for k, v in params.items() if k in entity.fields})
    entity = adapter.registry.entity_for(type(target))
    for key, value in params.items():
        if key in entity.fields:
            setattr(target, key, value)
    return target


async def save(
    record: T,
    *,
    options: QueryOptions | None = None,
    adapter: ExecutionAdapter | None = None,
) -> SaveResult[T]:
    """Insert or update *record* depending on whether its primary key is stored."""
    adapter = adapter or default_adapter
    opts = adapter.options(options)
    repo = adapter.resolve_repo(opts)
    entity = adapter.registry.entity_for(type(record))
    params = {name: getattr(record, name, None) for name in entity.fields}
    key = entity.primary_key_values(record)

    current = None
    if any(value is not None for value in key.values()):
        current = await repo.get_by(entity, key)
    if current is None:
        return await repo.insert(entity.changeset(entity.model(), params))
    return await repo.update(entity.changeset(current, params))


async def save_or_raise(
    record: T,
    *,
    options: QueryOptions | None = None,
    adapter: ExecutionAdapter | None = None,
) -> T:
    result = await save(record, options=options, adapter=adapter)
    return result.unwrap()


async def update(
    record: T,
    params: Mapping[str, Any],
    *,
    options: QueryOptions | None = None,
    adapter: ExecutionAdapter | None = None,
) -> SaveResult[T]:
    """Apply *params* to the stored *record* through its changeset.

    Raises:
        MissingPrimaryKeyException: If the record has no primary key value.
    """
    adapter = adapter or default_adapter
    opts = adapter.options(options)
    entity = adapter.registry.entity_for(type(record))
    key = entity.primary_key_values(record)
    if any(value is None for value in key.values()):
        raise MissingPrimaryKeyException(
            f"Cannot update {entity.name} without a primary key",
            code="MISSING_PRIMARY_KEY",
            context={"entity": entity.name, "primary_key": list(key)},
        )
    repo = adapter.resolve_repo(opts)
    return await repo.update(entity.changeset(record, dict(params)))


async def update_or_raise(
    record: T,
    params: Mapping[str, Any],
    *,
    options: QueryOptions | None = None,
    adapter: ExecutionAdapter | None = None,
) -> T:
    result = await update(record, params, options=options, adapter=adapter)
    return result.unwrap()


async def delete(
    record: T,
    *,
    options: QueryOptions | None = None,
    adapter: ExecutionAdapter | None = None,
) -> T:
    """Delete *record*; raises :class:`ResourceNotFoundException` if it is not stored."""
    adapter = adapter or default_adapter
    repo = adapter.resolve_repo(adapter.options(options))
    return await repo.delete(record)

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
"""Entity registry — resolves names to entity types and persistence runtimes.

Entities are registered explicitly or scanned from a declarative base at
startup; nothing is guessed from module paths at query time.

Usage::

    registry = EntityRegistry()
    registry.scan(Base, namespace="my_app")
    registry.register_repo("my_app.Repo", Repo(session_factory=factory))

    registry.resolve("User", QueryOptions(app="my_app"))   # EntityType(User)
    registry.resolve("user", QueryOptions(app="my_app"))   # camelized lookup
"""

from __future__ import annotations

import dataclasses
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import inspect

from querychain.config.store import QueryOptions
from querychain.data.changeset import Changeset
from querychain.kernel.exceptions import SchemaNotFoundException, UnknownFieldException


@dataclass(frozen=True)
class EntityType:
    """Capabilities of a mapped entity class.

    Knows its primary key fields, its field list, its relationships and how
    to build a changeset for a record.
    """

    model: type
    name: str
    namespace: str | None = None

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}.{self.name}" if self.namespace else self.name

    @property
    def primary_key(self) -> tuple[str, ...]:
        mapper = inspect(self.model)
        return tuple(mapper.get_property_by_column(column).key for column in mapper.primary_key)

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(prop.key for prop in inspect(self.model).column_attrs)

    @property
    def relationships(self) -> tuple[str, ...]:
        return tuple(rel.key for rel in inspect(self.model).relationships)

    def related(self, assoc: str) -> type:
        """Target class of relationship *assoc*."""
        try:
            return inspect(self.model).relationships[assoc].mapper.class_
        except KeyError:
            raise UnknownFieldException(
                f"{self.name} has no association '{assoc}'",
                code="COMPILE_UNKNOWN_ASSOCIATION",
                context={"entity": self.name, "association": assoc},
            ) from None

    def check_field(self, name: str) -> None:
        if name not in self.fields and name not in self.relationships:
            raise UnknownFieldException(
                f"{self.name} has no field '{name}'",
                code="COMPILE_UNKNOWN_FIELD",
                context={"entity": self.name, "field": name},
            )

    def primary_key_values(self, record: Any) -> dict[str, Any]:
        return {key: getattr(record, key, None) for key in self.primary_key}

    def new(self, fields: Mapping[str, Any] | None = None) -> Any:
        """Build an unsaved instance; unknown fields are rejected."""
        fields = dict(fields or {})
        for name in fields:
            self.check_field(name)
        return self.model(**fields)

    def changeset(self, record: Any, params: Mapping[str, Any]) -> Changeset[Any]:
        """The entity's own ``changeset`` classmethod, or cast-all plus required-column checks."""
        custom = getattr(self.model, "changeset", None)
        if callable(custom):
            return custom(record, params)
        return Changeset(record).cast(params).validate_required()


class EntityRegistry:
    """Thread-safe registry of entity types and persistence runtimes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entities: dict[str, EntityType] = {}
        self._by_model: dict[type, EntityType] = {}
        self._repos: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def register(self, model: type, *, name: str | None = None, namespace: str | None = None) -> EntityType:
        entity = EntityType(model, name or model.__name__, namespace)
        with self._lock:
            self._entities[entity.qualified_name] = entity
            self._by_model[model] = entity
        return entity

    def scan(self, base: Any, namespace: str | None = None) -> list[EntityType]:
        """Register every class mapped by the declarative *base*."""
        return [self.register(mapper.class_, namespace=namespace) for mapper in base.registry.mappers]

    def entity_for(self, model: type) -> EntityType:
        """Entity type of a mapped class, registering it on first use."""
        entity = self._by_model.get(model)
        if entity is None:
            entity = self.register(model)
        return entity

    def resolve(self, name: Any, options: QueryOptions | None = None) -> EntityType:
        """Resolve *name* to an entity type.

        Lookup order: explicit ``options.schema`` override, a mapped class
        passed directly, then ``"<namespace>.<Name>"`` and the bare name,
        camelizing lowercase names (``user_message`` -> ``UserMessage``).

        Raises:
            SchemaNotFoundException: If nothing matches.
        """
        options = options or QueryOptions()
        if options.schema is not None:
            return self.resolve(options.schema, dataclasses.replace(options, schema=None))
        if isinstance(name, EntityType):
            return name
        if isinstance(name, type):
            return self.entity_for(name)

        text = str(name)
        candidates = [text] if "." in text else [text, camelize(text)]
        namespace = options.namespace
        lookups = [f"{namespace}.{c}" for c in candidates] if namespace else []
        lookups.extend(candidates)
        for key in lookups:
            entity = self._entities.get(key)
            if entity is not None:
                return entity
        raise SchemaNotFoundException(
            f"Unable to find entity type for {text!r}, tried {lookups}",
            code="SCHEMA_NOT_FOUND",
            context={"name": text, "namespace": namespace},
        )

    # ------------------------------------------------------------------
    # Persistence runtimes
    # ------------------------------------------------------------------

    def register_repo(self, name: str, repo: Any) -> None:
        with self._lock:
            self._repos[name] = repo

    def repo(self, name: str) -> Any | None:
        return self._repos.get(name)

    def clear(self) -> None:
        with self._lock:
            self._entities.clear()
            self._by_model.clear()
            self._repos.clear()


def camelize(name: str) -> str:
    """``user_message`` -> ``UserMessage``; names starting uppercase are returned as-is."""
    if name[:1].isupper():
        return name
    return "".join(part[:1].upper() + part[1:] for part in name.split("_"))


default_registry = EntityRegistry()

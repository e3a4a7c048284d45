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
"""Changesets — cast and validate field changes before they reach storage.

A :class:`Changeset` wraps a mapped record, casts incoming params onto its
columns with pydantic, keeps only the values that actually differ and
collects :class:`~querychain.kernel.types.FieldError` entries instead of
raising::

    cs = Changeset(user).cast({"name": "Bob", "age": "22"}).validate_required(["name"])
    if cs.valid:
        cs.apply()

Entities customize validation by defining a ``changeset`` classmethod::

    class User(Base):
        @classmethod
        def changeset(cls, record, params):
            return Changeset(record).cast(params).validate_required(["name"])
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from functools import lru_cache
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import inspect
from sqlalchemy.orm import ColumnProperty

from querychain.kernel.types import FieldError

T = TypeVar("T")

BLANK = "can't be blank"
INVALID = "is invalid"


class Changeset(Generic[T]):
    """Pending changes for one record."""

    def __init__(self, record: T) -> None:
        self.record = record
        self.changes: dict[str, Any] = {}
        self.errors: list[FieldError] = []

    @property
    def valid(self) -> bool:
        return not self.errors

    def cast(self, params: Mapping[str, Any], permitted: Iterable[str] | None = None) -> Changeset[T]:
        """Cast *params* onto the record's columns.

        Keys outside *permitted* (default: every column) are ignored. Values
        equal to the record's current value are not recorded as changes.
        """
        columns = _columns(type(self.record))
        allowed = set(permitted) if permitted is not None else set(columns)
        for key, value in params.items():
            key = str(key)
            if key not in allowed or key not in columns:
                continue
            try:
                cast = _coerce(columns[key], value)
            except ValidationError:
                self.errors.append(FieldError(key, INVALID, value))
                continue
            if cast == getattr(self.record, key, None):
                self.changes.pop(key, None)
            else:
                self.changes[key] = cast
        return self

    def validate_required(self, fields: Iterable[str] | None = None) -> Changeset[T]:
        """Flag each of *fields* that is missing or blank after the changes.

        Defaults to the non-nullable columns without a default value.
        """
        names = list(fields) if fields is not None else required_fields(type(self.record))
        for name in names:
            value = self.get_field(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                if not any(error.field == name for error in self.errors):
                    self.errors.append(FieldError(name, BLANK, value))
        return self

    def validate_change(self, name: str, check: Callable[[Any], str | None]) -> Changeset[T]:
        """Run *check* on the pending change of *name*; a returned string is an error."""
        if name in self.changes:
            message = check(self.changes[name])
            if message:
                self.errors.append(FieldError(name, message, self.changes[name]))
        return self

    def get_field(self, name: str) -> Any:
        if name in self.changes:
            return self.changes[name]
        return getattr(self.record, name, None)

    def apply(self) -> T:
        """Write the changes onto the record and return it."""
        for key, value in self.changes.items():
            setattr(self.record, key, value)
        return self.record


def required_fields(model: type) -> list[str]:
    """Columns that must be filled in: not nullable, no default, not an autoincrement key."""
    required: list[str] = []
    for prop in inspect(model).column_attrs:
        column = prop.columns[0]
        if column.nullable or column.default is not None or column.server_default is not None:
            continue
        if column.primary_key and column.autoincrement is not False:
            continue
        required.append(prop.key)
    return required


def _columns(model: type) -> dict[str, ColumnProperty]:
    return {prop.key: prop for prop in inspect(model).column_attrs}


def _coerce(prop: ColumnProperty, value: Any) -> Any:
    if value is None:
        return None
    python_type = _python_type(prop)
    if python_type is None:
        return value
    return _adapter(python_type).validate_python(value)


def _python_type(prop: ColumnProperty) -> type | None:
    try:
        return prop.columns[0].type.python_type
    except NotImplementedError:
        return None


@lru_cache(maxsize=64)
def _adapter(python_type: type) -> TypeAdapter[Any]:
    return TypeAdapter(python_type)

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
"""Structured result types shared by the record operations.

All types use only the Python standard library.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from querychain.kernel.exceptions import ValidationException

T = TypeVar("T")


@dataclass(frozen=True)
class FieldError:
    """Describes a validation error on a single field."""

    field: str
    message: str
    rejected_value: Any = None


@dataclass(frozen=True)
class SaveResult(Generic[T]):
    """Outcome of an insert or update.

    ``ok`` is ``True`` with the persisted ``record`` on success, or ``False``
    with the changeset ``errors`` when validation rejected the record.
    """

    ok: bool
    record: T | None = None
    errors: tuple[FieldError, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls, record: T) -> SaveResult[T]:
        return cls(ok=True, record=record)

    @classmethod
    def failure(cls, errors: list[FieldError] | tuple[FieldError, ...]) -> SaveResult[T]:
        return cls(ok=False, errors=tuple(errors))

    def unwrap(self) -> T:
        """Return the record, or raise :class:`ValidationException` on failure."""
        if not self.ok:
            detail = "; ".join(f"{e.field}: {e.message}" for e in self.errors)
            raise ValidationException(
                f"Validation failed: {detail}",
                errors=self.errors,
                context={"errors": [dataclasses.asdict(e) for e in self.errors]},
            )
        return self.record  # type: ignore[return-value]

    def error_map(self) -> dict[str, list[str]]:
        """Group error messages by field name."""
        grouped: dict[str, list[str]] = {}
        for error in self.errors:
            grouped.setdefault(error.field, []).append(error.message)
        return grouped

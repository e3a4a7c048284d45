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
"""Tests for Changeset casting and validation."""

from datetime import date

from sqlalchemy import Date, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from querychain.data.changeset import BLANK, INVALID, Changeset, required_fields
from querychain.kernel.types import FieldError


class Model(DeclarativeBase):
    pass


class Member(Model):
    __tablename__ = "members"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    joined_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    level: Mapped[int] = mapped_column(Integer, default=1)


class TestCast:
    def test_casts_strings_to_column_types(self):
        cs = Changeset(Member()).cast({"name": "Bob", "age": "22", "joined_on": "2024-01-31"})
        assert cs.valid
        assert cs.changes == {"name": "Bob", "age": 22, "joined_on": date(2024, 1, 31)}

    def test_invalid_value_is_collected(self):
        cs = Changeset(Member()).cast({"age": "old"})
        assert not cs.valid
        assert cs.errors == [FieldError("age", INVALID, "old")]
        assert "age" not in cs.changes

    def test_unknown_keys_are_ignored(self):
        cs = Changeset(Member()).cast({"colour": "red", "name": "Bob"})
        assert cs.changes == {"name": "Bob"}

    def test_permitted_restricts_keys(self):
        cs = Changeset(Member()).cast({"name": "Bob", "age": 3}, permitted=["age"])
        assert cs.changes == {"age": 3}

    def test_unchanged_values_are_not_changes(self):
        member = Member(name="Bob", age=22)
        cs = Changeset(member).cast({"name": "Bob", "age": "22"})
        assert cs.changes == {}

    def test_none_passes_through(self):
        member = Member(name="Bob", age=22)
        cs = Changeset(member).cast({"age": None})
        assert cs.changes == {"age": None}


class TestValidation:
    def test_required_fields_default_to_non_nullable_without_default(self):
        assert required_fields(Member) == ["name"]

    def test_validate_required_flags_missing_and_blank(self):
        cs = Changeset(Member()).cast({"name": "   "}).validate_required()
        assert cs.errors == [FieldError("name", BLANK, "   ")]

    def test_validate_required_uses_record_values(self):
        cs = Changeset(Member(name="Bob")).cast({"age": 3}).validate_required(["name"])
        assert cs.valid

    def test_invalid_field_is_not_reported_twice(self):
        cs = Changeset(Member()).cast({"age": "x"}).validate_required(["age"])
        assert [error.message for error in cs.errors] == [INVALID]

    def test_validate_change(self):
        cs = Changeset(Member()).cast({"age": 12}).validate_change(
            "age", lambda age: "must be an adult" if age < 18 else None
        )
        assert cs.errors == [FieldError("age", "must be an adult", 12)]

    def test_validate_change_skips_untouched_fields(self):
        cs = Changeset(Member(age=3)).validate_change("age", lambda age: "never")
        assert cs.valid


class TestApply:
    def test_apply_writes_changes(self):
        member = Member(name="Bob")
        result = Changeset(member).cast({"age": "40"}).apply()
        assert result is member
        assert member.age == 40

    def test_get_field_prefers_pending_change(self):
        cs = Changeset(Member(name="Bob")).cast({"name": "Anna"})
        assert cs.get_field("name") == "Anna"
        assert cs.get_field("age") is None

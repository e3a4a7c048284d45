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
"""Tests for kernel result types."""

import pytest

from querychain.kernel import FieldError, SaveResult, ValidationException


class TestFieldError:
    def test_rejected_value_defaults_to_none(self):
        assert FieldError("age", "is invalid").rejected_value is None

    def test_is_frozen(self):
        error = FieldError("age", "is invalid")
        with pytest.raises(AttributeError):
            error.field = "name"  # type: ignore[misc]


class TestSaveResult:
    def test_success(self):
        result = SaveResult.success("record")
        assert result.ok is True
        assert result.errors == ()
        assert result.unwrap() == "record"

    def test_failure_unwrap_raises(self):
        result = SaveResult.failure([FieldError("name", "can't be blank")])
        assert result.ok is False
        assert result.record is None
        with pytest.raises(ValidationException) as exc_info:
            result.unwrap()
        assert "name: can't be blank" in str(exc_info.value)
        assert exc_info.value.errors == result.errors
        assert exc_info.value.context["errors"][0]["field"] == "name"

    def test_error_map_groups_by_field(self):
        result = SaveResult.failure(
            [
                FieldError("name", "can't be blank"),
                FieldError("age", "is invalid", rejected_value="x"),
                FieldError("name", "is too short"),
            ]
        )
        assert result.error_map() == {"name": ["can't be blank", "is too short"], "age": ["is invalid"]}

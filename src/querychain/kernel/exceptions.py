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
"""Unified exception hierarchy for querychain.

All library exceptions inherit from QueryChainException, enabling unified
error handling across modules.

Categories:
- CompileException: Malformed chains and other caller mistakes, raised
  before any query reaches the database. Never retried.
- BusinessException: Validation errors, missing records, ambiguous lookups.
- InfrastructureException: Persistence runtime and backend failures.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from querychain.kernel.types import FieldError


class QueryChainException(Exception):
    """Base exception for all querychain errors.

    Carries an optional error code and context dict for structured error data.

    Args:
        message: Human-readable error description.
        code: Machine-readable error code (e.g. "COMPILE_UNSUPPORTED").
        context: Arbitrary key-value pairs for error context and debugging.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.context: dict = context if context is not None else {}


# ---------------------------------------------------------------------------
# Compile-time failures
# ---------------------------------------------------------------------------


class CompileException(QueryChainException):
    """A query chain could not be compiled into a query plan."""


class MalformedChainException(CompileException):
    """The chain expression is not a ``Root.step(...).step(...)`` sequence."""


class UnsupportedOperationException(CompileException):
    """A step name is neither an alias nor a canonical operation."""


class OperationAfterTerminalException(CompileException):
    """A step follows a terminal (materializing) operation."""


class UnboundVariableException(CompileException):
    """An expression references a binding variable or pinned name that is not bound."""


class SchemaNotFoundException(CompileException):
    """A root or join target name does not resolve to an entity type."""


class UnknownFieldException(CompileException):
    """A field reference names a column the entity does not have."""


# ---------------------------------------------------------------------------
# Business
# ---------------------------------------------------------------------------


class BusinessException(QueryChainException):
    """Domain rule violations and lookup errors."""


class ValidationException(BusinessException):
    """A record failed its changeset validation.

    The structured field errors are kept on ``errors`` so callers can render
    them without parsing the message.
    """

    def __init__(
        self,
        message: str,
        errors: list[FieldError] | tuple[FieldError, ...] = (),
        code: str | None = "VALIDATION_ERROR",
        context: dict | None = None,
    ) -> None:
        super().__init__(message, code=code, context=context)
        self.errors: tuple[FieldError, ...] = tuple(errors)


class ResourceNotFoundException(BusinessException):
    """Requested record does not exist."""


class MultipleResultsException(BusinessException):
    """A query expected to return at most one row returned several."""


class MissingPrimaryKeyException(BusinessException):
    """An operation needs a primary key value the record does not carry."""


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


class InfrastructureException(QueryChainException):
    """Persistence runtime failures."""


class NotImplementedException(InfrastructureException):
    """The active persistence backend cannot express the requested operation."""

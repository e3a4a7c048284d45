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
"""querychain kernel — exceptions and result types with zero external dependencies."""

from querychain.kernel.exceptions import (
    BusinessException,
    CompileException,
    InfrastructureException,
    MalformedChainException,
    MissingPrimaryKeyException,
    MultipleResultsException,
    NotImplementedException,
    OperationAfterTerminalException,
    QueryChainException,
    ResourceNotFoundException,
    SchemaNotFoundException,
    UnboundVariableException,
    UnknownFieldException,
    UnsupportedOperationException,
    ValidationException,
)
from querychain.kernel.types import FieldError, SaveResult

__all__ = [
    # Types
    "FieldError",
    "SaveResult",
    # Base
    "QueryChainException",
    # Compile-time
    "CompileException",
    "MalformedChainException",
    "UnsupportedOperationException",
    "OperationAfterTerminalException",
    "UnboundVariableException",
    "SchemaNotFoundException",
    "UnknownFieldException",
    # Business
    "BusinessException",
    "ValidationException",
    "ResourceNotFoundException",
    "MultipleResultsException",
    "MissingPrimaryKeyException",
    # Infrastructure
    "InfrastructureException",
    "NotImplementedException",
]

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
"""querychain — Rails-style query chains compiled to SQLAlchemy.

Usage::

    from querychain import configure, q

    configure(app="my_app")
    adults = await q("User.where(age >= 18).order(name).all")
"""

from querychain.config.store import ConfigurationStore, QueryOptions, configure, default_store
from querychain.data.changeset import Changeset
from querychain.data.records import (
    assign,
    delete,
    save,
    save_or_raise,
    update,
    update_or_raise,
)
from querychain.data.registry import EntityRegistry, EntityType, default_registry
from querychain.execution import ExecutionAdapter, default_adapter
from querychain.query import QueryHandle, compile_query, q

__version__ = "0.1.0"

__all__ = [
    "Changeset",
    "ConfigurationStore",
    "EntityRegistry",
    "EntityType",
    "ExecutionAdapter",
    "QueryHandle",
    "QueryOptions",
    "__version__",
    "assign",
    "compile_query",
    "configure",
    "default_adapter",
    "default_registry",
    "default_store",
    "delete",
    "q",
    "save",
    "save_or_raise",
    "update",
    "update_or_raise",
]

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
"""Execution adapter — resolves roots and runtimes, then dispatches terminal operations.

Root resolution:

* a capitalized name (``User``) resolves through the entity registry;
* a lowercase name is first looked up in the call's ``params`` (a query
  handle, plan or entity class bound by the caller) and otherwise resolved
  as a camelized entity name (``user_message`` -> ``UserMessage``);
* a pinned value (``pin(recent)``) is used as-is.

Runtime resolution: explicit ``options.repo``, then the configuration
store's ``repo``, then the runtime registered as ``"<namespace>.Repo"``.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from typing import Any

import structlog

from querychain.compiler.chain import root_name
from querychain.compiler.plan import CompiledQuery, QueryPlan, as_plan
from querychain.config.store import ConfigurationStore, QueryOptions, default_store
from querychain.data.ports.outbound import PersistencePort
from querychain.data.registry import EntityRegistry, EntityType, default_registry
from querychain.expr.nodes import Call, Literal, Node, Pinned, PrimaryKeyRef
from querychain.kernel.exceptions import InfrastructureException, ResourceNotFoundException

logger = structlog.get_logger("querychain.execution")


class ExecutionAdapter:
    """Bridge between compiled chains and the persistence runtime."""

    def __init__(self, registry: EntityRegistry | None = None, store: ConfigurationStore | None = None) -> None:
        self.registry = registry or default_registry
        self.store = store or default_store

    def options(self, options: QueryOptions | None = None) -> QueryOptions:
        """Caller options with unset keys filled from the configuration store."""
        return (options or QueryOptions()).merged(self.store.snapshot())

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_root(self, root: Node, params: Mapping[str, Any], options: QueryOptions) -> QueryPlan:
        if options.schema is not None:
            return QueryPlan(source=self.registry.resolve(options.schema, options))
        if isinstance(root, Pinned):
            return self._plan_of(root.value, options)
        name = root_name(root)
        if not name[:1].isupper() and name in params:
            return self._plan_of(params[name], options)
        return QueryPlan(source=self.registry.resolve(name, options))

    def _plan_of(self, value: Any, options: QueryOptions) -> QueryPlan:
        plan = as_plan(value)
        if isinstance(plan.source, EntityType):
            return plan
        return dataclasses.replace(plan, source=self.registry.resolve(plan.source, options))

    def resolve_repo(self, options: QueryOptions) -> PersistencePort:
        """Pick the persistence runtime for *options*.

        Raises:
            InfrastructureException: If no runtime is configured or registered.
        """
        repo = options.repo
        if repo is None and options.namespace:
            repo = f"{options.namespace}.Repo"
        if isinstance(repo, str):
            name, repo = repo, self.registry.repo(repo)
            if repo is None:
                raise InfrastructureException(
                    f"No persistence runtime registered as {name!r}",
                    code="REPO_NOT_FOUND",
                    context={"repo": name},
                )
        if repo is None:
            raise InfrastructureException(
                "No persistence runtime configured — pass repo=..., configure(repo=...) or configure(app=...)",
                code="REPO_NOT_CONFIGURED",
            )
        return repo

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def execute(self, compiled: CompiledQuery, options: QueryOptions) -> Any:
        """Materialize *compiled* according to its terminal operation."""
        terminal = compiled.terminal
        if terminal is None:
            raise ValueError("Only chains ending in a terminal operation can be executed")
        plan = compiled.plan
        logger.debug("chain_dispatched", mode=terminal.mode, source=_source_name(plan))

        if terminal.mode == "new":
            return self.registry.resolve(plan.source, options).new(terminal.argument)

        repo = self.resolve_repo(options)
        if terminal.mode == "get":
            entity = self.registry.resolve(plan.source, options)
            if plan.is_unrestricted:
                record = await repo.get(entity, terminal.argument)
            else:
                key = Call("==", (PrimaryKeyRef(), Literal(terminal.argument)))
                record = await repo.one(plan.add_filter(key), options)
            if record is None:
                raise ResourceNotFoundException(
                    f"{entity.name} with primary key {terminal.argument!r} does not exist",
                    code="NOT_FOUND",
                    context={"entity": entity.name, "primary_key": terminal.argument},
                )
            return record
        if terminal.mode == "all":
            rows = await repo.all(plan, options)
            if terminal.reverse:
                rows.reverse()
            return rows
        if terminal.mode == "one":
            return await repo.one(plan, options)
        if terminal.mode == "aggregate":
            return await repo.aggregate(plan, options)
        if terminal.mode == "count":
            return await repo.count(plan, options)
        if terminal.mode == "exists":
            return await repo.exists(plan, options)
        if terminal.mode == "stream":
            return repo.stream(plan, options)
        raise ValueError(f"Unknown terminal mode: {terminal.mode}")


def _source_name(plan: QueryPlan) -> str:
    source = plan.source
    if isinstance(source, EntityType):
        return source.name
    return getattr(source, "__name__", str(source))


default_adapter = ExecutionAdapter()

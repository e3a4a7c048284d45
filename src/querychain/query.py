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
"""Invocation surface — ``q`` runs a chain, ``compile_query`` only compiles it.

Usage::

    from querychain import q

    users = await q("User.where(age > 20 and name == 'Bob').order(name).limit(10).all")
    bob = await q("User.find_by(name == pin(name))", {"name": "Bob"})
    recent = await q("Message.where(likes > 3)")           # no terminal: a QueryHandle
    count = await q("recent.count", {"recent": recent})    # compose it into another chain
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from typing import Any

from sqlalchemy import Select
from sqlalchemy.engine import Dialect

from querychain.compiler import CompiledQuery, QueryPlan, Terminal, compile_chain
from querychain.config.store import QueryOptions
from querychain.data.relational.sqlalchemy.query_compiler import PlanCompiler
from querychain.execution import ExecutionAdapter, default_adapter


class QueryHandle:
    """A compiled chain, with or without a terminal operation.

    Handles without a terminal can be bound as a chain root, pinned into a
    condition or passed to a set operation. Any handle can be rendered to
    SQL with :meth:`to_statement` / :meth:`explain`.
    """

    def __init__(self, compiled: CompiledQuery, options: QueryOptions, adapter: ExecutionAdapter) -> None:
        self._compiled = compiled
        self._options = options
        self._adapter = adapter

    @property
    def plan(self) -> QueryPlan:
        return self._compiled.plan

    @property
    def terminal(self) -> Terminal | None:
        return self._compiled.terminal

    @property
    def compiled(self) -> CompiledQuery:
        return self._compiled

    def to_statement(self) -> Select[Any]:
        """The SQLAlchemy ``Select`` for this plan, count and exists terminals included."""
        compiler = PlanCompiler(self._adapter.registry, self._options)
        mode = self.terminal.mode if self.terminal else None
        if mode == "aggregate":
            return compiler.compile_aggregate(self.plan).statement
        compiled = compiler.compile(self.plan)
        if mode == "count":
            return compiled.count_statement()
        if mode == "exists":
            return compiled.exists_statement()
        return compiled.statement

    def explain(self, dialect: Dialect | None = None) -> str:
        """Render the SQL of this chain, for *dialect* when given."""
        return str(self.to_statement().compile(dialect=dialect))

    async def execute(self) -> Any:
        """Run the terminal operation; handles without one fetch all rows."""
        compiled = self._compiled if self.terminal else CompiledQuery(self.plan, Terminal("all"))
        return await self._adapter.execute(compiled, self._options)

    async def all(self) -> list[Any]:
        return await self._adapter.execute(CompiledQuery(self.plan, Terminal("all")), self._options)

    async def count(self) -> int:
        return await self._adapter.execute(CompiledQuery(self.plan, Terminal("count")), self._options)

    async def exists(self) -> bool:
        return await self._adapter.execute(CompiledQuery(self.plan, Terminal("exists")), self._options)

    def __repr__(self) -> str:
        mode = self.terminal.mode if self.terminal else None
        return f"QueryHandle(source={self.plan.source!r}, terminal={mode!r})"


def compile_query(
    expr: str,
    params: Mapping[str, Any] | None = None,
    *,
    options: QueryOptions | None = None,
    adapter: ExecutionAdapter | None = None,
    **overrides: Any,
) -> QueryHandle:
    """Compile *expr* without touching storage.

    *overrides* set individual :class:`QueryOptions` fields (``app``,
    ``app_namespace``, ``repo``, ``schema``) on top of *options*.
    """
    adapter = adapter or default_adapter
    base = options or QueryOptions()
    if overrides:
        base = dataclasses.replace(base, **overrides)
    opts = adapter.options(base)
    params = params or {}
    compiled = compile_chain(
        expr,
        params,
        resolve_root=lambda root: adapter.resolve_root(root, params, opts),
    )
    return QueryHandle(compiled, opts, adapter)


async def q(
    expr: str,
    params: Mapping[str, Any] | None = None,
    *,
    options: QueryOptions | None = None,
    adapter: ExecutionAdapter | None = None,
    **overrides: Any,
) -> Any:
    """Compile and run *expr*.

    Returns the materialized result when the chain ends in a terminal
    operation, otherwise a :class:`QueryHandle` for further composition.
    ``stream`` chains return an async iterator.
    """
    handle = compile_query(expr, params, options=options, adapter=adapter, **overrides)
    if handle.terminal is None:
        return handle
    return await handle.execute()

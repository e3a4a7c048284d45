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
"""Chain compiler — parse, unwrap, canonicalize and fold a chain into a :class:`CompiledQuery`.

Compilation is pure: no I/O and no shared mutable state, so independent
chains can be compiled concurrently.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from querychain.compiler.aliases import expand, expand_all
from querychain.compiler.binding import BindingContext, SourceSlot, qualify, split_binding
from querychain.compiler.builder import PlanBuilder, evaluate
from querychain.compiler.chain import OperationStep, root_name, unwrap
from querychain.compiler.plan import (
    CompiledQuery,
    JoinSpec,
    OrderTerm,
    QueryPlan,
    Terminal,
    as_plan,
)
from querychain.expr import Node, Pinned, parse

RootResolver = Callable[[Node], QueryPlan]

_builder = PlanBuilder()


def root_plan(root: Node) -> QueryPlan:
    """Starting plan for an unresolved root: the raw name, or the pinned query/entity."""
    if isinstance(root, Pinned):
        return as_plan(root.value)
    return QueryPlan(source=root_name(root))


def compile_chain(
    source: str,
    params: Mapping[str, Any] | None = None,
    *,
    resolve_root: RootResolver | None = None,
) -> CompiledQuery:
    """Compile *source* into a plan plus its terminal operation.

    *resolve_root* turns the chain's root into the starting plan; without one
    the root name is kept unresolved in ``plan.source``.
    """
    tree = parse(source, params)
    root, steps = unwrap(tree)
    plan = (resolve_root or root_plan)(root)
    return _builder.build(plan, expand_all(steps))


__all__ = [
    "BindingContext",
    "CompiledQuery",
    "JoinSpec",
    "OperationStep",
    "OrderTerm",
    "PlanBuilder",
    "QueryPlan",
    "RootResolver",
    "SourceSlot",
    "Terminal",
    "as_plan",
    "compile_chain",
    "evaluate",
    "expand",
    "expand_all",
    "qualify",
    "root_name",
    "root_plan",
    "split_binding",
    "unwrap",
]

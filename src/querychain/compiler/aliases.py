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
"""Alias / dispatch table — canonicalizes surface step names before plan building.

==================  =====================================
Surface             Canonical steps
==================  =====================================
``order(...)``      ``order_by(...)``
``find(id)``        ``get(id)``
``find_by(cond)``   ``where(cond)``, ``first()``
``count(expr)``     ``aggr(count(expr))``
``sum(expr)``       ``aggr(sum(expr))`` (also avg/min/max)
``count``           ``count`` (bare, stays terminal)
==================  =====================================
"""

from __future__ import annotations

from dataclasses import replace

from querychain.compiler.binding import is_binding_list
from querychain.compiler.chain import OperationStep
from querychain.expr.nodes import Call
from querychain.kernel.exceptions import MalformedChainException, UnsupportedOperationException

AGGREGATE_FUNCTIONS: tuple[str, ...] = ("count", "sum", "avg", "min", "max")

JOIN_OPERATIONS: frozenset[str] = frozenset(
    {
        "join",
        "inner_join",
        "left_join",
        "right_join",
        "full_join",
        "cross_join",
        "inner_lateral_join",
        "left_lateral_join",
    }
)

SET_OPERATIONS: frozenset[str] = frozenset(
    {"except_", "except_all", "intersect", "intersect_all", "union", "union_all"}
)

TERMINAL_OPERATIONS: frozenset[str] = frozenset(
    {"first", "last", "aggr", "new", "get", "all", "one", "stream", "exists", "count"}
)

CANONICAL_OPERATIONS: frozenset[str] = frozenset(
    {
        "where",
        "or_where",
        "having",
        "or_having",
        "order_by",
        "limit",
        "offset",
        "select",
        "select_merge",
        "group_by",
        "exclude",
        "reverse_order",
        "distinct",
    }
    | JOIN_OPERATIONS
    | SET_OPERATIONS
    | TERMINAL_OPERATIONS
)

_RENAMES: dict[str, str] = {
    "order": "order_by",
    "find": "get",
}


def expand(step: OperationStep) -> list[OperationStep]:
    """Expand one surface step into its canonical step(s), preserving order.

    Raises:
        UnsupportedOperationException: If the name is neither an alias nor canonical.
    """
    name = step.name

    if name in _RENAMES:
        return [replace(step, name=_RENAMES[name])]

    if name == "find_by":
        return [replace(step, name="where"), OperationStep("first")]

    if name in AGGREGATE_FUNCTIONS and (name != "count" or step.args):
        return [_aggregate_step(step)]

    if name in CANONICAL_OPERATIONS:
        return [step]

    raise UnsupportedOperationException(
        f"Unsupported operation '{name}'",
        code="COMPILE_UNSUPPORTED",
        context={"operation": name},
    )


def expand_all(steps: list[OperationStep]) -> list[OperationStep]:
    expanded: list[OperationStep] = []
    for step in steps:
        expanded.extend(expand(step))
    return expanded


def _aggregate_step(step: OperationStep) -> OperationStep:
    """``sum([u], u.age)`` -> ``aggr([u], sum(u.age))``."""
    args = step.args
    binding = ()
    if args and is_binding_list(args[0]):
        binding, args = (args[0],), args[1:]
    if not args and step.name != "count":
        raise MalformedChainException(
            f"'{step.name}' needs the expression to aggregate",
            code="COMPILE_AGGREGATE",
            context={"operation": step.name},
        )
    return OperationStep("aggr", (*binding, Call(step.name, tuple(args))), parens=True)

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
"""Query plan — the immutable, backend-agnostic description of a compiled chain.

Every transformation returns a new :class:`QueryPlan`; nothing is mutated in
place, so a plan can be shared, embedded into another chain or compiled
against several backends.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from querychain.expr.nodes import Call, Node, PrimaryKeyRef

DIRECTIONS: tuple[str, ...] = (
    "asc",
    "desc",
    "asc_nulls_first",
    "asc_nulls_last",
    "desc_nulls_first",
    "desc_nulls_last",
)

_REVERSED_DIRECTIONS: dict[str, str] = {
    "asc": "desc",
    "desc": "asc",
    "asc_nulls_first": "desc_nulls_last",
    "asc_nulls_last": "desc_nulls_first",
    "desc_nulls_first": "asc_nulls_last",
    "desc_nulls_last": "asc_nulls_first",
}

JOIN_KINDS: tuple[str, ...] = ("inner", "left", "right", "full", "cross", "inner_lateral", "left_lateral")

SET_OPERATORS: tuple[str, ...] = ("union", "union_all", "except", "except_all", "intersect", "intersect_all")

# Components that ``exclude`` can reset, mapped to their empty value.
COMPONENTS: dict[str, Any] = {
    "where": None,
    "having": None,
    "order_by": (),
    "group_by": (),
    "limit": None,
    "offset": None,
    "select": None,
    "join": (),
    "distinct": False,
    "combinations": (),
}

_COMPONENT_FIELDS: dict[str, str] = {
    "where": "filters",
    "having": "havings",
    "order_by": "order",
    "group_by": "group_by",
    "limit": "limit",
    "offset": "offset",
    "select": "selection",
    "join": "joins",
    "distinct": "distinct",
    "combinations": "combinations",
}


@dataclass(frozen=True)
class OrderTerm:
    """One ``ORDER BY`` entry."""

    direction: str
    expr: Node

    def reversed(self) -> OrderTerm:
        return OrderTerm(_REVERSED_DIRECTIONS[self.direction], self.expr)


@dataclass(frozen=True)
class JoinSpec:
    """A join of the plan.

    Association joins carry ``assoc`` (the relationship name on the owner
    source); custom joins carry ``target`` and an optional ``on`` condition.
    """

    kind: str
    target: Any = None
    alias: str | None = None
    on: Node | None = None
    assoc: str | None = None
    owner_position: int = 0
    owner_alias: str | None = None

    @property
    def lateral(self) -> bool:
        return self.kind.endswith("_lateral")


@dataclass(frozen=True)
class Combination:
    """A set operation with another plan."""

    operator: str
    plan: QueryPlan


@dataclass(frozen=True)
class QueryPlan:
    """Accumulated query description.

    Attributes:
        source: The root entity type, or the raw name when unresolved.
        filters: Predicate tree of the ``WHERE`` clause.
        havings: Predicate tree of the ``HAVING`` clause.
        order: Ordered ``(direction, expression)`` terms.
        group_by: Grouping expressions.
        limit: Row limit.
        offset: Rows to skip.
        selection: Projection expression; ``None`` selects whole records.
        joins: Joins in declaration order (source positions 1..n).
        distinct: ``True`` for plain deduplication, or terms to deduplicate on.
        combinations: Set operations applied to this plan.
    """

    source: Any
    filters: Node | None = None
    havings: Node | None = None
    order: tuple[OrderTerm, ...] = ()
    group_by: tuple[Node, ...] = ()
    limit: int | None = None
    offset: int | None = None
    selection: Node | None = None
    joins: tuple[JoinSpec, ...] = ()
    distinct: bool | tuple[OrderTerm, ...] = False
    combinations: tuple[Combination, ...] = ()

    # ------------------------------------------------------------------
    # Transformations
    # ------------------------------------------------------------------

    def add_filter(self, predicate: Node, combinator: str = "and") -> QueryPlan:
        return replace(self, filters=_combine(self.filters, predicate, combinator))

    def add_having(self, predicate: Node, combinator: str = "and") -> QueryPlan:
        return replace(self, havings=_combine(self.havings, predicate, combinator))

    def add_order(self, terms: tuple[OrderTerm, ...]) -> QueryPlan:
        return replace(self, order=self.order + tuple(terms))

    def with_default_order(self) -> QueryPlan:
        """Order by primary key ascending unless an order is already set."""
        if self.order:
            return self
        return replace(self, order=(OrderTerm("asc", PrimaryKeyRef()),))

    def reverse_order(self) -> QueryPlan:
        """Invert every order term; an unordered plan becomes primary key descending."""
        if not self.order:
            return replace(self, order=(OrderTerm("desc", PrimaryKeyRef()),))
        return replace(self, order=tuple(term.reversed() for term in self.order))

    def with_limit(self, limit: int | None) -> QueryPlan:
        return replace(self, limit=limit)

    def with_offset(self, offset: int | None) -> QueryPlan:
        return replace(self, offset=offset)

    def with_selection(self, selection: Node | None) -> QueryPlan:
        return replace(self, selection=selection)

    def add_group_by(self, keys: tuple[Node, ...]) -> QueryPlan:
        return replace(self, group_by=self.group_by + tuple(keys))

    def add_join(self, join: JoinSpec) -> QueryPlan:
        return replace(self, joins=self.joins + (join,))

    def with_distinct(self, distinct: bool | tuple[OrderTerm, ...]) -> QueryPlan:
        return replace(self, distinct=distinct)

    def add_combination(self, operator: str, other: QueryPlan) -> QueryPlan:
        return replace(self, combinations=self.combinations + (Combination(operator, other),))

    def exclude(self, component: str) -> QueryPlan:
        """Reset one component (``where``, ``select``, ``order_by``, ...) to its empty value."""
        return replace(self, **{_COMPONENT_FIELDS[component]: COMPONENTS[component]})

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def join_aliases(self) -> tuple[str | None, ...]:
        return tuple(join.alias for join in self.joins)

    def next_position(self) -> int:
        """Source position the next join will occupy."""
        return len(self.joins) + 1

    @property
    def is_unrestricted(self) -> bool:
        """True when the plan reads every root record as is; ordering aside."""
        return self == QueryPlan(source=self.source, order=self.order)


def _combine(existing: Node | None, predicate: Node, combinator: str) -> Node:
    if existing is None:
        return predicate
    return Call(combinator, (existing, predicate))


@dataclass(frozen=True)
class Terminal:
    """How a finished plan is materialized.

    Attributes:
        mode: ``all``, ``one``, ``aggregate``, ``count``, ``exists``,
            ``stream``, ``get`` or ``new``.
        argument: The primary key for ``get``, the field values for ``new``.
        reverse: Reverse the fetched list in memory (``last(n)``).
    """

    mode: str
    argument: Any = None
    reverse: bool = False


@dataclass(frozen=True)
class CompiledQuery:
    """A plan plus its terminal operation, if the chain ended in one."""

    plan: QueryPlan
    terminal: Terminal | None = None

    @property
    def is_terminal(self) -> bool:
        return self.terminal is not None


def as_plan(value: Any) -> QueryPlan:
    """Coerce a pinned query-ish value (plan, compiled query, handle, entity) to a plan."""
    if isinstance(value, QueryPlan):
        return value
    if isinstance(value, CompiledQuery):
        return value.plan
    plan = getattr(value, "plan", None)
    if isinstance(plan, QueryPlan):
        return plan
    return QueryPlan(source=value)

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
"""Query plan builder — applies canonical steps to an accumulating :class:`QueryPlan`.

Each handler is a pure function of ``(plan, step)``. Terminal handlers
return a :class:`CompiledQuery` carrying the fetch mode; non-terminal
handlers return the next plan. Once a terminal has been applied no further
step is accepted.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any, cast

import structlog

from querychain.compiler.binding import (
    BindingContext,
    SourceSlot,
    fragment,
    is_fragment,
    qualify,
    split_binding,
)
from querychain.compiler.chain import OperationStep
from querychain.compiler.plan import (
    COMPONENTS,
    DIRECTIONS,
    CompiledQuery,
    JoinSpec,
    OrderTerm,
    QueryPlan,
    Terminal,
    as_plan,
)
from querychain.expr.nodes import (
    Attr,
    Call,
    Identifier,
    Keywords,
    ListNode,
    Literal,
    MapNode,
    Node,
    Pinned,
    SourceRecord,
    TupleNode,
)
from querychain.kernel.exceptions import (
    MalformedChainException,
    OperationAfterTerminalException,
    UnsupportedOperationException,
)

logger = structlog.get_logger("querychain.compiler")

Handler = Callable[[QueryPlan, OperationStep], "QueryPlan | CompiledQuery"]

_EXCLUDE_ALIASES: dict[str, str] = {
    "order": "order_by",
    "select_merge": "select",
    "joins": "join",
    "combination": "combinations",
}


class PlanBuilder:
    """Fold a list of canonical :class:`OperationStep` objects into a :class:`CompiledQuery`."""

    def __init__(self) -> None:
        self._dispatch: dict[str, Handler] = {
            "where": self._where,
            "or_where": self._or_where,
            "having": self._having,
            "or_having": self._or_having,
            "order_by": self._order_by,
            "limit": self._limit,
            "offset": self._offset,
            "select": self._select,
            "select_merge": self._select_merge,
            "group_by": self._group_by,
            "exclude": self._exclude,
            "reverse_order": self._reverse_order,
            "distinct": self._distinct,
            "join": self._join,
            "inner_join": self._join,
            "left_join": self._join,
            "right_join": self._join,
            "full_join": self._join,
            "cross_join": self._join,
            "inner_lateral_join": self._join,
            "left_lateral_join": self._join,
            "union": self._combine,
            "union_all": self._combine,
            "except_": self._combine,
            "except_all": self._combine,
            "intersect": self._combine,
            "intersect_all": self._combine,
            "first": self._first,
            "last": self._last,
            "aggr": self._aggr,
            "new": self._new,
            "get": self._get,
            "all": self._materialize,
            "one": self._materialize,
            "stream": self._materialize,
            "exists": self._materialize,
            "count": self._materialize,
        }

    def build(self, plan: QueryPlan, steps: Sequence[OperationStep]) -> CompiledQuery:
        """Apply *steps* to *plan* in order.

        Raises:
            OperationAfterTerminalException: If a step follows a terminal step.
            UnsupportedOperationException: If a step has no handler.
        """
        terminal: Terminal | None = None
        terminal_step: str | None = None
        for step in steps:
            if terminal is not None:
                raise OperationAfterTerminalException(
                    f"'{step.name}' cannot follow the terminal operation '{terminal_step}'",
                    code="COMPILE_AFTER_TERMINAL",
                    context={"operation": step.name, "terminal": terminal_step},
                )
            handler = self._dispatch.get(step.name)
            if handler is None:
                raise UnsupportedOperationException(
                    f"Unsupported operation '{step.name}'",
                    code="COMPILE_UNSUPPORTED",
                    context={"operation": step.name},
                )
            result = handler(plan, step)
            if isinstance(result, CompiledQuery):
                plan, terminal, terminal_step = result.plan, result.terminal, step.name
            else:
                plan = result

        logger.debug(
            "chain_compiled",
            steps=[step.name for step in steps],
            terminal=terminal.mode if terminal else None,
        )
        return CompiledQuery(plan, terminal)

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def _where(self, plan: QueryPlan, step: OperationStep) -> QueryPlan:
        return plan.add_filter(self._predicate(step), "and")

    def _or_where(self, plan: QueryPlan, step: OperationStep) -> QueryPlan:
        return plan.add_filter(self._predicate(step), "or")

    def _having(self, plan: QueryPlan, step: OperationStep) -> QueryPlan:
        return plan.add_having(self._predicate(step), "and")

    def _or_having(self, plan: QueryPlan, step: OperationStep) -> QueryPlan:
        return plan.add_having(self._predicate(step), "or")

    def _predicate(self, step: OperationStep) -> Node:
        ctx, args = split_binding(step.args)
        args, keywords = _split_keywords(args)
        if is_fragment(args):
            parts: list[Node] = [fragment(args, ctx)]
        else:
            if len(args) > 1:
                raise _malformed(step, "takes a single condition")
            parts = [qualify(arg, ctx) for arg in args]
        for name, value in keywords.items():
            parts.append(Call("==", (ctx.default_slot.field(name), qualify(value, ctx))))
        if not parts:
            raise _malformed(step, "needs a condition")
        return _conjunction(parts)

    # ------------------------------------------------------------------
    # Ordering, paging
    # ------------------------------------------------------------------

    def _order_by(self, plan: QueryPlan, step: OperationStep) -> QueryPlan:
        ctx, args = split_binding(step.args)
        terms = _order_terms(step, args, ctx)
        if not terms:
            raise _malformed(step, "needs at least one ordering key")
        return plan.add_order(terms)

    def _reverse_order(self, plan: QueryPlan, step: OperationStep) -> QueryPlan:
        _no_arguments(step)
        return plan.reverse_order()

    def _limit(self, plan: QueryPlan, step: OperationStep) -> QueryPlan:
        return plan.with_limit(_single_int(step))

    def _offset(self, plan: QueryPlan, step: OperationStep) -> QueryPlan:
        return plan.with_offset(_single_int(step))

    def _distinct(self, plan: QueryPlan, step: OperationStep) -> QueryPlan:
        ctx, args = split_binding(step.args)
        if not args:
            return plan.with_distinct(True)
        if len(args) == 1 and isinstance(args[0], Literal) and isinstance(args[0].value, bool):
            return plan.with_distinct(args[0].value)
        return plan.with_distinct(_order_terms(step, args, ctx))

    # ------------------------------------------------------------------
    # Projection, grouping
    # ------------------------------------------------------------------

    def _select(self, plan: QueryPlan, step: OperationStep) -> QueryPlan:
        return plan.with_selection(self._projection(step))

    def _select_merge(self, plan: QueryPlan, step: OperationStep) -> QueryPlan:
        merged = self._projection(step)
        if not isinstance(merged, MapNode):
            raise _malformed(step, "needs a mapping, e.g. select_merge({'key': expr})")

        current = plan.selection
        if current is None:
            return plan.with_selection(Call("merge", (SourceRecord(0), merged)))
        if isinstance(current, MapNode):
            return plan.with_selection(_merge_maps(current, merged))
        if isinstance(current, Call) and current.name == "merge":
            base, existing = current.args
            return plan.with_selection(Call("merge", (base, _merge_maps(cast(MapNode, existing), merged))))
        if isinstance(current, SourceRecord):
            return plan.with_selection(Call("merge", (current, merged)))
        raise _malformed(step, "can only merge into a mapping or record selection")

    def _projection(self, step: OperationStep) -> Node:
        ctx, args = split_binding(step.args)
        args, keywords = _split_keywords(args)
        if keywords:
            if args:
                raise _malformed(step, "takes either positional or keyword fields, not both")
            return MapNode(tuple((name, qualify(value, ctx)) for name, value in keywords.items()))
        if is_fragment(args):
            return fragment(args, ctx)
        if not args:
            raise _malformed(step, "needs something to select")
        if len(args) == 1:
            return qualify(args[0], ctx)
        return ListNode(tuple(qualify(arg, ctx) for arg in args))

    def _group_by(self, plan: QueryPlan, step: OperationStep) -> QueryPlan:
        ctx, args = split_binding(step.args)
        if is_fragment(args):
            return plan.add_group_by((fragment(args, ctx),))
        if not args:
            raise _malformed(step, "needs at least one grouping key")
        keys: list[Node] = []
        for arg in args:
            items = arg.items if isinstance(arg, ListNode | TupleNode) else (arg,)
            keys.extend(qualify(item, ctx) for item in items)
        return plan.add_group_by(tuple(keys))

    # ------------------------------------------------------------------
    # Joins
    # ------------------------------------------------------------------

    def _join(self, plan: QueryPlan, step: OperationStep) -> QueryPlan:
        kind = "inner" if step.name == "join" else step.name.removesuffix("_join")
        ctx, args = split_binding(step.args)
        args, keywords = _split_keywords(args)
        unknown = set(keywords) - {"on"}
        if unknown:
            raise _malformed(step, f"got unexpected keyword(s) {sorted(unknown)}")
        if not args:
            raise _malformed(step, "needs a join target")
        if len(args) > 2:
            raise _malformed(step, "takes a target and an optional alias")

        target = args[0]
        alias = _name_of(args[1], step) if len(args) == 2 else None
        position = plan.next_position()

        if _is_association(target):
            owner = ctx.slot(target.var) if isinstance(target, Attr) else ctx.default_slot
            assoc = target.name
            on = keywords.get("on")
            join = JoinSpec(
                kind,
                alias=alias or assoc,
                on=qualify(on, _join_context(ctx, alias or assoc, position)) if on is not None else None,
                assoc=assoc,
                owner_position=owner.position,
                owner_alias=owner.alias,
            )
        else:
            source = target.value if isinstance(target, Pinned) else _name_of(target, step)
            on = keywords.get("on")
            join_ctx = _join_context(ctx, alias, position)
            join = JoinSpec(
                kind,
                target=source,
                alias=alias,
                on=qualify(on, join_ctx) if on is not None else None,
            )
            if kind != "cross" and join.on is None:
                raise _malformed(step, "needs an 'on' condition when joining an entity")

        if join.lateral and not isinstance(target, Pinned):
            raise _malformed(step, "lateral joins take a pinned subquery as target")
        if kind == "cross" and join.on is not None:
            raise _malformed(step, "cross joins take no condition")
        return plan.add_join(join)

    # ------------------------------------------------------------------
    # Set operations, exclusion
    # ------------------------------------------------------------------

    def _combine(self, plan: QueryPlan, step: OperationStep) -> QueryPlan:
        if len(step.args) != 1 or not isinstance(step.args[0], Pinned):
            raise _malformed(step, "takes one pinned query, e.g. union(pin(other))")
        operator = step.name.removesuffix("_")
        return plan.add_combination(operator, as_plan(step.args[0].value))

    def _exclude(self, plan: QueryPlan, step: OperationStep) -> QueryPlan:
        if not step.args:
            raise _malformed(step, "needs the name of the component to remove")
        for arg in step.args:
            name = _name_of(arg, step)
            component = _EXCLUDE_ALIASES.get(name, name)
            if component not in COMPONENTS:
                raise _malformed(step, f"cannot exclude '{name}', expected one of {sorted(COMPONENTS)}")
            plan = plan.exclude(component)
        return plan

    # ------------------------------------------------------------------
    # Terminals
    # ------------------------------------------------------------------

    def _first(self, plan: QueryPlan, step: OperationStep) -> CompiledQuery:
        count = _optional_int(step)
        plan = plan.with_limit(1 if count is None else count).with_default_order()
        return CompiledQuery(plan, Terminal("one" if count is None else "all"))

    def _last(self, plan: QueryPlan, step: OperationStep) -> CompiledQuery:
        count = _optional_int(step)
        plan = plan.reverse_order().with_limit(1 if count is None else count).with_default_order()
        if count is None:
            return CompiledQuery(plan, Terminal("one"))
        return CompiledQuery(plan, Terminal("all", reverse=True))

    def _aggr(self, plan: QueryPlan, step: OperationStep) -> CompiledQuery:
        ctx, args = split_binding(step.args)
        if len(args) == 1 and isinstance(args[0], TupleNode | ListNode):
            args = args[0].items
        if not args:
            raise _malformed(step, "needs at least one aggregate expression")
        aggregates = tuple(qualify(arg, ctx) for arg in args)
        value = aggregates[0] if len(aggregates) == 1 else TupleNode(aggregates)

        if not plan.group_by:
            return CompiledQuery(plan.with_selection(value), Terminal("aggregate"))

        keys = plan.group_by
        key = keys[0] if len(keys) == 1 else TupleNode(keys)
        return CompiledQuery(plan.with_selection(TupleNode((key, value))), Terminal("all"))

    def _new(self, plan: QueryPlan, step: OperationStep) -> CompiledQuery:
        args, keywords = _split_keywords(step.args)
        fields: dict[str, Any] = {}
        for arg in args:
            value = evaluate(arg)
            if not isinstance(value, Mapping):
                raise _malformed(step, "takes field values as a mapping or keywords")
            fields.update(value)
        fields.update({name: evaluate(value) for name, value in keywords.items()})
        return CompiledQuery(plan, Terminal("new", argument=fields))

    def _get(self, plan: QueryPlan, step: OperationStep) -> CompiledQuery:
        if len(step.args) != 1:
            raise _malformed(step, "takes exactly one primary key")
        return CompiledQuery(plan, Terminal("get", argument=evaluate(step.args[0])))

    def _materialize(self, plan: QueryPlan, step: OperationStep) -> CompiledQuery:
        _no_arguments(step)
        return CompiledQuery(plan, Terminal(step.name))


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


def evaluate(node: Node) -> Any:
    """Turn a value-only expression (literals, pinned values, containers) into Python data.

    Raises:
        MalformedChainException: If the expression references fields.
    """
    if isinstance(node, Literal | Pinned):
        return node.value
    if isinstance(node, ListNode):
        return [evaluate(item) for item in node.items]
    if isinstance(node, TupleNode):
        return tuple(evaluate(item) for item in node.items)
    if isinstance(node, MapNode | Keywords):
        return {key: evaluate(value) for key, value in node.items}
    raise MalformedChainException(
        f"Expected a value, got {node!r}",
        code="COMPILE_VALUE",
        context={"node": repr(node)},
    )


def _split_keywords(args: Sequence[Node]) -> tuple[tuple[Node, ...], dict[str, Node]]:
    if args and isinstance(args[-1], Keywords):
        return tuple(args[:-1]), dict(args[-1].items)
    return tuple(args), {}


def _conjunction(parts: Sequence[Node]) -> Node:
    combined = parts[0]
    for part in parts[1:]:
        combined = Call("and", (combined, part))
    return combined


def _merge_maps(base: MapNode, extra: MapNode) -> MapNode:
    items = dict(base.items)
    items.update(extra.items)
    return MapNode(tuple(items.items()))


def _order_terms(step: OperationStep, args: Sequence[Node], ctx: BindingContext) -> tuple[OrderTerm, ...]:
    args, keywords = _split_keywords(args)
    if is_fragment(args):
        return (OrderTerm("asc", fragment(args, ctx)),)

    terms: list[OrderTerm] = []
    for arg in args:
        items = arg.items if isinstance(arg, ListNode | TupleNode) else (arg,)
        for item in items:
            if isinstance(item, Call) and item.name in DIRECTIONS and len(item.args) == 1:
                terms.append(OrderTerm(item.name, qualify(item.args[0], ctx)))
            else:
                terms.append(OrderTerm("asc", qualify(item, ctx)))
    for name, direction in keywords.items():
        terms.append(OrderTerm(_direction(direction, step), ctx.default_slot.field(name)))
    return tuple(terms)


def _direction(node: Node, step: OperationStep) -> str:
    if isinstance(node, Identifier):
        value = node.name
    elif isinstance(node, Literal | Pinned):
        value = node.value
    else:
        value = None
    if value not in DIRECTIONS:
        raise _malformed(step, f"unknown direction {value!r}, expected one of {list(DIRECTIONS)}")
    return value


def _join_context(ctx: BindingContext, alias: str | None, position: int) -> BindingContext:
    if alias is None:
        return ctx
    return ctx.with_variable(alias, SourceSlot(position))


def _is_association(node: Node) -> bool:
    """Association joins name a relationship: ``messages`` or ``u.messages``."""
    if isinstance(node, Attr):
        return True
    return isinstance(node, Identifier) and not node.name[:1].isupper()


def _name_of(node: Node, step: OperationStep) -> str:
    if isinstance(node, Identifier):
        return node.name
    if isinstance(node, Literal) and isinstance(node.value, str):
        return node.value
    raise _malformed(step, f"expected a name, got {node!r}")


def _single_int(step: OperationStep) -> int:
    value = _optional_int(step)
    if value is None:
        raise _malformed(step, "needs a number")
    return value


def _optional_int(step: OperationStep) -> int | None:
    if not step.args:
        return None
    if len(step.args) != 1:
        raise _malformed(step, "takes at most one number")
    value = evaluate(step.args[0])
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise _malformed(step, f"expected a non-negative integer, got {value!r}")
    return value


def _no_arguments(step: OperationStep) -> None:
    if step.args:
        raise _malformed(step, "takes no arguments")


def _malformed(step: OperationStep, problem: str) -> MalformedChainException:
    return MalformedChainException(
        f"'{step.name}' {problem}",
        code="COMPILE_MALFORMED",
        context={"operation": step.name},
    )


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
"""SQLAlchemy plan compiler — translates a :class:`QueryPlan` into a ``Select``.

Sources are addressed the way the plan addresses them: position 0 is the
root entity and every join takes the next position; named joins can also
be reached through their alias. Fragments render through
:mod:`sqlalchemy.ext.compiler`, substituting each ``?`` placeholder with
its compiled argument.
"""

from __future__ import annotations

import dataclasses
import operator
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import (
    Select,
    and_,
    except_,
    except_all,
    func,
    intersect,
    intersect_all,
    literal,
    not_,
    or_,
    select,
    true,
    tuple_,
    union,
    union_all,
)
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import aliased
from sqlalchemy.sql.elements import ClauseElement
from sqlalchemy.sql.functions import FunctionElement
from sqlalchemy.types import NullType

from querychain.compiler.plan import CompiledQuery, JoinSpec, OrderTerm, QueryPlan, as_plan
from querychain.config.store import QueryOptions
from querychain.data.registry import EntityRegistry, EntityType, default_registry
from querychain.expr.nodes import (
    Call,
    FieldRef,
    Fragment,
    ListNode,
    Literal,
    MapNode,
    Node,
    Pinned,
    PrimaryKeyRef,
    SourceRecord,
    TupleNode,
)
from querychain.kernel.exceptions import (
    MalformedChainException,
    NotImplementedException,
    UnboundVariableException,
    UnknownFieldException,
)

RowBuilder = Callable[[Sequence[Any]], Any]

_PLACEHOLDER_RE = re.compile(r"(?<!\\)\?")

_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "%": operator.mod,
}

_ORDERINGS: dict[str, Callable[[Any], Any]] = {
    "asc": lambda c: c.asc(),
    "desc": lambda c: c.desc(),
    "asc_nulls_first": lambda c: c.asc().nulls_first(),
    "asc_nulls_last": lambda c: c.asc().nulls_last(),
    "desc_nulls_first": lambda c: c.desc().nulls_first(),
    "desc_nulls_last": lambda c: c.desc().nulls_last(),
}

_SET_OPERATIONS: dict[str, Callable[..., Any]] = {
    "union": union,
    "union_all": union_all,
    "except": except_,
    "except_all": except_all,
    "intersect": intersect,
    "intersect_all": intersect_all,
}


class FragmentElement(FunctionElement):
    """A raw SQL template whose ``?`` placeholders are filled with compiled clauses."""

    name = "fragment"
    inherit_cache = False
    type = NullType()

    def __init__(self, template: str, *clauses: Any) -> None:
        self.template = template
        super().__init__(*clauses)


@compiles(FragmentElement)
def _render_fragment(element: FragmentElement, compiler: Any, **kw: Any) -> str:
    pieces = _PLACEHOLDER_RE.split(element.template)
    rendered = [pieces[0]]
    for clause, text in zip(element.clauses, pieces[1:], strict=True):
        rendered.append(compiler.process(clause, **kw))
        rendered.append(text)
    return "".join(rendered).replace("\\?", "?")


@dataclass(frozen=True)
class CompiledSelect:
    """A ``Select`` plus the function that shapes each of its rows."""

    statement: Select[Any]
    build: RowBuilder
    entity: EntityType

    def count_statement(self) -> Select[Any]:
        return select(func.count()).select_from(self.statement.order_by(None).subquery())

    def exists_statement(self) -> Select[Any]:
        return select(self.statement.exists())


@dataclass(frozen=True)
class _Source:
    selectable: Any
    entity: EntityType | None


class _Sources:
    """The query's sources by position and by join alias."""

    def __init__(self) -> None:
        self._positional: list[_Source] = []
        self._named: dict[str, _Source] = {}

    def add(self, source: _Source, alias: str | None = None) -> None:
        self._positional.append(source)
        if alias:
            self._named[alias] = source

    def at(self, position: int = 0, alias: str | None = None) -> _Source:
        if alias is not None:
            if alias not in self._named:
                raise UnboundVariableException(
                    f"No join named '{alias}', named joins: {sorted(self._named)}",
                    code="COMPILE_UNKNOWN_JOIN",
                    context={"alias": alias},
                )
            return self._named[alias]
        if position >= len(self._positional):
            raise UnboundVariableException(
                f"No source at position {position}, the query has {len(self._positional)}",
                code="COMPILE_UNKNOWN_JOIN",
                context={"position": position},
            )
        return self._positional[position]

    def column(self, ref: FieldRef) -> Any:
        source = self.at(ref.position, ref.alias)
        if source.entity is None:
            try:
                return source.selectable.c[ref.name]
            except KeyError:
                raise UnknownFieldException(
                    f"Subquery has no column '{ref.name}'",
                    code="COMPILE_UNKNOWN_FIELD",
                    context={"field": ref.name},
                ) from None
        if ref.name not in source.entity.fields:
            raise UnknownFieldException(
                f"{source.entity.name} has no field '{ref.name}'",
                code="COMPILE_UNKNOWN_FIELD",
                context={"entity": source.entity.name, "field": ref.name},
            )
        return getattr(source.selectable, ref.name)

    def primary_key(self, ref: PrimaryKeyRef) -> list[Any]:
        source = self.at(ref.position)
        if source.entity is None:
            raise NotImplementedException(
                "Subquery sources have no primary key",
                code="SUBQUERY_PRIMARY_KEY",
            )
        return [getattr(source.selectable, key) for key in source.entity.primary_key]


class PlanCompiler:
    """Compile :class:`QueryPlan` objects into SQLAlchemy statements.

    Usage::

        compiled = PlanCompiler(registry).compile(plan)
        rows = (await session.execute(compiled.statement)).all()
        results = [compiled.build(row) for row in rows]
    """

    def __init__(self, registry: EntityRegistry | None = None, options: QueryOptions | None = None) -> None:
        self._registry = registry or default_registry
        self._options = dataclasses.replace(options, schema=None) if options else None

    def entity(self, source: Any) -> EntityType:
        return self._registry.resolve(source, self._options)

    def compile(self, plan: QueryPlan) -> CompiledSelect:
        entity = self.entity(plan.source)
        if not plan.combinations:
            return self._compile(plan, entity, entity.model)

        core = dataclasses.replace(
            plan, order=(), limit=None, offset=None, selection=None, distinct=False, combinations=()
        )
        compound: Any = self._compile(core, entity, entity.model).statement
        for combination in plan.combinations:
            other = self.compile(combination.plan).statement
            compound = _SET_OPERATIONS[combination.operator](compound, other)
        root = aliased(entity.model, compound.subquery())
        outer = QueryPlan(
            source=entity,
            order=plan.order,
            limit=plan.limit,
            offset=plan.offset,
            selection=plan.selection,
            distinct=plan.distinct,
        )
        return self._compile(outer, entity, root)

    def compile_aggregate(self, plan: QueryPlan) -> CompiledSelect:
        """Compile an ungrouped aggregate selection.

        The order is dropped. Limit, offset, distinct and set operations
        decide which rows are aggregated, so such plans are aggregated over a
        subquery of the root entity's rows.
        """
        entity = self.entity(plan.source)
        if plan.limit is None and plan.offset is None and not plan.distinct and not plan.combinations:
            return self._compile(dataclasses.replace(plan, order=()), entity, entity.model)

        rows = self.compile(dataclasses.replace(plan, selection=None)).statement
        root = aliased(entity.model, rows.subquery())
        return self._compile(QueryPlan(source=entity, selection=plan.selection), entity, root)

    # ------------------------------------------------------------------
    # Statement assembly
    # ------------------------------------------------------------------

    def _compile(self, plan: QueryPlan, entity: EntityType, root: Any) -> CompiledSelect:
        sources = _Sources()
        sources.add(_Source(root, entity))
        targets = [self._join_target(join, sources) for join in plan.joins]

        columns, build = self._projection(plan.selection, sources)
        stmt = select(*columns).select_from(root)
        for join, target in zip(plan.joins, targets, strict=True):
            stmt = self._apply_join(stmt, join, target, sources)

        if plan.filters is not None:
            stmt = stmt.where(_clause(self._expr(plan.filters, sources)))
        if plan.group_by:
            stmt = stmt.group_by(*self._expand(plan.group_by, sources))
        if plan.havings is not None:
            stmt = stmt.having(_clause(self._expr(plan.havings, sources)))
        if isinstance(plan.distinct, tuple):
            stmt = stmt.distinct(*self._expand([t.expr for t in plan.distinct], sources))
            stmt = stmt.order_by(*self._ordering(plan.distinct, sources))
        elif plan.distinct:
            stmt = stmt.distinct()
        if plan.order:
            stmt = stmt.order_by(*self._ordering(plan.order, sources))
        if plan.limit is not None:
            stmt = stmt.limit(plan.limit)
        if plan.offset is not None:
            stmt = stmt.offset(plan.offset)
        return CompiledSelect(stmt, build, entity)

    def _join_target(self, join: JoinSpec, sources: _Sources) -> Any:
        if join.kind == "right":
            raise NotImplementedException(
                "Right joins are not supported by the SQLAlchemy adapter, swap the sides and use left_join",
                code="RIGHT_JOIN_UNSUPPORTED",
            )
        entity: EntityType | None
        if join.assoc is not None:
            owner = sources.at(join.owner_position, join.owner_alias)
            if owner.entity is None:
                raise UnknownFieldException(
                    f"Subqueries have no association '{join.assoc}'",
                    code="COMPILE_UNKNOWN_ASSOCIATION",
                    context={"association": join.assoc},
                )
            entity = self._registry.entity_for(owner.entity.related(join.assoc))
            target = aliased(entity.model, name=join.alias)
        elif join.lateral or not isinstance(join.target, str | type | EntityType):
            entity = None
            statement = self.compile(as_plan(join.target)).statement
            target = statement.lateral(join.alias) if join.lateral else statement.subquery(join.alias)
        else:
            entity = self.entity(join.target)
            target = aliased(entity.model, name=join.alias)
        sources.add(_Source(target, entity), join.alias)
        return target

    def _apply_join(self, stmt: Select[Any], join: JoinSpec, target: Any, sources: _Sources) -> Select[Any]:
        if join.kind == "cross":
            return stmt.join(target, true())
        isouter = join.kind in ("left", "left_lateral")
        full = join.kind == "full"
        if join.assoc is not None:
            owner = sources.at(join.owner_position, join.owner_alias).selectable
            onclause = getattr(owner, join.assoc).of_type(target)
            if join.on is not None:
                onclause = onclause.and_(_clause(self._expr(join.on, sources)))
            return stmt.join(onclause, isouter=isouter, full=full)
        on = _clause(self._expr(join.on, sources)) if join.on is not None else true()
        return stmt.join(target, on, isouter=isouter, full=full)

    def _ordering(self, terms: Sequence[OrderTerm], sources: _Sources) -> list[Any]:
        ordering: list[Any] = []
        for term in terms:
            for column in self._expand([term.expr], sources):
                ordering.append(_ORDERINGS[term.direction](column))
        return ordering

    def _expand(self, nodes: Sequence[Node], sources: _Sources) -> list[Any]:
        """Compile *nodes*, expanding primary key references into their columns."""
        columns: list[Any] = []
        for node in nodes:
            if isinstance(node, PrimaryKeyRef):
                columns.extend(sources.primary_key(node))
            else:
                columns.append(_clause(self._expr(node, sources)))
        return columns

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def _projection(self, selection: Node | None, sources: _Sources) -> tuple[list[Any], RowBuilder]:
        if selection is None:
            return [sources.at(0).selectable], lambda row: row[0]

        columns: list[Any] = []

        def leaf(node: Node) -> RowBuilder:
            index = len(columns)
            columns.append(self._column(node, sources))
            return lambda row: row[index]

        def shape(node: Node) -> RowBuilder:
            if isinstance(node, ListNode):
                parts = [shape(item) for item in node.items]
                return lambda row: [part(row) for part in parts]
            if isinstance(node, TupleNode):
                parts = [shape(item) for item in node.items]
                return lambda row: tuple(part(row) for part in parts)
            if isinstance(node, MapNode):
                items = [(key, shape(value)) for key, value in node.items]
                return lambda row: {key: part(row) for key, part in items}
            if isinstance(node, Call) and node.name == "merge":
                base, extra = node.args
                fields = self._record_fields(base, sources)
                base_part, extra_part = shape(base), shape(extra)
                return lambda row: {**_as_mapping(base_part(row), fields), **extra_part(row)}
            return leaf(node)

        return columns, shape(selection)

    def _column(self, node: Node, sources: _Sources) -> Any:
        if isinstance(node, SourceRecord):
            source = sources.at(node.position, node.alias)
            if source.entity is None:
                raise NotImplementedException(
                    "Selecting a whole subquery source is not supported, select its columns instead",
                    code="SUBQUERY_RECORD",
                )
            return source.selectable
        return _clause(self._expr(node, sources))

    @staticmethod
    def _record_fields(node: Node, sources: _Sources) -> tuple[str, ...]:
        if isinstance(node, SourceRecord):
            entity = sources.at(node.position, node.alias).entity
            return entity.fields if entity is not None else ()
        return ()

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def _expr(self, node: Node, sources: _Sources) -> Any:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, Pinned):
            # Pinned plans never reference the enclosing query.
            if _is_plan(node.value):
                return self.compile(as_plan(node.value)).statement.correlate(None).scalar_subquery()
            return node.value
        if isinstance(node, FieldRef):
            return sources.column(node)
        if isinstance(node, PrimaryKeyRef):
            columns = sources.primary_key(node)
            return columns[0] if len(columns) == 1 else tuple_(*columns)
        if isinstance(node, SourceRecord):
            return sources.at(node.position, node.alias).selectable
        if isinstance(node, Fragment):
            return FragmentElement(node.template, *(self._expr(arg, sources) for arg in node.args))
        if isinstance(node, TupleNode):
            return tuple_(*(_clause(self._expr(item, sources)) for item in node.items))
        if isinstance(node, ListNode):
            return [self._expr(item, sources) for item in node.items]
        if isinstance(node, Call):
            return self._call(node, sources)
        raise MalformedChainException(
            f"Cannot compile {node!r} into SQL",
            code="COMPILE_EXPRESSION",
            context={"node": repr(node)},
        )

    def _call(self, node: Call, sources: _Sources) -> Any:
        name, args = node.name, node.args
        if name == "and":
            return and_(*(_clause(self._expr(arg, sources)) for arg in args))
        if name == "or":
            return or_(*(_clause(self._expr(arg, sources)) for arg in args))
        if name == "not":
            return not_(_clause(self._expr(args[0], sources)))
        if name == "is_nil":
            return _clause(self._expr(args[0], sources)).is_(None)
        if name == "in":
            left = _clause(self._expr(args[0], sources))
            right = args[1]
            if isinstance(right, Pinned) and _is_plan(right.value):
                return left.in_(self.compile(as_plan(right.value)).statement.correlate(None))
            return left.in_(self._expr(right, sources))
        if name in _OPERATORS:
            left = _clause(self._expr(args[0], sources))
            return _OPERATORS[name](left, self._expr(args[1], sources))
        if name == "neg":
            return -_clause(self._expr(args[0], sources))
        if name in ("like", "ilike"):
            return getattr(_clause(self._expr(args[0], sources)), name)(self._expr(args[1], sources))
        if name == "merge":
            raise MalformedChainException(
                "A merged record can only be selected, not compared",
                code="COMPILE_EXPRESSION",
            )
        return getattr(func, name)(*(self._expr(arg, sources) for arg in args))


def _clause(value: Any) -> Any:
    if isinstance(value, ClauseElement) or hasattr(value, "__clause_element__"):
        return value
    return literal(value)


def _is_plan(value: Any) -> bool:
    return isinstance(value, QueryPlan | CompiledQuery) or isinstance(getattr(value, "plan", None), QueryPlan)


def _as_mapping(value: Any, fields: Sequence[str]) -> dict[str, Any]:
    if isinstance(value, dict):
        return dict(value)
    return {name: getattr(value, name) for name in fields}

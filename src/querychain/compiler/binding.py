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
"""Binding resolver — qualifies the names inside step arguments with their source.

A step may open with an explicit binding list naming the sources in scope::

    where([u, m], m.likes > u.age)          # positional: u = root, m = first join
    where([u, c := comments], c.likes > 3)  # c is bound to the join named "comments"

When it does not, a single default binding ``t`` on the root is synthesized
and every bare identifier in the expression becomes a field of the root::

    where(age > 20)   ->   where([t], t.age > 20)

Pinned values are never visited, so a pinned string that happens to look
like a field name stays a value.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import cast

from querychain.expr.nodes import (
    AliasPair,
    Attr,
    FieldRef,
    Fragment,
    Identifier,
    ListNode,
    Literal,
    Node,
    Pinned,
    PrimaryKeyRef,
    SourceRecord,
    is_string_literal,
)
from querychain.expr.walk import conditional_prewalk
from querychain.kernel.exceptions import MalformedChainException, UnboundVariableException

DEFAULT_BINDING = "t"


@dataclass(frozen=True)
class SourceSlot:
    """Where a binding variable points: a source position or a named join."""

    position: int = 0
    alias: str | None = None

    def field(self, name: str) -> FieldRef:
        return FieldRef(name, position=self.position, alias=self.alias)

    def record(self) -> SourceRecord:
        return SourceRecord(self.position, alias=self.alias)


ROOT = SourceSlot(0)


@dataclass(frozen=True)
class BindingContext:
    """The binding variables in scope for one step."""

    explicit: bool = False
    variables: Mapping[str, SourceSlot] = field(default_factory=lambda: MappingProxyType({DEFAULT_BINDING: ROOT}))
    first: str = DEFAULT_BINDING

    @property
    def default_slot(self) -> SourceSlot:
        return self.variables[self.first]

    def slot(self, var: str) -> SourceSlot:
        try:
            return self.variables[var]
        except KeyError:
            raise UnboundVariableException(
                f"'{var}' is not a bound variable, bound: {sorted(self.variables)}",
                code="COMPILE_UNBOUND_VARIABLE",
                context={"variable": var},
            ) from None

    def with_variable(self, var: str, slot: SourceSlot) -> BindingContext:
        variables = dict(self.variables)
        variables[var] = slot
        return BindingContext(self.explicit, MappingProxyType(variables), self.first)


IMPLICIT = BindingContext()


def is_binding_list(node: Node) -> bool:
    """Shape check: a non-empty list whose every element is a name or ``var := alias``."""
    return (
        isinstance(node, ListNode)
        and bool(node.items)
        and all(isinstance(item, Identifier | AliasPair) for item in node.items)
    )


def split_binding(args: Sequence[Node]) -> tuple[BindingContext, tuple[Node, ...]]:
    """Detect an explicit binding list in front of *args*.

    Returns the binding context and the remaining arguments.
    """
    if not args or not is_binding_list(args[0]):
        return IMPLICIT, tuple(args)

    binding = cast(ListNode, args[0])
    variables: dict[str, SourceSlot] = {}
    first: str | None = None
    for position, item in enumerate(binding.items):
        if isinstance(item, AliasPair):
            var, slot = item.var, SourceSlot(alias=item.alias)
        else:
            var, slot = cast(Identifier, item).name, SourceSlot(position)
        if var in variables:
            raise MalformedChainException(
                f"Binding variable '{var}' is declared twice",
                code="COMPILE_BINDING",
                context={"variable": var},
            )
        variables[var] = slot
        first = first or var
    return BindingContext(True, MappingProxyType(variables), first or DEFAULT_BINDING), tuple(args[1:])


def qualify(tree: Node, ctx: BindingContext = IMPLICIT) -> Node:
    """Rewrite names in *tree* into :class:`FieldRef` nodes.

    Bare identifiers become fields of the context's first binding, ``var.f``
    becomes a field of whatever *var* is bound to, a bound variable on its
    own stands for the whole record, and pinned subtrees are left untouched.
    """

    def visit(node: Node) -> tuple[bool, Node]:
        if isinstance(node, Pinned | Literal | FieldRef | PrimaryKeyRef | SourceRecord):
            return False, node
        if isinstance(node, Identifier):
            if ctx.explicit and node.name in ctx.variables:
                return False, ctx.slot(node.name).record()
            return False, ctx.default_slot.field(node.name)
        if isinstance(node, Attr):
            return False, ctx.slot(node.var).field(node.name)
        return True, node

    return conditional_prewalk(tree, visit)


def is_fragment(args: Sequence[Node]) -> bool:
    return bool(args) and is_string_literal(args[0])


def fragment(args: Sequence[Node], ctx: BindingContext = IMPLICIT) -> Fragment:
    """Build a fragment from ``(template, *placeholder_args)``.

    Only the placeholder arguments are qualified, never the template.
    """
    template = cast(Literal, args[0])
    placeholders = count_placeholders(template.value)
    values = tuple(args[1:])
    if placeholders != len(values):
        raise MalformedChainException(
            f"Fragment {template.value!r} has {placeholders} placeholder(s) but {len(values)} argument(s)",
            code="COMPILE_FRAGMENT",
            context={"template": template.value},
        )
    return Fragment(template.value, tuple(qualify(value, ctx) for value in values))


def count_placeholders(template: str) -> int:
    """Count ``?`` placeholders; ``\\?`` is a literal question mark."""
    return template.count("?") - template.count("\\?")

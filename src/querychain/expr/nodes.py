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
"""Expression nodes — the tagged, backend-agnostic tree every chain is parsed into.

All nodes are frozen dataclasses. Composite nodes expose their sub-nodes
through :meth:`Node.children` and rebuild themselves through
:meth:`Node.with_children`, which is all the generic tree walkers need.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any


class Node:
    """Base class for expression nodes."""

    def children(self) -> tuple[Node, ...]:
        return ()

    def with_children(self, children: tuple[Node, ...]) -> Node:
        return self


# ---------------------------------------------------------------------------
# Leaves
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal(Node):
    """A constant written in the source: number, string, boolean or ``None``."""

    value: Any


@dataclass(frozen=True)
class Identifier(Node):
    """A bare, zero-arity name such as ``age``."""

    name: str


@dataclass(frozen=True)
class Attr(Node):
    """``var.field`` written against an explicit binding variable."""

    var: str
    name: str


@dataclass(frozen=True)
class FieldRef(Node):
    """A field qualified with the source it belongs to.

    ``position`` indexes the sources of the query (0 is the root, then
    joins in declaration order); ``alias`` names a join instead.
    """

    name: str
    position: int = 0
    alias: str | None = None


@dataclass(frozen=True)
class PrimaryKeyRef(Node):
    """The primary key column(s) of a source, expanded by the backend."""

    position: int = 0


@dataclass(frozen=True)
class SourceRecord(Node):
    """A whole record of a source, used when merging a selection into it."""

    position: int = 0
    alias: str | None = None


@dataclass(frozen=True)
class Pinned(Node):
    """A value injected from the caller. Opaque to every rewrite."""

    value: Any
    label: str = ""


@dataclass(frozen=True)
class AliasPair(Node):
    """``var := alias`` inside a binding list: binds *var* to the named join *alias*."""

    var: str
    alias: str


# ---------------------------------------------------------------------------
# Composites
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Call(Node):
    """An operator or function application, e.g. ``Call(">", (age, 20))``."""

    name: str
    args: tuple[Node, ...] = ()

    def children(self) -> tuple[Node, ...]:
        return self.args

    def with_children(self, children: tuple[Node, ...]) -> Node:
        return replace(self, args=tuple(children))


@dataclass(frozen=True)
class ListNode(Node):
    items: tuple[Node, ...] = ()

    def children(self) -> tuple[Node, ...]:
        return self.items

    def with_children(self, children: tuple[Node, ...]) -> Node:
        return replace(self, items=tuple(children))


@dataclass(frozen=True)
class TupleNode(Node):
    items: tuple[Node, ...] = ()

    def children(self) -> tuple[Node, ...]:
        return self.items

    def with_children(self, children: tuple[Node, ...]) -> Node:
        return replace(self, items=tuple(children))


@dataclass(frozen=True)
class MapNode(Node):
    """A mapping literal. Keys are literal names and are never rewritten."""

    items: tuple[tuple[str, Node], ...] = ()

    def children(self) -> tuple[Node, ...]:
        return tuple(value for _, value in self.items)

    def with_children(self, children: tuple[Node, ...]) -> Node:
        keys = [key for key, _ in self.items]
        return replace(self, items=tuple(zip(keys, children, strict=True)))

    def keys(self) -> list[str]:
        return [key for key, _ in self.items]


@dataclass(frozen=True)
class Keywords(Node):
    """Keyword arguments of a step (``order(age="desc")``), kept as one trailing argument."""

    items: tuple[tuple[str, Node], ...] = ()

    def children(self) -> tuple[Node, ...]:
        return tuple(value for _, value in self.items)

    def with_children(self, children: tuple[Node, ...]) -> Node:
        keys = [key for key, _ in self.items]
        return replace(self, items=tuple(zip(keys, children, strict=True)))


@dataclass(frozen=True)
class Fragment(Node):
    """A raw backend template with ``?`` placeholders and their argument expressions."""

    template: str
    args: tuple[Node, ...] = ()

    def children(self) -> tuple[Node, ...]:
        return self.args

    def with_children(self, children: tuple[Node, ...]) -> Node:
        return replace(self, args=tuple(children))


@dataclass(frozen=True)
class Dot(Node):
    """``receiver.name`` or ``receiver.name(args)`` on the spine of a chain."""

    receiver: Node
    name: str
    args: tuple[Node, ...] = ()
    parens: bool = False

    def children(self) -> tuple[Node, ...]:
        return (self.receiver, *self.args)

    def with_children(self, children: tuple[Node, ...]) -> Node:
        return replace(self, receiver=children[0], args=tuple(children[1:]))


def is_string_literal(node: Node) -> bool:
    return isinstance(node, Literal) and isinstance(node.value, str)

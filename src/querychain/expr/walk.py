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
"""Generic tree walkers over expression nodes."""

from __future__ import annotations

from collections.abc import Callable, Iterator

from querychain.expr.nodes import Node

Visitor = Callable[[Node], tuple[bool, Node]]


def conditional_prewalk(tree: Node, fun: Visitor) -> Node:
    """Pre-order transform that lets *fun* decide whether to descend.

    *fun* receives each node and returns ``(descend, replacement)``. When
    ``descend`` is false the replacement is used as-is and its children are
    never visited; otherwise the walk continues into the replacement's
    children.
    """
    descend, node = fun(tree)
    if not descend:
        return node
    children = node.children()
    if not children:
        return node
    return node.with_children(tuple(conditional_prewalk(child, fun) for child in children))


def iter_nodes(tree: Node) -> Iterator[Node]:
    """Yield *tree* and every descendant in pre-order."""
    yield tree
    for child in tree.children():
        yield from iter_nodes(child)

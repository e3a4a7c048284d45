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
"""Chain unwrapper — flattens nested ``Dot`` nodes into a root and ordered steps."""

from __future__ import annotations

from dataclasses import dataclass

from querychain.expr.nodes import Dot, Identifier, Node, Pinned
from querychain.kernel.exceptions import MalformedChainException


@dataclass(frozen=True)
class OperationStep:
    """One call of a chain: ``name(args)``."""

    name: str
    args: tuple[Node, ...] = ()
    parens: bool = False


def unwrap(tree: Node) -> tuple[Node, list[OperationStep]]:
    """Split ``Root.op1(...).op2(...)`` into ``(Root, [op1, op2])``.

    The innermost receiver is the root and must be an identifier or a pinned
    value; outer calls become later steps.

    Raises:
        MalformedChainException: If anything other than a dotted call sits
            on the chain.
    """
    steps: list[OperationStep] = []
    node = tree
    while isinstance(node, Dot):
        steps.append(OperationStep(node.name, node.args, node.parens))
        node = node.receiver
    if not isinstance(node, Identifier | Pinned):
        raise MalformedChainException(
            f"A query chain must start with an entity name or a pinned value, got {type(node).__name__}",
            code="COMPILE_MALFORMED",
            context={"root": repr(node)},
        )
    steps.reverse()
    return node, steps


def root_name(root: Node) -> str:
    """Name of a chain root that is not pinned.

    Raises:
        MalformedChainException: If *root* is not an identifier.
    """
    if not isinstance(root, Identifier):
        raise MalformedChainException(
            f"Expected an entity name or a bound name as the chain root, got {type(root).__name__}",
            code="COMPILE_MALFORMED",
            context={"root": repr(root)},
        )
    return root.name

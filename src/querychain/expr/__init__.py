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
"""Expression trees: node types, the chain parser and tree walkers."""

from querychain.expr.nodes import (
    AliasPair,
    Attr,
    Call,
    Dot,
    FieldRef,
    Fragment,
    Identifier,
    Keywords,
    ListNode,
    Literal,
    MapNode,
    Node,
    Pinned,
    PrimaryKeyRef,
    SourceRecord,
    TupleNode,
)
from querychain.expr.parser import parse
from querychain.expr.walk import conditional_prewalk, iter_nodes

__all__ = [
    "AliasPair",
    "Attr",
    "Call",
    "Dot",
    "FieldRef",
    "Fragment",
    "Identifier",
    "Keywords",
    "ListNode",
    "Literal",
    "MapNode",
    "Node",
    "Pinned",
    "PrimaryKeyRef",
    "SourceRecord",
    "TupleNode",
    "conditional_prewalk",
    "iter_nodes",
    "parse",
]

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
"""Chain expression parser.

Turns a Rails-style chain written as a Python expression into
:mod:`querychain.expr.nodes` trees using the standard :mod:`ast` module.

Grammar
-------
**Spine:** ``Root.step.step(args).step(args, key=value)``

**Expressions (step arguments):**
    - literals, lists ``[...]``, tuples ``(...)``, mappings ``{"key": expr}``
    - bare names (``age``) and binding attributes (``u.age``)
    - ``and`` / ``or`` / ``not``, comparisons (chained comparisons expand
      to ``and``), ``in`` / ``not in``, ``is None`` / ``is not None``
    - arithmetic ``+ - * / %`` and unary minus
    - function calls ``lower(name)``, ``count()``
    - ``pin(name)`` injects ``params["name"]`` (attributes and subscripts of
      a pinned name are evaluated too: ``pin(user.name)``)
    - ``var := alias`` inside a binding list names a join

Two spellings Python cannot parse are normalized first: ``.except(`` becomes
``.except_(`` and a ``?`` directly after a step name is dropped
(``exists?`` -> ``exists``).

Example::

    node = parse("User.where(age > 20 and name == pin(name)).first", {"name": "Bob"})
"""

from __future__ import annotations

import ast
import re
from collections.abc import Mapping
from typing import Any

from querychain.expr.nodes import (
    AliasPair,
    Attr,
    Call,
    Dot,
    Identifier,
    Keywords,
    ListNode,
    Literal,
    MapNode,
    Node,
    Pinned,
    TupleNode,
)
from querychain.kernel.exceptions import MalformedChainException, UnboundVariableException

PIN = "pin"

_NORMALIZE_RE = re.compile(
    r"""(?P<string>'(?:\\.|[^'\\])*'|"(?:\\.|[^"\\])*")"""
    r"""|\.(?P<keyword>except)\b"""
    r"""|(?<=\w)(?P<predicate>\?)"""
)

_BIN_OPS: dict[type[ast.operator], str] = {
    ast.Add: "+",
    ast.Sub: "-",
    ast.Mult: "*",
    ast.Div: "/",
    ast.Mod: "%",
}

_COMPARE_OPS: dict[type[ast.cmpop], str] = {
    ast.Eq: "==",
    ast.NotEq: "!=",
    ast.Lt: "<",
    ast.LtE: "<=",
    ast.Gt: ">",
    ast.GtE: ">=",
    ast.In: "in",
}


def normalize(source: str) -> str:
    """Rewrite the non-Python spellings of a chain, leaving string literals alone."""

    def _replace(match: re.Match[str]) -> str:
        if match.group("string") is not None:
            return match.group("string")
        if match.group("keyword") is not None:
            return ".except_"
        return ""

    return _NORMALIZE_RE.sub(_replace, source)


def parse(source: str, params: Mapping[str, Any] | None = None) -> Node:
    """Parse *source* into an expression tree.

    Raises:
        MalformedChainException: If the source is not a valid chain expression.
        UnboundVariableException: If ``pin(name)`` names a missing parameter.
    """
    try:
        tree = ast.parse(normalize(source).strip(), mode="eval")
    except SyntaxError as exc:
        raise MalformedChainException(
            f"Cannot parse query chain {source!r}: {exc.msg}",
            code="COMPILE_SYNTAX",
            context={"source": source, "offset": exc.offset},
        ) from exc
    return _Converter(params or {}).chain(tree.body)


class _Converter:
    """Convert Python ``ast`` nodes into expression nodes."""

    def __init__(self, params: Mapping[str, Any]) -> None:
        self._params = params

    # ------------------------------------------------------------------
    # Spine
    # ------------------------------------------------------------------

    def chain(self, node: ast.expr) -> Node:
        if isinstance(node, ast.Call) and isinstance(node.func, ast.Attribute):
            return Dot(
                self.chain(node.func.value),
                node.func.attr,
                self.arguments(node),
                parens=True,
            )
        if isinstance(node, ast.Attribute):
            return Dot(self.chain(node.value), node.attr, (), parens=False)
        if isinstance(node, ast.Name):
            return Identifier(node.id)
        return self.expr(node)

    def arguments(self, call: ast.Call) -> tuple[Node, ...]:
        args: list[Node] = []
        for arg in call.args:
            if isinstance(arg, ast.Starred):
                raise self._unsupported(arg, "star arguments")
            args.append(self.expr(arg))
        if call.keywords:
            items: list[tuple[str, Node]] = []
            for keyword in call.keywords:
                if keyword.arg is None:
                    raise self._unsupported(keyword.value, "** arguments")
                items.append((keyword.arg, self.expr(keyword.value)))
            args.append(Keywords(tuple(items)))
        return tuple(args)

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def expr(self, node: ast.expr) -> Node:
        method = getattr(self, f"_expr_{type(node).__name__}", None)
        if method is None:
            raise self._unsupported(node, f"{type(node).__name__} expressions")
        return method(node)

    def _expr_Constant(self, node: ast.Constant) -> Node:
        return Literal(node.value)

    def _expr_Name(self, node: ast.Name) -> Node:
        return Identifier(node.id)

    def _expr_Attribute(self, node: ast.Attribute) -> Node:
        if isinstance(node.value, ast.Name):
            return Attr(node.value.id, node.attr)
        raise self._unsupported(node, "nested attribute access")

    def _expr_BoolOp(self, node: ast.BoolOp) -> Node:
        name = "and" if isinstance(node.op, ast.And) else "or"
        values = [self.expr(v) for v in node.values]
        combined = values[0]
        for value in values[1:]:
            combined = Call(name, (combined, value))
        return combined

    def _expr_UnaryOp(self, node: ast.UnaryOp) -> Node:
        operand = self.expr(node.operand)
        if isinstance(node.op, ast.Not):
            return Call("not", (operand,))
        if isinstance(node.op, ast.USub):
            if isinstance(operand, Literal) and isinstance(operand.value, int | float):
                return Literal(-operand.value)
            return Call("neg", (operand,))
        if isinstance(node.op, ast.UAdd):
            return operand
        raise self._unsupported(node, "bitwise inversion")

    def _expr_BinOp(self, node: ast.BinOp) -> Node:
        op = _BIN_OPS.get(type(node.op))
        if op is None:
            raise self._unsupported(node, f"operator {type(node.op).__name__}")
        return Call(op, (self.expr(node.left), self.expr(node.right)))

    def _expr_Compare(self, node: ast.Compare) -> Node:
        left = self.expr(node.left)
        parts: list[Node] = []
        for op, comparator in zip(node.ops, node.comparators, strict=True):
            right = self.expr(comparator)
            parts.append(self._comparison(node, op, left, right))
            left = right
        combined = parts[0]
        for part in parts[1:]:
            combined = Call("and", (combined, part))
        return combined

    def _comparison(self, node: ast.Compare, op: ast.cmpop, left: Node, right: Node) -> Node:
        if isinstance(op, ast.NotIn):
            return Call("not", (Call("in", (left, right)),))
        if isinstance(op, ast.Is | ast.IsNot):
            if not (isinstance(right, Literal) and right.value is None):
                raise self._unsupported(node, "identity comparison other than 'is None'")
            check = Call("is_nil", (left,))
            return check if isinstance(op, ast.Is) else Call("not", (check,))
        return Call(_COMPARE_OPS[type(op)], (left, right))

    def _expr_Call(self, node: ast.Call) -> Node:
        if not isinstance(node.func, ast.Name):
            raise self._unsupported(node, "method calls inside expressions")
        if node.func.id == PIN:
            if len(node.args) != 1 or node.keywords:
                raise self._unsupported(node, "pin() with anything but one argument")
            target = node.args[0]
            return Pinned(self._evaluate_pin(target), label=ast.unparse(target))
        return Call(node.func.id, self.arguments(node))

    def _expr_List(self, node: ast.List) -> Node:
        return ListNode(tuple(self.expr(e) for e in node.elts))

    def _expr_Tuple(self, node: ast.Tuple) -> Node:
        return TupleNode(tuple(self.expr(e) for e in node.elts))

    def _expr_Dict(self, node: ast.Dict) -> Node:
        items: list[tuple[str, Node]] = []
        for key, value in zip(node.keys, node.values, strict=True):
            if not (isinstance(key, ast.Constant) and isinstance(key.value, str)):
                raise self._unsupported(value, "mapping keys other than string literals")
            items.append((key.value, self.expr(value)))
        return MapNode(tuple(items))

    def _expr_NamedExpr(self, node: ast.NamedExpr) -> Node:
        if not isinstance(node.value, ast.Name):
            raise self._unsupported(node, "binding aliases other than 'var := alias'")
        return AliasPair(node.target.id, node.value.id)

    # ------------------------------------------------------------------
    # Pinned values
    # ------------------------------------------------------------------

    def _evaluate_pin(self, node: ast.expr) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            if node.id not in self._params:
                raise UnboundVariableException(
                    f"pin({node.id}) refers to a parameter that was not supplied",
                    code="COMPILE_UNBOUND_PIN",
                    context={"name": node.id},
                )
            return self._params[node.id]
        if isinstance(node, ast.Attribute):
            owner = self._evaluate_pin(node.value)
            if isinstance(owner, Mapping):
                return owner[node.attr]
            return getattr(owner, node.attr)
        if isinstance(node, ast.Subscript):
            return self._evaluate_pin(node.value)[self._evaluate_pin(node.slice)]
        raise self._unsupported(node, "pinning computed expressions")

    @staticmethod
    def _unsupported(node: ast.AST, what: str) -> MalformedChainException:
        return MalformedChainException(
            f"Unsupported syntax: {what} ({ast.unparse(node)})",
            code="COMPILE_SYNTAX",
            context={"fragment": ast.unparse(node)},
        )

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
"""Tests for the chain expression parser."""

import pytest

from querychain.expr import (
    AliasPair,
    Attr,
    Call,
    Dot,
    Identifier,
    Keywords,
    ListNode,
    Literal,
    MapNode,
    Pinned,
    TupleNode,
    iter_nodes,
    parse,
)
from querychain.expr.parser import normalize
from querychain.kernel.exceptions import MalformedChainException, UnboundVariableException


class TestSpine:
    def test_bare_root(self):
        assert parse("User") == Identifier("User")

    def test_step_without_parens(self):
        assert parse("User.all") == Dot(Identifier("User"), "all", (), parens=False)

    def test_step_with_empty_parens(self):
        assert parse("User.first()") == Dot(Identifier("User"), "first", (), parens=True)

    def test_steps_nest_outermost_last(self):
        tree = parse("User.where(age > 20).limit(3)")
        assert isinstance(tree, Dot)
        assert tree.name == "limit"
        assert tree.args == (Literal(3),)
        assert isinstance(tree.receiver, Dot)
        assert tree.receiver.name == "where"

    def test_keyword_arguments_become_trailing_keywords_node(self):
        tree = parse('User.order(age="desc")')
        assert tree.args == (Keywords((("age", Literal("desc")),)),)

    def test_pinned_root(self):
        tree = parse("pin(q).all", {"q": "anything"})
        assert tree == Dot(Pinned("anything", label="q"), "all", (), parens=False)


class TestExpressions:
    def _condition(self, source: str):
        return parse(f"User.where({source})").args[0]

    def test_comparison(self):
        assert self._condition("age > 20") == Call(">", (Identifier("age"), Literal(20)))

    def test_boolean_operators_fold_left(self):
        node = self._condition("a == 1 and b == 2 and c == 3")
        assert isinstance(node, Call) and node.name == "and"
        assert isinstance(node.args[0], Call) and node.args[0].name == "and"

    def test_chained_comparison_expands_to_and(self):
        node = self._condition("20 < age < 50")
        assert node == Call(
            "and",
            (
                Call("<", (Literal(20), Identifier("age"))),
                Call("<", (Identifier("age"), Literal(50))),
            ),
        )

    def test_not_in(self):
        node = self._condition("name not in ['Bob']")
        assert node == Call("not", (Call("in", (Identifier("name"), ListNode((Literal("Bob"),)))),))

    def test_is_none(self):
        assert self._condition("age is None") == Call("is_nil", (Identifier("age"),))
        assert self._condition("age is not None") == Call("not", (Call("is_nil", (Identifier("age"),)),))

    def test_negative_literal_is_folded(self):
        assert self._condition("age > -1") == Call(">", (Identifier("age"), Literal(-1)))

    def test_unary_minus_on_field(self):
        assert self._condition("-age < 0") == Call("<", (Call("neg", (Identifier("age"),)), Literal(0)))

    def test_binding_attribute(self):
        assert self._condition("u.age > 1") == Call(">", (Attr("u", "age"), Literal(1)))

    def test_function_call(self):
        assert self._condition("lower(name) == 'bob'") == Call(
            "==", (Call("lower", (Identifier("name"),)), Literal("bob"))
        )

    def test_containers(self):
        tree = parse("User.select({'n': name, 'pair': (a, b)})")
        assert tree.args[0] == MapNode(
            (("n", Identifier("name")), ("pair", TupleNode((Identifier("a"), Identifier("b"))))),
        )

    def test_alias_pair_in_binding_list(self):
        tree = parse("User.where([u, c := comments], c.likes > 3)")
        assert tree.args[0] == ListNode((Identifier("u"), AliasPair("c", "comments")))


class TestPinning:
    def test_pin_reads_params(self):
        node = parse("User.where(name == pin(name))", {"name": "Bob"}).args[0]
        assert node == Call("==", (Identifier("name"), Pinned("Bob", label="name")))

    def test_pin_of_attribute_and_subscript(self):
        params = {"user": {"name": "Bob"}, "ids": [7, 8]}
        node = parse("User.where(id == pin(ids[1]) or name == pin(user.name))", params).args[0]
        pinned = [n.value for n in iter_nodes(node) if isinstance(n, Pinned)]
        assert pinned == [8, "Bob"]

    def test_pinned_string_looking_like_a_field_stays_a_value(self):
        node = parse("User.where(name == pin(x))", {"x": "age"}).args[0]
        assert node.args[1] == Pinned("age", label="x")

    def test_missing_param_raises(self):
        with pytest.raises(UnboundVariableException) as exc_info:
            parse("User.where(name == pin(name))")
        assert exc_info.value.code == "COMPILE_UNBOUND_PIN"


class TestNormalize:
    def test_predicate_suffix_is_dropped(self):
        assert normalize("User.where(age > 1).exists?") == "User.where(age > 1).exists"

    def test_except_keyword_is_renamed(self):
        assert normalize("User.except(pin(q))") == "User.except_(pin(q))"

    def test_string_literals_are_untouched(self):
        source = "User.where('name = ?', 'who?').except(pin(q))"
        assert normalize(source) == "User.where('name = ?', 'who?').except_(pin(q))"


class TestErrors:
    def test_syntax_error(self):
        with pytest.raises(MalformedChainException) as exc_info:
            parse("User.where(age >")
        assert exc_info.value.code == "COMPILE_SYNTAX"

    def test_star_arguments_rejected(self):
        with pytest.raises(MalformedChainException):
            parse("User.where(*conds)")

    def test_bitwise_operator_rejected(self):
        with pytest.raises(MalformedChainException):
            parse("User.where(age & 1)")

    def test_method_call_inside_expression_rejected(self):
        with pytest.raises(MalformedChainException):
            parse("User.where(name.lower() == 'bob')")

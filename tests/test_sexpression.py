"""Tests for canonical S-expression encoding, parsing and pattern matching."""

import pytest

from sexpression import (
    NIL,
    ListExpression,
    ListWildcard,
    SExpressionParseError,
    StringExpression,
    StringWildcard,
    Wildcard,
    expect_tagged,
    make,
    match,
    parse,
    parse_all
)
from sexpression.expression import MAX_DEPTH


class TestEncoding:

    def test_atom_is_length_prefixed(self):
        assert StringExpression("hello").to_bytes() == b"5:hello"
        assert StringExpression(b"").to_bytes() == b"0:"

    def test_list_has_no_whitespace(self):
        expr = make(["ptr", "host-1", 7])
        assert expr.to_bytes() == b"(3:ptr6:host-11:7)"

    def test_nested_lists_and_nil(self):
        expr = make(["succeeds", [], ["event"]])
        assert expr.to_bytes() == b"(8:succeeds()(5:event))"
        assert NIL.to_bytes() == b"()"

    def test_make_rejects_unsupported_values(self):
        with pytest.raises(TypeError):
            make(3.5)

    def test_binary_atoms_survive(self):
        raw = bytes(range(256))
        assert parse(StringExpression(raw).to_bytes()).value == raw


class TestParsing:

    def test_parse_inverts_encoding(self):
        expr = make(["announce", ["host", "a", "127.0.0.1", "9700"], "0", ["x", "y"]])
        assert parse(expr.to_bytes()) == expr

    def test_atom_containing_parentheses(self):
        expr = parse(b"(3:a)b)")
        assert expr == ListExpression((StringExpression("a)b"),))

    @pytest.mark.parametrize("data", [
        b"",
        b"(",
        b"(3:abc",
        b"5:abc",
        b"03:abc",
        b"x:abc",
        b"3:abc3:def",
        b"(3:abc))",
        b")",
    ])
    def test_malformed_input_is_rejected(self, data):
        with pytest.raises(SExpressionParseError):
            parse(data)

    def test_parse_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse(b"(")

    def test_nesting_up_to_the_limit(self):
        data = b"(" * MAX_DEPTH + b")" * MAX_DEPTH
        assert parse(data).to_bytes() == data

    def test_deep_nesting_is_a_parse_error(self):
        depth = 5000
        with pytest.raises(SExpressionParseError):
            parse(b"(" * depth + b")" * depth)
        with pytest.raises(SExpressionParseError):
            parse_all(b"(" * (MAX_DEPTH + 1) + b")" * (MAX_DEPTH + 1))

    def test_parse_all_reads_concatenated_terms(self):
        data = make(["a"]).to_bytes() + make("b").to_bytes() + make(["c", []]).to_bytes()
        terms = parse_all(data)
        assert [t.to_bytes() for t in terms] == [b"(1:a)", b"1:b", b"(1:c())"]
        assert parse_all(b"") == []


class TestMatching:

    def test_wildcards_bind_in_order(self):
        pattern = ListExpression((StringExpression("ptr"), StringWildcard(), StringWildcard(), Wildcard()))
        bindings = match(pattern, make(["ptr", "host", "3", ["digest"]]))
        assert [str(b) for b in bindings] == ["host", "3", "(digest)"]

    def test_shape_mismatch_returns_none(self):
        pattern = ListExpression((StringExpression("ptr"), ListWildcard()))
        assert match(pattern, make(["ptr", "atom"])) is None
        assert match(pattern, make(["other", []])) is None
        assert match(pattern, make(["ptr", [], []])) is None

    def test_expect_tagged(self):
        expr = make(["host", "a", "b", "c"])
        assert expect_tagged(expr, "host", 4) is expr
        with pytest.raises(SExpressionParseError):
            expect_tagged(expr, "ptr")
        with pytest.raises(SExpressionParseError):
            expect_tagged(expr, "host", 3)

    def test_wildcards_cannot_be_serialized(self):
        with pytest.raises(TypeError):
            Wildcard().to_bytes()

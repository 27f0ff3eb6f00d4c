"""
Tests for WHERE/HAVING expressions and SET arithmetic
"""

import math

import pytest

from sqlsim.errors import ParseError, UnsupportedFeatureError
from sqlsim.expressions import (
    BoolOp, ExpressionParser, evaluate, evaluate_set, like_to_regex, parse_condition,
)
from sqlsim.lexer import TokenStream, tokenize


def matches(condition, row):
    return evaluate(parse_condition(condition), row)


def set_value(expr, row):
    node = ExpressionParser(TokenStream(tokenize(expr), expr)).parse_set_expression()
    return evaluate_set(node, row)


def test_and_binds_tighter_than_or():
    node = parse_condition("a = 1 OR a = 2 AND b = 3")
    assert isinstance(node, BoolOp) and node.op == 'OR'
    assert matches("a = 1 OR a = 2 AND b = 3", {'a': 1, 'b': 0})
    assert not matches("(a = 1 OR a = 2) AND b = 3", {'a': 1, 'b': 0})


def test_equality_is_strict():
    row = {'age': 30}
    assert matches("age = 30", row)
    assert not matches("age = '30'", row)
    assert matches("age != '30'", row)
    assert matches("age <> 31", row)


def test_ordering_comparisons():
    row = {'name': 'abc', 'age': 30}
    assert matches("age > 29.5", row)
    assert matches("age <= 30", row)
    assert matches("name < 'abd'", row)
    # text that is not a number never orders against a number
    assert not matches("name > 5", row)
    assert not matches("name < 5", row)


def test_like_is_case_insensitive_full_match():
    assert matches("name LIKE 'a%'", {'name': 'Alice'})
    assert matches("name LIKE '_ob'", {'name': 'Bob'})
    assert not matches("name LIKE 'a.c'", {'name': 'abc'})
    assert matches("name NOT LIKE 'z%'", {'name': 'Alice'})
    assert like_to_regex('100%').fullmatch('100 percent')


def test_in_list_resolves_identifiers():
    row = {'a': 5, 'b': 5, 'c': 'x'}
    assert matches("a IN (b, 3)", row)
    assert matches("c IN ('x', 'y')", row)
    assert matches("a NOT IN (1, 2)", row)
    assert not matches("a IN ('5')", row)


def test_between_coerces_to_numbers():
    assert matches("age BETWEEN '10' AND 20", {'age': 15})
    assert matches("age BETWEEN 15 AND 15", {'age': 15})
    assert not matches("name BETWEEN 1 AND 2", {'name': 'abc'})
    assert matches("age NOT BETWEEN 1 AND 2", {'age': 15})


def test_is_null():
    assert matches("x IS NULL", {})
    assert matches("x IS NULL", {'x': None})
    assert matches("x IS NOT NULL", {'x': 0})


def test_qualified_names_fall_back_to_bare_column():
    assert matches("u.age > 1", {'age': 2})
    assert matches("u.age > 1", {'u.age': 2, 'age': 0})


def test_negative_literals():
    assert matches("t < -1", {'t': -5})


def test_malformed_expressions():
    with pytest.raises(ParseError):
        parse_condition("age >")
    with pytest.raises(ParseError, match="Expected comparison operator"):
        parse_condition("age 5")
    with pytest.raises(ParseError, match="Unexpected token"):
        parse_condition("a = 1 b")
    with pytest.raises(ParseError, match="alias"):
        parse_condition("COUNT(x) > 1")


def test_subqueries_are_unsupported():
    with pytest.raises(UnsupportedFeatureError):
        parse_condition("a IN (SELECT x FROM t)")


def test_set_arithmetic():
    row = {'price': 3, 'name': 'Bob', 'x': 5}
    assert set_value("price * 2", row) == 6
    assert set_value("price + 1", row) == 4
    assert set_value("price / 2", row) == 1.5
    assert set_value("name", row) == 'Bob'
    assert set_value("'hi'", row) == 'hi'


def test_set_plus_concatenates_text():
    assert set_value("name + '!'", {'name': 'Bob'}) == 'Bob!'


def test_set_other_operators_produce_nan_for_text():
    assert math.isnan(set_value("name - 1", {'name': 'Bob'}))
    assert math.isnan(set_value("name * 2", {'name': 'Bob'}))


def test_set_division_by_zero():
    assert set_value("x / 0", {'x': 5}) == math.inf
    assert math.isnan(set_value("x / 0", {'x': 0}))

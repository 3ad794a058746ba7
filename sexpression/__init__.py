"""Canonical S-expression terms used for every signed and hashed payload."""

from .expression import (
    SExpression,
    StringExpression,
    ListExpression,
    NIL,
    Wildcard,
    StringWildcard,
    ListWildcard,
    SExpressionParseError,
    make,
    parse,
    parse_all,
    match,
    is_decimal,
    expect_atom,
    expect_list,
    expect_tagged
)

__version__ = "1.0.0"

__all__ = [
    'SExpression',
    'StringExpression',
    'ListExpression',
    'NIL',
    'Wildcard',
    'StringWildcard',
    'ListWildcard',
    'SExpressionParseError',
    'make',
    'parse',
    'parse_all',
    'match',
    'is_decimal',
    'expect_atom',
    'expect_list',
    'expect_tagged'
]

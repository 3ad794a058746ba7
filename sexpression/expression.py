"""
Canonical S-Expression Encoding
===============================
Rivest canonical S-expressions: every atom is written as
``<decimal length>:<bytes>`` and every list as ``(`` terms ``)``, with no
whitespace.  Signatures and hashes in the log are computed over exactly
these bytes, so there is only one valid serialization of any term.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

# Deepest list nesting accepted from the wire; log messages use about ten levels
MAX_DEPTH = 128


class SExpressionParseError(ValueError):
    """Raised when a byte string is not a well-formed canonical S-expression"""

    def __init__(self, message: str, offset: int = -1):
        super().__init__(f"{message} (offset {offset})" if offset >= 0 else message)
        self.offset = offset


# ============================================================================
# TERMS
# ============================================================================


class SExpression:
    """Base class of every term"""

    def to_bytes(self) -> bytes:
        raise NotImplementedError

    def __bytes__(self) -> bytes:
        return self.to_bytes()


@dataclass(frozen=True)
class StringExpression(SExpression):
    """An atom holding raw bytes (text is stored UTF-8 encoded)"""
    value: bytes

    def __post_init__(self):
        if isinstance(self.value, str):
            object.__setattr__(self, 'value', self.value.encode('utf-8'))
        elif not isinstance(self.value, (bytes, bytearray)):
            raise TypeError(f"Atom value must be str or bytes, got {type(self.value).__name__}")
        else:
            object.__setattr__(self, 'value', bytes(self.value))

    @property
    def text(self) -> str:
        return self.value.decode('utf-8')

    def to_bytes(self) -> bytes:
        return str(len(self.value)).encode('ascii') + b":" + self.value

    def __str__(self) -> str:
        try:
            text = self.value.decode('utf-8')
        except UnicodeDecodeError:
            return "#" + self.value.hex() + "#"
        if text and text.isprintable() and " " not in text and "(" not in text and ")" not in text:
            return text
        return '"' + text.replace('"', '\\"') + '"'


@dataclass(frozen=True)
class ListExpression(SExpression):
    """An ordered list of terms"""
    items: Tuple[SExpression, ...] = ()

    def __post_init__(self):
        items = tuple(self.items)
        for item in items:
            if not isinstance(item, SExpression):
                raise TypeError(f"List members must be S-expressions, got {type(item).__name__}")
        object.__setattr__(self, 'items', items)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index):
        return self.items[index]

    def __iter__(self):
        return iter(self.items)

    def to_bytes(self) -> bytes:
        return b"(" + b"".join(item.to_bytes() for item in self.items) + b")"

    def __str__(self) -> str:
        return "(" + " ".join(str(item) for item in self.items) + ")"


NIL = ListExpression(())

SExpressionLike = Union[SExpression, str, bytes, int, Iterable]


def make(obj: SExpressionLike) -> SExpression:
    """Build a term from nested Python values.

    Strings and bytes become atoms, ints become their decimal text, and any
    other iterable becomes a list.
    """
    if isinstance(obj, SExpression):
        return obj
    if isinstance(obj, (str, bytes, bytearray)):
        return StringExpression(obj)
    if isinstance(obj, bool):
        return StringExpression("true" if obj else "false")
    if isinstance(obj, int):
        return StringExpression(str(obj))
    try:
        return ListExpression(tuple(make(item) for item in obj))
    except TypeError as e:
        raise TypeError(f"Cannot convert {type(obj).__name__} to an S-expression") from e


# ============================================================================
# PARSING
# ============================================================================


def parse(data: Union[bytes, bytearray, str]) -> SExpression:
    """Parse exactly one canonical term; trailing bytes are an error"""
    if isinstance(data, str):
        data = data.encode('utf-8')
    data = bytes(data)
    if not data:
        raise SExpressionParseError("Empty input")

    expression, offset = _parse_term(data, 0)
    if offset != len(data):
        raise SExpressionParseError("Trailing bytes after expression", offset)
    return expression


def parse_all(data: Union[bytes, bytearray]) -> List[SExpression]:
    """Parse a concatenation of canonical terms, as written to a log file"""
    data = bytes(data)
    terms: List[SExpression] = []
    offset = 0
    while offset < len(data):
        term, offset = _parse_term(data, offset)
        terms.append(term)
    return terms


def _parse_term(data: bytes, offset: int) -> Tuple[SExpression, int]:
    # Open lists are kept on an explicit stack so nesting depth is bounded by
    # MAX_DEPTH rather than by the interpreter's recursion limit
    stack: List[List[SExpression]] = []
    while True:
        if offset >= len(data):
            if stack:
                raise SExpressionParseError("Unterminated list", offset)
            raise SExpressionParseError("Unexpected end of input", offset)

        marker = data[offset:offset + 1]
        if marker == b"(":
            if len(stack) >= MAX_DEPTH:
                raise SExpressionParseError(f"Lists nested deeper than {MAX_DEPTH}", offset)
            stack.append([])
            offset += 1
            continue
        if marker == b")":
            if not stack:
                raise SExpressionParseError("Unbalanced ')'", offset)
            term: SExpression = ListExpression(tuple(stack.pop()))
            offset += 1
        else:
            term, offset = _parse_atom(data, offset)

        if not stack:
            return term, offset
        stack[-1].append(term)


def _parse_atom(data: bytes, offset: int) -> Tuple[StringExpression, int]:
    colon = data.find(b":", offset)
    if colon < 0:
        raise SExpressionParseError("Missing ':' after atom length", offset)
    length_digits = data[offset:colon]
    if not length_digits or not length_digits.isdigit():
        raise SExpressionParseError(f"Invalid atom length {length_digits!r}", offset)
    if len(length_digits) > 1 and length_digits.startswith(b"0"):
        raise SExpressionParseError("Atom length has leading zeros", offset)

    length = int(length_digits)
    start = colon + 1
    end = start + length
    if end > len(data):
        raise SExpressionParseError(f"Atom of length {length} runs past end of input", offset)
    return StringExpression(data[start:end]), end


# ============================================================================
# PATTERN MATCHING
# ============================================================================


class Wildcard(SExpression):
    """Matches any term and binds it"""

    def matches(self, expression: SExpression) -> bool:
        return True

    def to_bytes(self) -> bytes:
        raise TypeError("Wildcards cannot be serialized")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"

    __str__ = __repr__


class StringWildcard(Wildcard):
    """Matches any atom"""

    def matches(self, expression: SExpression) -> bool:
        return isinstance(expression, StringExpression)


class ListWildcard(Wildcard):
    """Matches any list"""

    def matches(self, expression: SExpression) -> bool:
        return isinstance(expression, ListExpression)


def match(pattern: SExpression, expression: SExpression) -> Optional[List[SExpression]]:
    """Match ``expression`` against ``pattern``.

    Returns the sub-terms bound by wildcards in depth-first order, or None
    when the expression does not have the pattern's shape.
    """
    bindings: List[SExpression] = []
    if _match_into(pattern, expression, bindings):
        return bindings
    return None


def _match_into(pattern: SExpression, expression: SExpression, bindings: List[SExpression]) -> bool:
    if isinstance(pattern, Wildcard):
        if pattern.matches(expression):
            bindings.append(expression)
            return True
        return False

    if isinstance(pattern, StringExpression):
        return isinstance(expression, StringExpression) and pattern.value == expression.value

    if isinstance(pattern, ListExpression):
        if not isinstance(expression, ListExpression) or len(pattern) != len(expression):
            return False
        return all(_match_into(p, e, bindings) for p, e in zip(pattern, expression))

    return False


def is_decimal(text: str) -> bool:
    """Non-empty run of ASCII digits 0-9"""
    return bool(text) and text.isascii() and text.isdigit()


def expect_atom(expression: SExpression, what: str) -> StringExpression:
    """Return ``expression`` as an atom or raise SExpressionParseError naming ``what``"""
    if not isinstance(expression, StringExpression):
        raise SExpressionParseError(f"Expected atom for {what}, got {expression}")
    return expression


def expect_list(expression: SExpression, what: str, length: Optional[int] = None) -> ListExpression:
    """Return ``expression`` as a list (optionally of fixed length) or raise"""
    if not isinstance(expression, ListExpression):
        raise SExpressionParseError(f"Expected list for {what}, got {expression}")
    if length is not None and len(expression) != length:
        raise SExpressionParseError(
            f"Expected {length} elements in {what}, got {len(expression)}")
    return expression


def expect_tagged(expression: SExpression, tag: str, length: Optional[int] = None) -> ListExpression:
    """Return a list whose first member is the atom ``tag``"""
    lst = expect_list(expression, tag, length)
    if not lst.items or not isinstance(lst[0], StringExpression) or lst[0].value != tag.encode('utf-8'):
        raise SExpressionParseError(f"Expected '({tag} ...)', got {expression}")
    return lst

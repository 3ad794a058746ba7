"""Host and message pointers: the identifiers log entries use to refer to each other."""

from dataclasses import dataclass

from sexpression import (
    SExpression,
    ListExpression,
    StringExpression,
    SExpressionParseError,
    expect_atom,
    is_decimal,
    expect_tagged
)

from .exceptions import IncorrectFormatError


@dataclass(frozen=True, order=True)
class HostPointer:
    """Identity and network address of one election host"""
    node_id: str
    ip: str = "0.0.0.0"
    port: int = 0

    def to_sexp(self) -> ListExpression:
        return ListExpression((
            StringExpression("host"),
            StringExpression(self.node_id),
            StringExpression(self.ip),
            StringExpression(str(self.port))
        ))

    @classmethod
    def from_sexp(cls, expression: SExpression) -> 'HostPointer':
        try:
            lst = expect_tagged(expression, "host", 4)
            node_id = expect_atom(lst[1], "host id").text
            ip = expect_atom(lst[2], "host ip").text
            port = expect_atom(lst[3], "host port").text
        except (SExpressionParseError, UnicodeDecodeError) as e:
            raise IncorrectFormatError(f"Malformed host pointer: {e}") from e
        if not is_decimal(port):
            raise IncorrectFormatError(f"Malformed host port '{port}'")
        return cls(node_id, ip, int(port))

    def __str__(self) -> str:
        return f"{self.node_id}@{self.ip}:{self.port}"


@dataclass(frozen=True, order=True)
class MessagePointer:
    """Names a logged message by author, sequence number and SHA-256 of its datum"""
    node_id: str
    sequence: int
    digest: str

    @property
    def position(self):
        return (self.node_id, self.sequence)

    def to_sexp(self) -> ListExpression:
        return ListExpression((
            StringExpression("ptr"),
            StringExpression(self.node_id),
            StringExpression(str(self.sequence)),
            StringExpression(self.digest)
        ))

    @classmethod
    def from_sexp(cls, expression: SExpression) -> 'MessagePointer':
        try:
            lst = expect_tagged(expression, "ptr", 4)
            node_id = expect_atom(lst[1], "pointer host id").text
            sequence = expect_atom(lst[2], "pointer sequence").text
            digest = expect_atom(lst[3], "pointer digest").text
        except (SExpressionParseError, UnicodeDecodeError) as e:
            raise IncorrectFormatError(f"Malformed message pointer: {e}") from e
        if not is_decimal(sequence):
            raise IncorrectFormatError(f"Malformed pointer sequence '{sequence}'")
        if len(digest) != 64 or any(c not in "0123456789abcdef" for c in digest):
            raise IncorrectFormatError(f"Malformed pointer digest '{digest}'")
        return cls(node_id, int(sequence), digest)

    def __str__(self) -> str:
        return f"{self.node_id}#{self.sequence}:{self.digest[:12]}"

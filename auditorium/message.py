"""Wire messages exchanged between auditorium hosts."""

import hashlib
from dataclasses import dataclass
from typing import Union

from sexpression import (
    SExpression,
    ListExpression,
    StringExpression,
    SExpressionParseError,
    expect_atom,
    is_decimal,
    expect_list,
    parse
)

from .exceptions import IncorrectFormatError
from .pointers import HostPointer, MessagePointer

ANNOUNCE = "announce"


@dataclass(frozen=True)
class Message:
    """``(<type> <host-pointer> <sequence> <datum>)``"""
    type: str
    source: HostPointer
    sequence: int
    datum: SExpression

    def __post_init__(self):
        if self.sequence < 0:
            raise IncorrectFormatError(f"Sequence number must be non-negative, got {self.sequence}")

    @property
    def digest(self) -> str:
        """SHA-256 of the canonical datum bytes"""
        return hashlib.sha256(self.datum.to_bytes()).hexdigest()

    @property
    def pointer(self) -> MessagePointer:
        return MessagePointer(self.source.node_id, self.sequence, self.digest)

    def to_sexp(self) -> ListExpression:
        return ListExpression((
            StringExpression(self.type),
            self.source.to_sexp(),
            StringExpression(str(self.sequence)),
            self.datum
        ))

    def to_bytes(self) -> bytes:
        return self.to_sexp().to_bytes()

    @classmethod
    def from_sexp(cls, expression: SExpression) -> 'Message':
        try:
            lst = expect_list(expression, "message", 4)
            message_type = expect_atom(lst[0], "message type").text
            sequence = expect_atom(lst[2], "message sequence").text
        except (SExpressionParseError, UnicodeDecodeError) as e:
            raise IncorrectFormatError(f"Malformed message: {e}") from e
        if not is_decimal(sequence):
            raise IncorrectFormatError(f"Malformed message sequence '{sequence}'")
        return cls(message_type, HostPointer.from_sexp(lst[1]), int(sequence), lst[3])

    @classmethod
    def from_bytes(cls, data: Union[bytes, bytearray]) -> 'Message':
        try:
            expression = parse(data)
        except SExpressionParseError as e:
            raise IncorrectFormatError(f"Message is not a canonical S-expression: {e}") from e
        return cls.from_sexp(expression)

    def __str__(self) -> str:
        return f"{self.type} from {self.source.node_id} #{self.sequence}"

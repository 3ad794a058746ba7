"""Race selections and ballots, in plaintext and encrypted form."""

from dataclasses import dataclass, field
from typing import Callable, Dict, List

from sexpression import (
    SExpression,
    ListExpression,
    StringExpression,
    SExpressionParseError,
    expect_atom,
    expect_list,
    expect_tagged,
    is_decimal
)

from .exceptions import ParseError


@dataclass
class PlaintextRaceSelection:
    """Candidate id -> 0/1 selection for one race"""
    selections: Dict[str, int]
    title: str
    size: int = 1

    def __post_init__(self):
        for candidate, value in self.selections.items():
            if not isinstance(value, int) or isinstance(value, bool):
                raise TypeError(f"Selection for {candidate} must be an int")
        if self.size < 0:
            raise ValueError(f"Race size must be non-negative, got {self.size}")

    @property
    def total(self) -> int:
        return sum(self.selections.values())


@dataclass
class EncryptedRaceSelection:
    """Candidate id -> ciphertext for one race; size counts ballots combined"""
    ciphertexts: Dict[str, object]
    title: str
    size: int = 1

    def to_sexp(self) -> ListExpression:
        return ListExpression((
            StringExpression("race"),
            StringExpression(self.title),
            StringExpression(str(self.size)),
            ListExpression(tuple(
                ListExpression((StringExpression(candidate), ciphertext.to_sexp()))
                for candidate, ciphertext in sorted(self.ciphertexts.items())
            ))
        ))

    @classmethod
    def from_sexp(cls, expression: SExpression,
                  parse_ciphertext: Callable[[SExpression], object]) -> 'EncryptedRaceSelection':
        """Inverse of to_sexp; ``parse_ciphertext`` decodes each candidate's ciphertext"""
        try:
            lst = expect_tagged(expression, "race", 4)
            title = expect_atom(lst[1], "race title").text
            size_text = expect_atom(lst[2], "race size").text
            if not is_decimal(size_text):
                raise SExpressionParseError(f"Malformed race size '{size_text}'")
            ciphertexts = {}
            for pair in expect_list(lst[3], "race selections"):
                pair = expect_list(pair, "race selection", 2)
                candidate = expect_atom(pair[0], "candidate").text
                if candidate in ciphertexts:
                    raise SExpressionParseError(f"Candidate '{candidate}' appears twice")
                ciphertexts[candidate] = parse_ciphertext(pair[1])
        except (SExpressionParseError, UnicodeDecodeError) as e:
            raise ParseError(f"Malformed race: {e}") from e
        return cls(ciphertexts, title, int(size_text))


@dataclass
class Ballot:
    """A cast ballot: one selection per race"""
    ballot_id: str
    races: List = field(default_factory=list)
    nonce: str = ""

    def race(self, title: str):
        for race in self.races:
            if race.title == title:
                return race
        raise KeyError(title)

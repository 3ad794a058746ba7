"""
Homomorphic Ciphertexts
=======================
Exponential ElGamal: (G, H) = (g^r, h^r f^m).  Multiplying two ciphertexts
component-wise adds their plaintexts in the exponent, which is how ballots
are tallied without decrypting any of them.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from sexpression import (
    SExpression,
    ListExpression,
    StringExpression,
    SExpressionParseError,
    expect_atom,
    is_decimal,
    expect_tagged
)

from .exceptions import InvalidPlaintextError, KeyNotLoadedError, ModulusMismatchError, ParseError
from .integer import AdderInteger
from .keys import AdderPublicKey
from .proofs import MembershipProof

logger = logging.getLogger(__name__)


class HomomorphicCiphertext(ABC):
    """Capabilities every ciphertext variant provides"""

    @property
    @abstractmethod
    def size(self) -> int:
        """Number of plaintexts combined into this ciphertext"""

    @abstractmethod
    def combine(self, other: 'HomomorphicCiphertext', public_key) -> 'HomomorphicCiphertext':
        pass

    @abstractmethod
    def verify(self, min_value: int, max_value: int, public_key) -> bool:
        pass

    @abstractmethod
    def to_sexp(self) -> SExpression:
        pass


@dataclass(frozen=True)
class ExponentialElGamalCiphertext(HomomorphicCiphertext):
    G: AdderInteger
    H: AdderInteger
    count: int = 1
    proof: Optional[MembershipProof] = field(default=None, compare=False)

    TAG = "exponential-elgamal"

    def __post_init__(self):
        if self.G.modulus is None or self.G.modulus != self.H.modulus:
            raise ModulusMismatchError("Ciphertext components must share the modulus p")
        if self.count < 0:
            raise ValueError(f"Ciphertext size must be non-negative, got {self.count}")

    @property
    def size(self) -> int:
        return self.count

    @property
    def is_identity(self) -> bool:
        return self.G.value == 1 and self.H.value == 1 and self.count == 0

    @classmethod
    def identity(cls, public_key: AdderPublicKey) -> 'ExponentialElGamalCiphertext':
        """(1, 1) with size 0: the seed of a running combination"""
        return cls(public_key.element(1), public_key.element(1), 0, None)

    @classmethod
    def encrypt(cls, plaintext: int, allowed_values: Iterable[int],
                public_key: AdderPublicKey,
                randomness: Optional[AdderInteger] = None) -> 'ExponentialElGamalCiphertext':
        """Encrypt ``plaintext`` and attach a proof that it lies in ``allowed_values``"""
        domain = sorted(set(allowed_values))
        if not domain:
            raise InvalidPlaintextError("Allowed plaintext domain is empty")
        if plaintext not in domain:
            raise InvalidPlaintextError(f"Plaintext {plaintext} not in allowed values {domain}")
        if not public_key.has_h:
            raise KeyNotLoadedError("Public key has no h value; cannot encrypt")

        r = randomness if randomness is not None else public_key.random_exponent()
        r = public_key.exponent(r)
        G = public_key.g.pow(r)
        H = public_key.h.pow(r).multiply(public_key.encode_plaintext(plaintext))
        proof = MembershipProof.prove(G, H, r, plaintext, domain, public_key)
        return cls(G, H, 1, proof)

    def verify(self, min_value: int, max_value: int, public_key: AdderPublicKey) -> bool:
        """Check the attached proof; a ciphertext without one never verifies"""
        if self.proof is None:
            return False
        if self.G.modulus != public_key.p:
            return False
        return self.proof.verify(self.G, self.H, public_key, min_value, max_value)

    def combine(self, other: 'ExponentialElGamalCiphertext',
                public_key: AdderPublicKey) -> 'ExponentialElGamalCiphertext':
        if not isinstance(other, ExponentialElGamalCiphertext):
            raise TypeError(f"Cannot combine with {type(other).__name__}")
        if self.G.modulus != public_key.p or other.G.modulus != public_key.p:
            raise ModulusMismatchError("Ciphertexts were not produced under this public key")
        return ExponentialElGamalCiphertext(
            self.G.multiply(other.G),
            self.H.multiply(other.H),
            self.count + other.count,
            None
        )

    @classmethod
    def combine_all(cls, ciphertexts: Sequence['ExponentialElGamalCiphertext'],
                    public_key: AdderPublicKey) -> 'ExponentialElGamalCiphertext':
        result = cls.identity(public_key)
        for ciphertext in ciphertexts:
            result = result.combine(ciphertext, public_key)
        return result

    def to_sexp(self) -> ListExpression:
        fields = [
            StringExpression(self.TAG),
            ListExpression((StringExpression("G"), self.G.to_sexp())),
            ListExpression((StringExpression("H"), self.H.to_sexp())),
            ListExpression((StringExpression("size"), StringExpression(str(self.count)))),
        ]
        if self.proof is not None:
            fields.append(self.proof.to_sexp())
        return ListExpression(tuple(fields))

    @classmethod
    def from_sexp(cls, expression: SExpression,
                  public_key: AdderPublicKey) -> 'ExponentialElGamalCiphertext':
        try:
            lst = expect_tagged(expression, cls.TAG)
            if len(lst) not in (4, 5):
                raise SExpressionParseError(f"Expected 4 or 5 elements in ciphertext, got {len(lst)}")
            G = AdderInteger.from_sexp(expect_tagged(lst[1], "G", 2)[1], public_key.p)
            H = AdderInteger.from_sexp(expect_tagged(lst[2], "H", 2)[1], public_key.p)
            size_text = expect_atom(expect_tagged(lst[3], "size", 2)[1], "size").text
            if not is_decimal(size_text):
                raise SExpressionParseError(f"Malformed ciphertext size '{size_text}'")
            proof = MembershipProof.from_sexp(lst[4], public_key) if len(lst) == 5 else None
        except (SExpressionParseError, UnicodeDecodeError) as e:
            raise ParseError(f"Malformed ciphertext: {e}") from e
        return cls(G, H, int(size_text), proof)

    def __repr__(self) -> str:
        return (f"ExponentialElGamalCiphertext(G={str(self.G)[:12]}..., "
                f"H={str(self.H)[:12]}..., size={self.count}, proof={self.proof is not None})")

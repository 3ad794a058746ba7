"""
Membership Proofs
=================
Disjunctive Chaum-Pedersen proof that an exponential-ElGamal ciphertext
(G, H) = (g^r, h^r f^m) encrypts some m from a small domain, without
revealing which.  Made non-interactive with a Fiat-Shamir challenge over the
public key, the ciphertext and every commitment.

For each domain value d the prover shows knowledge of r with
G = g^r and H / f^d = h^r.  Only the branch for the real plaintext is proven
honestly; the others are simulated with chosen challenges, and the real
challenge is fixed so that all challenges sum to the hash.
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from sexpression import (
    SExpression,
    ListExpression,
    StringExpression,
    SExpressionParseError,
    expect_list,
    expect_tagged
)

from .exceptions import AdderError, InvalidPlaintextError, KeyNotLoadedError, ParseError
from .integer import AdderInteger
from .keys import AdderPublicKey

logger = logging.getLogger(__name__)


def fiat_shamir_challenge(public_key: AdderPublicKey, G: AdderInteger, H: AdderInteger,
                          commitments: Sequence[Tuple[AdderInteger, AdderInteger]]) -> AdderInteger:
    """SHA-256 over the canonical encoding of every public value, reduced mod q"""
    transcript = ListExpression((
        StringExpression("membership-challenge"),
        StringExpression(str(public_key.p)),
        public_key.g.to_sexp(),
        public_key.h.to_sexp(),
        public_key.f.to_sexp(),
        G.to_sexp(),
        H.to_sexp(),
        ListExpression(tuple(ListExpression((A.to_sexp(), B.to_sexp())) for A, B in commitments))
    ))
    digest = hashlib.sha256(transcript.to_bytes()).digest()
    return AdderInteger(int.from_bytes(digest, 'big'), public_key.q)


def _in_subgroup(value: AdderInteger, public_key: AdderPublicKey) -> bool:
    # Elements of Z_p* outside the order-q subgroup carry a sign the
    # Chaum-Pedersen equations cannot see
    return value.value != 0 and pow(value.value, public_key.q, public_key.p) == 1


@dataclass(frozen=True)
class MembershipProof:
    """Non-interactive proof that a ciphertext's plaintext lies in ``domain``"""
    domain: Tuple[int, ...]
    commitments: Tuple[Tuple[AdderInteger, AdderInteger], ...]
    challenges: Tuple[AdderInteger, ...]
    responses: Tuple[AdderInteger, ...]

    @classmethod
    def prove(cls, G: AdderInteger, H: AdderInteger, r: AdderInteger, plaintext: int,
              domain: Sequence[int], public_key: AdderPublicKey) -> 'MembershipProof':
        if not public_key.has_h:
            raise KeyNotLoadedError("Public key has no h value; cannot prove")
        domain = tuple(domain)
        if plaintext not in domain:
            raise InvalidPlaintextError(f"Plaintext {plaintext} not in domain {list(domain)}")

        g, h = public_key.g, public_key.h
        real = domain.index(plaintext)

        commitments: List[Tuple[AdderInteger, AdderInteger]] = []
        challenges: List[AdderInteger] = []
        responses: List[AdderInteger] = []
        w = public_key.random_exponent()

        for i, d in enumerate(domain):
            if i == real:
                commitments.append((g.pow(w), h.pow(w)))
                challenges.append(None)
                responses.append(None)
                continue

            c = public_key.random_exponent()
            s = public_key.random_exponent()
            shifted = H.divide(public_key.encode_plaintext(d))
            commitments.append((g.pow(s).divide(G.pow(c)),
                                h.pow(s).divide(shifted.pow(c))))
            challenges.append(c)
            responses.append(s)

        challenge = fiat_shamir_challenge(public_key, G, H, commitments)
        simulated = sum((c.value for c in challenges if c is not None), 0)
        c_real = AdderInteger(challenge.value - simulated, public_key.q)
        challenges[real] = c_real
        responses[real] = AdderInteger(w.value + r.value * c_real.value, public_key.q)

        return cls(domain, tuple(commitments), tuple(challenges), tuple(responses))

    def verify(self, G: AdderInteger, H: AdderInteger, public_key: AdderPublicKey,
               min_value: int, max_value: int) -> bool:
        """True only if every branch checks and the proof binds to (G, H)"""
        try:
            return self._verify(G, H, public_key, min_value, max_value)
        except (AdderError, ArithmeticError, ValueError, TypeError) as e:
            logger.debug(f"Membership proof rejected: {e}")
            return False

    def _verify(self, G: AdderInteger, H: AdderInteger, public_key: AdderPublicKey,
                min_value: int, max_value: int) -> bool:
        if not public_key.has_h:
            return False
        if self.domain != tuple(range(min_value, max_value + 1)):
            logger.debug(f"Proof domain {list(self.domain)} is not [{min_value}, {max_value}]")
            return False
        n = len(self.domain)
        if not (len(self.commitments) == len(self.challenges) == len(self.responses) == n):
            return False

        p, q = public_key.p, public_key.q
        G = AdderInteger(G, p)
        H = AdderInteger(H, p)
        if not (_in_subgroup(G, public_key) and _in_subgroup(H, public_key)):
            logger.debug("Ciphertext components lie outside the order-q subgroup")
            return False

        g, h = public_key.g, public_key.h
        total = 0
        for d, (A, B), c, s in zip(self.domain, self.commitments, self.challenges, self.responses):
            A, B = AdderInteger(A, p), AdderInteger(B, p)
            if not (_in_subgroup(A, public_key) and _in_subgroup(B, public_key)):
                return False
            c, s = AdderInteger(c, q), AdderInteger(s, q)
            if g.pow(s) != A.multiply(G.pow(c)):
                return False
            shifted = H.divide(public_key.encode_plaintext(d))
            if h.pow(s) != B.multiply(shifted.pow(c)):
                return False
            total += c.value

        expected = fiat_shamir_challenge(public_key, G, H, self.commitments)
        return total % q == expected.value

    def to_sexp(self) -> ListExpression:
        return ListExpression((
            StringExpression("membership-proof"),
            ListExpression((StringExpression("domain"),) + tuple(StringExpression(str(d)) for d in self.domain)),
            ListExpression((StringExpression("commitments"),) + tuple(
                ListExpression((A.to_sexp(), B.to_sexp())) for A, B in self.commitments)),
            ListExpression((StringExpression("challenges"),) + tuple(c.to_sexp() for c in self.challenges)),
            ListExpression((StringExpression("responses"),) + tuple(s.to_sexp() for s in self.responses)),
        ))

    @classmethod
    def from_sexp(cls, expression: SExpression, public_key: AdderPublicKey) -> 'MembershipProof':
        try:
            lst = expect_tagged(expression, "membership-proof", 5)
            domain = tuple(int(AdderInteger.from_sexp(d)) for d in expect_tagged(lst[1], "domain").items[1:])
            commitments = []
            for pair in expect_tagged(lst[2], "commitments").items[1:]:
                pair = expect_list(pair, "commitment", 2)
                commitments.append((AdderInteger.from_sexp(pair[0], public_key.p),
                                    AdderInteger.from_sexp(pair[1], public_key.p)))
            challenges = tuple(AdderInteger.from_sexp(c, public_key.q)
                               for c in expect_tagged(lst[3], "challenges").items[1:])
            responses = tuple(AdderInteger.from_sexp(s, public_key.q)
                              for s in expect_tagged(lst[4], "responses").items[1:])
        except SExpressionParseError as e:
            raise ParseError(f"Malformed membership proof: {e}") from e
        return cls(domain, tuple(commitments), challenges, responses)

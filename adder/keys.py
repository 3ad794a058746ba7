"""
Threshold Key Material
======================
Public key (p, q, g, f, h) and per-trustee private key shares for the
exponential-ElGamal cryptosystem, their text and S-expression encodings,
key file loading, and a Shamir/Feldman dealer that produces a threshold key
set for election setup and tests.
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from sexpression import (
    SExpression,
    ListExpression,
    StringExpression,
    SExpressionParseError,
    expect_atom,
    expect_list,
    expect_tagged
)

from .exceptions import AdderError, BadKeyError, InvalidKeyFormatError, ParseError
from .integer import AdderInteger

logger = logging.getLogger(__name__)

# ============================================================================
# GROUP PARAMETERS
# ============================================================================

# 2048-bit MODP safe prime p = 2q + 1 (RFC 3526 group 14)
DEFAULT_P = int(
    "FFFFFFFFFFFFFFFFC90FDAA22168C234C4C6628B80DC1CD1"
    "29024E088A67CC74020BBEA63B139B22514A08798E3404DD"
    "EF9519B3CD3A431B302B0A6DF25F14374FE1356D6D51C245"
    "E485B576625E7EC6F44C42E9A637ED6B0BFF5CB6F406B7ED"
    "EE386BFB5A899FA5AE9F24117C4B1FE649286651ECE45B3D"
    "C2007CB8A163BF0598DA48361C55D39A69163FA8FD24CF5F"
    "83655D23DCA3AD961C62F356208552BB9ED529077096966D"
    "670C354E4ABC9804F1746C08CA237327FFFFFFFFFFFFFFFF",
    16
)

# 2 is a quadratic residue for p = 7 mod 8, so it generates the order-q subgroup
DEFAULT_G = 2

MESSAGE_BASE_SEED = b"adder-message-base"


def hash_to_subgroup(p: int, seed: bytes) -> int:
    """Derive an element of the order-q subgroup with no known log to g"""
    counter = 0
    while True:
        digest = b""
        block = 0
        while len(digest) * 8 < p.bit_length() + 64:
            digest += hashlib.sha256(seed + counter.to_bytes(4, 'big') + block.to_bytes(4, 'big')).digest()
            block += 1
        candidate = pow(int.from_bytes(digest, 'big') % p, 2, p)
        if candidate > 1:
            return candidate
        counter += 1


DEFAULT_F = hash_to_subgroup(DEFAULT_P, MESSAGE_BASE_SEED)


def _parse_key_tokens(text: str, order: str, optional: str = "") -> Dict[str, int]:
    """Split '<letter><decimal>...' text into its named values, in order"""
    text = text.strip()
    values: Dict[str, int] = {}
    pos = 0

    for letter in order:
        if pos >= len(text) or text[pos] != letter:
            if letter in optional:
                continue
            if pos >= len(text):
                raise InvalidKeyFormatError(f"Missing '{letter}' token", token=letter)
            raise InvalidKeyFormatError(
                f"Unexpected token '{text[pos]}' at position {pos}, expected '{letter}'",
                token=text[pos])

        end = pos + 1
        while end < len(text) and text[end] in "0123456789":
            end += 1
        if end == pos + 1:
            raise InvalidKeyFormatError(f"Token '{letter}' has no value", token=letter)

        values[letter] = int(text[pos + 1:end])
        pos = end

    if pos != len(text):
        raise InvalidKeyFormatError(
            f"Unexpected token '{text[pos]}' at position {pos}", token=text[pos])
    return values


def _validate_group(p: int, g: int, f: int):
    if p < 7 or p % 2 == 0:
        raise BadKeyError(f"Modulus {p} is not an odd prime")
    q = (p - 1) // 2
    for name, value in (('g', g), ('f', f)):
        if not 1 < value < p:
            raise BadKeyError(f"Generator {name} out of range")
        if pow(value, q, p) != 1:
            raise BadKeyError(f"Generator {name} is not in the order-q subgroup")


# ============================================================================
# PUBLIC KEY
# ============================================================================


@dataclass(frozen=True)
class AdderPublicKey:
    """Group description plus the aggregate public value h = g^x"""
    p: int
    g: AdderInteger
    f: AdderInteger
    h: Optional[AdderInteger] = None

    def __post_init__(self):
        for name in ('g', 'f', 'h'):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, AdderInteger(value, self.p))
        _validate_group(self.p, self.g.value, self.f.value)

    @property
    def q(self) -> int:
        return (self.p - 1) // 2

    @property
    def has_h(self) -> bool:
        return self.h is not None

    def with_h(self, h: Union[AdderInteger, int]) -> 'AdderPublicKey':
        return AdderPublicKey(self.p, self.g, self.f, AdderInteger(h, self.p))

    def element(self, value: Union[AdderInteger, int]) -> AdderInteger:
        """Wrap ``value`` as a group element mod p"""
        return AdderInteger(value, self.p)

    def exponent(self, value: Union[AdderInteger, int]) -> AdderInteger:
        """Wrap ``value`` as an exponent mod q"""
        return AdderInteger(value, self.q)

    def random_exponent(self) -> AdderInteger:
        return AdderInteger.random(self.q)

    def encode_plaintext(self, value: int) -> AdderInteger:
        """Map an integer plaintext to f^value"""
        return self.f.pow(value)

    @classmethod
    def from_string(cls, text: str) -> 'AdderPublicKey':
        values = _parse_key_tokens(text, "pghf", optional="h")
        return cls(values['p'], values['g'], values['f'], values.get('h'))

    def to_string(self) -> str:
        h_part = f"h{self.h.value}" if self.h is not None else ""
        return f"p{self.p}g{self.g.value}{h_part}f{self.f.value}"

    def to_sexp(self) -> ListExpression:
        fields = [StringExpression("public-key"),
                  ListExpression((StringExpression("p"), StringExpression(str(self.p)))),
                  ListExpression((StringExpression("g"), self.g.to_sexp()))]
        if self.h is not None:
            fields.append(ListExpression((StringExpression("h"), self.h.to_sexp())))
        fields.append(ListExpression((StringExpression("f"), self.f.to_sexp())))
        return ListExpression(tuple(fields))

    @classmethod
    def from_sexp(cls, expression: SExpression) -> 'AdderPublicKey':
        try:
            lst = expect_tagged(expression, "public-key")
            values = {}
            for entry in lst.items[1:]:
                pair = expect_list(entry, "public key field", 2)
                name = expect_atom(pair[0], "public key field name").text
                values[name] = AdderInteger.from_sexp(pair[1]).value
        except (SExpressionParseError, UnicodeDecodeError) as e:
            raise ParseError(f"Malformed public key expression: {e}") from e
        missing = [name for name in ('p', 'g', 'f') if name not in values]
        if missing:
            raise InvalidKeyFormatError(f"Public key missing {missing}", token=missing[0])
        return cls(values['p'], values['g'], values['f'], values.get('h'))

    def __str__(self) -> str:
        return self.to_string()


# ============================================================================
# PRIVATE KEY SHARE
# ============================================================================


@dataclass(frozen=True, repr=False)
class AdderPrivateKeyShare:
    """One trustee's secret exponent; its polynomial point is index + 1"""
    p: int
    g: AdderInteger
    x: AdderInteger
    f: AdderInteger
    index: int = 0

    def __post_init__(self):
        object.__setattr__(self, 'g', AdderInteger(self.g, self.p))
        object.__setattr__(self, 'f', AdderInteger(self.f, self.p))
        object.__setattr__(self, 'x', AdderInteger(self.x, (self.p - 1) // 2))
        if self.index < 0:
            raise BadKeyError(f"Share index must be non-negative, got {self.index}")
        _validate_group(self.p, self.g.value, self.f.value)

    @property
    def q(self) -> int:
        return (self.p - 1) // 2

    @property
    def point(self) -> int:
        """x-coordinate of this share on the sharing polynomial"""
        return self.index + 1

    def with_index(self, index: int) -> 'AdderPrivateKeyShare':
        return AdderPrivateKeyShare(self.p, self.g, self.x, self.f, index)

    def verification_key(self) -> AdderInteger:
        """g^x, checked against the dealer's commitments"""
        return self.g.pow(self.x)

    def partial_decrypt(self, ciphertext) -> AdderInteger:
        """G^x for the ciphertext's G component"""
        G = ciphertext.G
        if G.modulus != self.p:
            G = AdderInteger(G, self.p)
        return G.pow(self.x)

    def matches(self, public_key: AdderPublicKey) -> bool:
        return (self.p == public_key.p and self.g == public_key.g
                and self.f == public_key.f)

    @classmethod
    def from_string(cls, text: str, index: int = 0) -> 'AdderPrivateKeyShare':
        values = _parse_key_tokens(text, "pgxf")
        return cls(values['p'], values['g'], values['x'], values['f'], index)

    def to_string(self) -> str:
        return f"p{self.p}g{self.g.value}x{self.x.value}f{self.f.value}"

    def __repr__(self) -> str:
        return f"AdderPrivateKeyShare(index={self.index}, p={str(self.p)[:12]}...)"


KeyMaterial = Union[AdderPublicKey, AdderPrivateKeyShare]


def parse_key(text: str, share_index: int = 0) -> KeyMaterial:
    """Parse either key form; shares carry an 'x' token after 'g'"""
    stripped = text.strip()
    if not stripped:
        raise InvalidKeyFormatError("Empty key text", token=None)
    if "x" in stripped:
        return AdderPrivateKeyShare.from_string(stripped, share_index)
    return AdderPublicKey.from_string(stripped)


def read_key_file(path: Union[str, Path]) -> List[KeyMaterial]:
    """Read one key per non-blank line; lines starting with '#' are ignored.

    Share indices are assigned 0, 1, 2... in the order shares appear.
    """
    path = Path(path)
    keys: List[KeyMaterial] = []
    share_count = 0

    with open(path, 'r') as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                key = parse_key(line, share_count)
            except InvalidKeyFormatError as e:
                raise InvalidKeyFormatError(f"{path}:{line_no}: {e}", token=e.token) from e
            if isinstance(key, AdderPrivateKeyShare):
                share_count += 1
            keys.append(key)

    if not keys:
        raise InvalidKeyFormatError(f"{path}: no key material found", token=None)
    logger.debug(f"Read {len(keys)} keys from {path}")
    return keys


def write_key_file(path: Union[str, Path], keys: Iterable[KeyMaterial]):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        for key in keys:
            f.write(key.to_string() + "\n")


# ============================================================================
# THRESHOLD KEY DEALER
# ============================================================================


@dataclass
class ThresholdKeyMaterial:
    """Public key, every share, and the dealer's Feldman commitments"""
    public_key: AdderPublicKey
    shares: List[AdderPrivateKeyShare]
    threshold: int
    commitments: List[int] = field(default_factory=list)

    @property
    def num_shares(self) -> int:
        return len(self.shares)

    def subset(self, indices: Sequence[int]) -> List[AdderPrivateKeyShare]:
        by_index = {share.index: share for share in self.shares}
        try:
            return [by_index[i] for i in indices]
        except KeyError as e:
            raise BadKeyError(f"No share with index {e.args[0]}") from e

    def verify_share(self, share: AdderPrivateKeyShare) -> bool:
        """Check g^x_i == prod C_j^(i^j) for the share's point i"""
        if not self.commitments:
            return False
        p = self.public_key.p
        expected = 1
        for j, commitment in enumerate(self.commitments):
            expected = (expected * pow(commitment, pow(share.point, j), p)) % p
        return share.verification_key() == expected

    def save(self, directory: Union[str, Path]) -> Dict[str, Path]:
        """Write public.key and share<i>.key files; returns their paths"""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        paths = {'public': directory / "public.key"}
        write_key_file(paths['public'], [self.public_key])
        for share in self.shares:
            share_path = directory / f"share{share.index}.key"
            write_key_file(share_path, [share])
            paths[f"share{share.index}"] = share_path
        logger.info(f"Saved public key and {len(self.shares)} shares to {directory}")
        return paths


def _evaluate_polynomial(coefficients: List[int], x: int, modulus: int) -> int:
    """Evaluate polynomial at point x using Horner's method"""
    result = 0
    for coeff in reversed(coefficients):
        result = (result * x + coeff) % modulus
    return result


def generate_threshold_keys(threshold: int, num_shares: int,
                            p: int = DEFAULT_P, g: int = DEFAULT_G,
                            f: Optional[int] = None) -> ThresholdKeyMaterial:
    """Split a fresh private exponent into ``num_shares`` Shamir shares.

    Any ``threshold`` of the shares can jointly decrypt; the full exponent is
    discarded once the shares are made.
    """
    if threshold < 1:
        raise ValueError(f"Threshold must be at least 1, got {threshold}")
    if threshold > num_shares:
        raise ValueError(f"Threshold {threshold} cannot exceed share count {num_shares}")
    if f is None:
        f = DEFAULT_F if p == DEFAULT_P else hash_to_subgroup(p, MESSAGE_BASE_SEED)

    _validate_group(p, g, f)
    q = (p - 1) // 2

    secret = secrets.randbelow(q - 1) + 1
    coefficients = [secret] + [secrets.randbelow(q) for _ in range(threshold - 1)]
    commitments = [pow(g, coeff, p) for coeff in coefficients]

    public_key = AdderPublicKey(p, g, f, commitments[0])
    shares = [
        AdderPrivateKeyShare(p, g, _evaluate_polynomial(coefficients, index + 1, q), f, index)
        for index in range(num_shares)
    ]

    material = ThresholdKeyMaterial(public_key, shares, threshold, commitments)
    for share in shares:
        if not material.verify_share(share):
            raise AdderError(f"Share {share.index} does not match the dealer commitments")

    logger.info(f"Generated ({threshold},{num_shares}) threshold key set over a {p.bit_length()}-bit group")
    return material

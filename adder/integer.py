"""
Modular Integer Arithmetic
==========================
AdderInteger is the arithmetic substrate for every key, ciphertext and proof:
an arbitrary-precision integer paired with the modulus it is reduced by.
Group elements live mod p, exponents live mod q.
"""

import secrets
from typing import Optional, Tuple, Union

from sexpression import SExpression, StringExpression, expect_atom, is_decimal, SExpressionParseError

from .exceptions import ModulusMismatchError, NotInvertibleError, ParseError


IntegerLike = Union['AdderInteger', int]


def _extended_gcd(a: int, b: int) -> Tuple[int, int, int]:
    """Return (g, x, y) with a*x + b*y == g == gcd(a, b)"""
    old_r, r = a, b
    old_s, s = 1, 0
    old_t, t = 0, 1
    while r != 0:
        quotient = old_r // r
        old_r, r = r, old_r - quotient * r
        old_s, s = s, old_s - quotient * s
        old_t, t = t, old_t - quotient * t
    return old_r, old_s, old_t


class AdderInteger:
    """Immutable integer reduced into [0, modulus).

    A modulus of None leaves the value unreduced; such values act as plain
    integers and may be mixed with any modulus.
    """

    __slots__ = ('_value', '_modulus')

    def __init__(self, value: IntegerLike, modulus: Optional[int] = None):
        if isinstance(value, AdderInteger):
            value = value.value
        if isinstance(modulus, AdderInteger):
            modulus = modulus.value
        if not isinstance(value, int) or isinstance(value, bool):
            raise TypeError(f"AdderInteger value must be int, got {type(value).__name__}")
        if modulus is not None:
            if modulus <= 1:
                raise ValueError(f"Modulus must be greater than 1, got {modulus}")
            value %= modulus

        self._value = value
        self._modulus = modulus

    @property
    def value(self) -> int:
        return self._value

    @property
    def modulus(self) -> Optional[int]:
        return self._modulus

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_string(cls, text: str, modulus: Optional[int] = None) -> 'AdderInteger':
        """Parse a decimal (or 0x-prefixed hexadecimal) string"""
        if not isinstance(text, str):
            raise ParseError(f"Expected a string, got {type(text).__name__}")
        stripped = text.strip()
        try:
            if stripped.lower().startswith(("0x", "-0x")):
                value = int(stripped, 16)
            elif is_decimal(stripped) or (stripped[:1] == "-" and is_decimal(stripped[1:])):
                value = int(stripped, 10)
            else:
                raise ValueError(stripped)
        except ValueError as e:
            raise ParseError(f"Malformed integer '{text}'") from e
        return cls(value, modulus)

    @classmethod
    def random(cls, modulus: int) -> 'AdderInteger':
        """Uniformly random element of [0, modulus)"""
        return cls(secrets.randbelow(modulus), modulus)

    @classmethod
    def from_sexp(cls, expression: SExpression, modulus: Optional[int] = None) -> 'AdderInteger':
        try:
            atom = expect_atom(expression, "integer")
            return cls.from_string(atom.text, modulus)
        except (SExpressionParseError, UnicodeDecodeError) as e:
            raise ParseError(f"Malformed integer expression: {e}") from e

    def to_sexp(self) -> StringExpression:
        return StringExpression(str(self._value))

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def _operand(self, other: IntegerLike) -> int:
        if isinstance(other, AdderInteger):
            if (self._modulus is not None and other._modulus is not None
                    and self._modulus != other._modulus):
                raise ModulusMismatchError(
                    f"Cannot combine values mod {self._modulus} and mod {other._modulus}")
            return other._value
        if isinstance(other, int) and not isinstance(other, bool):
            return other
        raise TypeError(f"Unsupported operand type {type(other).__name__}")

    def _result_modulus(self, other: IntegerLike) -> Optional[int]:
        if self._modulus is None and isinstance(other, AdderInteger):
            return other._modulus
        return self._modulus

    def add(self, other: IntegerLike) -> 'AdderInteger':
        return AdderInteger(self._value + self._operand(other), self._result_modulus(other))

    def subtract(self, other: IntegerLike) -> 'AdderInteger':
        return AdderInteger(self._value - self._operand(other), self._result_modulus(other))

    def multiply(self, other: IntegerLike) -> 'AdderInteger':
        return AdderInteger(self._value * self._operand(other), self._result_modulus(other))

    def pow(self, exponent: IntegerLike) -> 'AdderInteger':
        """Modular exponentiation.

        The exponent may carry any modulus (exponents are reduced mod q while
        bases are reduced mod p), so no modulus check is made here.
        """
        if isinstance(exponent, AdderInteger):
            exponent = exponent.value
        if self._modulus is None:
            if exponent < 0:
                raise NotInvertibleError("Negative exponent on an unreduced integer")
            return AdderInteger(self._value ** exponent)
        if exponent < 0:
            return self.inverse().pow(-exponent)
        return AdderInteger(pow(self._value, exponent, self._modulus), self._modulus)

    def inverse(self) -> 'AdderInteger':
        if self._modulus is None:
            raise NotInvertibleError("Unreduced integers have no modular inverse")
        g, x, _ = _extended_gcd(self._value, self._modulus)
        if g != 1:
            raise NotInvertibleError(f"{self._value} is not invertible mod {self._modulus}")
        return AdderInteger(x, self._modulus)

    def divide(self, other: IntegerLike) -> 'AdderInteger':
        modulus = self._result_modulus(other)
        divisor = other if isinstance(other, AdderInteger) else AdderInteger(other, modulus)
        self._operand(divisor)
        if divisor.modulus is None:
            divisor = AdderInteger(divisor.value, modulus)
        return self.multiply(divisor.inverse())

    __add__ = add
    __sub__ = subtract
    __mul__ = multiply
    __truediv__ = divide
    __pow__ = pow

    def __radd__(self, other: int) -> 'AdderInteger':
        return self.add(other)

    def __rmul__(self, other: int) -> 'AdderInteger':
        return self.multiply(other)

    def __rsub__(self, other: int) -> 'AdderInteger':
        return AdderInteger(other, self._modulus).subtract(self)

    def __neg__(self) -> 'AdderInteger':
        return AdderInteger(-self._value, self._modulus)

    # ------------------------------------------------------------------
    # Comparison and conversion
    # ------------------------------------------------------------------

    def __eq__(self, other) -> bool:
        if isinstance(other, AdderInteger):
            return self._value == self._operand(other)
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __lt__(self, other: IntegerLike) -> bool:
        return self._value < self._operand(other)

    def __int__(self) -> int:
        return self._value

    def __bool__(self) -> bool:
        return self._value != 0

    def __str__(self) -> str:
        return str(self._value)

    def __repr__(self) -> str:
        return f"AdderInteger({self._value}, modulus={self._modulus})"

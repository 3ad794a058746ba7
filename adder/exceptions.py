"""Exceptions raised by the threshold exponential-ElGamal cryptosystem."""


class AdderError(Exception):
    """Base exception for cryptosystem operations"""
    pass


class ParseError(AdderError, ValueError):
    """Raised when a serialized integer, key or ciphertext is malformed"""
    pass


class InvalidKeyFormatError(ParseError):
    """Raised when a key file does not follow the p..g..x..f.. token form"""

    def __init__(self, message: str, token: str = None):
        super().__init__(message)
        self.token = token


class ModulusMismatchError(AdderError, ArithmeticError):
    """Raised when two operands are reduced by different moduli"""
    pass


class NotInvertibleError(AdderError, ArithmeticError):
    """Raised when a value has no inverse under its modulus"""
    pass


class InvalidPlaintextError(AdderError, ValueError):
    """Raised when a plaintext is not in the allowed domain"""
    pass


class SearchSpaceExhaustedError(AdderError):
    """Raised when no tally in the searched range maps to the decrypted value"""
    pass


class InsufficientSharesError(AdderError):
    """Raised when fewer than the threshold of key shares take part"""
    pass


class KeyNotLoadedError(AdderError):
    """Raised when an operation needs key material that was never loaded"""
    pass


class BadKeyError(AdderError):
    """Raised when loaded key material has the wrong count, order or type"""
    pass


class InvalidBallotError(AdderError, ValueError):
    """Raised when a ballot's races do not fit the races already being tallied"""
    pass

"""Threshold exponential-ElGamal cryptosystem for homomorphic ballot tallying."""

from .exceptions import (
    AdderError,
    ParseError,
    InvalidKeyFormatError,
    ModulusMismatchError,
    NotInvertibleError,
    InvalidPlaintextError,
    InvalidBallotError,
    SearchSpaceExhaustedError,
    InsufficientSharesError,
    KeyNotLoadedError,
    BadKeyError
)
from .integer import AdderInteger
from .keys import (
    AdderPublicKey,
    AdderPrivateKeyShare,
    ThresholdKeyMaterial,
    DEFAULT_P,
    DEFAULT_G,
    DEFAULT_F,
    generate_threshold_keys,
    parse_key,
    read_key_file,
    write_key_file
)
from .proofs import MembershipProof
from .ciphertext import HomomorphicCiphertext, ExponentialElGamalCiphertext
from .threshold import (
    ThresholdDecryptor,
    partial_decrypt,
    partial_decrypt_all,
    lagrange_coefficients,
    combine_partials,
    recover_tally,
    decrypt
)
from .ballot import PlaintextRaceSelection, EncryptedRaceSelection, Ballot
from .crypto_type import CryptoSystem, CryptoContext, KeyState, CIPHERTEXT_FACTORIES, get_factory

__version__ = "1.0.0"

__all__ = [
    # Arithmetic and keys
    'AdderInteger',
    'AdderPublicKey',
    'AdderPrivateKeyShare',
    'ThresholdKeyMaterial',
    'DEFAULT_P',
    'DEFAULT_G',
    'DEFAULT_F',
    'generate_threshold_keys',
    'parse_key',
    'read_key_file',
    'write_key_file',

    # Ciphertexts
    'MembershipProof',
    'HomomorphicCiphertext',
    'ExponentialElGamalCiphertext',

    # Threshold decryption
    'ThresholdDecryptor',
    'partial_decrypt',
    'partial_decrypt_all',
    'lagrange_coefficients',
    'combine_partials',
    'recover_tally',
    'decrypt',

    # Ballots and context
    'PlaintextRaceSelection',
    'EncryptedRaceSelection',
    'Ballot',
    'CryptoSystem',
    'CryptoContext',
    'KeyState',
    'CIPHERTEXT_FACTORIES',
    'get_factory',

    # Exceptions
    'AdderError',
    'ParseError',
    'InvalidKeyFormatError',
    'ModulusMismatchError',
    'NotInvertibleError',
    'InvalidPlaintextError',
    'InvalidBallotError',
    'SearchSpaceExhaustedError',
    'InsufficientSharesError',
    'KeyNotLoadedError',
    'BadKeyError'
]

"""
Crypto Context
==============
The cryptosystem variant is chosen from a closed enum and constructed through
an explicit factory table.  A CryptoContext owns the loaded key material and
performs every ballot-level operation; it is created once at start-up and
passed to whatever needs it.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from sexpression import SExpression

from .ballot import Ballot, EncryptedRaceSelection, PlaintextRaceSelection
from .ciphertext import ExponentialElGamalCiphertext, HomomorphicCiphertext
from .exceptions import BadKeyError, InvalidPlaintextError, KeyNotLoadedError
from .keys import AdderPrivateKeyShare, AdderPublicKey, KeyMaterial, read_key_file
from .threshold import ThresholdDecryptor

logger = logging.getLogger(__name__)


class CryptoSystem(Enum):
    """Supported homomorphic cryptosystems"""
    EXPONENTIAL_ELGAMAL = "exponential-elgamal"


class KeyState(Enum):
    """What key material a context currently holds"""
    NOT_LOADED = "not_loaded"
    LOADED = "loaded"


@dataclass(frozen=True)
class CiphertextFactory:
    encrypt: Callable[[int, Iterable[int], AdderPublicKey], HomomorphicCiphertext]
    identity: Callable[[AdderPublicKey], HomomorphicCiphertext]
    from_sexp: Callable[[SExpression, AdderPublicKey], HomomorphicCiphertext]


CIPHERTEXT_FACTORIES: Dict[CryptoSystem, CiphertextFactory] = {
    CryptoSystem.EXPONENTIAL_ELGAMAL: CiphertextFactory(
        encrypt=ExponentialElGamalCiphertext.encrypt,
        identity=ExponentialElGamalCiphertext.identity,
        from_sexp=ExponentialElGamalCiphertext.from_sexp,
    ),
}


def get_factory(system: Union[CryptoSystem, str]) -> CiphertextFactory:
    try:
        return CIPHERTEXT_FACTORIES[CryptoSystem(system)]
    except (ValueError, KeyError) as e:
        raise BadKeyError(f"Unsupported cryptosystem: {system}") from e


class CryptoContext:
    """Key material plus encrypt / combine / decrypt over race selections"""

    def __init__(self,
                 system: Union[CryptoSystem, str] = CryptoSystem.EXPONENTIAL_ELGAMAL,
                 threshold: int = 1,
                 allowed_values: Sequence[int] = (0, 1),
                 max_workers: Optional[int] = None):
        if threshold < 1:
            raise ValueError(f"Threshold must be at least 1, got {threshold}")
        allowed = sorted(set(allowed_values))
        if not allowed or allowed != list(range(allowed[0], allowed[-1] + 1)):
            raise ValueError(f"Allowed values must be a contiguous range, got {list(allowed_values)}")

        self.system = CryptoSystem(system)
        self.factory = get_factory(self.system)
        self.threshold = threshold
        self.allowed_values = tuple(allowed)
        self.max_workers = max_workers

        self._public_key: Optional[AdderPublicKey] = None
        self._shares: List[AdderPrivateKeyShare] = []

    # ------------------------------------------------------------------
    # Key loading
    # ------------------------------------------------------------------

    @property
    def key_state(self) -> KeyState:
        return KeyState.LOADED if self._public_key is not None else KeyState.NOT_LOADED

    @property
    def public_key(self) -> AdderPublicKey:
        if self._public_key is None:
            raise KeyNotLoadedError("The public key has not been loaded")
        return self._public_key

    @property
    def shares(self) -> List[AdderPrivateKeyShare]:
        if self._public_key is None:
            raise KeyNotLoadedError("No key material has been loaded")
        return list(self._shares)

    @property
    def can_decrypt(self) -> bool:
        return self._public_key is not None and len(self._shares) >= self.threshold

    def load_keys(self, *keys: KeyMaterial, share_indices: Optional[Sequence[int]] = None):
        """Install a public key followed by one or more private key shares.

        The public key must come first and appear exactly once.  Fewer shares
        than the threshold is accepted, but decryption will then fail.
        """
        if not keys:
            raise BadKeyError("No keys supplied")
        if not isinstance(keys[0], AdderPublicKey):
            raise BadKeyError("Public key didn't come first")

        public_keys = [k for k in keys if isinstance(k, AdderPublicKey)]
        shares = [k for k in keys if isinstance(k, AdderPrivateKeyShare)]
        unknown = [k for k in keys if not isinstance(k, (AdderPublicKey, AdderPrivateKeyShare))]
        if unknown:
            raise BadKeyError(f"Unsupported key type {type(unknown[0]).__name__}")
        if len(public_keys) != 1:
            raise BadKeyError(f"Wrong number of public keys: {len(public_keys)}")
        if not shares:
            raise BadKeyError("Not enough private key shares found")

        public_key = public_keys[0]
        if not public_key.has_h:
            raise BadKeyError("Public key has no h value")

        if share_indices is not None:
            if len(share_indices) != len(shares):
                raise BadKeyError(f"{len(share_indices)} share indices given for {len(shares)} shares")
            shares = [share.with_index(index) for share, index in zip(shares, share_indices)]

        indices = [share.index for share in shares]
        if len(set(indices)) != len(indices):
            raise BadKeyError(f"Duplicate share indices: {indices}")
        for share in shares:
            if not share.matches(public_key):
                raise BadKeyError(f"Share {share.index} is not over the public key's group")

        self._public_key = public_key
        self._shares = shares

        if len(shares) < self.threshold:
            logger.warning(f"Loaded {len(shares)} of {self.threshold} required shares; "
                           f"decryption is unavailable")
        else:
            logger.info(f"Loaded public key and {len(shares)} shares (threshold {self.threshold})")

    def load_key_files(self, *paths: Union[str, Path], share_indices: Optional[Sequence[int]] = None):
        """Load keys from files in order; shares are numbered by load position by default"""
        keys: List[KeyMaterial] = []
        for path in paths:
            keys.extend(read_key_file(path))

        if share_indices is None:
            share_indices = list(range(sum(isinstance(k, AdderPrivateKeyShare) for k in keys)))
        self.load_keys(*keys, share_indices=share_indices)

    def load_public_key(self, public_key: AdderPublicKey):
        """Install only a public key (an encrypting host holds no shares)"""
        if not public_key.has_h:
            raise BadKeyError("Public key has no h value")
        self._public_key = public_key
        self._shares = []
        logger.info("Loaded public key only")

    # ------------------------------------------------------------------
    # Single ciphertexts
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: int) -> HomomorphicCiphertext:
        ciphertext = self.factory.encrypt(plaintext, self.allowed_values, self.public_key)
        if not self.verify(ciphertext):
            raise InvalidPlaintextError(f"Encryption of {plaintext} produced an unverifiable ciphertext")
        return ciphertext

    def verify(self, ciphertext: HomomorphicCiphertext) -> bool:
        return ciphertext.verify(self.allowed_values[0], self.allowed_values[-1], self.public_key)

    def identity(self) -> HomomorphicCiphertext:
        return self.factory.identity(self.public_key)

    def combine(self, first: HomomorphicCiphertext, second: HomomorphicCiphertext) -> HomomorphicCiphertext:
        return first.combine(second, self.public_key)

    def tally(self, ciphertexts: Iterable[HomomorphicCiphertext]) -> HomomorphicCiphertext:
        result = self.identity()
        for ciphertext in ciphertexts:
            result = result.combine(ciphertext, self.public_key)
        return result

    def decrypt(self, ciphertext: HomomorphicCiphertext, shares: Optional[Sequence[AdderPrivateKeyShare]] = None) -> int:
        """Threshold-decrypt with the loaded shares (or an explicit subset of them)"""
        participating = self.shares if shares is None else list(shares)
        decryptor = ThresholdDecryptor(self.public_key, self.threshold, self.max_workers)
        return decryptor.decrypt(ciphertext, participating, ciphertext.size * self.allowed_values[-1])

    def ciphertext_from_sexp(self, expression: SExpression) -> HomomorphicCiphertext:
        return self.factory.from_sexp(expression, self.public_key)

    # ------------------------------------------------------------------
    # Races and ballots
    # ------------------------------------------------------------------

    def encrypt_race(self, race: PlaintextRaceSelection) -> EncryptedRaceSelection:
        encrypted = {candidate: self.encrypt(value) for candidate, value in race.selections.items()}
        return EncryptedRaceSelection(encrypted, race.title, race.size)

    def verify_race(self, race: EncryptedRaceSelection) -> bool:
        return all(self.verify(ciphertext) for ciphertext in race.ciphertexts.values())

    def race_from_sexp(self, expression: SExpression) -> EncryptedRaceSelection:
        return EncryptedRaceSelection.from_sexp(expression, self.ciphertext_from_sexp)

    def combine_races(self, races: Sequence[EncryptedRaceSelection]) -> EncryptedRaceSelection:
        """Homomorphically sum races with the same title and candidates"""
        if not races:
            raise ValueError("No races to combine")
        title = races[0].title
        candidates = set(races[0].ciphertexts)
        for race in races[1:]:
            if race.title != title or set(race.ciphertexts) != candidates:
                raise ValueError(f"Race '{race.title}' does not match '{title}'")

        combined = {candidate: self.tally(race.ciphertexts[candidate] for race in races)
                    for candidate in sorted(candidates)}
        return EncryptedRaceSelection(combined, title, sum(race.size for race in races))

    def decrypt_race(self, race: EncryptedRaceSelection,
                     shares: Optional[Sequence[AdderPrivateKeyShare]] = None) -> PlaintextRaceSelection:
        counts = {candidate: self.decrypt(ciphertext, shares)
                  for candidate, ciphertext in race.ciphertexts.items()}
        return PlaintextRaceSelection(counts, race.title, race.size)

    def encrypt_ballot(self, ballot: Ballot) -> Ballot:
        return Ballot(ballot.ballot_id, [self.encrypt_race(race) for race in ballot.races], ballot.nonce)

    def decrypt_ballot(self, ballot: Ballot,
                       shares: Optional[Sequence[AdderPrivateKeyShare]] = None) -> Ballot:
        return Ballot(ballot.ballot_id, [self.decrypt_race(race, shares) for race in ballot.races], ballot.nonce)

    def __str__(self) -> str:
        return (f"CryptoContext({self.system.value}, threshold={self.threshold}, "
                f"state={self.key_state.value}, shares={len(self._shares)})")

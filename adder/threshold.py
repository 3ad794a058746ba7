"""
Threshold Decryption
====================
Each trustee computes a partial decryption G^x_i with its own share.  Any
subset of at least ``threshold`` partials is combined with Lagrange
coefficients (evaluated at 0, over exactly the participating share points)
into G^x = h^r, which strips the mask from H and leaves the mapped plaintext
f^m.  The integer m is then recovered by a bounded search.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence

from .ciphertext import ExponentialElGamalCiphertext
from .exceptions import InsufficientSharesError, SearchSpaceExhaustedError
from .integer import AdderInteger
from .keys import AdderPrivateKeyShare, AdderPublicKey

logger = logging.getLogger(__name__)


def partial_decrypt(ciphertext: ExponentialElGamalCiphertext,
                    share: AdderPrivateKeyShare) -> AdderInteger:
    """G^x_i for one share"""
    return share.partial_decrypt(ciphertext)


def partial_decrypt_all(ciphertext: ExponentialElGamalCiphertext,
                        shares: Sequence[AdderPrivateKeyShare],
                        max_workers: Optional[int] = None) -> List[AdderInteger]:
    """Compute every share's partial decryption concurrently, in share order"""
    if not shares:
        return []
    with ThreadPoolExecutor(max_workers=max_workers or len(shares)) as executor:
        return list(executor.map(lambda share: share.partial_decrypt(ciphertext), shares))


def lagrange_coefficients(share_indices: Sequence[int], q: int) -> Dict[int, AdderInteger]:
    """Lagrange basis polynomials at 0 for the participating shares.

    Share index i sits at point i + 1; the coefficient for point x_i is
    prod_{j != i} x_j / (x_j - x_i) mod q.
    """
    points = [index + 1 for index in share_indices]
    coefficients = {}
    for index, x_i in zip(share_indices, points):
        numerator = AdderInteger(1, q)
        denominator = AdderInteger(1, q)
        for x_j in points:
            if x_j == x_i:
                continue
            numerator = numerator.multiply(x_j)
            denominator = denominator.multiply(x_j - x_i)
        coefficients[index] = numerator.divide(denominator)
    return coefficients


def _check_participants(partials: Sequence[AdderInteger], share_indices: Sequence[int], threshold: int):
    if len(partials) != len(share_indices):
        raise ValueError(
            f"Got {len(partials)} partial decryptions for {len(share_indices)} share indices")
    if len(set(share_indices)) != len(share_indices):
        raise ValueError(f"Duplicate share indices: {list(share_indices)}")
    if any(index < 0 for index in share_indices):
        raise ValueError(f"Share indices must be non-negative: {list(share_indices)}")
    if len(share_indices) < threshold:
        raise InsufficientSharesError(
            f"Need {threshold} shares to decrypt, got {len(share_indices)}")


def combine_partials(ciphertext: ExponentialElGamalCiphertext,
                     partials: Sequence[AdderInteger],
                     share_indices: Sequence[int],
                     public_key: AdderPublicKey,
                     threshold: int) -> AdderInteger:
    """Combine partial decryptions into the mapped plaintext f^m"""
    if threshold < 1:
        raise ValueError(f"Threshold must be at least 1, got {threshold}")
    _check_participants(partials, share_indices, threshold)

    coefficients = lagrange_coefficients(share_indices, public_key.q)
    mask = public_key.element(1)
    for partial, index in zip(partials, share_indices):
        mask = mask.multiply(public_key.element(partial).pow(coefficients[index]))

    return public_key.element(ciphertext.H).divide(mask)


def recover_tally(mapped_plaintext: AdderInteger, max_count: int,
                  public_key: AdderPublicKey) -> int:
    """Find j in [0, max_count] with f^j == mapped_plaintext"""
    target = public_key.element(mapped_plaintext)
    candidate = public_key.element(1)
    for j in range(max_count + 1):
        if candidate == target:
            return j
        candidate = candidate.multiply(public_key.f)
    raise SearchSpaceExhaustedError(
        f"No tally in [0, {max_count}] matches the decrypted value")


class ThresholdDecryptor:
    """Decrypts combined ciphertexts with whichever shares are available"""

    def __init__(self, public_key: AdderPublicKey, threshold: int, max_workers: Optional[int] = None):
        if threshold < 1:
            raise ValueError(f"Threshold must be at least 1, got {threshold}")
        self.public_key = public_key
        self.threshold = threshold
        self.max_workers = max_workers

    def mapped_plaintext(self, ciphertext: ExponentialElGamalCiphertext,
                         shares: Sequence[AdderPrivateKeyShare]) -> AdderInteger:
        indices = [share.index for share in shares]
        # Checked here so no partial is computed for a sub-threshold set
        if len(set(indices)) < self.threshold:
            raise InsufficientSharesError(
                f"Need {self.threshold} shares to decrypt, got {len(set(indices))}")
        partials = partial_decrypt_all(ciphertext, shares, self.max_workers)
        return combine_partials(ciphertext, partials, indices, self.public_key, self.threshold)

    def decrypt(self, ciphertext: ExponentialElGamalCiphertext,
                shares: Sequence[AdderPrivateKeyShare],
                max_count: Optional[int] = None) -> int:
        """Full reduction: partials, combination, bounded search up to the ciphertext size"""
        mapped = self.mapped_plaintext(ciphertext, shares)
        bound = ciphertext.size if max_count is None else max_count
        tally = recover_tally(mapped, bound, self.public_key)
        logger.debug(f"Decrypted ciphertext of size {ciphertext.size} with shares "
                     f"{[share.index for share in shares]}: {tally}")
        return tally


def decrypt(ciphertext: ExponentialElGamalCiphertext,
            shares: Sequence[AdderPrivateKeyShare],
            public_key: AdderPublicKey,
            threshold: int,
            max_count: Optional[int] = None) -> int:
    return ThresholdDecryptor(public_key, threshold).decrypt(ciphertext, shares, max_count)

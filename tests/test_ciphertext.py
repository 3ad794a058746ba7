"""Tests for exponential-ElGamal ciphertexts and their membership proofs."""

import pytest

from adder import (
    AdderInteger,
    ExponentialElGamalCiphertext,
    InvalidPlaintextError,
    MembershipProof,
    ModulusMismatchError,
    ParseError,
    ThresholdDecryptor
)
from adder.proofs import fiat_shamir_challenge
from sexpression import make, parse


def decrypt(ciphertext, keys, max_count=None):
    return ThresholdDecryptor(keys.public_key, keys.threshold).decrypt(ciphertext, keys.shares, max_count)


def negated_encryption_of_one(pk):
    """(g^r, -(h^r f)) with a proof whose real branch absorbs the sign.

    The -1 factor survives the real-branch check whenever that branch's
    challenge is odd, so commitments are redrawn until it is.
    """
    minus_one = AdderInteger(pk.p - 1, pk.p)
    r = pk.random_exponent()
    G = pk.g.pow(r)
    H = pk.h.pow(r).multiply(pk.f).multiply(minus_one)
    while True:
        c0, s0 = pk.random_exponent(), pk.random_exponent()
        w = pk.random_exponent()
        commitments = ((pk.g.pow(s0).divide(G.pow(c0)), pk.h.pow(s0).divide(H.pow(c0))),
                       (pk.g.pow(w), pk.h.pow(w).multiply(minus_one)))
        challenge = fiat_shamir_challenge(pk, G, H, commitments)
        c1 = AdderInteger(challenge.value - c0.value, pk.q)
        if c1.value % 2 == 1:
            break
    s1 = AdderInteger(w.value + r.value * c1.value, pk.q)
    proof = MembershipProof((0, 1), commitments, (c0, c1), (s0, s1))
    return ExponentialElGamalCiphertext(G, H, 1, proof)


class TestEncryption:

    @pytest.mark.parametrize("plaintext", [0, 1])
    def test_valid_plaintexts_verify(self, full_keys, plaintext):
        ciphertext = ExponentialElGamalCiphertext.encrypt(plaintext, [0, 1], full_keys.public_key)
        assert ciphertext.size == 1
        assert ciphertext.verify(0, 1, full_keys.public_key)

    def test_wider_domain(self, small_keys):
        pk = small_keys.public_key
        for plaintext in range(0, 5):
            ciphertext = ExponentialElGamalCiphertext.encrypt(plaintext, range(0, 5), pk)
            assert ciphertext.verify(0, 4, pk)
            assert decrypt(ciphertext, small_keys, 4) == plaintext

    def test_plaintext_outside_domain(self, small_keys):
        with pytest.raises(InvalidPlaintextError):
            ExponentialElGamalCiphertext.encrypt(2, [0, 1], small_keys.public_key)

    def test_encryption_is_randomized(self, small_keys):
        pk = small_keys.public_key
        first = ExponentialElGamalCiphertext.encrypt(1, [0, 1], pk, randomness=AdderInteger(5))
        second = ExponentialElGamalCiphertext.encrypt(1, [0, 1], pk, randomness=AdderInteger(6))
        assert first != second
        assert decrypt(first, small_keys) == decrypt(second, small_keys) == 1


class TestProofs:

    def test_proof_bound_to_domain(self, full_keys):
        pk = full_keys.public_key
        ciphertext = ExponentialElGamalCiphertext.encrypt(1, [0, 1], pk)
        assert not ciphertext.verify(0, 2, pk)
        assert not ciphertext.verify(1, 1, pk)

    def test_tampered_ciphertext_fails(self, full_keys):
        pk = full_keys.public_key
        ciphertext = ExponentialElGamalCiphertext.encrypt(1, [0, 1], pk)
        # Shift the plaintext to 2; the proof no longer covers it
        shifted = ExponentialElGamalCiphertext(ciphertext.G, ciphertext.H.multiply(pk.f),
                                               1, ciphertext.proof)
        assert not shifted.verify(0, 1, pk)

    def test_proof_does_not_transfer(self, full_keys):
        pk = full_keys.public_key
        first = ExponentialElGamalCiphertext.encrypt(0, [0, 1], pk)
        second = ExponentialElGamalCiphertext.encrypt(0, [0, 1], pk)
        swapped = ExponentialElGamalCiphertext(first.G, first.H, 1, second.proof)
        assert not swapped.verify(0, 1, pk)

    def test_tampered_response_fails(self, full_keys):
        pk = full_keys.public_key
        ciphertext = ExponentialElGamalCiphertext.encrypt(0, [0, 1], pk)
        proof = ciphertext.proof
        responses = (proof.responses[0].add(1),) + proof.responses[1:]
        forged = MembershipProof(proof.domain, proof.commitments, proof.challenges, responses)
        assert not forged.verify(ciphertext.G, ciphertext.H, pk, 0, 1)

    def test_negated_ciphertext_rejected(self, small_keys):
        pk = small_keys.public_key
        forged = negated_encryption_of_one(pk)
        assert pow(forged.H.value, pk.q, pk.p) == pk.p - 1
        assert not forged.verify(0, 1, pk)

    def test_commitment_outside_subgroup_rejected(self, small_keys):
        pk = small_keys.public_key
        ciphertext = ExponentialElGamalCiphertext.encrypt(0, [0, 1], pk)
        proof = ciphertext.proof
        (A, B), rest = proof.commitments[0], proof.commitments[1:]
        negated = ((A, B.multiply(pk.p - 1)),) + rest
        forged = MembershipProof(proof.domain, negated, proof.challenges, proof.responses)
        assert not forged.verify(ciphertext.G, ciphertext.H, pk, 0, 1)

    def test_missing_proof_never_verifies(self, small_keys):
        pk = small_keys.public_key
        ciphertext = ExponentialElGamalCiphertext.encrypt(1, [0, 1], pk)
        bare = ExponentialElGamalCiphertext(ciphertext.G, ciphertext.H, 1, None)
        assert not bare.verify(0, 1, pk)


class TestHomomorphism:

    def test_combine_adds_plaintexts(self, small_keys):
        pk = small_keys.public_key
        c1 = ExponentialElGamalCiphertext.encrypt(1, [0, 1], pk)
        c2 = ExponentialElGamalCiphertext.encrypt(0, [0, 1], pk)
        c3 = c1.combine(c2, pk)
        assert c3.size == 2
        assert decrypt(c3, small_keys) == 1

    @pytest.mark.parametrize("votes", [[1, 1, 0, 1], [0, 0, 0], [1] * 6])
    def test_decrypt_of_combination_is_sum(self, small_keys, votes):
        pk = small_keys.public_key
        ciphertexts = [ExponentialElGamalCiphertext.encrypt(v, [0, 1], pk) for v in votes]
        total = ExponentialElGamalCiphertext.combine_all(ciphertexts, pk)
        assert total.size == len(votes)
        assert decrypt(total, small_keys) == sum(votes)
        assert sum(decrypt(c, small_keys) for c in ciphertexts) == sum(votes)

    def test_identity_is_neutral(self, small_keys):
        pk = small_keys.public_key
        ciphertext = ExponentialElGamalCiphertext.encrypt(1, [0, 1], pk)
        identity = ExponentialElGamalCiphertext.identity(pk)
        assert identity.is_identity
        combined = identity.combine(ciphertext, pk)
        assert (combined.G, combined.H, combined.size) == (ciphertext.G, ciphertext.H, 1)

    def test_combined_ciphertext_has_no_proof(self, small_keys):
        pk = small_keys.public_key
        c1 = ExponentialElGamalCiphertext.encrypt(1, [0, 1], pk)
        combined = c1.combine(c1, pk)
        assert combined.proof is None
        assert not combined.verify(0, 2, pk)

    def test_different_groups_do_not_combine(self, small_keys, full_keys):
        small = ExponentialElGamalCiphertext.encrypt(1, [0, 1], small_keys.public_key)
        full = ExponentialElGamalCiphertext.encrypt(1, [0, 1], full_keys.public_key)
        with pytest.raises(ModulusMismatchError):
            small.combine(full, small_keys.public_key)


class TestSerialization:

    def test_wire_form(self, small_keys):
        pk = small_keys.public_key
        ciphertext = ExponentialElGamalCiphertext.encrypt(1, [0, 1], pk)
        restored = ExponentialElGamalCiphertext.from_sexp(parse(ciphertext.to_sexp().to_bytes()), pk)
        assert restored == ciphertext
        assert restored.verify(0, 1, pk)

    def test_combined_form_omits_proof(self, small_keys):
        pk = small_keys.public_key
        ciphertext = ExponentialElGamalCiphertext.encrypt(1, [0, 1], pk)
        combined = ciphertext.combine(ciphertext, pk)
        expr = combined.to_sexp()
        assert len(expr) == 4
        assert ExponentialElGamalCiphertext.from_sexp(expr, pk).size == 2

    @pytest.mark.parametrize("expr", [
        ["exponential-elgamal", ["G", "1"], ["H", "1"]],
        ["exponential-elgamal", ["G", "1"], ["H", "1"], ["size", "-1"]],
        ["exponential-elgamal", ["G", "1"], ["H", "1"], ["size", "²"]],
        ["exponential-elgamal", ["G", "x"], ["H", "1"], ["size", "1"]],
        ["paillier", ["G", "1"], ["H", "1"], ["size", "1"]],
    ])
    def test_malformed(self, small_keys, expr):
        with pytest.raises(ParseError):
            ExponentialElGamalCiphertext.from_sexp(make(expr), small_keys.public_key)

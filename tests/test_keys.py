"""Tests for key encodings, key files and the threshold key dealer."""

import pytest

from adder import (
    AdderPrivateKeyShare,
    AdderPublicKey,
    BadKeyError,
    DEFAULT_F,
    DEFAULT_G,
    DEFAULT_P,
    InvalidKeyFormatError,
    ParseError,
    generate_threshold_keys,
    parse_key,
    read_key_file,
    write_key_file
)

from conftest import SMALL_F, SMALL_G, SMALL_P


class TestDefaultGroup:

    def test_generators_lie_in_the_subgroup(self):
        q = (DEFAULT_P - 1) // 2
        assert pow(DEFAULT_G, q, DEFAULT_P) == 1
        assert pow(DEFAULT_F, q, DEFAULT_P) == 1
        assert DEFAULT_F not in (1, DEFAULT_G)


class TestKeyText:

    def test_public_key_round_trip(self, small_keys):
        pk = small_keys.public_key
        text = pk.to_string()
        assert text == f"p{SMALL_P}g{SMALL_G}h{pk.h.value}f{SMALL_F}"
        assert AdderPublicKey.from_string(text) == pk

    def test_public_key_without_h(self):
        pk = AdderPublicKey.from_string(f"p{SMALL_P}g{SMALL_G}f{SMALL_F}")
        assert not pk.has_h
        assert pk.q == 1019

    def test_share_parsing(self):
        share = AdderPrivateKeyShare.from_string(f"p{SMALL_P}g{SMALL_G}x77f{SMALL_F}", index=2)
        assert share.x.value == 77
        assert share.index == 2
        assert share.point == 3
        assert share.to_string() == f"p{SMALL_P}g{SMALL_G}x77f{SMALL_F}"

    def test_parse_key_dispatches_on_x(self):
        assert isinstance(parse_key(f"p{SMALL_P}g{SMALL_G}x5f{SMALL_F}"), AdderPrivateKeyShare)
        assert isinstance(parse_key(f"p{SMALL_P}g{SMALL_G}f{SMALL_F}"), AdderPublicKey)

    def test_public_form_read_as_share_names_token(self):
        with pytest.raises(InvalidKeyFormatError) as excinfo:
            AdderPrivateKeyShare.from_string(f"p{SMALL_P}g{SMALL_G}f{SMALL_F}")
        assert excinfo.value.token == "f"

    def test_truncated_key_names_missing_token(self):
        with pytest.raises(InvalidKeyFormatError) as excinfo:
            AdderPublicKey.from_string(f"p{SMALL_P}g{SMALL_G}")
        assert excinfo.value.token == "f"

    def test_unexpected_token_is_named(self):
        with pytest.raises(InvalidKeyFormatError) as excinfo:
            AdderPublicKey.from_string(f"p{SMALL_P}g{SMALL_G}f{SMALL_F}z1")
        assert excinfo.value.token == "z"

    def test_token_without_value(self):
        with pytest.raises(InvalidKeyFormatError):
            AdderPublicKey.from_string(f"pg{SMALL_G}f{SMALL_F}")

    def test_format_errors_are_parse_errors(self):
        with pytest.raises(ParseError):
            parse_key("")

    def test_generator_outside_subgroup_is_rejected(self):
        # 7 is a quadratic non-residue mod 2039
        assert pow(7, 1019, SMALL_P) != 1
        with pytest.raises(BadKeyError):
            AdderPublicKey(SMALL_P, 7, SMALL_F)

    def test_public_key_sexp(self, small_keys):
        pk = small_keys.public_key
        assert AdderPublicKey.from_sexp(pk.to_sexp()) == pk

    def test_share_repr_hides_secret(self, small_keys):
        assert "x=" not in repr(small_keys.shares[0])


class TestKeyFiles:

    def test_write_and_read(self, tmp_path, small_keys):
        path = tmp_path / "keys.txt"
        write_key_file(path, [small_keys.public_key] + small_keys.shares)
        keys = read_key_file(path)
        assert keys[0] == small_keys.public_key
        assert [k.index for k in keys[1:]] == [0, 1, 2]
        assert [k.x for k in keys[1:]] == [s.x for s in small_keys.shares]

    def test_comments_and_blank_lines_ignored(self, tmp_path, small_keys):
        path = tmp_path / "public.key"
        path.write_text("# election public key\n\n" + small_keys.public_key.to_string() + "\n")
        assert read_key_file(path) == [small_keys.public_key]

    def test_bad_line_reports_location(self, tmp_path):
        path = tmp_path / "bad.key"
        path.write_text(f"p{SMALL_P}q5\n")
        with pytest.raises(InvalidKeyFormatError) as excinfo:
            read_key_file(path)
        assert "bad.key:1" in str(excinfo.value)
        assert excinfo.value.token == "q"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.key"
        path.write_text("# nothing here\n")
        with pytest.raises(InvalidKeyFormatError):
            read_key_file(path)

    def test_save_writes_one_file_per_share(self, tmp_path, small_keys):
        paths = small_keys.save(tmp_path / "adder")
        assert paths['public'].name == "public.key"
        assert sorted(p.name for name, p in paths.items() if name != 'public') == [
            "share0.key", "share1.key", "share2.key"]


class TestDealer:

    def test_shares_match_commitments(self, small_keys):
        assert small_keys.num_shares == 3
        assert small_keys.threshold == 2
        for share in small_keys.shares:
            assert small_keys.verify_share(share)
            assert share.matches(small_keys.public_key)

    def test_tampered_share_fails_commitment_check(self, small_keys):
        share = small_keys.shares[1]
        forged = AdderPrivateKeyShare(share.p, share.g, share.x.value + 1, share.f, share.index)
        assert not small_keys.verify_share(forged)

    def test_subset(self, small_keys):
        subset = small_keys.subset([0, 2])
        assert [s.index for s in subset] == [0, 2]
        with pytest.raises(BadKeyError):
            small_keys.subset([5])

    @pytest.mark.parametrize("threshold,num_shares", [(0, 3), (4, 3)])
    def test_invalid_parameters(self, threshold, num_shares):
        with pytest.raises(ValueError):
            generate_threshold_keys(threshold, num_shares, p=SMALL_P, g=SMALL_G, f=SMALL_F)

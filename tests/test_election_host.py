#!/usr/bin/env python3
"""
Integration tests for the election host
Exercises the complete workflow: Boot -> Ballot Casting -> Tallying -> Verification
"""

import logging

import pytest

from adder import (
    Ballot,
    InsufficientSharesError,
    InvalidBallotError,
    InvalidPlaintextError,
    PlaintextRaceSelection
)
from auditorium import ChainFailure, Log
from config import AuditoriumConfig, CryptoConfig, SystemConfig
from election_host import ElectionHost
from sexpression import make

from conftest import HOST_IDS

logger = logging.getLogger(__name__)


def make_ballot(ballot_id, mayor, measure):
    return Ballot(ballot_id, [
        PlaintextRaceSelection({c: int(c == mayor) for c in ("alice", "bob", "carol")}, "mayor"),
        PlaintextRaceSelection({"yes": int(measure), "no": int(not measure)}, "measure-a"),
    ], nonce=f"nonce-{ballot_id}")


@pytest.fixture
def election(small_context, keystores):
    config = SystemConfig(
        election_id="test_election_001",
        auditorium=AuditoriumConfig(host_id=HOST_IDS[0]),
        crypto=CryptoConfig(threshold=2, num_shares=3)
    )
    return ElectionHost(config, keystores[HOST_IDS[0]], small_context)


@pytest.fixture
def booth(small_context, keystores):
    config = SystemConfig(
        election_id="test_election_001",
        auditorium=AuditoriumConfig(host_id=HOST_IDS[1], port=9701),
        crypto=CryptoConfig(threshold=2, num_shares=3)
    )
    return ElectionHost(config, keystores[HOST_IDS[1]], small_context)


class TestElectionWorkflow:

    def test_full_election(self, election, small_keys):
        logger.info("=" * 80)
        logger.info("Full election: boot, cast, tally, decrypt with shares {0, 2}")
        logger.info("=" * 80)

        boot = election.boot({"booth-1": 1, "booth-2": 2})
        assert len(boot) == 4

        votes = [("alice", True), ("bob", False), ("alice", True), ("carol", True), ("alice", False)]
        for i, (mayor, measure) in enumerate(votes):
            receipt = election.cast_ballot(make_ballot(f"b-{i}", mayor, measure))
            assert receipt.races == 2
            assert receipt.pointer.node_id == HOST_IDS[0]
        election.close_polls()

        result = election.decrypt_tally(small_keys.subset([0, 2]))
        assert result.results["mayor"] == {"alice": 3, "bob": 1, "carol": 1}
        assert result.results["measure-a"] == {"yes": 3, "no": 2}
        assert result.num_ballots == 5
        assert result.shares_used == [0, 2]
        assert result.chain_valid

        # 4 boot entries, 5 ballots, polls-closed, results
        assert len(election.auditorium.log) == 11
        metrics = election.get_system_metrics()
        assert metrics['cast_ballots'] == 5
        assert len(metrics['frontier']) == 1
        assert 'encrypt_ballot' in metrics['performance']['operations']
        assert "DECRYPT_TALLY" in election.performance_report()

    def test_tally_is_encrypted_until_decrypted(self, election):
        election.cast_ballot(make_ballot("b-0", "bob", True))
        totals = election.tally()
        assert set(totals) == {"mayor", "measure-a"}
        assert totals["mayor"].size == 1

    def test_decrypt_with_one_share_fails(self, election, small_keys):
        election.cast_ballot(make_ballot("b-0", "bob", True))
        with pytest.raises(InsufficientSharesError):
            election.decrypt_tally(small_keys.subset([1]))

    def test_no_ballots(self, election):
        with pytest.raises(ValueError):
            election.tally()

    def test_duplicate_ballot_id(self, election):
        election.cast_ballot(make_ballot("b-0", "bob", True))
        with pytest.raises(ValueError):
            election.cast_ballot(make_ballot("b-0", "alice", False))
        assert election.num_ballots == 1

    def test_unproven_ballot_rejected(self, election, small_context):
        encrypted = small_context.encrypt_ballot(make_ballot("b-0", "bob", True))
        race = encrypted.races[0]
        stripped = {c: type(ct)(ct.G, ct.H, ct.count, None) for c, ct in race.ciphertexts.items()}
        race.ciphertexts = stripped
        with pytest.raises(InvalidPlaintextError):
            election.cast_encrypted_ballot(encrypted)
        assert election.num_ballots == 0
        # The rejection itself is logged
        assert len(election.auditorium.log) == 1

    def test_mismatched_candidates_rejected(self, election, small_context):
        election.cast_ballot(make_ballot("b-0", "alice", True))
        odd = small_context.encrypt_ballot(Ballot("b-1", [
            PlaintextRaceSelection({"alice": 1, "zz": 0}, "mayor"),
            PlaintextRaceSelection({"yes": 1, "no": 0}, "measure-a"),
        ]))
        with pytest.raises(InvalidBallotError):
            election.cast_encrypted_ballot(odd)
        assert election.num_ballots == 1
        # cast-ballot, then the rejection
        assert len(election.auditorium.log) == 2
        assert set(election.tally()["mayor"].ciphertexts) == {"alice", "bob", "carol"}

    def test_repeated_race_rejected(self, election, small_context):
        race = PlaintextRaceSelection({"yes": 1, "no": 0}, "measure-a")
        doubled = small_context.encrypt_ballot(Ballot("b-0", [race, race]))
        with pytest.raises(InvalidBallotError):
            election.cast_encrypted_ballot(doubled)
        assert election.num_ballots == 0

    def test_overvote_cannot_be_encrypted(self, election):
        ballot = Ballot("b-0", [PlaintextRaceSelection({"alice": 2, "bob": 0}, "mayor")])
        with pytest.raises(InvalidPlaintextError):
            election.cast_ballot(ballot)

    def test_tampered_log_detected(self, election):
        election.boot()
        election.auditorium.log_announcement_no_chain(make(["supervisor", HOST_IDS[0], "inactive"]))
        election.announce("polls-closed", 0, 0)
        result = election.verify_log()
        assert not result.valid
        assert result.reason is ChainFailure.UNCHAINED
        assert result.index == 2


class TestPeerBallots:

    def test_peer_ballot_joins_tally(self, election, booth, small_keys):
        receipt = booth.cast_ballot(make_ballot("b-0", "carol", False))
        result = election.receive(receipt.message)
        assert result.accepted
        assert election.num_ballots == 1

        election.cast_ballot(make_ballot("b-1", "carol", True))
        totals = election.decrypt_tally(small_keys.subset([0, 1]))
        assert totals.results["mayor"] == {"alice": 0, "bob": 0, "carol": 2}
        assert totals.results["measure-a"] == {"yes": 1, "no": 1}

    def test_unproven_peer_ballot_logged_not_counted(self, election, booth, small_context):
        encrypted = small_context.encrypt_ballot(make_ballot("b-0", "bob", True))
        bare = []
        for race in encrypted.races:
            race.ciphertexts = {c: type(ct)(ct.G, ct.H, ct.count, None) for c, ct in race.ciphertexts.items()}
            bare.append(race.to_sexp())
        message = booth.announce("cast-ballot", "b-0", "n-0", bare)
        assert election.receive(message).accepted
        assert election.num_ballots == 0
        assert len(election.auditorium.log) == 1

    def test_unreadable_peer_ballot_not_counted(self, election, booth):
        message = booth.announce("cast-ballot", "b-0", "n-0", [["race", "mayor", "one", []]])
        assert election.receive(message).accepted
        assert election.num_ballots == 0

    def test_peer_ballot_already_counted(self, election, booth, small_context):
        receipt = booth.cast_ballot(make_ballot("b-0", "alice", True))
        assert election.receive(receipt.message).accepted
        again = small_context.encrypt_ballot(make_ballot("b-0", "bob", False))
        message = booth.announce("cast-ballot", "b-0", "n-1", [race.to_sexp() for race in again.races])
        assert election.receive(message).accepted
        assert election.num_ballots == 1
        assert set(election.tally()["mayor"].ciphertexts) == {"alice", "bob", "carol"}

    def test_only_configured_peers_accepted(self, small_context, keystores, booth):
        config = SystemConfig(
            election_id="test_election_001",
            auditorium=AuditoriumConfig(host_id=HOST_IDS[0], peers=[HOST_IDS[2]])
        )
        election = ElectionHost(config, keystores[HOST_IDS[0]], small_context)
        receipt = booth.cast_ballot(make_ballot("b-0", "alice", True))
        result = election.receive(receipt.message)
        assert not result.accepted
        assert "not a configured peer" in result.reason
        assert len(election.auditorium.log) == 0


class TestFromConfig:

    def test_loads_keys_trust_store_and_log(self, tmp_path, small_keys, authority):
        key_dir = tmp_path / "adder"
        trust_dir = tmp_path / "auditorium"
        small_keys.save(key_dir)
        (key_dir / "share1.key").unlink()
        authority.create_keystore(HOST_IDS, signing_hosts=["supervisor"]).save(
            trust_dir, include_keys=["supervisor"])

        config = SystemConfig(
            election_id="from-files",
            auditorium=AuditoriumConfig(host_id="supervisor", trust_store_dir=trust_dir,
                                        log_file=tmp_path / "auditorium.log"),
            crypto=CryptoConfig(threshold=2, num_shares=3, key_dir=key_dir)
        )

        election = ElectionHost.from_config(config)
        assert [s.index for s in election.crypto.shares] == [0, 2]
        election.boot()
        election.cast_ballot(make_ballot("b-0", "carol", False))
        assert election.decrypt_tally().results["mayor"]["carol"] == 1

        # A restarted host replays the log file and keeps chaining
        restarted = ElectionHost.from_config(config)
        assert len(restarted.auditorium.log) == len(election.auditorium.log)
        restarted.announce("polls-closed", 0, 1)
        assert restarted.verify_log().valid
        assert len(Log.load(config.auditorium.log_file)) == len(election.auditorium.log) + 1

    def test_encrypt_only_host(self, tmp_path, small_keys, authority):
        key_dir = tmp_path / "adder"
        trust_dir = tmp_path / "auditorium"
        small_keys.save(key_dir)
        for i in range(3):
            (key_dir / f"share{i}.key").unlink()
        authority.create_keystore(HOST_IDS, signing_hosts=["booth-1"]).save(
            trust_dir, include_keys=["booth-1"])

        config = SystemConfig(
            auditorium=AuditoriumConfig(host_id="booth-1", trust_store_dir=trust_dir),
            crypto=CryptoConfig(key_dir=key_dir)
        )
        election = ElectionHost.from_config(config)
        assert not election.crypto.can_decrypt
        election.cast_ballot(make_ballot("b-0", "alice", True))
        with pytest.raises(InsufficientSharesError):
            election.decrypt_tally()

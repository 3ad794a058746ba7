"""Tests for the command-line workflows: setup, demo and log verification."""

import json

from config import SystemConfig, AuditoriumConfig, CryptoConfig, load_config
from election_host import ElectionHost
from main import create_test_ballots, run_demo, setup_election, verify_log


def test_test_ballots_are_reproducible():
    first = create_test_ballots(10, ["a", "b", "c"])
    second = create_test_ballots(10, ["a", "b", "c"])
    assert [b.races[0].selections for b in first] == [b.races[0].selections for b in second]
    assert all(b.races[0].total == 1 for b in first)


def test_setup_then_verify_log(tmp_path):
    paths = setup_election(tmp_path / "election", ["supervisor", "booth-1"], 2, 3, "county")
    assert set(paths) == {"supervisor", "booth-1"}

    config = load_config(paths["supervisor"])
    assert config.auditorium.peers == ["booth-1"]
    assert not verify_log(config)

    election = ElectionHost.from_config(config)
    assert election.crypto.can_decrypt
    election.boot()
    assert verify_log(config)


def test_demo(tmp_path, capsys):
    config = SystemConfig(
        election_id="demo",
        auditorium=AuditoriumConfig(host_id="supervisor"),
        crypto=CryptoConfig(threshold=2, num_shares=3),
        results_dir=tmp_path / "results"
    )
    assert run_demo(config, num_voters=4, num_candidates=2)
    assert "ELECTION RESULTS" in capsys.readouterr().out

    report = json.loads((tmp_path / "results" / "demo_report.json").read_text())
    assert report['data']['num_ballots'] == 4
    assert sum(report['data']['results']['race-1'].values()) == 4
    assert (tmp_path / "results" / "performance_report.txt").exists()
    metrics = json.loads((tmp_path / "results" / "metrics.json").read_text())
    assert metrics['summary']['operations']['encrypt_ballot']['count'] == 4


def test_verify_log_reports_damaged_file(tmp_path, capsys):
    paths = setup_election(tmp_path / "election", ["supervisor", "booth-1"], 2, 3, "county")
    config = load_config(paths["supervisor"])
    election = ElectionHost.from_config(config)
    election.boot()
    log_file = config.auditorium.log_file
    original = log_file.read_bytes()
    capsys.readouterr()

    for junk in (b"garbage(", b"(3:foo)"):
        log_file.write_bytes(original + junk)
        assert not verify_log(config)
        assert "unreadable" in capsys.readouterr().out

    first = election.auditorium.log.entry(0).message.to_bytes()
    log_file.write_bytes(original + first)
    assert not verify_log(config)
    assert "duplicate" in capsys.readouterr().out

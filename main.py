import argparse
import logging
import random
import sys
import time
from pathlib import Path
from typing import Any, Dict, List

from adder import Ballot, CryptoContext, PlaintextRaceSelection, generate_threshold_keys
from auditorium import ElectionAuthority, IncorrectFormatError, KeyStore, Log
from config import AuditoriumConfig, CryptoConfig, SystemConfig, load_config, save_config
from election_host import ElectionHost
from utils import format_duration, save_results, setup_logging

logger = logging.getLogger(__name__)


def create_test_ballots(num_voters: int, candidates: List[str], seed: int = 42) -> List[Ballot]:
    """One single-choice race per ballot, choices drawn from a seeded RNG"""
    rng = random.Random(seed)
    ballots = []
    for i in range(num_voters):
        choice = rng.choice(candidates)
        selections = {candidate: int(candidate == choice) for candidate in candidates}
        ballots.append(Ballot(f"ballot_{i:04d}", [PlaintextRaceSelection(selections, "race-1")],
                              nonce=f"{rng.getrandbits(64):016x}"))
    return ballots


def setup_election(directory: Path, host_ids: List[str], threshold: int, num_shares: int,
                   election_id: str) -> Dict[str, Path]:
    """Enroll every host, deal the trustee shares and write one config per host"""
    directory = Path(directory)
    authority = ElectionAuthority(f"{election_id} authority")
    keys = generate_threshold_keys(threshold, num_shares)
    key_dir = directory / "adder"
    keys.save(key_dir)

    config_paths = {}
    for host_id in host_ids:
        trust_dir = directory / "auditorium" / host_id
        authority.create_keystore(host_ids, signing_hosts=[host_id]).save(trust_dir, include_keys=[host_id])

        config = SystemConfig(
            election_id=election_id,
            auditorium=AuditoriumConfig(
                host_id=host_id,
                trust_store_dir=trust_dir,
                log_file=directory / "logs" / f"{host_id}.log",
                peers=[peer for peer in host_ids if peer != host_id]
            ),
            crypto=CryptoConfig(threshold=threshold, num_shares=num_shares, key_dir=key_dir),
            log_dir=directory / "logs",
            results_dir=directory / "results"
        )
        config_paths[host_id] = directory / f"{host_id}.yaml"
        save_config(config, config_paths[host_id])

    logger.info(f"Election {election_id} set up in {directory} for hosts {host_ids}")
    return config_paths


def run_demo(config: SystemConfig, num_voters: int = 20, num_candidates: int = 3) -> bool:
    print("=" * 80)
    print("ELECTION TRUST CORE - DEMONSTRATION")
    print("   Hash-chained auditorium log + threshold exponential ElGamal")
    print("=" * 80)

    host_id = config.auditorium.host_id
    authority = ElectionAuthority(f"{config.election_id} authority")
    keystore = authority.create_keystore([host_id], signing_hosts=[host_id])

    print(f"\nDealing a ({config.crypto.threshold}, {config.crypto.num_shares}) threshold key set...")
    keys = generate_threshold_keys(config.crypto.threshold, config.crypto.num_shares)
    crypto = CryptoContext(config.crypto.system, config.crypto.threshold,
                           config.crypto.allowed_values, config.crypto.max_workers)
    crypto.load_keys(keys.public_key, *keys.shares)

    election = ElectionHost(config, keystore, crypto)
    election.boot()

    candidates = [f"candidate_{i}" for i in range(num_candidates)]
    ballots = create_test_ballots(num_voters, candidates)
    expected = {candidate: sum(b.races[0].selections[candidate] for b in ballots) for candidate in candidates}

    print(f"\nCasting {num_voters} encrypted ballots...")
    start = time.time()
    for ballot in ballots:
        election.cast_ballot(ballot)
    election.close_polls()
    casting_time = time.time() - start

    # Decrypt with the last `threshold` trustees only
    quorum = keys.shares[-config.crypto.threshold:]
    print(f"Decrypting with trustees {[share.index for share in quorum]}...")
    tally = election.decrypt_tally(quorum)

    print("\n" + "=" * 40)
    print("ELECTION RESULTS")
    print("=" * 40)
    for candidate, count in sorted(tally.results["race-1"].items()):
        print(f"  {candidate}: {count} votes")

    integrity_checks = {
        'tally_matches_plaintexts': tally.results["race-1"] == expected,
        'log_chain_valid': tally.chain_valid,
        'single_frontier': len(election.auditorium.current_frontier()) == 1,
    }
    print("\nIntegrity Checks:")
    for check, passed in integrity_checks.items():
        print(f"  {check}: {'PASSED' if passed else 'FAILED'}")
    print(f"\nCasting time: {format_duration(casting_time)} "
          f"({num_voters / casting_time:.1f} ballots/second)")

    results: Dict[str, Any] = {
        'election_id': tally.election_id,
        'results': tally.results,
        'num_ballots': tally.num_ballots,
        'shares_used': tally.shares_used,
        'integrity_checks': integrity_checks,
        'metrics': election.get_system_metrics()
    }
    report_path = config.results_dir / "demo_report.json"
    save_results(results, report_path)
    (config.results_dir / "performance_report.txt").write_text(election.performance_report())
    election.monitor.save_metrics(config.results_dir / "metrics.json")
    print(f"\nFull results saved to: {report_path}")

    return all(integrity_checks.values())


def verify_log(config: SystemConfig) -> bool:
    """Replay this host's log file and check every link and signature"""
    log_file = config.auditorium.log_file
    if log_file is None or not Path(log_file).exists():
        print(f"No log file configured for host {config.auditorium.host_id}")
        return False

    keystore = KeyStore.from_directory(config.auditorium.trust_store_dir)
    try:
        log = Log.load(log_file)
    except IncorrectFormatError as e:
        logger.error(f"Cannot replay {log_file}: {e}")
        print(f"{log_file}: unreadable ({e})")
        return False
    result = log.verify_chain(keystore)
    print(f"{log_file}: {result}")
    for pointer in log.current_frontier():
        print(f"  frontier: {pointer}")
    return result.valid


def main():
    parser = argparse.ArgumentParser(description='Election trust core')
    parser.add_argument('--config', type=str, default='config.yaml', help='Config file path')
    parser.add_argument('--mode', choices=['setup', 'demo', 'verify-log'], default='demo')
    parser.add_argument('--voters', type=int, default=20, help='Number of voters')
    parser.add_argument('--candidates', type=int, default=3, help='Number of candidates')
    parser.add_argument('--dir', type=str, default='election', help='Output directory for setup')
    parser.add_argument('--hosts', nargs='+', default=['supervisor', 'booth-1', 'booth-2'],
                        help='Host ids to enroll during setup')

    args = parser.parse_args()

    config = load_config(Path(args.config))
    setup_logging(config.log_level, log_dir=config.log_dir)

    if args.mode == 'setup':
        paths = setup_election(Path(args.dir), args.hosts, config.crypto.threshold,
                               config.crypto.num_shares, config.election_id)
        for host_id, path in paths.items():
            print(f"{host_id}: {path}")
        sys.exit(0)
    elif args.mode == 'demo':
        sys.exit(0 if run_demo(config, args.voters, args.candidates) else 1)
    elif args.mode == 'verify-log':
        sys.exit(0 if verify_log(config) else 1)


if __name__ == "__main__":
    main()

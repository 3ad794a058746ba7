#!/usr/bin/env python3
"""
Election Host
=============
Wires one host's auditorium log to the threshold cryptosystem:

1. Auditorium: every state change is signed, chained and logged
2. Adder: ballots are encrypted with membership proofs and summed
   homomorphically
3. Threshold decryption: a quorum of trustee shares opens only the totals
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from sexpression import ListExpression, ListWildcard, StringExpression, StringWildcard, make, match
from auditorium import (
    AuditoriumHost,
    ChainVerificationResult,
    EntryState,
    HostPointer,
    KeyStore,
    Log,
    Message,
    ReceiveResult,
    message_payload,
    split_succeeds_clause
)
from adder import (
    AdderError,
    AdderPrivateKeyShare,
    Ballot,
    CryptoContext,
    EncryptedRaceSelection,
    InvalidBallotError,
    InvalidPlaintextError,
    read_key_file
)
from config import SystemConfig
from utils import PerformanceMonitor, create_performance_report

logger = logging.getLogger(__name__)

# (cast-ballot <ballot-id> <nonce> (race...))
CAST_BALLOT_PATTERN = ListExpression((
    StringExpression("cast-ballot"), StringWildcard(), StringWildcard(), ListWildcard()
))

# ============================================================================
# RESULTS
# ============================================================================


@dataclass
class CastBallotReceipt:
    """Where a cast ballot landed in the log"""
    ballot_id: str
    message: Message
    races: int
    timestamp: float = field(default_factory=time.time)

    @property
    def pointer(self):
        return self.message.pointer


@dataclass
class TallyResult:
    """Decrypted totals per race and candidate"""
    election_id: str
    results: Dict[str, Dict[str, int]]
    num_ballots: int
    shares_used: List[int]
    chain_valid: bool
    timestamp: float = field(default_factory=time.time)


# ============================================================================
# ELECTION HOST
# ============================================================================


class ElectionHost:
    """One supervisor/tallying host: logs events, accepts ballots, decrypts totals"""

    def __init__(self, config: SystemConfig, keystore: KeyStore, crypto: CryptoContext,
                 log: Optional[Log] = None):
        self.config = config
        self.election_id = config.election_id
        self.crypto = crypto
        self.auditorium = AuditoriumHost(
            HostPointer(config.auditorium.host_id, config.auditorium.ip, config.auditorium.port),
            keystore,
            log
        )
        self.monitor = PerformanceMonitor()

        self._races: Dict[str, List[EncryptedRaceSelection]] = {}
        self._ballot_ids: List[str] = []
        self._lock = threading.Lock()

        logger.info(f"Election host {self.auditorium.node_id} ready for {self.election_id} ({crypto})")

    @classmethod
    def from_config(cls, config: SystemConfig) -> 'ElectionHost':
        """Load the trust store, key files and (optionally) an existing log file"""
        keystore = KeyStore.from_directory(config.auditorium.trust_store_dir)

        crypto = CryptoContext(
            config.crypto.system,
            threshold=config.crypto.threshold,
            allowed_values=config.crypto.allowed_values,
            max_workers=config.crypto.max_workers
        )
        share_indices = [i for i in range(config.crypto.num_shares)
                         if config.crypto.share_file(i).exists()]
        if share_indices:
            crypto.load_key_files(
                config.crypto.public_key_file,
                *[config.crypto.share_file(i) for i in share_indices],
                share_indices=share_indices
            )
        else:
            crypto.load_public_key(read_key_file(config.crypto.public_key_file)[0])

        log_file = config.auditorium.log_file
        if log_file is not None and Path(log_file).exists():
            log = Log.load(log_file)
        else:
            log = Log(log_file)

        return cls(config, keystore, crypto, log)

    @property
    def num_ballots(self) -> int:
        with self._lock:
            return len(self._ballot_ids)

    # ------------------------------------------------------------------
    # Logged events
    # ------------------------------------------------------------------

    def announce(self, tag: str, *fields) -> Message:
        """Log ``(tag field...)`` through the chained announcement path"""
        event = make((tag,) + tuple(fields))
        return self.auditorium.log_announcement(event)

    def boot(self, labels: Dict[str, int] = None) -> List[Message]:
        """Log supervisor status, machine labels and polls-open"""
        messages = [self.announce("supervisor", self.auditorium.node_id, "active")]
        for machine, label in sorted((labels or {}).items()):
            messages.append(self.announce("assign-label", self.auditorium.node_id, machine, label))
        messages.append(self.announce("polls-open", int(time.time()), self.election_id))
        return messages

    def close_polls(self) -> Message:
        return self.announce("polls-closed", int(time.time()), self.num_ballots)

    # ------------------------------------------------------------------
    # Ballots
    # ------------------------------------------------------------------

    def cast_ballot(self, ballot: Ballot) -> CastBallotReceipt:
        """Encrypt a plaintext ballot and accept it"""
        with self.monitor.start_operation("encrypt_ballot"):
            encrypted = self.crypto.encrypt_ballot(ballot)
        return self.cast_encrypted_ballot(encrypted)

    def cast_encrypted_ballot(self, ballot: Ballot) -> CastBallotReceipt:
        """Verify every membership proof, log the ballot, add it to the running tally.

        Proof failures raise InvalidPlaintextError; a race whose candidates
        differ from the ones already being tallied raises InvalidBallotError.
        Either rejection is itself logged.
        """
        with self.monitor.start_operation("verify_ballot"):
            for race in ballot.races:
                if not self.crypto.verify_race(race):
                    self.announce("ballot-rejected", ballot.ballot_id, race.title)
                    raise InvalidPlaintextError(
                        f"Ballot {ballot.ballot_id}: race '{race.title}' failed proof verification")

        with self._lock:
            if ballot.ballot_id in self._ballot_ids:
                raise ValueError(f"Ballot {ballot.ballot_id} already cast")
            mismatch = self._race_mismatch(ballot)
            if mismatch is not None:
                self.announce("ballot-rejected", ballot.ballot_id, mismatch)
                raise InvalidBallotError(f"Ballot {ballot.ballot_id}: {mismatch}")
            message = self.announce(
                "cast-ballot", ballot.ballot_id, ballot.nonce,
                [race.to_sexp() for race in ballot.races]
            )
            self._record(ballot)

        logger.info(f"Ballot {ballot.ballot_id} cast as {message.pointer}")
        return CastBallotReceipt(ballot.ballot_id, message, len(ballot.races))

    def _race_mismatch(self, ballot: Ballot) -> Optional[str]:
        """Why ``ballot`` cannot join the running tally, or None"""
        titles = [race.title for race in ballot.races]
        if not titles:
            return "ballot has no races"
        if len(set(titles)) != len(titles):
            return "a race appears twice"
        for race in ballot.races:
            if race.size != 1:
                return f"race '{race.title}' has size {race.size}"
            tallied = self._races.get(race.title)
            if tallied and set(race.ciphertexts) != set(tallied[0].ciphertexts):
                return (f"race '{race.title}' lists {sorted(race.ciphertexts)}, "
                        f"expected {sorted(tallied[0].ciphertexts)}")
        return None

    def _record(self, ballot: Ballot):
        for race in ballot.races:
            self._races.setdefault(race.title, []).append(race)
        self._ballot_ids.append(ballot.ballot_id)

    # ------------------------------------------------------------------
    # Tally
    # ------------------------------------------------------------------

    def tally(self) -> Dict[str, EncryptedRaceSelection]:
        """Homomorphic per-race totals; nothing is decrypted"""
        with self._lock:
            races = {title: list(selections) for title, selections in self._races.items()}
        if not races:
            raise ValueError("No ballots cast")

        with self.monitor.start_operation("tally"):
            return {title: self.crypto.combine_races(selections)
                    for title, selections in races.items()}

    def decrypt_tally(self, shares: Optional[Sequence[AdderPrivateKeyShare]] = None) -> TallyResult:
        """Threshold-decrypt the totals and log the results"""
        totals = self.tally()
        participating = self.crypto.shares if shares is None else list(shares)

        with self.monitor.start_operation("decrypt_tally"):
            results = {}
            for title, race in totals.items():
                results[title] = self.crypto.decrypt_race(race, participating).selections

        self.announce("results", [
            [title, [[candidate, count] for candidate, count in sorted(counts.items())]]
            for title, counts in sorted(results.items())
        ])
        chain = self.verify_log()

        logger.info(f"Final tally for {self.election_id}: {results}")
        return TallyResult(
            election_id=self.election_id,
            results=results,
            num_ballots=self.num_ballots,
            shares_used=[share.index for share in participating],
            chain_valid=chain.valid
        )

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def receive(self, message: Message) -> ReceiveResult:
        """Offer a peer's announcement to the log.

        When peers are configured, only their announcements are considered.
        An accepted cast-ballot announcement also joins this host's running
        tally; a ballot that cannot be counted is logged but not raised.
        """
        source = message.source.node_id
        peers = self.config.auditorium.peers
        if peers and source not in peers and source != self.auditorium.node_id:
            logger.warning(f"Rejected {message}: {source} is not a configured peer")
            return ReceiveResult(EntryState.REJECTED, None, f"{source} is not a configured peer")

        result = self.auditorium.receive(message)
        if result.accepted:
            _, event = split_succeeds_clause(message_payload(message))
            bindings = match(CAST_BALLOT_PATTERN, event)
            if bindings is not None:
                self._count_peer_ballot(message, *bindings)
        return result

    def _count_peer_ballot(self, message: Message, ballot_id, nonce, races):
        try:
            ballot = Ballot(ballot_id.text, [self.crypto.race_from_sexp(race) for race in races], nonce.text)
        except (AdderError, UnicodeDecodeError) as e:
            logger.warning(f"Ballot in {message} cannot be read: {e}")
            return

        if not all(self.crypto.verify_race(race) for race in ballot.races):
            logger.warning(f"Ballot {ballot.ballot_id} from {message.source.node_id} failed proof verification")
            return
        with self._lock:
            if ballot.ballot_id in self._ballot_ids:
                logger.warning(f"Ballot {ballot.ballot_id} from {message.source.node_id} is already counted")
                return
            mismatch = self._race_mismatch(ballot)
            if mismatch is not None:
                logger.warning(f"Ballot {ballot.ballot_id} from {message.source.node_id}: {mismatch}")
                return
            self._record(ballot)
        logger.info(f"Counted ballot {ballot.ballot_id} cast at {message.source.node_id}")

    def verify_log(self) -> ChainVerificationResult:
        with self.monitor.start_operation("verify_chain"):
            result = self.auditorium.verify_chain()
        if not result:
            logger.error(f"Log verification failed: {result}")
        return result

    def get_system_metrics(self) -> Dict[str, object]:
        return {
            'election_id': self.election_id,
            'host_id': self.auditorium.node_id,
            'cast_ballots': self.num_ballots,
            'log_entries': len(self.auditorium.log),
            'frontier': [str(p) for p in self.auditorium.current_frontier()],
            'threshold': self.crypto.threshold,
            'shares_loaded': len(self.crypto.shares),
            'performance': self.monitor.get_summary()
        }

    def performance_report(self) -> str:
        return create_performance_report(self.monitor)

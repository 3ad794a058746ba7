"""
Hash-Chained Log
================
Per-host append-only log of announcements.  Entries live in an arena (a
list) and refer to each other only through MessagePointers, which carry the
SHA-256 of the referenced entry's datum; the frontier is the set of arena
indices not yet named as a predecessor by any later entry.

Every mutation and every snapshot read goes through one re-entrant lock, so a
host can hold it across read-frontier, sign and append.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union

from sexpression import ListExpression, SExpressionParseError, StringExpression, parse_all

from .exceptions import (
    DuplicateEntryError,
    IncorrectFormatError,
    UnknownSignerError,
    UnresolvedPredecessorError
)
from .message import Message
from .pointers import MessagePointer
from .signing import SignedMessage

logger = logging.getLogger(__name__)

SUCCEEDS = "succeeds"


class EntryState(Enum):
    """Lifecycle of a received message"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ChainFailure(Enum):
    """Why chain verification stopped"""
    MALFORMED = "malformed"
    UNCHAINED = "unchained"
    ORPHANED = "orphaned"
    HASH_MISMATCH = "hash_mismatch"
    DISCONNECTED = "disconnected"
    UNKNOWN_SIGNER = "unknown_signer"
    BAD_SIGNATURE = "bad_signature"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class LogEntry:
    index: int
    message: Message
    pointer: MessagePointer
    predecessors: Tuple[int, ...]
    chained: bool = True


@dataclass(frozen=True)
class ChainVerificationResult:
    valid: bool
    entries_checked: int
    index: Optional[int] = None
    reason: Optional[ChainFailure] = None
    detail: str = ""

    def __bool__(self) -> bool:
        return self.valid

    def __str__(self) -> str:
        if self.valid:
            return f"chain valid ({self.entries_checked} entries)"
        return f"chain broken at entry {self.index}: {self.reason.value} ({self.detail})"


def make_succeeds_clause(pointers: List[MessagePointer], event) -> ListExpression:
    """``(succeeds (ptr*) <event>)``"""
    return ListExpression((
        StringExpression(SUCCEEDS),
        ListExpression(tuple(pointer.to_sexp() for pointer in sorted(pointers))),
        event
    ))


def split_succeeds_clause(payload) -> Optional[Tuple[List[MessagePointer], object]]:
    """Return (pointers, event) from a succeeds clause, or None if ``payload`` is not one"""
    if not (isinstance(payload, ListExpression) and len(payload) == 3
            and isinstance(payload[0], StringExpression)
            and payload[0].value == SUCCEEDS.encode()):
        return None
    if not isinstance(payload[1], ListExpression):
        raise IncorrectFormatError(f"Succeeds clause has no pointer list: {payload[1]}")
    return [MessagePointer.from_sexp(p) for p in payload[1]], payload[2]


def message_payload(message: Message):
    """The signed payload carried in a message's datum"""
    return SignedMessage.from_sexp(message.datum).payload


class Log:
    """Arena of accepted entries plus the current frontier"""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else None
        self._entries: List[LogEntry] = []
        self._by_pointer: Dict[MessagePointer, int] = {}
        self._by_position: Dict[Tuple[str, int], int] = {}
        self._by_digest: Dict[str, int] = {}
        self._frontier: Set[int] = set()
        self._lock = threading.RLock()

        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self.entries())

    def entries(self) -> List[LogEntry]:
        """Consistent snapshot of every entry"""
        with self._lock:
            return list(self._entries)

    def entry(self, index: int) -> LogEntry:
        with self._lock:
            return self._entries[index]

    def resolve(self, pointer: MessagePointer) -> Optional[int]:
        """Arena index of the entry ``pointer`` names, hash included"""
        with self._lock:
            return self._by_pointer.get(pointer)

    def contains(self, pointer: MessagePointer) -> bool:
        return self.resolve(pointer) is not None

    def has_position(self, node_id: str, sequence: int) -> bool:
        with self._lock:
            return (node_id, sequence) in self._by_position

    def has_digest(self, digest: str) -> bool:
        """True if some entry already carries a datum with this SHA-256"""
        with self._lock:
            return digest in self._by_digest

    def next_sequence(self, node_id: str) -> int:
        with self._lock:
            sequences = [seq for (node, seq) in self._by_position if node == node_id]
        return max(sequences) + 1 if sequences else 0

    def current_frontier(self) -> List[MessagePointer]:
        """Entries not yet succeeded by any later entry, in pointer order"""
        with self._lock:
            return sorted(self._entries[i].pointer for i in self._frontier)

    # ------------------------------------------------------------------
    # Appends
    # ------------------------------------------------------------------

    def append(self, message: Message) -> LogEntry:
        """Append a chained message and advance the frontier.

        Every pointer in the message's succeeds clause must resolve to an
        entry already in the log.
        """
        split = split_succeeds_clause(message_payload(message))
        if split is None:
            raise IncorrectFormatError(f"Message {message} has no succeeds clause")
        pointers, _ = split

        with self._lock:
            self._check_new(message)
            predecessors = []
            for pointer in pointers:
                index = self._by_pointer.get(pointer)
                if index is None:
                    raise UnresolvedPredecessorError(f"{message} succeeds unknown entry {pointer}")
                predecessors.append(index)
            return self._store(message, tuple(predecessors), chained=True)

    def append_unchained(self, message: Message) -> LogEntry:
        """Append without linking to or updating the frontier"""
        with self._lock:
            self._check_new(message)
            entry = self._store(message, (), chained=False)
        logger.warning(f"Appended unchained entry {entry.index} ({message})")
        return entry

    def _check_new(self, message: Message):
        if (message.source.node_id, message.sequence) in self._by_position:
            raise DuplicateEntryError(f"{message} is already logged")
        # The sequence number sits outside the signed datum, so a replayed
        # datum under a fresh sequence is only caught by its digest
        replayed = self._by_digest.get(message.digest)
        if replayed is not None:
            raise DuplicateEntryError(f"{message} repeats the datum of entry {replayed}")

    def _store(self, message: Message, predecessors: Tuple[int, ...], chained: bool,
               indexed: bool = True) -> LogEntry:
        entry = LogEntry(len(self._entries), message, message.pointer, predecessors, chained)
        self._entries.append(entry)
        if indexed:
            self._by_pointer[entry.pointer] = entry.index
            self._by_position[entry.pointer.position] = entry.index
            self._by_digest[entry.pointer.digest] = entry.index
        if chained:
            self._frontier.difference_update(predecessors)
            self._frontier.add(entry.index)
        if self.path is not None:
            with open(self.path, 'ab') as f:
                f.write(message.to_bytes())
        return entry

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_chain(self, keystore=None) -> ChainVerificationResult:
        """Replay every entry and stop at the first broken link.

        Each succeeds clause must name only earlier entries, by matching
        hash; only a leading run of entries may have an empty clause.  With a
        ``keystore`` every signature is checked as well.
        """
        entries = self.entries()
        seen: Dict[Tuple[str, int], str] = {}
        seen_digests: Set[str] = set()
        in_root_prefix = True

        def failure(index: int, reason: ChainFailure, detail: str) -> ChainVerificationResult:
            logger.error(f"Chain verification failed at entry {index}: {reason.value} ({detail})")
            return ChainVerificationResult(False, index, index, reason, detail)

        for entry in entries:
            message = entry.message
            if entry.pointer.position in seen:
                return failure(entry.index, ChainFailure.DUPLICATE,
                               f"{message.source.node_id} #{message.sequence} is logged twice")
            if entry.pointer.digest in seen_digests:
                return failure(entry.index, ChainFailure.DUPLICATE, "datum repeats an earlier entry")
            try:
                signed = SignedMessage.from_sexp(message.datum)
                split = split_succeeds_clause(signed.payload)
            except IncorrectFormatError as e:
                return failure(entry.index, ChainFailure.MALFORMED, str(e))

            if keystore is not None:
                try:
                    certificate = keystore.load_certificate(signed.signer_id)
                except UnknownSignerError as e:
                    return failure(entry.index, ChainFailure.UNKNOWN_SIGNER, str(e))
                if signed.signer_id != message.source.node_id or not signed.verify(certificate):
                    return failure(entry.index, ChainFailure.BAD_SIGNATURE,
                                   f"signature by {signed.signer_id} does not verify")

            if split is None:
                return failure(entry.index, ChainFailure.UNCHAINED, "entry has no succeeds clause")

            pointers, _ = split
            if not pointers:
                if not in_root_prefix:
                    return failure(entry.index, ChainFailure.DISCONNECTED,
                                   "empty succeeds clause after the first entries")
            else:
                in_root_prefix = False
                for pointer in pointers:
                    digest = seen.get(pointer.position)
                    if digest is None:
                        return failure(entry.index, ChainFailure.ORPHANED,
                                       f"{pointer} names no earlier entry")
                    if digest != pointer.digest:
                        return failure(entry.index, ChainFailure.HASH_MISMATCH,
                                       f"{pointer} does not match the logged entry")

            seen[entry.pointer.position] = entry.pointer.digest
            seen_digests.add(entry.pointer.digest)

        logger.debug(f"Verified chain of {len(entries)} entries")
        return ChainVerificationResult(True, len(entries))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'Log':
        """Replay a log file as written.

        Entries are stored as found, repeats included, and broken links are
        left for verify_chain to report by index.  A record that is not a
        message at all raises IncorrectFormatError naming its position.
        """
        path = Path(path)
        try:
            terms = parse_all(path.read_bytes())
        except SExpressionParseError as e:
            raise IncorrectFormatError(f"{path}: not a sequence of canonical S-expressions: {e}") from e

        log = cls()
        with log._lock:
            for index, term in enumerate(terms):
                try:
                    message = Message.from_sexp(term)
                except IncorrectFormatError as e:
                    raise IncorrectFormatError(f"{path}: entry {index} is not a message: {e}") from e
                try:
                    log._check_new(message)
                except DuplicateEntryError as e:
                    logger.warning(f"{path}: entry {index}: {e}")
                    log._store(message, (), chained=False, indexed=False)
                    continue
                try:
                    split = split_succeeds_clause(message_payload(message))
                except IncorrectFormatError:
                    split = None
                if split is None:
                    log._store(message, (), chained=False)
                    continue
                resolved = [log._by_pointer.get(pointer) for pointer in split[0]]
                log._store(message, tuple(i for i in resolved if i is not None), chained=True)

        log.path = path
        logger.info(f"Loaded {len(log)} entries from {path}")
        return log

"""
Auditorium Host
===============
One election host's view of the auditorium: its own log, the layers that
sign and chain what it announces, and the verify-and-accept path for
announcements delivered by peers.  Transport is not handled here; a caller
hands in Message objects and publishes the ones this host produces.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sexpression import SExpression

from .exceptions import IncorrectFormatError, SignatureError, UnknownSignerError
from .keystore import KeyStore
from .layers import IntegrityLayer, TemporalLayer
from .log import ChainVerificationResult, EntryState, Log
from .message import ANNOUNCE, Message
from .pointers import HostPointer, MessagePointer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReceiveResult:
    """Outcome of offering a peer message to the log"""
    state: EntryState
    pointer: Optional[MessagePointer] = None
    reason: str = ""
    index: Optional[int] = None

    @property
    def accepted(self) -> bool:
        return self.state is EntryState.ACCEPTED


class AuditoriumHost:
    """Signs, chains and logs this host's announcements and vets peers'"""

    def __init__(self, host_pointer: HostPointer, keystore: KeyStore, log: Optional[Log] = None):
        self.host_pointer = host_pointer
        self.keystore = keystore
        self.log = log if log is not None else Log()
        self.integrity = IntegrityLayer(host_pointer.node_id, keystore)
        self.temporal = TemporalLayer(self.log)
        self._next_sequence = self.log.next_sequence(host_pointer.node_id)

        if not keystore.has_signing_key(host_pointer.node_id):
            logger.warning(f"Host {host_pointer.node_id} holds no signing key; it can only receive")

    @property
    def node_id(self) -> str:
        return self.host_pointer.node_id

    def _take_sequence(self) -> int:
        sequence = self._next_sequence
        self._next_sequence += 1
        return sequence

    def log_announcement(self, event: SExpression) -> Message:
        """Chain ``event`` to the current frontier, sign it, and log it.

        The frontier read and the append happen under one lock, so the new
        entry's succeeds clause is exactly the frontier it replaces.
        """
        with self.log.lock:
            payload = self.temporal.make_announcement(event)
            datum = self.integrity.make_announcement(payload)
            message = Message(ANNOUNCE, self.host_pointer, self._take_sequence(), datum)
            entry = self.log.append(message)

        logger.debug(f"Logged announcement {entry.pointer} succeeding {len(entry.predecessors)} entries")
        return message

    def log_announcement_no_chain(self, event: SExpression) -> Message:
        """Sign and log ``event`` with no succeeds clause.

        Produces an entry verify_chain rejects; only tamper scenarios use it.
        """
        with self.log.lock:
            datum = self.integrity.make_announcement(event)
            message = Message(ANNOUNCE, self.host_pointer, self._take_sequence(), datum)
            self.log.append_unchained(message)
        return message

    def receive(self, message: Message) -> ReceiveResult:
        """Verify a peer's announcement and append it if it holds up.

        A message is rejected (never raised) for a bad or unknown signature,
        a signer other than its source host, a missing succeeds clause, a
        predecessor this log does not hold, an empty succeeds clause on a
        non-empty log, or a host/sequence or datum already logged.
        """
        logger.debug(f"Received {message} ({EntryState.PENDING.value})")

        def reject(reason: str) -> ReceiveResult:
            logger.warning(f"Rejected {message}: {reason}")
            return ReceiveResult(EntryState.REJECTED, None, reason)

        if message.type != ANNOUNCE:
            return reject(f"unsupported message type '{message.type}'")

        try:
            signer_id, payload = self.integrity.receive_announcement(message.datum)
        except UnknownSignerError as e:
            return reject(f"unknown signer: {e}")
        except SignatureError as e:
            return reject(f"bad signature: {e}")
        except IncorrectFormatError as e:
            return reject(f"malformed datum: {e}")

        if signer_id != message.source.node_id:
            return reject(f"signed by {signer_id} but sent as {message.source.node_id}")

        try:
            predecessors, _ = self.temporal.receive_announcement(payload)
        except IncorrectFormatError as e:
            return reject(str(e))

        with self.log.lock:
            if self.log.has_position(message.source.node_id, message.sequence):
                return reject("duplicate announcement")
            if self.log.has_digest(message.digest):
                return reject("duplicate announcement: datum already logged under another sequence")
            for pointer in predecessors:
                if not self.log.contains(pointer):
                    return reject(f"succeeds unknown entry {pointer}")
            if not predecessors and len(self.log) > 0:
                return reject("empty succeeds clause on a non-empty log")
            entry = self.log.append(message)

        logger.info(f"Accepted {message} as entry {entry.index}")
        return ReceiveResult(EntryState.ACCEPTED, entry.pointer, "", entry.index)

    def verify_chain(self) -> ChainVerificationResult:
        return self.log.verify_chain(self.keystore)

    def current_frontier(self) -> List[MessagePointer]:
        return self.log.current_frontier()

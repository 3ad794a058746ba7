"""
Integrity and Temporal Layers
=============================
Outgoing events pass through the temporal layer (which wraps them in a
succeeds clause naming the log's current frontier) and then the integrity
layer (which signs the result).  Incoming data is unwrapped in the reverse
order: verify the signature, then split off the succeeds clause.
"""

import logging
from typing import List, Tuple

from sexpression import SExpression

from .exceptions import IncorrectFormatError, SignatureError
from .keystore import KeyStore
from .log import Log, make_succeeds_clause, split_succeeds_clause
from .pointers import MessagePointer
from .signing import SignedMessage

logger = logging.getLogger(__name__)


class IntegrityLayer:
    """Signs outgoing payloads and authenticates incoming ones"""

    def __init__(self, host_id: str, keystore: KeyStore):
        self.host_id = host_id
        self.keystore = keystore

    def make_announcement(self, payload: SExpression) -> SExpression:
        signing_key = self.keystore.load_signing_key(self.host_id)
        return SignedMessage.create(self.host_id, payload, signing_key).to_sexp()

    def receive_announcement(self, datum: SExpression) -> Tuple[str, SExpression]:
        """Return (signer id, payload) or raise if the signature does not hold"""
        signed = SignedMessage.from_sexp(datum)
        certificate = self.keystore.load_certificate(signed.signer_id)
        if not signed.verify(certificate):
            logger.warning(f"Rejecting announcement with a forged signature for {signed.signer_id}")
            raise SignatureError(f"Signature by {signed.signer_id} does not verify")
        return signed.signer_id, signed.payload


class TemporalLayer:
    """Links each outgoing event to the log's frontier"""

    def __init__(self, log: Log):
        self.log = log

    def make_announcement(self, event: SExpression) -> SExpression:
        """Callers hold the log lock until the result has been appended"""
        return make_succeeds_clause(self.log.current_frontier(), event)

    def receive_announcement(self, payload: SExpression) -> Tuple[List[MessagePointer], SExpression]:
        split = split_succeeds_clause(payload)
        if split is None:
            raise IncorrectFormatError("Announcement has no succeeds clause")
        return split


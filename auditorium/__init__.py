"""Signed, hash-chained, causally ordered event log shared by election hosts."""

from .exceptions import (
    AuditoriumError,
    IncorrectFormatError,
    UnknownSignerError,
    SignatureError,
    CertificateError,
    DuplicateEntryError,
    UnresolvedPredecessorError
)
from .pointers import HostPointer, MessagePointer
from .message import Message, ANNOUNCE
from .signing import Signature, Certificate, SignedMessage, sign, verify, verify_bytes
from .keystore import KeyStore
from .authority import ElectionAuthority
from .log import (
    Log,
    LogEntry,
    EntryState,
    ChainFailure,
    ChainVerificationResult,
    make_succeeds_clause,
    split_succeeds_clause,
    message_payload
)
from .layers import IntegrityLayer, TemporalLayer
from .host import AuditoriumHost, ReceiveResult

__version__ = "1.0.0"

__all__ = [
    # Hosts and layers
    'AuditoriumHost',
    'ReceiveResult',
    'IntegrityLayer',
    'TemporalLayer',

    # Log
    'Log',
    'LogEntry',
    'EntryState',
    'ChainFailure',
    'ChainVerificationResult',
    'make_succeeds_clause',
    'split_succeeds_clause',
    'message_payload',

    # Messages and pointers
    'HostPointer',
    'MessagePointer',
    'Message',
    'ANNOUNCE',

    # Signatures and trust
    'Signature',
    'Certificate',
    'SignedMessage',
    'sign',
    'verify',
    'verify_bytes',
    'KeyStore',
    'ElectionAuthority',

    # Exceptions
    'AuditoriumError',
    'IncorrectFormatError',
    'UnknownSignerError',
    'SignatureError',
    'CertificateError',
    'DuplicateEntryError',
    'UnresolvedPredecessorError'
]

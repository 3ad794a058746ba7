"""Exceptions raised by the auditorium log, integrity and temporal layers."""


class AuditoriumError(Exception):
    """Base exception for auditorium operations"""
    pass


class IncorrectFormatError(AuditoriumError, ValueError):
    """Raised when a message or pointer does not have the expected shape"""
    pass


class UnknownSignerError(AuditoriumError):
    """Raised when no certificate is enrolled for a host id"""
    pass


class SignatureError(AuditoriumError):
    """Raised when a signature does not verify against the signer's certificate"""
    pass


class CertificateError(AuditoriumError):
    """Raised when a certificate was not issued by the election authority"""
    pass


class DuplicateEntryError(AuditoriumError):
    """Raised when a message with the same host and sequence is already logged"""
    pass


class UnresolvedPredecessorError(AuditoriumError):
    """Raised when a succeeds clause names an entry the log does not hold"""
    pass

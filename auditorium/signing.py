"""
Signatures and Certificates
===========================
Ed25519 signatures over canonical S-expression bytes, and X.509 host
certificates issued by the election authority.  Ed25519 is deterministic, so
the same payload and key always give the same signature.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.x509.oid import NameOID

from sexpression import (
    SExpression,
    ListExpression,
    StringExpression,
    SExpressionParseError,
    expect_atom,
    expect_tagged
)

from .exceptions import CertificateError, IncorrectFormatError

logger = logging.getLogger(__name__)

SIGNATURE_ALGORITHM = "ed25519"

Payload = Union[SExpression, bytes]


def _payload_bytes(payload: Payload) -> bytes:
    if isinstance(payload, SExpression):
        return payload.to_bytes()
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    raise TypeError(f"Cannot sign payload of type {type(payload).__name__}")


@dataclass(frozen=True)
class Signature:
    algorithm: str
    value: bytes

    def to_sexp(self) -> ListExpression:
        return ListExpression((
            StringExpression("signature"),
            StringExpression(self.algorithm),
            StringExpression(self.value)
        ))

    @classmethod
    def from_sexp(cls, expression: SExpression) -> 'Signature':
        try:
            lst = expect_tagged(expression, "signature", 3)
            algorithm = expect_atom(lst[1], "signature algorithm").text
            value = expect_atom(lst[2], "signature value").value
        except (SExpressionParseError, UnicodeDecodeError) as e:
            raise IncorrectFormatError(f"Malformed signature: {e}") from e
        return cls(algorithm, value)


@dataclass(frozen=True)
class Certificate:
    """A host's enrolled X.509 certificate; the subject CN is the host id"""
    x509_cert: x509.Certificate

    @property
    def host_id(self) -> str:
        attributes = self.x509_cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        if not attributes:
            raise CertificateError("Certificate has no common name")
        return attributes[0].value

    @property
    def public_key(self) -> Ed25519PublicKey:
        key = self.x509_cert.public_key()
        if not isinstance(key, Ed25519PublicKey):
            raise CertificateError(f"Certificate for {self.host_id} does not carry an Ed25519 key")
        return key

    def is_valid_at(self, when: Optional[datetime] = None) -> bool:
        when = when or datetime.now(timezone.utc)
        return self.x509_cert.not_valid_before_utc <= when <= self.x509_cert.not_valid_after_utc

    def verify_issued_by(self, issuer: 'Certificate'):
        """Raise CertificateError unless ``issuer`` signed this certificate"""
        if self.x509_cert.issuer != issuer.x509_cert.subject:
            raise CertificateError(f"Certificate for {self.host_id} names a different issuer")
        try:
            issuer.public_key.verify(self.x509_cert.signature, self.x509_cert.tbs_certificate_bytes)
        except InvalidSignature as e:
            raise CertificateError(f"Certificate for {self.host_id} has an invalid issuer signature") from e
        if not self.is_valid_at():
            raise CertificateError(f"Certificate for {self.host_id} is outside its validity period")

    def to_pem(self) -> bytes:
        return self.x509_cert.public_bytes(serialization.Encoding.PEM)

    @classmethod
    def from_pem(cls, data: bytes) -> 'Certificate':
        try:
            return cls(x509.load_pem_x509_certificate(data))
        except ValueError as e:
            raise CertificateError(f"Unreadable certificate: {e}") from e


def sign(payload: Payload, signing_key: Ed25519PrivateKey) -> Signature:
    """Sign the exact canonical bytes of ``payload``"""
    return Signature(SIGNATURE_ALGORITHM, signing_key.sign(_payload_bytes(payload)))


def verify_bytes(data: bytes, signature: Signature, public_key: Ed25519PublicKey) -> bool:
    if signature.algorithm != SIGNATURE_ALGORITHM:
        logger.debug(f"Unsupported signature algorithm {signature.algorithm}")
        return False
    try:
        public_key.verify(signature.value, data)
        return True
    except InvalidSignature:
        return False


def verify(payload: Payload, signature: Signature, certificate: Certificate) -> bool:
    """True only if ``signature`` covers exactly these canonical bytes"""
    return verify_bytes(_payload_bytes(payload), signature, certificate.public_key)


@dataclass(frozen=True)
class SignedMessage:
    """``(signed-message <signer-id> (signature ...) <payload>)``"""
    signer_id: str
    signature: Signature
    payload: SExpression

    @classmethod
    def create(cls, signer_id: str, payload: SExpression, signing_key: Ed25519PrivateKey) -> 'SignedMessage':
        return cls(signer_id, sign(payload, signing_key), payload)

    def verify(self, certificate: Certificate) -> bool:
        return verify(self.payload, self.signature, certificate)

    def to_sexp(self) -> ListExpression:
        return ListExpression((
            StringExpression("signed-message"),
            StringExpression(self.signer_id),
            self.signature.to_sexp(),
            self.payload
        ))

    @classmethod
    def from_sexp(cls, expression: SExpression) -> 'SignedMessage':
        try:
            lst = expect_tagged(expression, "signed-message", 4)
            signer_id = expect_atom(lst[1], "signer id").text
        except (SExpressionParseError, UnicodeDecodeError) as e:
            raise IncorrectFormatError(f"Malformed signed message: {e}") from e
        return cls(signer_id, Signature.from_sexp(lst[2]), lst[3])

"""
Trust Store
===========
Resolves host ids to enrolled certificates (and, for the local host, its
signing key).  Every certificate is checked against the election authority's
CA certificate when it is added; a host id with no certificate raises
UnknownSignerError rather than being trusted by default.

Directory layout::

    ca.pem          election authority certificate
    <host>.pem      host certificate
    <host>.key      host signing key (PKCS8 PEM), present only where needed
"""

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from .exceptions import CertificateError, UnknownSignerError
from .signing import Certificate

logger = logging.getLogger(__name__)

CA_CERTIFICATE_FILE = "ca.pem"


class KeyStore:
    """In-memory certificate and signing key store anchored at one CA"""

    def __init__(self, ca_certificate: Certificate):
        self.ca_certificate = ca_certificate
        self._certificates: Dict[str, Certificate] = {}
        self._signing_keys: Dict[str, Ed25519PrivateKey] = {}
        self._lock = threading.RLock()

    @property
    def host_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._certificates)

    def add_certificate(self, certificate: Certificate) -> str:
        certificate.verify_issued_by(self.ca_certificate)
        host_id = certificate.host_id
        with self._lock:
            self._certificates[host_id] = certificate
        logger.debug(f"Enrolled certificate for host {host_id}")
        return host_id

    def add_signing_key(self, host_id: str, signing_key: Ed25519PrivateKey):
        with self._lock:
            certificate = self._certificates.get(host_id)
            if certificate is None:
                raise UnknownSignerError(f"No certificate enrolled for host {host_id}")
            if (certificate.public_key.public_bytes_raw()
                    != signing_key.public_key().public_bytes_raw()):
                raise CertificateError(f"Signing key does not match the certificate for host {host_id}")
            self._signing_keys[host_id] = signing_key

    def load_certificate(self, host_id: str) -> Certificate:
        with self._lock:
            certificate = self._certificates.get(host_id)
        if certificate is None:
            raise UnknownSignerError(f"No certificate enrolled for host {host_id}")
        return certificate

    def load_signing_key(self, host_id: str) -> Ed25519PrivateKey:
        with self._lock:
            key = self._signing_keys.get(host_id)
        if key is None:
            raise UnknownSignerError(f"No signing key held for host {host_id}")
        return key

    def has_signing_key(self, host_id: str) -> bool:
        with self._lock:
            return host_id in self._signing_keys

    def save(self, directory: Union[str, Path], include_keys: Optional[List[str]] = None) -> Path:
        """Write the CA, every certificate, and the signing keys of ``include_keys``"""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        (directory / CA_CERTIFICATE_FILE).write_bytes(self.ca_certificate.to_pem())

        with self._lock:
            for host_id, certificate in self._certificates.items():
                (directory / f"{host_id}.pem").write_bytes(certificate.to_pem())
            for host_id in include_keys or []:
                key = self._signing_keys.get(host_id)
                if key is None:
                    raise UnknownSignerError(f"No signing key held for host {host_id}")
                (directory / f"{host_id}.key").write_bytes(key.private_bytes(
                    encoding=serialization.Encoding.PEM,
                    format=serialization.PrivateFormat.PKCS8,
                    encryption_algorithm=serialization.NoEncryption()
                ))

        logger.info(f"Trust store written to {directory}")
        return directory

    @classmethod
    def from_directory(cls, directory: Union[str, Path]) -> 'KeyStore':
        directory = Path(directory)
        ca_path = directory / CA_CERTIFICATE_FILE
        if not ca_path.exists():
            raise CertificateError(f"Trust store {directory} has no {CA_CERTIFICATE_FILE}")

        store = cls(Certificate.from_pem(ca_path.read_bytes()))
        for cert_path in sorted(directory.glob("*.pem")):
            if cert_path.name == CA_CERTIFICATE_FILE:
                continue
            host_id = store.add_certificate(Certificate.from_pem(cert_path.read_bytes()))
            if host_id != cert_path.stem:
                raise CertificateError(f"{cert_path.name} holds the certificate for host {host_id}")

        for key_path in sorted(directory.glob("*.key")):
            key = serialization.load_pem_private_key(key_path.read_bytes(), password=None)
            if not isinstance(key, Ed25519PrivateKey):
                raise CertificateError(f"{key_path.name} is not an Ed25519 private key")
            store.add_signing_key(key_path.stem, key)

        logger.info(f"Loaded trust store from {directory}: {len(store.host_ids)} hosts")
        return store

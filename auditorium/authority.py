"""Election certificate authority: issues Ed25519 host certificates."""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Tuple

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.x509.oid import NameOID

from .keystore import KeyStore
from .signing import Certificate

logger = logging.getLogger(__name__)


class ElectionAuthority:
    """Self-signed CA that enrolls every host taking part in an election"""

    def __init__(self, name: str = "Election Authority", validity_days: int = 30):
        self.name = name
        self.validity_days = validity_days
        self._ca_key = Ed25519PrivateKey.generate()
        self._issued: Dict[str, Tuple[Certificate, Ed25519PrivateKey]] = {}
        self._lock = threading.RLock()

        now = datetime.now(timezone.utc)
        subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, name)])
        builder = x509.CertificateBuilder()
        builder = builder.subject_name(subject)
        builder = builder.issuer_name(subject)
        builder = builder.not_valid_before(now - timedelta(days=1))
        builder = builder.not_valid_after(now + timedelta(days=validity_days))
        builder = builder.serial_number(x509.random_serial_number())
        builder = builder.public_key(self._ca_key.public_key())
        builder = builder.add_extension(
            x509.BasicConstraints(ca=True, path_length=0), critical=True
        )
        self.ca_certificate = Certificate(builder.sign(self._ca_key, None))

        logger.info(f"Initialized election authority '{name}'")

    def issue_host_credentials(self, host_id: str) -> Tuple[Certificate, Ed25519PrivateKey]:
        """Generate a signing key for ``host_id`` and certify it"""
        with self._lock:
            if host_id in self._issued:
                return self._issued[host_id]

            signing_key = Ed25519PrivateKey.generate()
            now = datetime.now(timezone.utc)
            builder = x509.CertificateBuilder()
            builder = builder.subject_name(x509.Name([
                x509.NameAttribute(NameOID.COMMON_NAME, host_id),
            ]))
            builder = builder.issuer_name(self.ca_certificate.x509_cert.subject)
            builder = builder.not_valid_before(now - timedelta(minutes=5))
            builder = builder.not_valid_after(now + timedelta(days=self.validity_days))
            builder = builder.serial_number(x509.random_serial_number())
            builder = builder.public_key(signing_key.public_key())
            builder = builder.add_extension(
                x509.BasicConstraints(ca=False, path_length=None), critical=True
            )

            certificate = Certificate(builder.sign(self._ca_key, None))
            self._issued[host_id] = (certificate, signing_key)

        logger.info(f"Issued certificate for host {host_id}")
        return certificate, signing_key

    def create_keystore(self, host_ids: Iterable[str], signing_hosts: Iterable[str] = ()) -> KeyStore:
        """Trust store enrolling ``host_ids`` and holding keys for ``signing_hosts``"""
        store = KeyStore(self.ca_certificate)
        signing_hosts = set(signing_hosts)
        for host_id in host_ids:
            certificate, signing_key = self.issue_host_credentials(host_id)
            store.add_certificate(certificate)
            if host_id in signing_hosts:
                store.add_signing_key(host_id, signing_key)
        return store

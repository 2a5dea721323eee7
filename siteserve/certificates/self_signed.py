"""Locally generated self-signed certificates for development TLS."""

import ipaddress
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from siteserve.certificates.base import (
    GENERATION_LOCKS,
    RENEWAL_WINDOW_DAYS,
    Certificate,
    CertificateGenerationError,
    CertificateProvider,
    IdentityLocks,
    KeyGenerationError,
)
from siteserve.domain.connection_id import ConnectionLoggerAdapter

CERT_LOGGER = ConnectionLoggerAdapter(
    logging.getLogger("siteserve.certificates.self_signed"), {}
)

DEFAULT_IDENTITY = "localhost"
VALIDITY = timedelta(days=90)
DEFAULT_KEY_SIZE = 4096
ORGANIZATION = "SiteServe Development"
LOOPBACK_ADDRESSES = ("127.0.0.1", "::1")


def _subject_alternative_names(identity: str) -> x509.SubjectAlternativeName:
    dns_names = [DEFAULT_IDENTITY]
    if identity != DEFAULT_IDENTITY:
        dns_names.append(identity)
    entries: list[x509.GeneralName] = [x509.DNSName(name) for name in dns_names]
    entries.extend(
        x509.IPAddress(ipaddress.ip_address(address)) for address in LOOPBACK_ADDRESSES
    )
    return x509.SubjectAlternativeName(entries)


class SelfSignedCertificateProvider(CertificateProvider):
    """Generate-or-reuse a 90 day RSA certificate stored as ``<identity>.crt/.key``."""

    def __init__(
        self,
        directory: Union[str, Path] = ".",
        key_size: int = DEFAULT_KEY_SIZE,
        email: Optional[str] = None,
        locks: IdentityLocks = GENERATION_LOCKS,
    ) -> None:
        self._directory = Path(directory)
        self._key_size = key_size
        self._email = email
        self._locks = locks

    def certificate_path(self, identity: str) -> Path:
        return self._directory / f"{identity}.crt"

    def private_key_path(self, identity: str) -> Path:
        return self._directory / f"{identity}.key"

    def ensure(self, identity: str = DEFAULT_IDENTITY) -> Certificate:
        """Return the stored certificate for ``identity``, generating it if absent.

        Existing artifacts are returned as found; their expiry is not checked
        here (see :meth:`renew`).
        """
        cert_path = self.certificate_path(identity)
        key_path = self.private_key_path(identity)
        with self._locks.for_identity(identity):
            if cert_path.exists() and key_path.exists():
                CERT_LOGGER.info(
                    "Using existing certificate",
                    extra={"event": "certificate_reused", "path": cert_path.as_posix()},
                )
            else:
                self._generate(identity, cert_path, key_path)
        return Certificate.from_files(cert_path, key_path)

    def renew(self, identity: str = DEFAULT_IDENTITY) -> Certificate:
        """Regenerate the certificate when it expires within the renewal window."""
        cert_path = self.certificate_path(identity)
        key_path = self.private_key_path(identity)
        with self._locks.for_identity(identity):
            if cert_path.exists() and key_path.exists():
                current = Certificate.from_files(cert_path, key_path)
                if not current.expires_within(RENEWAL_WINDOW_DAYS):
                    CERT_LOGGER.info(
                        "Certificate not due for renewal",
                        extra={"event": "renewal_skipped", "identity": identity},
                    )
                    return current
            self._generate(identity, cert_path, key_path)
        return Certificate.from_files(cert_path, key_path)

    def _generate_key(self) -> rsa.RSAPrivateKey:
        try:
            return rsa.generate_private_key(
                public_exponent=65537, key_size=self._key_size
            )
        except (ValueError, UnsupportedAlgorithm) as error:
            raise KeyGenerationError(
                f"Failed to generate {self._key_size}-bit RSA key: {error}"
            ) from error

    def _build_certificate(
        self, identity: str, private_key: rsa.RSAPrivateKey
    ) -> x509.Certificate:
        attributes = [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, ORGANIZATION),
            x509.NameAttribute(NameOID.COMMON_NAME, identity),
        ]
        if self._email:
            attributes.append(x509.NameAttribute(NameOID.EMAIL_ADDRESS, self._email))
        name = x509.Name(attributes)
        not_before = datetime.now(timezone.utc).replace(microsecond=0)
        return (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(private_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_before + VALIDITY)
            .add_extension(_subject_alternative_names(identity), critical=False)
            .add_extension(
                x509.BasicConstraints(ca=False, path_length=None), critical=True
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=True,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
                critical=False,
            )
            .sign(private_key, hashes.SHA256())
        )

    def _generate(self, identity: str, cert_path: Path, key_path: Path) -> None:
        CERT_LOGGER.info(
            "Generating self-signed certificate",
            extra={"event": "certificate_generating", "identity": identity},
        )
        private_key = self._generate_key()
        try:
            certificate = self._build_certificate(identity, private_key)
            key_pem = private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.TraditionalOpenSSL,
                encryption_algorithm=serialization.NoEncryption(),
            )
            cert_pem = certificate.public_bytes(serialization.Encoding.PEM)
            self._directory.mkdir(parents=True, exist_ok=True)
            descriptor = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(descriptor, "wb") as key_file:
                key_file.write(key_pem)
            cert_path.write_bytes(cert_pem)
        except (ValueError, TypeError, OSError) as error:
            raise CertificateGenerationError(
                f"Failed to generate certificate for {identity}: {error}"
            ) from error
        CERT_LOGGER.info(
            "Self-signed certificate generated",
            extra={
                "event": "certificate_generated",
                "identity": identity,
                "path": cert_path.as_posix(),
            },
        )

"""Certificate record, provider interface and provisioning errors."""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.x509.oid import NameOID

RENEWAL_WINDOW_DAYS = 30


class CertificateProvisioningError(Exception):
    """Base class for failures that prevent a TLS site from starting."""


class KeyGenerationError(CertificateProvisioningError):
    """Raised when a private key could not be generated."""


class CertificateGenerationError(CertificateProvisioningError):
    """Raised when a self-signed certificate could not be built or stored."""


class CertificateLoadError(CertificateProvisioningError):
    """Raised when certificate material exists but cannot be used."""


class IssuanceToolNotFoundError(CertificateProvisioningError):
    """Raised when the external issuance tool is missing or not runnable."""


class CertificateIssuanceError(CertificateProvisioningError):
    """Raised when the external issuance tool reports a failure."""


class CertificateNotFoundError(CertificateProvisioningError):
    """Raised when issuance succeeded but the artifacts are not where expected."""


@dataclass(frozen=True)
class Certificate:
    """PEM certificate and key material together with its validity window."""

    certificate_bytes: bytes
    private_key_bytes: bytes
    not_before: datetime
    not_after: datetime
    subject_names: frozenset[str]
    certificate_path: Path
    private_key_path: Path

    @classmethod
    def from_files(cls, certificate_path: Path, private_key_path: Path) -> "Certificate":
        """Load PEM artifacts from disk without judging their validity."""
        try:
            certificate_bytes = certificate_path.read_bytes()
            private_key_bytes = private_key_path.read_bytes()
            parsed = x509.load_pem_x509_certificate(certificate_bytes)
        except (OSError, ValueError) as error:
            raise CertificateLoadError(
                f"Cannot load certificate {certificate_path}: {error}"
            ) from error
        return cls(
            certificate_bytes=certificate_bytes,
            private_key_bytes=private_key_bytes,
            not_before=parsed.not_valid_before_utc,
            not_after=parsed.not_valid_after_utc,
            subject_names=subject_names_of(parsed),
            certificate_path=certificate_path,
            private_key_path=private_key_path,
        )

    def remaining(self, now: datetime | None = None) -> timedelta:
        """Return the time left before expiry as a timedelta."""
        return self.not_after - (now or datetime.now(timezone.utc))

    def expires_within(self, days: int, now: datetime | None = None) -> bool:
        return self.remaining(now).total_seconds() < days * 86400


def subject_names_of(certificate: x509.Certificate) -> frozenset[str]:
    """Collect the common name and every SAN entry as strings."""
    names = {
        attribute.value
        for attribute in certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    }
    try:
        san = certificate.extensions.get_extension_for_class(
            x509.SubjectAlternativeName
        ).value
    except x509.ExtensionNotFound:
        return frozenset(str(name) for name in names)
    names.update(san.get_values_for_type(x509.DNSName))
    names.update(str(ip) for ip in san.get_values_for_type(x509.IPAddress))
    return frozenset(str(name) for name in names)


class CertificateProvider(ABC):
    """Capability that supplies TLS material for an identity (host or domain)."""

    @abstractmethod
    def ensure(self, identity: str) -> Certificate:
        """Return usable material for ``identity``, creating it when needed."""

    @abstractmethod
    def renew(self, identity: str) -> Certificate:
        """Refresh material for ``identity`` when it is due."""


class IdentityLocks:
    """Hands out one lock per identity so generation never races on disk."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def for_identity(self, identity: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(identity)
            if lock is None:
                lock = threading.Lock()
                self._locks[identity] = lock
            return lock


GENERATION_LOCKS = IdentityLocks()

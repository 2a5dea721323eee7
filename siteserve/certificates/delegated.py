"""Certificates issued by a public CA through the certbot client."""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Optional, Union

from siteserve.certificates.base import (
    GENERATION_LOCKS,
    RENEWAL_WINDOW_DAYS,
    Certificate,
    CertificateIssuanceError,
    CertificateLoadError,
    CertificateNotFoundError,
    CertificateProvider,
    IdentityLocks,
    IssuanceToolNotFoundError,
)
from siteserve.domain.connection_id import ConnectionLoggerAdapter

ACME_LOGGER = ConnectionLoggerAdapter(
    logging.getLogger("siteserve.certificates.delegated"), {}
)

DEFAULT_TOOL = "certbot"
DEFAULT_CERT_ROOT = "/etc/letsencrypt/live"
FULLCHAIN_NAME = "fullchain.pem"
PRIVKEY_NAME = "privkey.pem"
STDERR_TAIL_CHARS = 2000

INSTALL_HINT = """certbot was not found or cannot be executed. Install it first:
  macOS:    brew install certbot
  Ubuntu:   sudo apt-get install certbot
  CentOS:   sudo yum install certbot
  pip:      pip install certbot
See https://certbot.eff.org/instructions for more options."""

Runner = Callable[..., subprocess.CompletedProcess]


class DelegatedCertificateProvider(CertificateProvider):
    """Obtain and renew certificates via HTTP-01 validation against a webroot."""

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        email: str,
        webroot: Union[str, Path],
        cert_root: Union[str, Path] = DEFAULT_CERT_ROOT,
        staging: bool = False,
        tool: str = DEFAULT_TOOL,
        runner: Runner = subprocess.run,
        locks: IdentityLocks = GENERATION_LOCKS,
    ) -> None:
        self._email = email
        self._webroot = Path(webroot)
        self._cert_root = Path(cert_root)
        self._staging = staging
        self._tool = tool
        self._run = runner
        self._locks = locks

    def certificate_path(self, domain: str) -> Path:
        return self._cert_root / domain / FULLCHAIN_NAME

    def private_key_path(self, domain: str) -> Path:
        return self._cert_root / domain / PRIVKEY_NAME

    def _tool_path(self) -> str:
        resolved = shutil.which(self._tool)
        if resolved is None or not os.access(resolved, os.X_OK):
            ACME_LOGGER.error(
                "Issuance tool not found",
                extra={"event": "acme_tool_missing", "command": self._tool},
            )
            raise IssuanceToolNotFoundError(INSTALL_HINT)
        try:
            result = self._run(
                [resolved, "--version"], capture_output=True, text=True, check=False
            )
        except OSError as error:
            raise IssuanceToolNotFoundError(INSTALL_HINT) from error
        if result.returncode != 0:
            ACME_LOGGER.error(
                "Issuance tool found but not runnable",
                extra={"event": "acme_tool_broken", "returncode": result.returncode},
            )
            raise IssuanceToolNotFoundError(INSTALL_HINT)
        return resolved

    def _existing(self, domain: str) -> Optional[Certificate]:
        """Return the stored certificate when it has more than 30 days left."""
        cert_path = self.certificate_path(domain)
        key_path = self.private_key_path(domain)
        if not (cert_path.exists() and key_path.exists()):
            ACME_LOGGER.info(
                "No stored certificate for domain",
                extra={"event": "acme_certificate_missing", "identity": domain},
            )
            return None
        try:
            certificate = Certificate.from_files(cert_path, key_path)
        except CertificateLoadError:
            ACME_LOGGER.warning(
                "Stored certificate is unreadable",
                extra={"event": "acme_certificate_invalid", "identity": domain},
            )
            return None
        if certificate.expires_within(RENEWAL_WINDOW_DAYS):
            ACME_LOGGER.info(
                "Stored certificate expires soon",
                extra={"event": "acme_certificate_expiring", "identity": domain},
            )
            return None
        return certificate

    def _invoke(self, command: list[str], domain: str) -> None:
        ACME_LOGGER.info(
            "Running issuance tool",
            extra={"event": "acme_tool_started", "command": " ".join(command)},
        )
        try:
            result = self._run(command, capture_output=True, text=True, check=False)
        except OSError as error:
            raise CertificateIssuanceError(
                f"Could not run {self._tool} for {domain}: {error}"
            ) from error
        if result.returncode != 0:
            stderr = (result.stderr or "")[-STDERR_TAIL_CHARS:]
            ACME_LOGGER.error(
                "Issuance tool failed",
                extra={
                    "event": "acme_tool_failed",
                    "identity": domain,
                    "returncode": result.returncode,
                    "error": stderr,
                },
            )
            raise CertificateIssuanceError(
                f"{self._tool} exited with status {result.returncode} for {domain}: "
                f"{stderr.strip()}"
            )

    def _load_issued(self, domain: str) -> Certificate:
        cert_path = self.certificate_path(domain)
        key_path = self.private_key_path(domain)
        if not (cert_path.exists() and key_path.exists()):
            raise CertificateNotFoundError(
                f"Certificate for {domain} not found under {cert_path.parent}"
            )
        return Certificate.from_files(cert_path, key_path)

    def ensure(
        self,
        identity: str,
        email: Optional[str] = None,
        webroot: Union[str, Path, None] = None,
    ) -> Certificate:
        """Return a certificate for domain ``identity``, issuing one when needed."""
        tool_path = self._tool_path()
        target_webroot = Path(webroot) if webroot is not None else self._webroot
        contact = email or self._email
        with self._locks.for_identity(identity):
            # Checked under the lock so concurrent callers share one issuance.
            existing = self._existing(identity)
            if existing is not None:
                ACME_LOGGER.info(
                    "Reusing valid certificate",
                    extra={"event": "acme_certificate_reused", "identity": identity},
                )
                return existing

            try:
                target_webroot.mkdir(parents=True, exist_ok=True)
            except OSError as error:
                raise CertificateIssuanceError(
                    f"Cannot create webroot {target_webroot}: {error}"
                ) from error

            command = [
                tool_path,
                "certonly",
                "--webroot",
                "--webroot-path",
                str(target_webroot),
                "--email",
                contact,
                "--agree-tos",
                "--non-interactive",
                "--domains",
                identity,
            ]
            if self._staging:
                command.append("--staging")
            self._invoke(command, identity)

        certificate = self._load_issued(identity)
        ACME_LOGGER.info(
            "Certificate obtained",
            extra={
                "event": "acme_certificate_issued",
                "identity": identity,
                "path": certificate.certificate_path.as_posix(),
            },
        )
        return certificate

    def renew(self, identity: str) -> Certificate:
        """Run the renewal workflow for one certificate; a no-op when not due."""
        tool_path = self._tool_path()
        with self._locks.for_identity(identity):
            self._invoke(
                [tool_path, "renew", "--cert-name", identity, "--non-interactive"],
                identity,
            )
        return self._load_issued(identity)

    def renew_all(self) -> None:
        """Run the renewal workflow for every managed certificate."""
        tool_path = self._tool_path()
        self._invoke([tool_path, "renew", "--non-interactive"], "all certificates")
        ACME_LOGGER.info("Renewal check completed", extra={"event": "acme_renewed_all"})

"""Listening socket creation and TLS context configuration."""

import logging
import socket
import ssl

from siteserve.bootstrap.config import ACCEPT_POLL_SECONDS, LISTEN_BACKLOG
from siteserve.bootstrap.site_registry import SiteConfig
from siteserve.certificates.base import Certificate, CertificateLoadError
from siteserve.domain.connection_id import ConnectionLoggerAdapter

SOCKET_LOGGER = ConnectionLoggerAdapter(logging.getLogger("siteserve.socket"), {})


def create_server_socket(site: SiteConfig) -> socket.socket:
    """Bind and listen on the site's address with a short accept timeout."""
    server_socket = socket.create_server(
        (site.host, site.port),
        backlog=LISTEN_BACKLOG,
        reuse_port=hasattr(socket, "SO_REUSEPORT"),
    )
    server_socket.settimeout(ACCEPT_POLL_SECONDS)
    return server_socket


def create_tls_context(certificate: Certificate) -> ssl.SSLContext:
    """Build a server-side TLS context from provisioned certificate files."""
    tls_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    tls_context.minimum_version = ssl.TLSVersion.TLSv1_2
    try:
        tls_context.load_cert_chain(
            str(certificate.certificate_path), str(certificate.private_key_path)
        )
    except (ssl.SSLError, OSError) as error:
        SOCKET_LOGGER.critical(
            "Failed to load TLS certificates",
            extra={
                "event": "tls_load_failed",
                "path": certificate.certificate_path.as_posix(),
                "error": str(error),
            },
        )
        raise CertificateLoadError(
            f"Cannot load {certificate.certificate_path}: {error}"
        ) from error
    return tls_context

"""Static site server with optional TLS and Caddyfile-style configuration."""

import argparse
import logging
import signal
import sys
from pathlib import Path

from siteserve.bootstrap.config import (
    DEFAULT_HTTP_PORT,
    DEFAULT_HTTPS_PORT,
    parse_cli_args,
    server_config_from_args,
)
from siteserve.bootstrap.logging_setup import configure_logging
from siteserve.bootstrap.site_registry import SiteConfig, SiteRegistry
from siteserve.bootstrap.socket_factory import create_tls_context
from siteserve.certificates.base import CertificateProvisioningError
from siteserve.certificates.delegated import DelegatedCertificateProvider
from siteserve.certificates.self_signed import (
    DEFAULT_IDENTITY,
    SelfSignedCertificateProvider,
)
from siteserve.domain.connection_id import ConnectionLoggerAdapter
from siteserve.transport.accept_loop import Listener
from siteserve.transport.context import TransportFactory
from siteserve.transport.stream import PlainTransportFactory, TlsTransportFactory

SERVER_LOGGER = ConnectionLoggerAdapter(logging.getLogger("siteserve.server"), {})


def load_registry(args: argparse.Namespace) -> SiteRegistry:
    """Use the configuration file when present, otherwise the CLI site flags."""
    if Path(args.config).exists():
        return SiteRegistry.load(args.config)
    port = args.port
    if port is None:
        port = DEFAULT_HTTPS_PORT if args.https else DEFAULT_HTTP_PORT
    site = SiteConfig(args.host, port, args.root, args.https)
    return SiteRegistry([site], debug=False)


def _delegated_provider(
    args: argparse.Namespace, site: SiteConfig
) -> DelegatedCertificateProvider:
    if not args.acme_email:
        raise CertificateProvisioningError("--acme-email is required with --acme-domain")
    return DelegatedCertificateProvider(
        email=args.acme_email,
        webroot=args.acme_webroot or site.document_root,
        cert_root=args.acme_cert_root,
        staging=args.acme_staging,
    )


def build_transport_factory(
    site: SiteConfig, args: argparse.Namespace
) -> TransportFactory:
    """Provision certificates for TLS sites; plain sites pass bytes through."""
    if not site.tls_enabled:
        return PlainTransportFactory()
    if args.acme_domain:
        certificate = _delegated_provider(args, site).ensure(args.acme_domain)
    else:
        provider = SelfSignedCertificateProvider(args.cert_dir, email=args.acme_email)
        certificate = provider.ensure(DEFAULT_IDENTITY)
        SERVER_LOGGER.warning(
            "Using self-signed certificate - browsers will show security warnings",
            extra={"event": "self_signed_in_use", "path": str(certificate.certificate_path)},
        )
    return TlsTransportFactory(create_tls_context(certificate))


def renew_certificates(args: argparse.Namespace) -> int:
    try:
        provider = DelegatedCertificateProvider(
            email=args.acme_email or "",
            webroot=args.acme_webroot or args.root,
            cert_root=args.acme_cert_root,
            staging=args.acme_staging,
        )
        if args.acme_domain:
            provider.renew(args.acme_domain)
        else:
            provider.renew_all()
    except CertificateProvisioningError as error:
        SERVER_LOGGER.critical(
            "Certificate renewal failed",
            extra={"event": "renewal_failed", "error": str(error)},
        )
        return 1
    return 0


def main() -> None:
    """Start a listener for the first configured site and serve until signalled."""
    args = parse_cli_args(sys.argv[1:])
    log_level = "DEBUG" if args.debug else args.log_level
    configure_logging(log_level, args.log_destination, args.json_logs)
    registry = load_registry(args)
    if registry.debug and log_level != "DEBUG":
        configure_logging("DEBUG", args.log_destination, args.json_logs)

    if args.renew_certificates:
        sys.exit(renew_certificates(args))

    if len(registry.sites) > 1:
        SERVER_LOGGER.warning(
            "Multi-site configuration detected but not yet supported; "
            "serving the first site only",
            extra={"event": "multi_site_ignored", "site_count": len(registry.sites)},
        )
    site = registry.primary
    config = server_config_from_args(args)

    try:
        transport_factory = build_transport_factory(site, args)
    except CertificateProvisioningError as error:
        SERVER_LOGGER.critical(
            "TLS certificate provisioning failed; refusing to start",
            extra={
                "event": "certificate_provisioning_failed",
                "host": site.host,
                "port": site.port,
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )
        sys.exit(1)

    listener = Listener(site, transport_factory, config=config)

    def shutdown_handler(signum: int, _frame) -> None:
        SERVER_LOGGER.info(
            "Received shutdown signal", extra={"event": "shutdown_signal", "signal": signum}
        )
        listener.stop()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    SERVER_LOGGER.info(
        "Starting server",
        extra={
            "event": "server_starting",
            "host": site.host,
            "port": site.port,
            "document_root": site.document_root,
            "tls": site.tls_enabled,
        },
    )
    try:
        listener.serve_forever()
    except OSError as error:
        SERVER_LOGGER.critical(
            "Could not bind listening socket",
            extra={
                "event": "bind_failed",
                "host": site.host,
                "port": site.port,
                "error": str(error),
            },
        )
        sys.exit(1)


if __name__ == "__main__":
    main()

"""Server configuration and CLI argument parsing."""

import argparse
import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


SERVER_NAME = "SiteServe"
SERVER_VERSION = "1.0"
SERVER_HEADER = f"{SERVER_NAME}/{SERVER_VERSION}"

DEFAULT_CONFIG_PATH = os.getenv("SITESERVE_CONFIG", "Caddyfile")
DEFAULT_HOST = "localhost"
DEFAULT_HTTP_PORT = 8080
DEFAULT_HTTPS_PORT = 8443
DEFAULT_DOCUMENT_ROOT = "serve"
DEFAULT_CERT_DIR = os.getenv("SITESERVE_CERT_DIR", ".")
DEFAULT_ACME_CERT_ROOT = "/etc/letsencrypt/live"

DEFAULT_READ_BUFFER_BYTES = _env_int("SITESERVE_READ_BUFFER_BYTES", 65536)
DEFAULT_MAX_CONNECTIONS = _env_int("SITESERVE_MAX_CONNECTIONS", 0)
DEFAULT_SOCKET_TIMEOUT = _env_int("SITESERVE_SOCKET_TIMEOUT", 30)
DEFAULT_SHUTDOWN_GRACE_SECONDS = _env_int("SITESERVE_SHUTDOWN_GRACE_SECONDS", 10)
DEFAULT_JSON_LOGS = _env_bool("SITESERVE_JSON_LOGS", True)
DEFAULT_ACME_STAGING = _env_bool("SITESERVE_ACME_STAGING", False)

ACCEPT_POLL_SECONDS = 0.5
LISTEN_BACKLOG = 128


@dataclass(frozen=True)
class ServerConfig:
    """Runtime knobs shared by the listener and its workers."""

    socket_timeout: float = DEFAULT_SOCKET_TIMEOUT
    shutdown_grace_seconds: float = DEFAULT_SHUTDOWN_GRACE_SECONDS
    max_connections: int = DEFAULT_MAX_CONNECTIONS
    read_buffer_bytes: int = DEFAULT_READ_BUFFER_BYTES


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for server configuration."""
    parser = argparse.ArgumentParser(
        prog="siteserve",
        description="Static file server with optional TLS and Caddyfile-style sites",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help="Caddyfile-style site configuration (default: %(default)s)",
    )
    parser.add_argument(
        "-d", "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "-s",
        "--https",
        action="store_true",
        help="Serve over TLS with a self-signed certificate when no config file exists",
    )
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=None,
        help=f"Port to listen on (default: {DEFAULT_HTTP_PORT}, "
        f"or {DEFAULT_HTTPS_PORT} with --https)",
    )
    parser.add_argument(
        "-r",
        "--root",
        default=DEFAULT_DOCUMENT_ROOT,
        help="Document root served when no config file exists",
    )
    parser.add_argument(
        "--cert-dir",
        default=DEFAULT_CERT_DIR,
        help="Directory holding the self-signed localhost.crt/localhost.key",
    )
    parser.add_argument(
        "--acme-domain",
        help="Obtain the TLS certificate for this domain from a public CA via certbot",
    )
    parser.add_argument("--acme-email", help="Contact email for ACME registration")
    parser.add_argument(
        "--acme-webroot",
        default=None,
        help="Webroot for HTTP-01 challenges (default: the site's document root)",
    )
    parser.add_argument("--acme-cert-root", default=DEFAULT_ACME_CERT_ROOT)
    parser.add_argument(
        "--acme-staging",
        action=argparse.BooleanOptionalAction,
        default=DEFAULT_ACME_STAGING,
        help="Use the CA's staging environment",
    )
    parser.add_argument(
        "--renew-certificates",
        action="store_true",
        help="Renew every certbot-managed certificate that is due, then exit",
    )
    default_log_level = os.getenv("SITESERVE_LOG_LEVEL", "INFO").upper()
    default_destination = os.getenv("SITESERVE_LOG_DESTINATION", "stdout")
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=default_destination,
        help="stdout or a file path",
    )
    parser.add_argument(
        "--json-logs",
        action=argparse.BooleanOptionalAction,
        default=DEFAULT_JSON_LOGS,
        help="Emit structured JSON log lines",
    )
    parser.add_argument(
        "--max-connections",
        type=int,
        default=DEFAULT_MAX_CONNECTIONS,
        help="Maximum concurrent connections (0 for unlimited)",
    )
    parser.add_argument(
        "--socket-timeout",
        type=int,
        default=DEFAULT_SOCKET_TIMEOUT,
        help="Socket timeout in seconds for handshake, read and write",
    )
    parser.add_argument(
        "--shutdown-grace-seconds",
        type=int,
        default=DEFAULT_SHUTDOWN_GRACE_SECONDS,
        help="Grace period in seconds for in-flight connections on shutdown",
    )
    return parser.parse_args(argv)


def server_config_from_args(args: argparse.Namespace) -> ServerConfig:
    return ServerConfig(
        socket_timeout=args.socket_timeout,
        shutdown_grace_seconds=args.shutdown_grace_seconds,
        max_connections=args.max_connections,
    )

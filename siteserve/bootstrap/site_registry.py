"""Caddyfile-style site configuration parsing.

Example::

    debug

    localhost:8080 {
        root * serve
    }

    https://example.org {
        root * /srv/www
        tls internal
    }
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional, Union

from siteserve.bootstrap.config import (
    DEFAULT_DOCUMENT_ROOT,
    DEFAULT_HOST,
    DEFAULT_HTTP_PORT,
)
from siteserve.domain.connection_id import ConnectionLoggerAdapter

REGISTRY_LOGGER = ConnectionLoggerAdapter(
    logging.getLogger("siteserve.bootstrap.sites"), {}
)

HTTP_SCHEME = "http://"
HTTPS_SCHEME = "https://"
PLAIN_DEFAULT_PORT = 80
TLS_DEFAULT_PORT = 443


@dataclass(frozen=True)
class SiteConfig:
    """One configured site: bind address, port, document root and TLS flag."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_HTTP_PORT
    document_root: str = DEFAULT_DOCUMENT_ROOT
    tls_enabled: bool = False


DEFAULT_SITE = SiteConfig()


def _parse_port(raw: str, default: int) -> int:
    try:
        port = int(raw)
    except ValueError:
        return default
    if 0 <= port <= 65535:
        return port
    return default


def parse_address(address: str) -> tuple[str, int, bool]:
    """Split a site address into ``(host, port, tls_enabled)``."""
    if not address:
        return DEFAULT_HOST, DEFAULT_HTTP_PORT, False

    tls_enabled = False
    default_port = PLAIN_DEFAULT_PORT
    if address.startswith(HTTPS_SCHEME):
        address = address[len(HTTPS_SCHEME) :]
        tls_enabled = True
        default_port = TLS_DEFAULT_PORT
    elif address.startswith(HTTP_SCHEME):
        address = address[len(HTTP_SCHEME) :]

    host, separator, raw_port = address.partition(":")
    port = _parse_port(raw_port, default_port) if separator else default_port
    return host or DEFAULT_HOST, port, tls_enabled


def _apply_directive(site: SiteConfig, parts: list[str]) -> SiteConfig:
    keyword = parts[0].lower()
    if keyword == "root":
        # root * <path> | root <path>
        if len(parts) >= 3 and parts[1] == "*":
            return replace(site, document_root=parts[2])
        if len(parts) >= 2 and parts[1] != "*":
            return replace(site, document_root=parts[1])
        return site
    if keyword == "tls":
        return replace(site, tls_enabled=True)
    REGISTRY_LOGGER.debug(
        "Ignoring unknown directive", extra={"event": "unknown_directive", "target": keyword}
    )
    return site


@dataclass(frozen=True)
class SiteRegistry:
    """Ordered site definitions plus the process-wide debug flag."""

    sites: list[SiteConfig] = field(default_factory=lambda: [DEFAULT_SITE])
    debug: bool = False

    @property
    def primary(self) -> SiteConfig:
        return self.sites[0]

    @classmethod
    def parse(cls, source: str) -> "SiteRegistry":
        """Parse configuration text; zero parsed blocks yields the default site."""
        sites: list[SiteConfig] = []
        debug = False
        current: Optional[SiteConfig] = None

        for line in source.splitlines():
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue

            if current is None and stripped.lower() == "debug":
                debug = True
                continue

            if "{" in stripped:
                address = stripped.replace("{", "").strip()
                host, port, tls_enabled = parse_address(address)
                current = SiteConfig(host, port, DEFAULT_DOCUMENT_ROOT, tls_enabled)
                continue

            if stripped == "}":
                if current is not None:
                    sites.append(current)
                current = None
                continue

            if current is not None:
                current = _apply_directive(current, stripped.split())

        if current is not None:
            REGISTRY_LOGGER.warning(
                "Discarding unterminated site block",
                extra={"event": "unterminated_block", "host": current.host},
            )

        if not sites:
            return cls([DEFAULT_SITE], debug)
        return cls(sites, debug)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "SiteRegistry":
        """Read and parse a configuration file, falling back to the default site."""
        config_path = Path(path)
        try:
            source = config_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            REGISTRY_LOGGER.info(
                "No site configuration found, using defaults",
                extra={"event": "config_missing", "path": config_path.as_posix()},
            )
            return cls()
        except (OSError, UnicodeDecodeError) as error:
            REGISTRY_LOGGER.warning(
                "Could not read site configuration, using defaults",
                extra={
                    "event": "config_unreadable",
                    "path": config_path.as_posix(),
                    "error_type": type(error).__name__,
                },
            )
            return cls()
        registry = cls.parse(source)
        REGISTRY_LOGGER.info(
            "Site configuration loaded",
            extra={
                "event": "config_loaded",
                "path": config_path.as_posix(),
                "site_count": len(registry.sites),
            },
        )
        return registry

"""Unit tests for Caddyfile-style site configuration parsing."""

from pathlib import Path

import pytest

from siteserve.bootstrap.site_registry import (
    DEFAULT_SITE,
    SiteConfig,
    SiteRegistry,
    parse_address,
)


@pytest.mark.parametrize(
    "source",
    ["", "\n\n", "# only a comment\n", "debug\n", "localhost:9000 {\n  root * x\n"],
)
def test_parse_without_blocks_yields_single_default_site(source: str) -> None:
    """Zero parsed site blocks must produce exactly the default site."""
    registry = SiteRegistry.parse(source)
    assert registry.sites == [DEFAULT_SITE]
    assert DEFAULT_SITE == SiteConfig("localhost", 8080, "serve", False)


def test_root_and_tls_internal_directives() -> None:
    source = "localhost:8443 {\n    root * public\n    tls internal\n}\n"
    registry = SiteRegistry.parse(source)
    assert registry.sites == [SiteConfig("localhost", 8443, "public", True)]


def test_root_without_wildcard_and_bare_tls() -> None:
    source = "example.test:9000 {\n root /srv/site\n tls\n}\n"
    site = SiteRegistry.parse(source).primary
    assert site.document_root == "/srv/site"
    assert site.tls_enabled is True


def test_block_without_directives_keeps_default_root() -> None:
    site = SiteRegistry.parse("localhost:7000 {\n}\n").primary
    assert site == SiteConfig("localhost", 7000, "serve", False)


def test_multiple_blocks_are_kept_in_file_order() -> None:
    source = """
# two sites
localhost:8080 {
    root * serve
}

localhost:8443 {
    root * secure
    tls internal
}
"""
    registry = SiteRegistry.parse(source)
    assert [site.port for site in registry.sites] == [8080, 8443]
    assert registry.primary.port == 8080
    assert registry.sites[1].tls_enabled


def test_top_level_debug_token_enables_debug() -> None:
    registry = SiteRegistry.parse("DEBUG\nlocalhost:8080 {\n}\n")
    assert registry.debug is True
    assert SiteRegistry.parse("localhost:8080 {\n}\n").debug is False


def test_comments_and_unknown_directives_are_ignored() -> None:
    source = "localhost:8080 {\n  # root * nope\n  encode gzip\n  root * docs\n}\n"
    assert SiteRegistry.parse(source).primary.document_root == "docs"


@pytest.mark.parametrize(
    ("address", "expected"),
    [
        ("http://example.test", ("example.test", 80, False)),
        ("http://example.test:8000", ("example.test", 8000, False)),
        ("https://example.test", ("example.test", 443, True)),
        ("https://example.test:8443", ("example.test", 8443, True)),
        ("example.test:9090", ("example.test", 9090, False)),
        ("example.test", ("example.test", 80, False)),
        ("example.test:notaport", ("example.test", 80, False)),
        ("example.test:70000", ("example.test", 80, False)),
        ("", ("localhost", 8080, False)),
    ],
)
def test_parse_address(address: str, expected: tuple) -> None:
    assert parse_address(address) == expected


def test_https_scheme_and_tls_directive_both_enable_tls() -> None:
    assert SiteRegistry.parse("https://example.test {\n}\n").primary.tls_enabled
    http_with_tls = SiteRegistry.parse("http://example.test {\n tls\n}\n").primary
    assert http_with_tls.tls_enabled
    assert http_with_tls.port == 80


def test_load_missing_file_returns_default(tmp_path: Path) -> None:
    registry = SiteRegistry.load(tmp_path / "Caddyfile")
    assert registry.sites == [DEFAULT_SITE]
    assert registry.debug is False


def test_load_undecodable_file_returns_default(tmp_path: Path) -> None:
    config = tmp_path / "Caddyfile"
    config.write_bytes(b"\xff\xfe\x00garbage")
    assert SiteRegistry.load(config).sites == [DEFAULT_SITE]


def test_load_reads_file(tmp_path: Path) -> None:
    config = tmp_path / "Caddyfile"
    config.write_text("127.0.0.1:9001 {\n root * site\n}\n")
    assert SiteRegistry.load(config).primary == SiteConfig("127.0.0.1", 9001, "site", False)


def test_site_config_is_immutable() -> None:
    with pytest.raises(AttributeError):
        DEFAULT_SITE.port = 1  # type: ignore[misc]

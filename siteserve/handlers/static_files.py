"""Static resource resolution against a site's document root."""

import html
import logging
from dataclasses import dataclass
from typing import Optional

from siteserve.bootstrap.config import SERVER_NAME
from siteserve.domain.connection_id import ConnectionLoggerAdapter
from siteserve.domain.media_types import media_type_for
from siteserve.domain.sandbox import ForbiddenPath, resolve_sandbox_path, sanitize_target

FILE_LOGGER = ConnectionLoggerAdapter(
    logging.getLogger("siteserve.handlers.static"), {}
)

NOT_FOUND_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <title>404 Not Found</title>
    <style>
        body {{ font-family: Arial, sans-serif; margin: 50px; }}
        .error {{ color: #e74c3c; }}
        .path {{ background: #f8f9fa; padding: 10px; border-radius: 5px; font-family: monospace; }}
    </style>
</head>
<body>
    <h1 class="error">404 - Not Found</h1>
    <p>The requested resource was not found:</p>
    <div class="path">{path}</div>
    <hr>
    <small>{server} HTTP Server</small>
</body>
</html>
"""


@dataclass(frozen=True)
class ResolvedResource:
    """Outcome of resolving a request target: bytes, media type and status."""

    body: Optional[bytes]
    media_type: str
    status_code: int


def not_found_page(sanitized_path: str) -> bytes:
    return NOT_FOUND_TEMPLATE.format(
        path=html.escape(sanitized_path), server=SERVER_NAME
    ).encode("utf-8")


def _not_found(sanitized_path: str) -> ResolvedResource:
    FILE_LOGGER.info(
        "File not found",
        extra={"event": "file_not_found", "path": sanitized_path},
    )
    return ResolvedResource(not_found_page(sanitized_path), "text/html", 404)


def resolve(document_root: str, target: str) -> ResolvedResource:
    """Map a request target to file bytes, a media type and a status code."""
    sanitized_path = sanitize_target(target)
    try:
        file_path = resolve_sandbox_path(document_root, sanitized_path)
        found = file_path.exists()
    except ForbiddenPath:
        FILE_LOGGER.warning(
            "Path escapes document root",
            extra={"event": "forbidden_path", "path": sanitized_path},
        )
        return _not_found(sanitized_path)
    except OSError as error:
        # e.g. ENAMETOOLONG: such a path cannot name an existing file.
        FILE_LOGGER.info(
            "Path cannot be looked up",
            extra={
                "event": "path_lookup_failed",
                "path": sanitized_path,
                "error_type": type(error).__name__,
            },
        )
        return _not_found(sanitized_path)

    if not found:
        return _not_found(sanitized_path)

    try:
        body = file_path.read_bytes()
    except OSError as error:
        FILE_LOGGER.error(
            "File exists but could not be read",
            extra={
                "event": "file_unreadable",
                "path": sanitized_path,
                "error_type": type(error).__name__,
            },
        )
        return ResolvedResource(None, "text/plain", 500)

    if FILE_LOGGER.logger.isEnabledFor(logging.DEBUG):
        FILE_LOGGER.debug(
            "File read complete",
            extra={
                "event": "file_read_complete",
                "path": sanitized_path,
                "bytes_out": len(body),
            },
        )
    return ResolvedResource(body, media_type_for(sanitized_path), 200)

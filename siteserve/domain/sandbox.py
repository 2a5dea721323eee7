"""Request-target normalization confined to the document root."""

import re
import urllib.parse
from pathlib import Path

INDEX_DOCUMENT = "/index.html"
_SEPARATORS = re.compile(r"[/\\]")


class ForbiddenPath(Exception):
    """Raised when a requested path would resolve outside the document root."""


def sanitize_target(target: str) -> str:
    """Normalize a request target into a rooted, traversal-free path.

    The query string is dropped, ``/`` maps to ``/index.html``, percent escapes
    are decoded and the path is rebuilt from its segments with empty, ``.`` and
    ``..`` segments removed. Both ``/`` and ``\\`` separate segments.
    """
    path = target.split("?", 1)[0]
    if path == "/":
        path = INDEX_DOCUMENT
    if not path.startswith("/"):
        path = "/" + path

    decoded = urllib.parse.unquote(path)
    segments = [
        segment
        for segment in _SEPARATORS.split(decoded)
        if segment not in ("", ".", "..")
    ]
    if not segments:
        return INDEX_DOCUMENT
    return "/" + "/".join(segments)


def resolve_sandbox_path(document_root: str, sanitized_path: str) -> Path:
    """Join a sanitized path onto the root, rejecting anything that escapes it."""
    if "\x00" in sanitized_path:
        raise ForbiddenPath

    root = Path(document_root).resolve()
    target = (root / sanitized_path.lstrip("/")).resolve()
    if not (target == root or root in target.parents):
        raise ForbiddenPath
    return target

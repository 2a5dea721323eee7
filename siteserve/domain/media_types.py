"""Fixed file-extension to media-type table."""

from pathlib import PurePosixPath

DEFAULT_MEDIA_TYPE = "application/octet-stream"

MEDIA_TYPES = {
    "html": "text/html",
    "htm": "text/html",
    "css": "text/css",
    "js": "application/javascript",
    "json": "application/json",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "ico": "image/x-icon",
    "txt": "text/plain",
    "pdf": "application/pdf",
    "xml": "application/xml",
}


def media_type_for(path: str) -> str:
    extension = PurePosixPath(path).suffix.lstrip(".").lower()
    return MEDIA_TYPES.get(extension, DEFAULT_MEDIA_TYPE)

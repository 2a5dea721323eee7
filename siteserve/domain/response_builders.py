"""Pure HTTP response builders."""

from typing import Optional

from siteserve.bootstrap.config import SERVER_HEADER
from siteserve.domain.http_types import Response, reason_phrase


def build_response(
    status_code: int,
    media_type: str,
    body: bytes = b"",
    extra_headers: Optional[dict[str, str]] = None,
) -> Response:
    """Return a response carrying the fixed header set."""
    headers = {
        "Content-Type": media_type,
        "Content-Length": str(len(body)),
        "Server": SERVER_HEADER,
        "Connection": "close",
        **(extra_headers or {}),
    }
    return Response(status_code, reason_phrase(status_code), headers, body)


def resource_response(status_code: int, media_type: str, body: Optional[bytes]) -> Response:
    """Build a response from a resolver result; a missing body is sent empty."""
    return build_response(status_code, media_type, body or b"")


def bad_request_response() -> Response:
    """Produce the 400 sent for undecodable requests."""
    return build_response(400, "text/plain", b"Bad Request")


def method_not_allowed_response() -> Response:
    return build_response(405, "text/plain", b"Method Not Allowed")


def internal_error_response() -> Response:
    return build_response(500, "text/plain")


def connection_limited_response() -> Response:
    """Produce the 503 sent when the connection limit is reached."""
    return build_response(
        503, "text/plain", b"Connection limit exceeded", {"Retry-After": "1"}
    )

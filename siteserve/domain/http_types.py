"""Shared HTTP type definitions to avoid circular imports."""

from dataclasses import dataclass, field
from typing import Optional

HTTP_VERSION = "HTTP/1.1"

REASON_PHRASES = {
    200: "OK",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def reason_phrase(status_code: int) -> str:
    return REASON_PHRASES.get(status_code, "Unknown")


class DecodeError(ValueError):
    """Raised when request bytes do not follow the request-line/header framing."""


class MalformedRequestLine(DecodeError):
    """Raised when the request line is not exactly ``METHOD TARGET VERSION``."""


@dataclass(frozen=True)
class Request:
    """A decoded request line and its headers."""

    method: str
    target: str
    http_version: str
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def user_agent(self) -> Optional[str]:
        return self.headers.get("User-Agent")

    @property
    def referer(self) -> Optional[str]:
        return self.headers.get("Referer")

    @property
    def accept_language(self) -> Optional[str]:
        return self.headers.get("Accept-Language")

    @property
    def content_length(self) -> Optional[int]:
        """Declared body length, or None when absent or not an integer."""
        raw = self.headers.get("Content-Length")
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None


@dataclass(frozen=True)
class Response:
    """Represents an HTTP response to be written once and then closed."""

    status_code: int
    reason_phrase: str
    headers: dict[str, str]
    body: bytes = b""

    @property
    def status_line(self) -> str:
        return f"{HTTP_VERSION} {self.status_code} {self.reason_phrase}"

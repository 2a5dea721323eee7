"""HTTP/1.1 request decoding and response encoding."""

import logging
from typing import Iterable

from siteserve.domain.connection_id import ConnectionLoggerAdapter
from siteserve.domain.http_types import (
    DecodeError,
    MalformedRequestLine,
    Request,
    Response,
)

IO_LOGGER = ConnectionLoggerAdapter(logging.getLogger("siteserve.pipeline.io"), {})

CRLF = "\r\n"
HEADER_SEPARATOR = ": "


def parse_request_line(request_line: str) -> tuple[str, str, str]:
    """Split the request line into exactly ``(method, target, http_version)``."""
    tokens = request_line.split(" ")
    if len(tokens) != 3 or not all(tokens):
        raise MalformedRequestLine(f"Invalid request line: {request_line!r}")
    method, target, http_version = tokens
    return method, target, http_version


def parse_headers(lines: Iterable[str]) -> dict[str, str]:
    """Collect ``Name: Value`` pairs until the first empty line.

    Names keep their original case. Lines without ``": "`` are skipped.
    """
    parsed: dict[str, str] = {}
    for line in lines:
        if not line:
            break
        if HEADER_SEPARATOR not in line:
            continue
        name, value = line.split(HEADER_SEPARATOR, 1)
        parsed[name] = value
    return parsed


def decode_request(data: bytes) -> Request:
    """Decode the bytes of a single read into a Request."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError("Request is not valid UTF-8") from exc

    lines = text.split(CRLF)
    method, target, http_version = parse_request_line(lines[0])
    headers = parse_headers(lines[1:])
    IO_LOGGER.debug(
        "Parsed request",
        extra={"method": method, "target": target, "http_version": http_version},
    )
    return Request(method, target, http_version, headers)


def encode_response(response: Response, include_body: bool = True) -> bytes:
    """Serialize status line, headers, blank line and (optionally) the body."""
    header_lines = [response.status_line]
    header_lines.extend(f"{name}: {value}" for name, value in response.headers.items())
    header_block = (CRLF.join(header_lines) + CRLF + CRLF).encode("utf-8")
    if include_body:
        return header_block + response.body
    return header_block

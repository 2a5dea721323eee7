"""Unit tests for response construction and wire encoding."""

import pytest

from siteserve.bootstrap.config import SERVER_HEADER
from siteserve.domain.http_types import Response, reason_phrase
from siteserve.domain.response_builders import (
    bad_request_response,
    build_response,
    connection_limited_response,
    internal_error_response,
    method_not_allowed_response,
    resource_response,
)
from siteserve.pipeline.io import encode_response


@pytest.mark.parametrize(
    ("code", "phrase"),
    [
        (200, "OK"),
        (400, "Bad Request"),
        (404, "Not Found"),
        (405, "Method Not Allowed"),
        (500, "Internal Server Error"),
        (503, "Service Unavailable"),
        (418, "Unknown"),
    ],
)
def test_reason_phrases(code: int, phrase: str) -> None:
    assert reason_phrase(code) == phrase


def test_encode_response_layout() -> None:
    response = Response(200, "OK", {"Content-Type": "text/plain", "X-A": "1"}, b"hello")
    assert encode_response(response) == (
        b"HTTP/1.1 200 OK\r\nContent-Type: text/plain\r\nX-A: 1\r\n\r\nhello"
    )


def test_encode_response_without_body_keeps_headers() -> None:
    response = build_response(200, "text/html", b"<h1>hi</h1>")
    encoded = encode_response(response, include_body=False)
    assert encoded.endswith(b"\r\n\r\n")
    assert b"Content-Length: 11\r\n" in encoded
    assert b"<h1>hi</h1>" not in encoded


def test_build_response_carries_fixed_headers() -> None:
    response = build_response(200, "text/css", b"body{}")
    assert response.headers == {
        "Content-Type": "text/css",
        "Content-Length": "6",
        "Server": SERVER_HEADER,
        "Connection": "close",
    }
    assert response.status_line == "HTTP/1.1 200 OK"


def test_content_length_counts_bytes_not_characters() -> None:
    body = "héllo".encode("utf-8")
    assert build_response(200, "text/plain", body).headers["Content-Length"] == "6"


def test_resource_response_with_missing_body_is_empty() -> None:
    response = resource_response(500, "text/plain", None)
    assert response.body == b""
    assert response.headers["Content-Length"] == "0"
    assert response.reason_phrase == "Internal Server Error"


def test_error_builders() -> None:
    assert bad_request_response().status_code == 400
    assert method_not_allowed_response().body == b"Method Not Allowed"
    assert internal_error_response().body == b""


def test_connection_limited_response_has_retry_after() -> None:
    response = connection_limited_response()
    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"
    assert response.headers["Connection"] == "close"
    assert response.headers["Content-Length"] == str(len(response.body))

"""One request/response exchange per connection: decode, resolve, encode, close."""

import logging
import time
from typing import Optional

from siteserve.bootstrap.config import DEFAULT_READ_BUFFER_BYTES
from siteserve.bootstrap.logging_setup import redact_headers
from siteserve.domain.connection_id import ConnectionLoggerAdapter
from siteserve.domain.http_types import DecodeError, Request, Response
from siteserve.domain.response_builders import (
    bad_request_response,
    internal_error_response,
    method_not_allowed_response,
    resource_response,
)
from siteserve.handlers.static_files import resolve
from siteserve.pipeline.io import decode_request, encode_response
from siteserve.transport.stream import Transport

DISPATCH_LOGGER = ConnectionLoggerAdapter(
    logging.getLogger("siteserve.pipeline.dispatcher"), {}
)

READ_METHODS = frozenset({"GET", "HEAD"})


class Dispatcher:
    """Serves a single document root; shared read-only by all worker threads."""

    def __init__(
        self, document_root: str, read_buffer_bytes: int = DEFAULT_READ_BUFFER_BYTES
    ) -> None:
        self.document_root = document_root
        self.read_buffer_bytes = read_buffer_bytes

    def respond(self, request: Request) -> Response:
        """Build the response for a decoded request."""
        if request.method not in READ_METHODS:
            DISPATCH_LOGGER.info(
                "Method not allowed",
                extra={"event": "method_not_allowed", "method": request.method},
            )
            return method_not_allowed_response()
        try:
            resource = resolve(self.document_root, request.target)
        except Exception as error:  # pylint: disable=broad-except
            DISPATCH_LOGGER.error(
                "Resolving resource failed",
                extra={
                    "event": "resolve_error",
                    "target": request.target,
                    "error_type": type(error).__name__,
                },
                exc_info=True,
            )
            return internal_error_response()
        return resource_response(
            resource.status_code, resource.media_type, resource.body
        )

    def handle(self, transport: Transport) -> Optional[Response]:
        """Run one exchange on ``transport`` and always close it.

        Returns the response that was sent, or None when the client sent
        nothing or the transport failed before a response could be written.
        """
        started = time.monotonic()
        try:
            data = transport.read(self.read_buffer_bytes)
            if not data:
                if DISPATCH_LOGGER.logger.isEnabledFor(logging.DEBUG):
                    DISPATCH_LOGGER.debug(
                        "Client closed without sending a request",
                        extra={"event": "client_disconnected", "client": transport.peer},
                    )
                return None

            request: Optional[Request] = None
            try:
                request = decode_request(data)
            except DecodeError:
                DISPATCH_LOGGER.warning(
                    "Malformed request received",
                    extra={"event": "malformed_request", "client": transport.peer},
                )
                response = bad_request_response()
            else:
                _log_request(request, transport.peer)
                response = self.respond(request)

            include_body = request is None or request.method != "HEAD"
            transport.write(encode_response(response, include_body))
            _log_response(response, transport.peer, started)
            return response
        except (ConnectionError, TimeoutError, OSError) as error:
            DISPATCH_LOGGER.error(
                "Error handling client connection",
                extra={
                    "event": "connection_error",
                    "client": transport.peer,
                    "error_type": type(error).__name__,
                },
            )
            return None
        finally:
            transport.close()


def _log_request(request: Request, client: str) -> None:
    DISPATCH_LOGGER.info(
        "Request received",
        extra={
            "event": "request_received",
            "client": client,
            "method": request.method,
            "target": request.target,
            "http_version": request.http_version,
            "user_agent": request.user_agent or "unknown",
        },
    )
    if DISPATCH_LOGGER.logger.isEnabledFor(logging.DEBUG):
        DISPATCH_LOGGER.debug(
            "Request details",
            extra={
                "event": "request_details",
                "content_length": request.content_length,
                "referer": request.referer,
                "accept_language": request.accept_language,
                "headers": redact_headers(request.headers),
            },
        )


def _log_response(response: Response, client: str, started: float) -> None:
    DISPATCH_LOGGER.info(
        "Response sent",
        extra={
            "event": "response_sent",
            "client": client,
            "status_code": response.status_code,
            "content_type": response.headers.get("Content-Type"),
            "bytes_out": len(response.body),
            "duration_ms": int((time.monotonic() - started) * 1000),
        },
    )

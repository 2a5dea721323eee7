"""Byte-stream transports over accepted sockets, plain or TLS-secured."""

import logging
import socket
import ssl
from typing import Optional, Union

from siteserve.domain.connection_id import ConnectionLoggerAdapter

STREAM_LOGGER = ConnectionLoggerAdapter(
    logging.getLogger("siteserve.transport.stream"), {}
)


class Transport:
    """Read/write/close over a connected socket.

    The same interface is used whether ``sock`` is a plain socket or an
    ``ssl.SSLSocket`` that already completed its handshake.
    """

    def __init__(self, sock: Union[socket.socket, ssl.SSLSocket], peer: str) -> None:
        self._sock = sock
        self.peer = peer
        self._closed = False

    @property
    def is_secure(self) -> bool:
        return isinstance(self._sock, ssl.SSLSocket)

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, max_bytes: int) -> bytes:
        return self._sock.recv(max_bytes)

    def write(self, data: bytes) -> int:
        self._sock.sendall(data)
        return len(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._sock.shutdown(socket.SHUT_WR)
        except OSError:
            pass
        self._sock.close()
        if STREAM_LOGGER.logger.isEnabledFor(logging.DEBUG):
            STREAM_LOGGER.debug(
                "Transport closed", extra={"event": "transport_closed", "client": self.peer}
            )


class PlainTransportFactory:  # pylint: disable=too-few-public-methods
    """Pass-through transports for sites without TLS."""

    secure = False

    def accept(self, sock: socket.socket, peer: str) -> Optional[Transport]:
        return Transport(sock, peer)


class TlsTransportFactory:  # pylint: disable=too-few-public-methods
    """Transports that complete a server-side TLS handshake before use."""

    secure = True

    def __init__(self, context: ssl.SSLContext) -> None:
        self._context = context

    def accept(self, sock: socket.socket, peer: str) -> Optional[Transport]:
        """Wrap ``sock`` and handshake; on failure close it and return None."""
        try:
            tls_sock = self._context.wrap_socket(
                sock, server_side=True, do_handshake_on_connect=False
            )
        except (ssl.SSLError, OSError) as error:
            self._handshake_failed(sock, peer, error)
            return None

        try:
            tls_sock.do_handshake()
        except (ssl.SSLError, OSError) as error:
            self._handshake_failed(tls_sock, peer, error)
            return None

        if STREAM_LOGGER.logger.isEnabledFor(logging.DEBUG):
            STREAM_LOGGER.debug(
                "TLS handshake complete",
                extra={
                    "event": "tls_handshake_complete",
                    "client": peer,
                    "tls": tls_sock.version(),
                },
            )
        return Transport(tls_sock, peer)

    @staticmethod
    def _handshake_failed(
        sock: Union[socket.socket, ssl.SSLSocket], peer: str, error: Exception
    ) -> None:
        STREAM_LOGGER.warning(
            "TLS handshake failed",
            extra={
                "event": "tls_handshake_failed",
                "client": peer,
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )
        sock.close()

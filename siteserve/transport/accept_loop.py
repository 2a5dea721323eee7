"""Listener: owns one listening socket and its accept loop thread."""

import logging
import socket
import threading
from typing import Optional

from siteserve.bootstrap.config import ServerConfig
from siteserve.bootstrap.site_registry import SiteConfig
from siteserve.bootstrap.socket_factory import create_server_socket
from siteserve.domain.connection_id import ConnectionLoggerAdapter
from siteserve.domain.response_builders import connection_limited_response
from siteserve.lifecycle.state import ServerLifecycle
from siteserve.pipeline.dispatcher import Dispatcher
from siteserve.pipeline.io import encode_response
from siteserve.transport.connection_limiter import ConnectionLimiter
from siteserve.transport.context import TransportFactory, WorkerContext
from siteserve.transport.worker import format_peer, handle_client

ACCEPT_LOGGER = ConnectionLoggerAdapter(
    logging.getLogger("siteserve.transport.accept"), {}
)


class Listener:
    """Serves one site: bind on :meth:`start`, close on :meth:`stop`.

    Each accepted connection is handed to a fresh worker thread. Closing the
    owned socket is the only cancellation primitive; the accept loop also
    polls the stop flag between short accept timeouts.
    """

    def __init__(
        self,
        site: SiteConfig,
        transport_factory: TransportFactory,
        dispatcher: Optional[Dispatcher] = None,
        config: Optional[ServerConfig] = None,
    ) -> None:
        self.site = site
        self.config = config or ServerConfig()
        self.lifecycle = ServerLifecycle()
        self._socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._limiter = ConnectionLimiter(self.config.max_connections)
        self._context = WorkerContext(
            dispatcher=dispatcher
            or Dispatcher(site.document_root, self.config.read_buffer_bytes),
            transport_factory=transport_factory,
            config=self.config,
            lifecycle=self.lifecycle,
            connection_limiter=self._limiter,
        )

    @property
    def address(self) -> tuple[str, int]:
        """The bound ``(host, port)``; useful when the site asked for port 0."""
        if self._socket is None:
            return self.site.host, self.site.port
        try:
            host, port = self._socket.getsockname()[:2]
        except OSError:
            return self.site.host, self.site.port
        return host, port

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Bind the listening socket and start the accept loop thread."""
        if self._thread is not None:
            raise RuntimeError("Listener already started")
        self._socket = create_server_socket(self.site)
        host, port = self.address
        ACCEPT_LOGGER.info(
            "Server listening for connections",
            extra={
                "event": "server_listening",
                "host": host,
                "port": port,
                "document_root": self.site.document_root,
                "tls": self._context.transport_factory.secure,
            },
        )
        self._thread = threading.Thread(
            target=self._accept_loop,
            name=f"accept-{host}:{port}",
            daemon=False,
        )
        self._thread.start()

    def stop(self) -> None:
        """Request shutdown and close the owned socket."""
        self.lifecycle.request_stop()
        if self._socket is not None:
            self._socket.close()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop exits; True if it has."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def serve_forever(self) -> None:
        self.start()
        while not self.wait(timeout=1.0):
            pass

    def _dispatch(self, client_socket: socket.socket, client_address) -> None:
        if ACCEPT_LOGGER.logger.isEnabledFor(logging.DEBUG):
            ACCEPT_LOGGER.debug(
                "Client connection accepted",
                extra={"event": "client_accepted", "client": format_peer(client_address)},
            )
        if not self._limiter.acquire():
            ACCEPT_LOGGER.warning(
                "Connection limit reached",
                extra={
                    "event": "connection_limit_reached",
                    "client": format_peer(client_address),
                },
            )
            self._reject(client_socket)
            return
        thread = threading.Thread(
            target=handle_client,
            args=(client_socket, client_address, self._context),
            daemon=False,
        )
        self.lifecycle.register_worker(thread)
        try:
            thread.start()
        except RuntimeError as error:
            ACCEPT_LOGGER.error(
                "Could not start worker thread",
                extra={"event": "worker_start_failed", "error": str(error)},
            )
            self.lifecycle.cleanup_worker(thread)
            self._limiter.release()
            client_socket.close()

    def _reject(self, client_socket: socket.socket) -> None:
        # TLS sites are closed without a response.
        try:
            if not self._context.transport_factory.secure:
                client_socket.settimeout(self.config.socket_timeout)
                client_socket.sendall(encode_response(connection_limited_response()))
        except OSError:
            pass
        finally:
            client_socket.close()

    def _accept_loop(self) -> None:
        server_socket = self._socket
        try:
            while not self.lifecycle.should_stop():
                try:
                    client_socket, client_address = server_socket.accept()
                except socket.timeout:
                    continue
                except OSError as error:
                    if self.lifecycle.should_stop():
                        break
                    ACCEPT_LOGGER.error(
                        "Socket accept failed",
                        extra={"event": "accept_error", "error_type": type(error).__name__},
                    )
                    continue
                self._dispatch(client_socket, client_address)
        finally:
            server_socket.close()
            ACCEPT_LOGGER.info(
                "Waiting for active connections to complete",
                extra={
                    "event": "shutdown_waiting",
                    "active_workers": self.lifecycle.active_worker_count(),
                },
            )
            self.lifecycle.wait_for_workers(self.config.shutdown_grace_seconds)
            ACCEPT_LOGGER.info("Server shutdown complete", extra={"event": "server_stopped"})

"""Worker thread logic for a single accepted connection."""

import logging
import socket
import threading

from siteserve.domain.connection_id import ConnectionLoggerAdapter, connection_scope
from siteserve.transport.context import WorkerContext

WORKER_LOGGER = ConnectionLoggerAdapter(
    logging.getLogger("siteserve.transport.worker"), {}
)


def format_peer(client_address) -> str:
    if isinstance(client_address, tuple) and len(client_address) >= 2:
        return f"{client_address[0]}:{client_address[1]}"
    return str(client_address)


def handle_client(
    client_socket: socket.socket,
    client_address: tuple,
    context: WorkerContext,
) -> None:
    """Secure (if configured) and serve one connection, then release its slot.

    States: accepted, handshake (TLS only), reading, responding, closed.
    """
    current_thread = threading.current_thread()
    peer = format_peer(client_address)
    with connection_scope(peer):
        try:
            client_socket.settimeout(context.config.socket_timeout)
            transport = context.transport_factory.accept(client_socket, peer)
            if transport is not None:
                context.dispatcher.handle(transport)
        except Exception as error:  # pylint: disable=broad-except
            WORKER_LOGGER.error(
                "Unexpected error in worker",
                extra={
                    "event": "worker_error",
                    "error_type": type(error).__name__,
                    "error": str(error),
                },
                exc_info=True,
            )
            client_socket.close()
        finally:
            if context.connection_limiter is not None:
                context.connection_limiter.release()
            if context.lifecycle is not None:
                context.lifecycle.cleanup_worker(current_thread)

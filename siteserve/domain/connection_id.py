"""Per-connection logging context.

A worker thread enters :func:`connection_scope` for the lifetime of one
connection. Every :class:`ConnectionLoggerAdapter` record emitted inside the
scope carries the connection's short id and, unless the call names one
itself, the peer address as ``client``.
"""

import contextlib
import contextvars
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Iterator, MutableMapping, Optional

PROJECT_LOGGER_PREFIX = "siteserve."
UNSET = "-"


@dataclass(frozen=True)
class ConnectionTag:
    connection_id: str
    peer: str


_current_connection: contextvars.ContextVar[Optional[ConnectionTag]] = (
    contextvars.ContextVar("siteserve_connection", default=None)
)


def new_connection_id() -> str:
    """Return 12 random hex characters, short enough to scan in log lines."""
    return secrets.token_hex(6)


def current_connection() -> Optional[ConnectionTag]:
    return _current_connection.get()


@contextlib.contextmanager
def connection_scope(
    peer: str, connection_id: Optional[str] = None
) -> Iterator[ConnectionTag]:
    """Tag log records with a connection until the block exits.

    Scopes nest; leaving one restores whatever was current before it.
    """
    tag = ConnectionTag(connection_id or new_connection_id(), peer)
    token = _current_connection.set(tag)
    try:
        yield tag
    finally:
        _current_connection.reset(token)


def component_name(logger_name: str) -> str:
    if logger_name.startswith(PROJECT_LOGGER_PREFIX):
        return logger_name[len(PROJECT_LOGGER_PREFIX) :]
    return logger_name


class ConnectionLoggerAdapter(logging.LoggerAdapter):
    """Adds ``connection_id``, ``component`` and a default ``client`` to records."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        tag = _current_connection.get()
        if tag is None:
            extra["connection_id"] = UNSET
        else:
            extra["connection_id"] = tag.connection_id
            extra.setdefault("client", tag.peer)
        extra["component"] = component_name(self.logger.name)
        kwargs["extra"] = extra
        return msg, kwargs

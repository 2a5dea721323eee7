"""Context object shared across worker threads."""

from dataclasses import dataclass
from typing import Optional, Union

from siteserve.bootstrap.config import ServerConfig
from siteserve.lifecycle.state import ServerLifecycle
from siteserve.pipeline.dispatcher import Dispatcher
from siteserve.transport.connection_limiter import ConnectionLimiter
from siteserve.transport.stream import PlainTransportFactory, TlsTransportFactory

TransportFactory = Union[PlainTransportFactory, TlsTransportFactory]


@dataclass
class WorkerContext:
    """Read-only dependencies handed to every connection worker."""

    dispatcher: Dispatcher
    transport_factory: TransportFactory
    config: ServerConfig
    lifecycle: Optional[ServerLifecycle] = None
    connection_limiter: Optional[ConnectionLimiter] = None

"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing of the echo server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Creates the TCP listening socket, binds, listens                  │
    │  • Installs SIGTERM/SIGINT handlers                                  │
    │  • Hands the listening socket to a strategy                          │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONCURRENCY STRATEGY                              │
    │  • ThreadPerConnectionStrategy: one thread per client               │
    │  • MultiplexedStrategy: one thread, selectors readiness wait        │
    │  • Both call the same dispatcher                                     │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Wraps a client socket                                             │
    │  • recv_exact / send_exact with TransportError on short transfer     │
    │  • Closes exactly once                                               │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState, TransportError
from .strategies import (
    ConcurrencyStrategy,
    MultiplexedStrategy,
    ThreadPerConnectionStrategy,
    create_strategy,
)
from .socket_server import SocketServer

__all__ = [
    "Connection",
    "ConnectionState",
    "TransportError",
    "ConcurrencyStrategy",
    "MultiplexedStrategy",
    "ThreadPerConnectionStrategy",
    "create_strategy",
    "SocketServer",
]

"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

This module owns the listening socket. It creates, configures, binds and
listens, installs signal handlers, and then hands the socket to a
concurrency strategy that does the actual serving.

=============================================================================
SOCKET LIFECYCLE (Server Side)
=============================================================================

    1. socket()    Create a socket file descriptor
    2. bind()      Associate the socket with an IP:PORT
    3. listen()    Mark it as listening; the OS queues up to `backlog`
                   connections that haven't been accepted yet
    4. accept()    Done by the strategy, once per client
    5. close()     Release the listening socket

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── Owned by SocketServer
                    └───────────┬───────────┘
                                │ strategy.serve(listener)
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │ Client 1  │         │ Client 2  │         │ Client 3  │
    └───────────┘         └───────────┘         └───────────┘

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR:
    Rebind right after a restart instead of waiting out TIME_WAIT.

ACCEPT TIMEOUT:
    The listening socket gets a timeout of `poll_interval` seconds so the
    accept loop can notice shutdown. It does not affect clients.

=============================================================================
SIGNAL HANDLING
=============================================================================

SIGINT (Ctrl+C) and SIGTERM trigger a graceful shutdown: the strategy
stops accepting, closes every client connection, and start() returns.

Python only allows signal handlers in the main thread. When the server
runs in a background thread (tests, embedding) they are skipped and the
owner calls shutdown() directly.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Tuple

from ..config import ServerConfig
from .strategies import ConcurrencyStrategy


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP socket server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    start(strategy)                                                   │
    │        ├──► _create_socket()    socket() + SO_REUSEADDR + timeout    │
    │        ├──► bind()                                                   │
    │        ├──► listen(backlog)                                          │
    │        ├──► _setup_signals()    main thread only                     │
    │        ├──► _ready.set()                                             │
    │        └──► strategy.serve(sock)   (BLOCKS HERE)                     │
    │                                                                      │
    │    shutdown()                                                        │
    │        └──► strategy.stop()                                          │
    │                                                                      │
    │    _cleanup()                                                        │
    │        └──► restore signal handlers, close socket                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        server = SocketServer(config)
        server.start(create_strategy(config))  # Blocks until shutdown
    """

    def __init__(self, config: ServerConfig):
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._strategy: Optional[ConcurrencyStrategy] = None
        self._bound_address: Optional[Tuple[str, int]] = None

        self._running = False

        # Set once the socket is listening; cleared again on shutdown
        self._ready_event = threading.Event()
        self._shutdown_event = threading.Event()

        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The address clients should connect to.

        After bind this is the real address, so port 0 resolves to the
        port the OS picked.
        """
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        """Create and configure the listening socket."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Avoid "Address already in use" on quick restarts
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Lets the accept loop wake up and check for shutdown
        sock.settimeout(self.config.poll_interval)

        return sock

    def _setup_signals(self):
        """Install SIGTERM/SIGINT handlers for graceful shutdown."""
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, skipping signal handlers")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, strategy: ConcurrencyStrategy):
        """
        Bind, listen and serve with `strategy`.

        This method BLOCKS until shutdown() is called.

        Raises:
            OSError: The address could not be bound.
        """
        self._strategy = strategy
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._bound_address = self._socket.getsockname()[:2]

        self._running = True
        self._shutdown_event.clear()

        self._setup_signals()

        logger.info(f"Server listening on {self.address[0]}:{self.address[1]}")
        self._ready_event.set()

        try:
            strategy.serve(self._socket)
        finally:
            self._cleanup()

    def shutdown(self):
        """
        Initiate graceful shutdown. Safe to call from any thread, and
        more than once.
        """
        logger.info("Shutting down socket server...")
        self._running = False
        if self._strategy is not None:
            self._strategy.stop()

    def _cleanup(self):
        self._running = False
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass  # Already closed
            self._socket = None

        self._ready_event.clear()
        self._shutdown_event.set()
        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. Returns False on timeout."""
        return self._ready_event.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until start() has returned. Returns False on timeout."""
        return self._shutdown_event.wait(timeout)

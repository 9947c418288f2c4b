"""
=============================================================================
CONCURRENCY STRATEGIES
=============================================================================

Two interchangeable ways to feed connections to the dispatcher. They share
handle_one_message() for ALL protocol behavior and differ only in
scheduling.

=============================================================================
THREAD PER CONNECTION
=============================================================================

    ┌──────────────┐   accept()   ┌──────────────────────────────────────┐
    │ accept loop  │ ───────────► │ Thread 1: session 1, loop dispatcher │
    │ (main thread)│ ───────────► │ Thread 2: session 2, loop dispatcher │
    │              │ ───────────► │ Thread 3: session 3, loop dispatcher │
    └──────────────┘              └──────────────────────────────────────┘

Each thread owns its connection and SessionState. Blocking reads only
block that one thread. There is no pool: the listen backlog is the only
limit.

=============================================================================
READINESS MULTIPLEXING
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  while running:                                                      │
    │      ready = selector.select()   ◄── listener + every client socket  │
    │      for sock in ready:                                              │
    │          listener? → accept, register (conn, SessionState)          │
    │          client?   → handle_one_message(conn, session)  (ONE call)  │
    │                       closed/error → unregister + close             │
    └─────────────────────────────────────────────────────────────────────┘

One thread serves everyone, so dispatcher calls never overlap. The price:
a peer that sends half a frame stalls the whole loop until it finishes,
closes, or read_timeout expires.

=============================================================================
SHUTDOWN
=============================================================================

Both waits (accept in threaded mode, select in multiplexed mode) wake up
every `poll_interval` seconds to check the running flag. When serving
stops, every client connection still open is closed.

=============================================================================
"""

import logging
import selectors
import socket
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Set

from ..config import ServerConfig
from ..handlers import dispatcher
from ..handlers.session import SessionState
from ..protocol.messages import ProtocolError
from .connection import Connection, TransportError


logger = logging.getLogger(__name__)


class ConcurrencyStrategy(ABC):
    """
    Base class for the two serving strategies.

    Subclasses implement _serve() (the loop) and _close_all() (release
    whatever is still open when the loop ends). A strategy serves once:
    after stop() it will not start again.
    """

    name = "base"

    def __init__(self, config: ServerConfig):
        self.config = config
        self._running = False
        self._stop_requested = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    @abstractmethod
    def active_connections(self) -> int:
        """Number of client connections currently open."""

    def serve(self, listener: socket.socket) -> None:
        """
        Serve clients from `listener` until stop() is called.

        Args:
            listener: A bound, listening socket. Not closed here.
        """
        self._running = True
        logger.info(f"Serving with {self.name} strategy")
        try:
            self._serve(listener)
        finally:
            self._running = False
            self._close_all()

    def stop(self) -> None:
        """Ask the loop to exit. Returns immediately."""
        self._stop_requested.set()
        self._running = False

    def _accept(self, listener: socket.socket) -> Optional[Connection]:
        """
        Accept one connection and wrap it.

        Returns:
            The new Connection, or None if accept() timed out.
        """
        try:
            client_socket, client_address = listener.accept()
        except socket.timeout:
            return None

        conn = Connection(
            socket=client_socket,
            address=client_address,
            timeout=self.config.read_timeout,
        )
        logger.info(f"[{conn.id}] New connection from {conn.client_ip}:{conn.client_port}")
        return conn

    def _serve_message(self, conn: Connection, session: SessionState) -> bool:
        """
        Run the dispatcher once.

        Returns:
            True to keep the connection, False to close it.
        """
        try:
            result = dispatcher.handle_one_message(conn, session)
        except ProtocolError as e:
            logger.warning(f"[{conn.id}] Protocol violation, dropping connection: {e}")
            return False
        except TransportError as e:
            logger.warning(f"[{conn.id}] Transport error, dropping connection: {e}")
            return False
        except Exception as e:
            logger.exception(f"[{conn.id}] Unexpected error: {e}")
            return False

        return result == dispatcher.DispatchResult.CONTINUE

    @abstractmethod
    def _serve(self, listener: socket.socket) -> None:
        ...

    @abstractmethod
    def _close_all(self) -> None:
        ...


# =============================================================================
# THREAD PER CONNECTION
# =============================================================================

class ThreadPerConnectionStrategy(ConcurrencyStrategy):
    """
    Spawn one daemon thread per accepted connection.

    The only state shared between threads is the set of live connections,
    kept so shutdown can wake blocked readers. Session state never leaves
    its thread.
    """

    name = "thread-per-connection"

    def __init__(self, config: ServerConfig):
        super().__init__(config)
        self._connections: Set[Connection] = set()
        self._lock = threading.Lock()

    @property
    def active_connections(self) -> int:
        with self._lock:
            return len(self._connections)

    def _serve(self, listener: socket.socket) -> None:
        while not self._stop_requested.is_set():
            try:
                conn = self._accept(listener)
            except OSError as e:
                # Listener closed under us, usually shutdown
                if not self._stop_requested.is_set():
                    logger.error(f"Accept error: {e}")
                break

            if conn is None:
                continue  # Poll timeout, re-check running flag

            with self._lock:
                self._connections.add(conn)

            thread = threading.Thread(
                target=self._run_connection,
                args=(conn,),
                name=f"echo-conn-{conn.id}",
                daemon=True,
            )
            thread.start()

    def _run_connection(self, conn: Connection) -> None:
        """Thread body: serve one connection until it ends."""
        session = SessionState()
        try:
            with conn:
                while self._serve_message(conn, session):
                    pass
        finally:
            with self._lock:
                self._connections.discard(conn)

    def _close_all(self) -> None:
        with self._lock:
            connections = list(self._connections)
        # Owner threads see EOF and close through their own path
        for conn in connections:
            conn.abort()


# =============================================================================
# READINESS MULTIPLEXING
# =============================================================================

@dataclass
class _ClientEntry:
    """Registry entry: one connection and the session it owns."""
    conn: Connection
    session: SessionState


class MultiplexedStrategy(ConcurrencyStrategy):
    """
    Serve every connection from one thread with a readiness wait.

    The registry maps each client file descriptor to its entry. An entry
    is removed in the same step its connection is closed, so the selector
    never waits on a stale descriptor.
    """

    name = "multiplexed"

    def __init__(self, config: ServerConfig):
        super().__init__(config)
        self._clients: Dict[int, _ClientEntry] = {}
        self._selector: Optional[selectors.BaseSelector] = None

    @property
    def active_connections(self) -> int:
        return len(self._clients)

    def _serve(self, listener: socket.socket) -> None:
        self._selector = selectors.DefaultSelector()
        self._selector.register(listener, selectors.EVENT_READ, data=None)

        while not self._stop_requested.is_set():
            try:
                events = self._selector.select(timeout=self.config.poll_interval)
            except OSError as e:
                if not self._stop_requested.is_set():
                    logger.error(f"Readiness wait failed: {e}")
                break

            for key, _ in events:
                if key.data is None:
                    self._accept_and_register(key.fileobj)
                else:
                    self._service(key.data)

    def _accept_and_register(self, listener: socket.socket) -> None:
        try:
            conn = self._accept(listener)
        except OSError as e:
            logger.error(f"Accept error: {e}")
            return
        if conn is None:
            return

        entry = _ClientEntry(conn=conn, session=SessionState())
        self._clients[conn.fileno()] = entry
        self._selector.register(conn.socket, selectors.EVENT_READ, data=entry)

    def _service(self, entry: _ClientEntry) -> None:
        """One ready client → exactly one dispatcher call."""
        if not self._serve_message(entry.conn, entry.session):
            self._drop(entry)

    def _drop(self, entry: _ClientEntry) -> None:
        """Unregister and close in one step."""
        fd = entry.conn.fileno()
        self._selector.unregister(entry.conn.socket)
        self._clients.pop(fd, None)
        entry.conn.close()

    def _close_all(self) -> None:
        for entry in list(self._clients.values()):
            self._drop(entry)
        if self._selector is not None:
            self._selector.close()
            self._selector = None


STRATEGIES = {
    "threaded": ThreadPerConnectionStrategy,
    "multiplexed": MultiplexedStrategy,
}


def create_strategy(config: ServerConfig) -> ConcurrencyStrategy:
    """Build the strategy named by config.mode."""
    try:
        strategy_class = STRATEGIES[config.mode]
    except KeyError:
        raise ValueError(f"Unknown mode: {config.mode!r}") from None
    return strategy_class(config)

"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps a raw client socket with the exact-size send/receive
primitives the echo protocol needs.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. A 4-byte header might arrive as
one recv() of 4 bytes, or as 1 + 3, or glued to the body that follows it.

The echo protocol solves this with fixed-size framing: the header has a
known size and announces how many body bytes follow. So all we ever need
is "give me exactly N bytes":

    recv_exact(4)            → header
    recv_exact(size - 4)     → body

recv_exact() keeps calling recv() until N bytes have arrived. Nothing is
buffered between calls: each call consumes exactly its frame part.

=============================================================================
END OF STREAM
=============================================================================

recv() returning b"" means the peer closed its side. What that MEANS
depends on where we are in a frame:

    ┌──────────────────────────────┬──────────────────────────────────────┐
    │ Where the stream ended       │ Meaning                              │
    ├──────────────────────────────┼──────────────────────────────────────┤
    │ Before the first header byte │ Clean disconnect → return None       │
    │ Inside a header              │ Transport error (partial frame)      │
    │ Inside a body                │ Transport error (partial frame)      │
    └──────────────────────────────┴──────────────────────────────────────┘

A partial frame is never resumed. The connection is torn down.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► READING ──────► PROCESSING ──────► WRITING ──┐
     │             │                                    │     │
     │             │                  ┌─────────────────┘     │
     │             │                  ▼                       │
     │             │               READING ◄──────────────────┘
     │             ▼
     └──────────► CLOSING ──────► CLOSED

=============================================================================
"""

import socket
import time
import logging
import threading
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class TransportError(ConnectionError):
    """
    The byte stream failed under us.

    Raised for a short read (stream ended mid-frame), a failed or partial
    write, a connection reset, or a read timeout. Always fatal to the
    connection; there is no retry.
    """


class ConnectionState(Enum):
    """Connection lifecycle states, used for logging and close bookkeeping."""
    NEW = "new"                # Just accepted
    READING = "reading"        # Waiting for frame bytes
    PROCESSING = "processing"  # Message decoded, dispatcher running
    WRITING = "writing"        # Sending the response
    CLOSING = "closing"        # Close in progress
    CLOSED = "closed"          # Socket released


@dataclass(eq=False)
class Connection:
    """
    Represents one client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. EXACT-SIZE I/O                                                   │
    │     └── recv_exact(n): n bytes or a clean EOF or an error           │
    │     └── send_exact(data): all bytes or an error                     │
    │                                                                      │
    │  2. TIMEOUTS                                                         │
    │     └── Optional; None blocks forever                               │
    │     └── Expiry surfaces as TransportError                           │
    │                                                                      │
    │  3. STATE TRACKING                                                   │
    │     └── What phase we're in, how many messages handled              │
    │                                                                      │
    │  4. CLOSE EXACTLY ONCE                                               │
    │     └── close() is idempotent                                       │
    │     └── abort() wakes a blocked reader without releasing the fd     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket.
        address: Peer's (ip, port) tuple.
        id: Short unique identifier (for logging).
        state: Current connection state.
        created_at: Timestamp when connection was accepted.
        last_activity: Timestamp of last successful I/O.
        messages_handled: Number of messages answered on this connection.
    """

    # Required parameters
    socket: socket.socket
    address: tuple

    # Generated/default parameters
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    messages_handled: int = 0

    # Configuration (passed from ServerConfig)
    timeout: Optional[float] = None

    _close_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        """Put the socket in blocking mode with the configured timeout."""
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        """Get connection age in seconds."""
        return time.time() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    def fileno(self) -> int:
        """File descriptor, so a Connection can be handed to selectors."""
        return self.socket.fileno()

    # =========================================================================
    # READING
    # =========================================================================

    def recv_exact(self, n: int, allow_eof: bool = False) -> Optional[bytes]:
        """
        Read exactly `n` bytes.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    recv_exact() Flow                             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   while len(buffer) < n:                                         │
        │       chunk = recv(n - len(buffer))                              │
        │       │                                                          │
        │       ├── chunk != b""  → append, keep going                     │
        │       │                                                          │
        │       └── chunk == b""  → peer closed                            │
        │               ├── nothing read yet and allow_eof → None          │
        │               └── otherwise → TransportError                     │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Args:
            n: Number of bytes to read.
            allow_eof: Treat an immediate end of stream as a clean close
                       instead of an error. Only set when reading the
                       first byte of a new header.

        Returns:
            Exactly n bytes, or None on a clean close (allow_eof only).

        Raises:
            TransportError: Short read, reset or timeout.
        """
        self.state = ConnectionState.READING

        buffer = bytearray()
        while len(buffer) < n:
            try:
                chunk = self.socket.recv(n - len(buffer))
            except socket.timeout:
                raise TransportError(
                    f"[{self.id}] Read timed out after {len(buffer)}/{n} bytes"
                ) from None
            except OSError as e:
                raise TransportError(f"[{self.id}] Receive failed: {e}") from e

            if not chunk:
                if not buffer and allow_eof:
                    return None  # Peer closed between messages
                raise TransportError(
                    f"[{self.id}] Peer closed mid-frame after {len(buffer)}/{n} bytes"
                )

            buffer += chunk

        self.last_activity = time.time()
        return bytes(buffer)

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_exact(self, data: bytes) -> None:
        """
        Send every byte of `data`.

        sendall() loops internally until the kernel has taken all of it.
        If it fails part-way we can't know how much the peer got, so any
        failure is fatal.

        Raises:
            TransportError: The write failed or timed out.
        """
        self.state = ConnectionState.WRITING

        try:
            self.socket.sendall(data)
        except socket.timeout:
            raise TransportError(f"[{self.id}] Send timed out") from None
        except OSError as e:
            raise TransportError(f"[{self.id}] Send failed: {e}") from e

        self.last_activity = time.time()

    # =========================================================================
    # CLOSING
    # =========================================================================

    def abort(self):
        """
        Shut the socket down without releasing it.

        Used during server shutdown from another thread: a reader blocked
        in recv() wakes up with EOF and its owner closes the connection
        through the normal path.
        """
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Already disconnected

    def close(self) -> bool:
        """
        Release the socket. Safe to call more than once.

        Returns:
            True if this call closed the socket, False if it was
            already closed.
        """
        with self._close_lock:
            if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
                return False
            self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Peer already gone, that's fine

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(
            f"[{self.id}] Connection closed after {self.messages_handled} messages "
            f"({self.age:.2f}s)"
        )
        return True

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensure connection is closed."""
        self.close()
        return False  # Don't suppress exceptions

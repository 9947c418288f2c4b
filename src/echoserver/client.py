"""
Blocking client for the echo server.

    with EchoClient(ClientConfig(port=8080)) as client:
        client.login("testuser", "testpass")
        client.echo("hello")          # → b"hello"

The client owns the sequence counter: login uses the current value and
every call advances it, wrapping at 256. Every response is checked
(type, sequence, size, echoed content) and any mismatch raises
ProtocolError.
"""

import logging
import socket
from typing import Optional, Union

from .config import ClientConfig
from .core.connection import Connection
from .protocol import cipher
from .protocol.messages import (
    Credential,
    EchoRequest,
    EchoResponse,
    HEADER_SIZE,
    MAX_ECHO_PAYLOAD,
    LoginRequest,
    LoginResponse,
    MessageHeader,
    MessageType,
    ProtocolError,
    StatusCode,
    decode_message,
    next_sequence,
)


logger = logging.getLogger(__name__)


class EchoClient:
    """
    One client session over one TCP connection.

    Attributes:
        sequence: Sequence number the next request will carry.
        username / password: Credentials after a successful login.
    """

    def __init__(self, config: Optional[ClientConfig] = None, sequence: int = 0):
        self.config = config or ClientConfig()
        self.sequence = sequence & 0xFF
        self.username: Optional[Credential] = None
        self.password: Optional[Credential] = None
        self._conn: Optional[Connection] = None

    @property
    def connected(self) -> bool:
        return self._conn is not None and not self._conn.is_closed

    def connect(self) -> "EchoClient":
        """Open the TCP connection."""
        sock = socket.create_connection(
            (self.config.host, self.config.port), timeout=self.config.timeout
        )
        self._conn = Connection(
            socket=sock,
            address=sock.getpeername()[:2],
            timeout=self.config.timeout,
        )
        logger.debug(f"[{self._conn.id}] Connected to {self.config.host}:{self.config.port}")
        return self

    def close(self):
        if self._conn is not None:
            self._conn.close()

    def __enter__(self):
        if not self.connected:
            self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # =========================================================================
    # REQUESTS
    # =========================================================================

    def login(self, username: Union[str, bytes], password: Union[str, bytes]) -> StatusCode:
        """
        Log in with the given credentials.

        Credentials longer than 31 bytes are truncated.

        Returns:
            The status code (always OK from this server).

        Raises:
            ProtocolError: The response didn't match the request.
        """
        self.username = _credential(username)
        self.password = _credential(password)

        request = LoginRequest(self._take_sequence(), self.username, self.password)
        self._send(request.encode())

        response = self._read_message(LoginResponse)

        _expect(response.sequence == request.sequence,
                f"Login response sequence {response.sequence}, expected {request.sequence}")
        _expect(response.status == StatusCode.OK, f"Login failed: {response.status.name}")

        return response.status

    def echo(self, message: Union[str, bytes]) -> bytes:
        """
        Send `message` and return the decrypted echo.

        A rejected call does not use up a sequence number.

        Raises:
            ProtocolError: Not logged in, payload too large, or the
                           response didn't match the request.
        """
        if self.username is None:
            raise ProtocolError("echo() before login()")

        plaintext = message.encode("utf-8") if isinstance(message, str) else bytes(message)
        if len(plaintext) > MAX_ECHO_PAYLOAD:
            raise ProtocolError(
                f"Echo payload of {len(plaintext)} bytes exceeds {MAX_ECHO_PAYLOAD}",
                MessageType.ECHO_REQUEST,
            )

        sequence = self._take_sequence()
        request = EchoRequest(
            sequence, cipher.apply_for(plaintext, sequence, self.username, self.password)
        )
        self._send(request.encode())

        response = self._read_message(EchoResponse, expected_size=request.header.size)
        _expect(response.sequence == sequence,
                f"Echo response sequence {response.sequence}, expected {sequence}")

        echoed = cipher.apply_for(response.payload, sequence, self.username, self.password)
        _expect(echoed == plaintext, "Echoed payload differs from what was sent")

        return echoed

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _take_sequence(self) -> int:
        sequence = self.sequence
        self.sequence = next_sequence(sequence)
        return sequence

    def _require_conn(self) -> Connection:
        if self._conn is None:
            raise ConnectionError("Client is not connected")
        return self._conn

    def _send(self, data: bytes):
        self._require_conn().send_exact(data)

    def _read_message(self, expected: type, expected_size: Optional[int] = None):
        """
        Read one response and decode it by its header type.

        The size is checked before the body is read, so a wrong size
        never leaves us waiting on bytes that aren't coming.
        """
        conn = self._require_conn()
        header = MessageHeader.decode(conn.recv_exact(HEADER_SIZE))

        _expect(header.type == expected.TYPE,
                f"Expected {expected.TYPE.name}, got {header.type.name}")
        if expected_size is not None:
            _expect(header.size == expected_size,
                    f"Response size {header.size}, expected {expected_size}")

        return decode_message(header, conn.recv_exact(header.body_size))


def _credential(value: Union[str, bytes, Credential]) -> Credential:
    if isinstance(value, Credential):
        return value
    if isinstance(value, str):
        return Credential.from_text(value)
    return Credential.from_bytes(value)


def _expect(condition: bool, message: str):
    if not condition:
        raise ProtocolError(message)

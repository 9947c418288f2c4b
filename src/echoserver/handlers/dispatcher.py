"""
=============================================================================
REQUEST DISPATCHER
=============================================================================

The single place where protocol behavior lives. Both concurrency
strategies call handle_one_message() and nothing else; they only decide
WHEN it runs.

=============================================================================
ONE CALL, ONE MESSAGE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    handle_one_message() Flow                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   recv_exact(HEADER_SIZE, allow_eof=True)                            │
    │       │                                                              │
    │       ├── None ─────────────────────────► CONNECTION_CLOSED          │
    │       │                                                              │
    │       ▼                                                              │
    │   MessageHeader.decode()      (unknown type → ProtocolError)         │
    │       │                                                              │
    │       ▼                                                              │
    │   check session state         (wrong order → ProtocolError)          │
    │       │                                                              │
    │       ▼                                                              │
    │   recv_exact(header.body_size)                                       │
    │       │                                                              │
    │       ▼                                                              │
    │   decode body                 (size mismatch → ProtocolError)        │
    │       │                                                              │
    │       ├── LoginRequest → store credentials, reply OK                 │
    │       └── EchoRequest  → decrypt, re-encrypt, reply                  │
    │       │                                                              │
    │       ▼                                                              │
    │   send_exact(response) ─────────────────► CONTINUE                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The session check runs BEFORE the body is read, so an out-of-order
message is rejected without waiting for (possibly never-arriving) body
bytes.

=============================================================================
ERRORS
=============================================================================

    ProtocolError    The peer broke the protocol.
    TransportError   The byte stream broke.

Both propagate to the caller, which tears down this one connection. No
error response is ever sent.

=============================================================================
"""

import logging
from enum import Enum

from ..core.connection import Connection, ConnectionState
from ..protocol import cipher
from ..protocol.messages import (
    EchoResponse,
    HEADER_SIZE,
    LoginRequest,
    LoginResponse,
    MessageHeader,
    MessageType,
    ProtocolError,
    StatusCode,
    decode_message,
)
from .session import SessionState


logger = logging.getLogger(__name__)


class DispatchResult(Enum):
    """What the caller should do after one dispatcher call."""
    CONTINUE = "continue"                    # Message handled, keep serving
    CONNECTION_CLOSED = "connection_closed"  # Peer closed cleanly


def handle_one_message(conn: Connection, session: SessionState) -> DispatchResult:
    """
    Read one message from `conn`, apply it to `session`, write the response.

    Args:
        conn: The client connection.
        session: That connection's session state (mutated on login).

    Returns:
        DispatchResult.CONTINUE after a response was sent, or
        DispatchResult.CONNECTION_CLOSED if the peer closed cleanly.

    Raises:
        ProtocolError: Out-of-order, unknown or malformed message.
        TransportError: Short read/write, reset or timeout.
    """
    raw_header = conn.recv_exact(HEADER_SIZE, allow_eof=True)
    if raw_header is None:
        logger.info(f"[{conn.id}] Client disconnected")
        return DispatchResult.CONNECTION_CLOSED

    header = MessageHeader.decode(raw_header)

    if header.type == MessageType.LOGIN_REQUEST:
        session.require_logged_out()
        response = _handle_login(conn, header, session)
    elif header.type == MessageType.ECHO_REQUEST:
        session.require_login(header.type)
        response = _handle_echo(conn, header, session)
    else:
        raise ProtocolError(f"Unexpected message type {header.type.name}", header.type)

    conn.send_exact(response)
    conn.messages_handled += 1
    return DispatchResult.CONTINUE


def _read_body(conn: Connection, header: MessageHeader) -> bytes:
    """Read the body announced by `header`."""
    body = conn.recv_exact(header.body_size)
    conn.state = ConnectionState.PROCESSING
    return body


def _handle_login(conn: Connection, header: MessageHeader, session: SessionState) -> bytes:
    # Size is checked before reading so a bogus size can't make us block on
    # bytes that belong to the next message
    if header.body_size != LoginRequest.BODY_SIZE:
        raise ProtocolError(
            f"LOGIN_REQUEST body must be {LoginRequest.BODY_SIZE} bytes, header says {header.body_size}",
            header.type,
        )

    request = decode_message(header, _read_body(conn, header))

    # No credential store: any well-formed login succeeds
    session.authenticate(request.username, request.password)
    logger.info(f"[{conn.id}] Logged in as {request.username.text!r}")

    return LoginResponse(header.sequence, StatusCode.OK).encode()


def _handle_echo(conn: Connection, header: MessageHeader, session: SessionState) -> bytes:
    request = decode_message(header, _read_body(conn, header))

    key = cipher.derive_initial_key(header.sequence, session.username, session.password)

    plaintext = cipher.apply(request.payload, key)
    logger.debug(
        f"[{conn.id}] Echo seq={header.sequence} size={request.msg_size}: {plaintext[:64]!r}"
    )

    response = EchoResponse.for_request(request, cipher.apply(plaintext, key))
    return response.encode()

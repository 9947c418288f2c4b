"""
=============================================================================
ECHO PROTOCOL COMPONENTS
=============================================================================

Everything that has to be bit-exact between client and server lives here:

    messages.py   Header + body layouts, encode/decode, ProtocolError
    cipher.py     Per-message XOR keystream

Neither module does any I/O. They turn objects into bytes and back, which
keeps them trivially testable without sockets.

=============================================================================
"""

from .messages import (
    Credential,
    EchoRequest,
    EchoResponse,
    LoginRequest,
    LoginResponse,
    MessageHeader,
    MessageType,
    ProtocolError,
    StatusCode,
    HEADER_SIZE,
    MAX_ECHO_PAYLOAD,
    decode_message,
    next_sequence,
)
from . import cipher

__all__ = [
    "Credential",
    "EchoRequest",
    "EchoResponse",
    "LoginRequest",
    "LoginResponse",
    "MessageHeader",
    "MessageType",
    "ProtocolError",
    "StatusCode",
    "HEADER_SIZE",
    "MAX_ECHO_PAYLOAD",
    "decode_message",
    "next_sequence",
    "cipher",
]

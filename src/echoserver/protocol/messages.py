"""
=============================================================================
WIRE MESSAGES
=============================================================================

This module defines the binary message format exchanged between the echo
client and server, and converts between Python objects and raw bytes.

=============================================================================
FRAMING
=============================================================================

TCP is a byte stream. To delimit messages, every message starts with a
fixed 4-byte header whose first field is the TOTAL size of the message
(header included). The receiver reads the header, then reads exactly
`size - 4` more bytes.

    ┌──────────────────────────── MessageHeader (4 bytes) ───────────────┐
    │  size (u16, LE)  │  type (u8)  │  seq (u8)  │
    └──────────────────┴─────────────┴────────────┘

All integers are little-endian and packed, there is no padding.

=============================================================================
MESSAGE BODIES
=============================================================================

    LoginRequest   (type 0)   64 bytes
    ┌──────────────────────────────┬──────────────────────────────┐
    │ username (32 bytes, NUL pad) │ password (32 bytes, NUL pad) │
    └──────────────────────────────┴──────────────────────────────┘

    LoginResponse  (type 1)   2 bytes
    ┌──────────────────────┐
    │ status (u16) 0=FAIL  │
    │              1=OK    │
    └──────────────────────┘

    EchoRequest    (type 2)   2 + msg_size bytes
    EchoResponse   (type 3)   2 + msg_size bytes
    ┌──────────────────┬────────────────────────────────────┐
    │ msg_size (u16)   │ payload (msg_size bytes, XORed)    │
    └──────────────────┴────────────────────────────────────┘

Only the bytes of the payload are sent, never a fixed-capacity buffer, so
for Echo messages:

    msg_size == header.size - HEADER_SIZE - ECHO_LENGTH_SIZE

The u16 size field bounds the whole message, so the largest payload is
65535 - 4 - 2 = 65529 bytes.

=============================================================================
"""

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar, Optional, Type, Union


# =============================================================================
# ERRORS
# =============================================================================

class ProtocolError(Exception):
    """
    Raised when a peer breaks the protocol.

    Covers framing violations (wrong size for the message type), unknown
    message types, messages that arrive in the wrong session state, and
    responses that don't match the request they answer.

    A protocol error is fatal to the connection it happened on. No error
    message is sent back; the connection is simply torn down.
    """

    def __init__(self, message: str, message_type: Optional[int] = None):
        super().__init__(message)
        self.message_type = message_type  # Offending type, if known


# =============================================================================
# CONSTANTS
# =============================================================================

class MessageType(IntEnum):
    """Message type codes carried in the header."""
    LOGIN_REQUEST = 0
    LOGIN_RESPONSE = 1
    ECHO_REQUEST = 2
    ECHO_RESPONSE = 3


class StatusCode(IntEnum):
    """Login response status codes."""
    FAILED = 0
    OK = 1


HEADER_STRUCT = struct.Struct("<HBB")         # size, type, seq
LOGIN_REQUEST_STRUCT = struct.Struct("<32s32s")  # username, password
LOGIN_RESPONSE_STRUCT = struct.Struct("<H")     # status code
ECHO_LENGTH_STRUCT = struct.Struct("<H")        # msg_size

HEADER_SIZE = HEADER_STRUCT.size                # 4
ECHO_LENGTH_SIZE = ECHO_LENGTH_STRUCT.size      # 2

CREDENTIAL_SIZE = 32
MAX_CREDENTIAL_LENGTH = CREDENTIAL_SIZE - 1     # Room for the terminator

MAX_MESSAGE_SIZE = 0xFFFF
MAX_ECHO_PAYLOAD = MAX_MESSAGE_SIZE - HEADER_SIZE - ECHO_LENGTH_SIZE


def next_sequence(sequence: int) -> int:
    """Return the sequence number after `sequence`, wrapping at 256."""
    return (sequence + 1) & 0xFF


# =============================================================================
# CREDENTIALS
# =============================================================================

@dataclass(frozen=True)
class Credential:
    """
    A username or password as it travels on the wire.

    The wire field is a fixed 32-byte buffer holding a NUL-terminated
    string. This class keeps the exact buffer (`raw`) because the cipher
    checksum is computed over all 32 bytes, and exposes the logical value
    separately.

    TRUNCATION POLICY
    ─────────────────
    Values longer than 31 bytes are cut to 31 bytes so the terminator
    always fits. Anything after an embedded NUL is dropped.

        Credential.from_text("testuser").raw == b"testuser" + b"\\0" * 24
        Credential.from_text("x" * 40).value == b"x" * 31
    """

    raw: bytes = bytes(CREDENTIAL_SIZE)

    def __post_init__(self):
        if len(self.raw) != CREDENTIAL_SIZE:
            raise ValueError(
                f"Credential field must be {CREDENTIAL_SIZE} bytes, got {len(self.raw)}"
            )

    @classmethod
    def from_bytes(cls, value: bytes) -> "Credential":
        """Build a credential from a logical value, applying the truncation policy."""
        value = bytes(value).split(b"\0", 1)[0][:MAX_CREDENTIAL_LENGTH]
        return cls(value.ljust(CREDENTIAL_SIZE, b"\0"))

    @classmethod
    def from_text(cls, text: str, encoding: str = "utf-8") -> "Credential":
        """Build a credential from a string."""
        return cls.from_bytes(text.encode(encoding))

    @property
    def value(self) -> bytes:
        """The logical value (bytes before the first NUL)."""
        return self.raw.split(b"\0", 1)[0]

    @property
    def text(self) -> str:
        return self.value.decode("utf-8", errors="replace")

    def __repr__(self) -> str:
        return f"Credential({self.value!r})"


# =============================================================================
# HEADER
# =============================================================================

@dataclass
class MessageHeader:
    """
    The fixed header that precedes every message.

    Attributes:
        size: Total message size in bytes (header + body).
        type: Message type.
        sequence: Client-assigned sequence number (0-255).
    """

    size: int
    type: MessageType
    sequence: int

    @property
    def body_size(self) -> int:
        """Number of bytes that follow the header on the wire."""
        return self.size - HEADER_SIZE

    def encode(self) -> bytes:
        if not HEADER_SIZE <= self.size <= MAX_MESSAGE_SIZE:
            raise ProtocolError(f"Message size out of range: {self.size}", self.type)
        return HEADER_STRUCT.pack(self.size, int(self.type), self.sequence & 0xFF)

    @classmethod
    def decode(cls, data: bytes) -> "MessageHeader":
        """
        Parse a header from exactly HEADER_SIZE bytes.

        Raises:
            ProtocolError: Wrong length, unknown type, or a size field
                           smaller than the header itself.
        """
        if len(data) != HEADER_SIZE:
            raise ProtocolError(f"Header must be {HEADER_SIZE} bytes, got {len(data)}")

        size, raw_type, sequence = HEADER_STRUCT.unpack(data)

        try:
            message_type = MessageType(raw_type)
        except ValueError:
            raise ProtocolError(f"Unknown message type: {raw_type}", raw_type) from None

        if size < HEADER_SIZE:
            raise ProtocolError(f"Message size {size} smaller than header", raw_type)

        return cls(size=size, type=message_type, sequence=sequence)


def _check_header(header: MessageHeader, expected: MessageType, body_size: Optional[int] = None):
    """Validate a header against the message class decoding it."""
    if header.type != expected:
        raise ProtocolError(
            f"Expected {expected.name}, got {header.type.name}", header.type
        )
    if body_size is not None and header.body_size != body_size:
        raise ProtocolError(
            f"{expected.name} body must be {body_size} bytes, header says {header.body_size}",
            header.type,
        )


# =============================================================================
# LOGIN
# =============================================================================

@dataclass
class LoginRequest:
    """Client → server: start a session with these credentials."""

    TYPE: ClassVar[MessageType] = MessageType.LOGIN_REQUEST
    BODY_SIZE: ClassVar[int] = LOGIN_REQUEST_STRUCT.size

    sequence: int
    username: Credential
    password: Credential

    @property
    def header(self) -> MessageHeader:
        return MessageHeader(HEADER_SIZE + self.BODY_SIZE, self.TYPE, self.sequence)

    def encode(self) -> bytes:
        body = LOGIN_REQUEST_STRUCT.pack(self.username.raw, self.password.raw)
        return self.header.encode() + body

    @classmethod
    def decode_body(cls, header: MessageHeader, body: bytes) -> "LoginRequest":
        _check_header(header, cls.TYPE, cls.BODY_SIZE)
        if len(body) != cls.BODY_SIZE:
            raise ProtocolError(f"Truncated login request: {len(body)} bytes", header.type)
        username, password = LOGIN_REQUEST_STRUCT.unpack(body)
        return cls(header.sequence, Credential(username), Credential(password))


@dataclass
class LoginResponse:
    """Server → client: outcome of a login."""

    TYPE: ClassVar[MessageType] = MessageType.LOGIN_RESPONSE
    BODY_SIZE: ClassVar[int] = LOGIN_RESPONSE_STRUCT.size

    sequence: int
    status: StatusCode = StatusCode.OK

    @property
    def header(self) -> MessageHeader:
        return MessageHeader(HEADER_SIZE + self.BODY_SIZE, self.TYPE, self.sequence)

    def encode(self) -> bytes:
        return self.header.encode() + LOGIN_RESPONSE_STRUCT.pack(int(self.status))

    @classmethod
    def decode_body(cls, header: MessageHeader, body: bytes) -> "LoginResponse":
        _check_header(header, cls.TYPE, cls.BODY_SIZE)
        if len(body) != cls.BODY_SIZE:
            raise ProtocolError(f"Truncated login response: {len(body)} bytes", header.type)
        (raw_status,) = LOGIN_RESPONSE_STRUCT.unpack(body)
        try:
            status = StatusCode(raw_status)
        except ValueError:
            raise ProtocolError(f"Unknown login status: {raw_status}", header.type) from None
        return cls(header.sequence, status)


# =============================================================================
# ECHO
# =============================================================================

@dataclass
class _EchoMessage:
    """
    Shared layout of EchoRequest and EchoResponse.

    `payload` holds the bytes exactly as they travel, i.e. already XORed
    with the keystream. The codec never touches the cipher.
    """

    TYPE: ClassVar[MessageType]

    sequence: int
    payload: bytes = b""

    def __post_init__(self):
        self.payload = bytes(self.payload)
        if len(self.payload) > MAX_ECHO_PAYLOAD:
            raise ProtocolError(
                f"Echo payload of {len(self.payload)} bytes exceeds {MAX_ECHO_PAYLOAD}",
                self.TYPE,
            )

    @property
    def msg_size(self) -> int:
        return len(self.payload)

    @property
    def header(self) -> MessageHeader:
        return MessageHeader(
            HEADER_SIZE + ECHO_LENGTH_SIZE + self.msg_size, self.TYPE, self.sequence
        )

    def encode(self) -> bytes:
        return self.header.encode() + ECHO_LENGTH_STRUCT.pack(self.msg_size) + self.payload

    @classmethod
    def decode_body(cls, header: MessageHeader, body: bytes):
        _check_header(header, cls.TYPE)

        if header.body_size < ECHO_LENGTH_SIZE or len(body) != header.body_size:
            raise ProtocolError(
                f"{cls.TYPE.name} body of {len(body)} bytes does not match header size {header.size}",
                header.type,
            )

        (msg_size,) = ECHO_LENGTH_STRUCT.unpack_from(body)
        if msg_size != header.body_size - ECHO_LENGTH_SIZE:
            raise ProtocolError(
                f"msg_size {msg_size} disagrees with header size {header.size}",
                header.type,
            )

        return cls(header.sequence, body[ECHO_LENGTH_SIZE:])


@dataclass
class EchoRequest(_EchoMessage):
    """Client → server: an encrypted payload to echo."""

    TYPE: ClassVar[MessageType] = MessageType.ECHO_REQUEST


@dataclass
class EchoResponse(_EchoMessage):
    """Server → client: the echoed payload, re-encrypted."""

    TYPE: ClassVar[MessageType] = MessageType.ECHO_RESPONSE

    @classmethod
    def for_request(cls, request: EchoRequest, payload: bytes) -> "EchoResponse":
        """
        Build the response to `request`.

        The echo contract: same sequence number, same msg_size.
        """
        if len(payload) != request.msg_size:
            raise ProtocolError(
                f"Echo response payload is {len(payload)} bytes, request had {request.msg_size}",
                cls.TYPE,
            )
        return cls(request.sequence, payload)


# =============================================================================
# DISPATCH ON TYPE
# =============================================================================

Message = Union[LoginRequest, LoginResponse, EchoRequest, EchoResponse]

MESSAGE_CLASSES: dict = {
    MessageType.LOGIN_REQUEST: LoginRequest,
    MessageType.LOGIN_RESPONSE: LoginResponse,
    MessageType.ECHO_REQUEST: EchoRequest,
    MessageType.ECHO_RESPONSE: EchoResponse,
}


def decode_message(header: MessageHeader, body: bytes) -> Message:
    """
    Decode a body according to the type in its header.

    Args:
        header: The already-decoded header.
        body: Exactly header.body_size bytes.

    Returns:
        The decoded message object.
    """
    message_class: Type = MESSAGE_CLASSES[header.type]
    return message_class.decode_body(header, body)

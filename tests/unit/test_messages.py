"""
Unit tests for the wire message codec.
"""

import struct

import pytest

from echoserver.protocol.messages import (
    Credential,
    EchoRequest,
    EchoResponse,
    HEADER_SIZE,
    LoginRequest,
    LoginResponse,
    MAX_ECHO_PAYLOAD,
    MessageHeader,
    MessageType,
    ProtocolError,
    StatusCode,
    decode_message,
    next_sequence,
)


class TestCredential:
    """Tests for the bounded credential container."""

    def test_from_text_pads_with_nul(self):
        cred = Credential.from_text("testuser")
        assert cred.raw == b"testuser" + bytes(24)
        assert cred.value == b"testuser"
        assert cred.text == "testuser"

    def test_truncates_to_31_bytes(self):
        """Test the explicit truncation policy."""
        cred = Credential.from_text("x" * 40)
        assert cred.value == b"x" * 31
        assert cred.raw[31] == 0

    def test_exactly_31_bytes_kept(self):
        cred = Credential.from_text("y" * 31)
        assert cred.value == b"y" * 31

    def test_embedded_nul_ends_value(self):
        cred = Credential.from_bytes(b"abc\0def")
        assert cred.value == b"abc"
        assert cred.raw == b"abc" + bytes(29)

    def test_empty(self):
        cred = Credential.from_text("")
        assert cred.raw == bytes(32)
        assert cred.value == b""

    def test_raw_must_be_32_bytes(self):
        with pytest.raises(ValueError):
            Credential(b"short")

    def test_repr_shows_value(self):
        assert repr(Credential.from_text("bob")) == "Credential(b'bob')"


class TestMessageHeader:
    """Tests for header encoding and decoding."""

    def test_encode_layout(self):
        """Test little-endian size, then type, then sequence."""
        header = MessageHeader(size=0x0102, type=MessageType.ECHO_REQUEST, sequence=7)
        assert header.encode() == b"\x02\x01\x02\x07"

    def test_decode(self):
        header = MessageHeader.decode(struct.pack("<HBB", 70, 3, 200))
        assert header.size == 70
        assert header.type == MessageType.ECHO_RESPONSE
        assert header.sequence == 200
        assert header.body_size == 66

    def test_unknown_type(self):
        with pytest.raises(ProtocolError) as exc_info:
            MessageHeader.decode(struct.pack("<HBB", 4, 9, 0))

        assert exc_info.value.message_type == 9

    def test_size_smaller_than_header(self):
        with pytest.raises(ProtocolError):
            MessageHeader.decode(struct.pack("<HBB", 3, 0, 0))

    def test_wrong_length(self):
        with pytest.raises(ProtocolError):
            MessageHeader.decode(b"\x04\x00\x00")

    def test_sequence_masked_on_encode(self):
        header = MessageHeader(size=4, type=MessageType.LOGIN_REQUEST, sequence=257)
        assert header.encode()[3] == 1


class TestLogin:
    """Tests for LoginRequest and LoginResponse."""

    def test_request_encoding(self, username, password):
        data = LoginRequest(1, username, password).encode()

        assert len(data) == HEADER_SIZE + 64
        assert data[:4] == struct.pack("<HBB", 68, 0, 1)
        assert data[4:36] == username.raw
        assert data[36:] == password.raw

    def test_request_decode(self, username, password):
        data = LoginRequest(5, username, password).encode()
        header = MessageHeader.decode(data[:HEADER_SIZE])

        request = LoginRequest.decode_body(header, data[HEADER_SIZE:])

        assert request.sequence == 5
        assert request.username == username
        assert request.password == password

    def test_request_wrong_size(self, username, password):
        header = MessageHeader(size=HEADER_SIZE + 63, type=MessageType.LOGIN_REQUEST, sequence=0)
        with pytest.raises(ProtocolError):
            LoginRequest.decode_body(header, bytes(63))

    def test_response_encoding(self):
        data = LoginResponse(3, StatusCode.OK).encode()
        assert data == struct.pack("<HBBH", 6, 1, 3, 1)

    def test_response_decode_failed(self):
        header = MessageHeader(size=6, type=MessageType.LOGIN_RESPONSE, sequence=0)
        response = LoginResponse.decode_body(header, struct.pack("<H", 0))
        assert response.status == StatusCode.FAILED

    def test_response_unknown_status(self):
        header = MessageHeader(size=6, type=MessageType.LOGIN_RESPONSE, sequence=0)
        with pytest.raises(ProtocolError):
            LoginResponse.decode_body(header, struct.pack("<H", 7))


class TestEcho:
    """Tests for EchoRequest and EchoResponse."""

    def test_request_encoding(self):
        data = EchoRequest(87, b"\x91\xdf\x18\xbd").encode()
        assert data == struct.pack("<HBBH", 10, 2, 87, 4) + b"\x91\xdf\x18\xbd"

    def test_only_payload_bytes_on_wire(self):
        request = EchoRequest(0, b"abc")
        assert request.header.size == HEADER_SIZE + 2 + 3
        assert len(request.encode()) == request.header.size

    def test_empty_payload(self):
        data = EchoRequest(0, b"").encode()
        assert data == struct.pack("<HBBH", 6, 2, 0, 0)

    def test_decode(self):
        data = EchoResponse(9, b"hello").encode()
        header = MessageHeader.decode(data[:HEADER_SIZE])

        response = EchoResponse.decode_body(header, data[HEADER_SIZE:])

        assert response.sequence == 9
        assert response.msg_size == 5
        assert response.payload == b"hello"

    def test_msg_size_mismatch(self):
        """Test that msg_size must agree with header size."""
        header = MessageHeader(size=HEADER_SIZE + 2 + 5, type=MessageType.ECHO_REQUEST, sequence=0)
        body = struct.pack("<H", 4) + b"hello"

        with pytest.raises(ProtocolError):
            EchoRequest.decode_body(header, body)

    def test_body_shorter_than_length_field(self):
        header = MessageHeader(size=HEADER_SIZE + 1, type=MessageType.ECHO_REQUEST, sequence=0)
        with pytest.raises(ProtocolError):
            EchoRequest.decode_body(header, b"\x00")

    def test_type_mismatch(self):
        data = EchoRequest(0, b"x").encode()
        header = MessageHeader.decode(data[:HEADER_SIZE])

        with pytest.raises(ProtocolError):
            EchoResponse.decode_body(header, data[HEADER_SIZE:])

    def test_max_payload_fills_size_field(self):
        request = EchoRequest(0, bytes(MAX_ECHO_PAYLOAD))
        assert request.header.size == 0xFFFF
        assert len(request.encode()) == 0xFFFF

    def test_payload_too_large(self):
        with pytest.raises(ProtocolError):
            EchoRequest(0, bytes(MAX_ECHO_PAYLOAD + 1))

    def test_response_mirrors_request(self):
        request = EchoRequest(42, b"abcd")
        response = EchoResponse.for_request(request, b"wxyz")

        assert response.sequence == 42
        assert response.msg_size == request.msg_size
        assert response.header.size == request.header.size
        assert response.header.type == MessageType.ECHO_RESPONSE

    def test_response_size_must_match(self):
        with pytest.raises(ProtocolError):
            EchoResponse.for_request(EchoRequest(0, b"abcd"), b"abc")


class TestDecodeMessage:
    """Tests for type-based dispatch."""

    @pytest.mark.parametrize("message", [
        LoginResponse(1, StatusCode.OK),
        EchoRequest(2, b"ping"),
        EchoResponse(3, b"pong"),
    ])
    def test_dispatch_on_type(self, message):
        data = message.encode()
        header = MessageHeader.decode(data[:HEADER_SIZE])

        assert decode_message(header, data[HEADER_SIZE:]) == message


class TestSequence:

    def test_increment(self):
        assert next_sequence(0) == 1
        assert next_sequence(86) == 87

    def test_wraps_at_256(self):
        assert next_sequence(255) == 0

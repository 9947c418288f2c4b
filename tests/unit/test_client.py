"""
Unit tests for EchoClient response checking.

The client talks to one end of a socketpair. Responses are queued on the
other end before each call, so nothing blocks.
"""

import socket
import struct

import pytest

from echoserver.client import EchoClient
from echoserver.core.connection import Connection
from echoserver.protocol import cipher
from echoserver.protocol.messages import (
    EchoRequest,
    EchoResponse,
    LoginRequest,
    LoginResponse,
    MAX_ECHO_PAYLOAD,
    ProtocolError,
    StatusCode,
)


@pytest.fixture
def client_pair():
    """(EchoClient wired to a socketpair, peer socket)."""
    client_sock, peer = socket.socketpair()
    peer.settimeout(2.0)

    client = EchoClient(sequence=0)
    client._conn = Connection(socket=client_sock, address=("local", 0), timeout=2.0)

    yield client, peer

    client.close()
    peer.close()


def login(client, peer, username, password):
    peer.sendall(LoginResponse(0, StatusCode.OK).encode())
    client.login(username.text, password.text)
    peer.recv(4096)


class TestLogin:
    """Tests for EchoClient.login()."""

    def test_sends_login_request(self, client_pair, username, password):
        client, peer = client_pair
        peer.sendall(LoginResponse(0, StatusCode.OK).encode())

        assert client.login("testuser", "testpass") == StatusCode.OK

        assert peer.recv(4096) == LoginRequest(0, username, password).encode()
        assert client.sequence == 1

    def test_failed_status_raises(self, client_pair):
        client, peer = client_pair
        peer.sendall(LoginResponse(0, StatusCode.FAILED).encode())

        with pytest.raises(ProtocolError):
            client.login("testuser", "testpass")

    def test_wrong_response_type_raises(self, client_pair):
        """Test that an echo response to a login is rejected."""
        client, peer = client_pair
        peer.sendall(EchoResponse(0, b"xy").encode())

        with pytest.raises(ProtocolError):
            client.login("testuser", "testpass")

    def test_wrong_sequence_raises(self, client_pair):
        client, peer = client_pair
        peer.sendall(LoginResponse(5, StatusCode.OK).encode())

        with pytest.raises(ProtocolError):
            client.login("testuser", "testpass")


class TestEcho:
    """Tests for EchoClient.echo()."""

    def test_round_trip(self, client_pair, username, password):
        client, peer = client_pair
        login(client, peer, username, password)

        encrypted = cipher.apply_for(b"hello", 1, username, password)
        peer.sendall(EchoResponse(1, encrypted).encode())

        assert client.echo("hello") == b"hello"
        assert peer.recv(4096) == EchoRequest(1, encrypted).encode()

    def test_oversized_payload_keeps_sequence(self, client_pair, username, password):
        """Test that a rejected payload does not use up a sequence number."""
        client, peer = client_pair
        login(client, peer, username, password)

        with pytest.raises(ProtocolError):
            client.echo(bytes(MAX_ECHO_PAYLOAD + 1))

        assert client.sequence == 1

    def test_size_mismatch_raises(self, client_pair, username, password):
        client, peer = client_pair
        login(client, peer, username, password)
        peer.sendall(EchoResponse(1, b"abc").encode())

        with pytest.raises(ProtocolError):
            client.echo("abcd")

    def test_wrong_sequence_raises(self, client_pair, username, password):
        client, peer = client_pair
        login(client, peer, username, password)
        encrypted = cipher.apply_for(b"abcd", 2, username, password)
        peer.sendall(EchoResponse(2, encrypted).encode())

        with pytest.raises(ProtocolError):
            client.echo("abcd")

    def test_altered_payload_raises(self, client_pair, username, password):
        client, peer = client_pair
        login(client, peer, username, password)
        peer.sendall(struct.pack("<HBBH", 10, 3, 1, 4) + b"zzzz")

        with pytest.raises(ProtocolError):
            client.echo("abcd")

"""
=============================================================================
ECHOSERVER - Authenticated Echo Service over a Binary TCP Protocol
=============================================================================

A client logs in with a username and password, then sends byte payloads.
The server decrypts each payload with a per-message keystream, and echoes
it back re-encrypted with the same keystream.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    ECHO SERVER ARCHITECTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. WIRE PROTOCOL                                                   │
    │      - 4-byte header: size, type, sequence                           │
    │      - Login request/response, echo request/response bodies          │
    │                                                                      │
    │   2. KEYSTREAM CIPHER                                                │
    │      - Key from sequence number + credential checksums               │
    │      - LCG keystream XORed over the payload (obfuscation only)       │
    │                                                                      │
    │   3. SESSION STATE MACHINE                                           │
    │      - AWAITING_LOGIN → AUTHENTICATED                                │
    │      - Out-of-order messages drop the connection                     │
    │                                                                      │
    │   4. TWO CONCURRENCY STRATEGIES                                      │
    │      - Thread per connection                                         │
    │      - Single-threaded readiness multiplexing (selectors)            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    echoserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m echoserver)
    ├── server.py            # EchoServer orchestrator
    ├── client.py            # EchoClient
    ├── config.py            # ServerConfig / ClientConfig dataclasses
    ├── core/                # Networking plumbing
    │   ├── socket_server.py # Listening socket lifecycle
    │   ├── connection.py    # Exact-size send/receive
    │   └── strategies.py    # Threaded and multiplexed serving
    ├── protocol/            # Bit-exact protocol pieces
    │   ├── messages.py      # Header and body codec
    │   └── cipher.py        # Keystream cipher
    └── handlers/            # Per-connection behavior
        ├── session.py       # SessionState
        └── dispatcher.py    # handle_one_message()

=============================================================================
QUICK START
=============================================================================

    from echoserver import EchoServer, ServerConfig, EchoClient, ClientConfig

    # Server (blocks)
    EchoServer(ServerConfig(port=8080, mode="multiplexed")).run()

    # Client
    with EchoClient(ClientConfig(port=8080)) as client:
        client.login("testuser", "testpass")
        assert client.echo("hello") == b"hello"

=============================================================================
"""

__version__ = "1.0.0"

from .server import EchoServer
from .client import EchoClient
from .config import ServerConfig, ClientConfig

__all__ = ["EchoServer", "EchoClient", "ServerConfig", "ClientConfig", "__version__"]

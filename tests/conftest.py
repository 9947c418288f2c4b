"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from typing import Callable, Generator

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from echoserver import EchoServer, EchoClient, ServerConfig, ClientConfig
from echoserver.core.connection import Connection
from echoserver.protocol.messages import Credential


@pytest.fixture
def username() -> Credential:
    return Credential.from_text("testuser")


@pytest.fixture
def password() -> Credential:
    return Credential.from_text("testpass")


@pytest.fixture
def socket_pair() -> Generator[tuple, None, None]:
    """
    A connected (server Connection, client socket) pair.

    Both ends live in the test thread. Write the request into the client
    socket first; the kernel buffers it, so the dispatcher can read it
    without blocking.
    """
    server_sock, client_sock = socket.socketpair()
    conn = Connection(socket=server_sock, address=("local", 0), timeout=2.0)
    client_sock.settimeout(2.0)

    yield conn, client_sock

    conn.close()
    client_sock.close()


class RunningServer:
    """An EchoServer running in a background thread."""

    def __init__(self, server: EchoServer):
        self.server = server
        self._thread: threading.Thread = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        self._thread = threading.Thread(
            target=self.server.run,
            kwargs={"configure_logging": False},
            daemon=True,
        )
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def client(self, **kwargs) -> EchoClient:
        """A connected client for this server."""
        config = ClientConfig(host="127.0.0.1", port=self.port, timeout=5.0)
        return EchoClient(config, **kwargs).connect()

    def wait_for(self, predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
        """Poll until predicate() is true."""
        deadline = time.time() + timeout
        while time.time() < deadline:
            if predicate():
                return True
            time.sleep(0.02)
        return predicate()


def start_server(mode: str) -> RunningServer:
    server = EchoServer(ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        mode=mode,
        poll_interval=0.05,
        read_timeout=5.0,
        log_level="WARNING",
    ))
    running = RunningServer(server)
    running.start()
    return running


@pytest.fixture(params=["threaded", "multiplexed"])
def running_server(request) -> Generator[RunningServer, None, None]:
    """A live server, once per concurrency strategy."""
    running = start_server(request.param)
    yield running
    running.stop()


@pytest.fixture
def both_servers() -> Generator[dict, None, None]:
    """One live server of each strategy, side by side."""
    servers = {mode: start_server(mode) for mode in ("threaded", "multiplexed")}
    yield servers
    for running in servers.values():
        running.stop()

"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the echo server and client.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m echoserver serve --port 9000 --threaded         │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── ECHO_PORT=9000 ECHO_MODE=threaded python -m echoserver    │
    │                                                                      │
    │   3. Defaults in the dataclass                                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Configuration is validated once at startup (fail fast). A bad port or an
unknown concurrency mode should stop the process before the socket is even
created, not surface as a confusing error later.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


THREADED = "threaded"
MULTIPLEXED = "multiplexed"
MODES = (THREADED, MULTIPLEXED)

DEFAULT_PORT = 8080


def _optional_float(value: Optional[str]) -> Optional[float]:
    """Parse an optional float from an environment variable."""
    if value is None or value.strip() == "":
        return None
    return float(value)


@dataclass
class ServerConfig:
    """
    Configuration for the echo server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog

    CONCURRENCY
    - mode ("threaded" or "multiplexed"), poll_interval

    TIMEOUTS
    - read_timeout

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    The IP address to bind to.
    - "127.0.0.1" - Localhost only
    - "0.0.0.0" - All network interfaces
    """

    port: int = DEFAULT_PORT
    """Port to listen on. 0 lets the OS pick a free port."""

    backlog: int = 10
    """
    Maximum number of queued, not yet accepted connections.
    In threaded mode this is the only bound on concurrent clients.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONCURRENCY
    # ─────────────────────────────────────────────────────────────────────

    mode: str = MULTIPLEXED
    """
    How connections are served.
    - "threaded"    - One OS thread per connection
    - "multiplexed" - One thread, readiness wait over every socket
    """

    poll_interval: float = 1.0
    """
    How often (seconds) the accept / readiness wait wakes up to check
    whether the server was asked to stop. Not a client timeout.
    """

    # ─────────────────────────────────────────────────────────────────────
    # TIMEOUTS
    # ─────────────────────────────────────────────────────────────────────

    read_timeout: Optional[float] = None
    """
    Socket timeout for client reads and writes, in seconds.
    None = block forever. A peer that stops mid-frame then stalls its
    thread (threaded) or the whole loop (multiplexed) until it goes away.
    When set, expiry is treated as a transport error.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    @property
    def threaded(self) -> bool:
        return self.mode == THREADED

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        ECHO_HOST          Server host (default: 127.0.0.1)
        ECHO_PORT          Server port (default: 8080)
        ECHO_MODE          threaded | multiplexed (default: multiplexed)
        ECHO_READ_TIMEOUT  Client read timeout in seconds (default: none)
        ECHO_LOG_LEVEL     Logging level (default: INFO)

        =====================================================================
        """
        return cls(
            host=os.getenv("ECHO_HOST", "127.0.0.1"),
            port=int(os.getenv("ECHO_PORT", str(DEFAULT_PORT))),
            mode=os.getenv("ECHO_MODE", MULTIPLEXED),
            read_timeout=_optional_float(os.getenv("ECHO_READ_TIMEOUT")),
            log_level=os.getenv("ECHO_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: On the first invalid setting.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.mode not in MODES:
            raise ValueError(f"Unknown mode: {self.mode!r}. Expected one of {MODES}.")

        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")

        if self.read_timeout is not None and self.read_timeout <= 0:
            raise ValueError("read_timeout must be > 0")


@dataclass
class ClientConfig:
    """Where the client connects and how long it waits."""

    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    timeout: Optional[float] = None

    @classmethod
    def from_env(cls) -> "ClientConfig":
        return cls(
            host=os.getenv("ECHO_HOST", "127.0.0.1"),
            port=int(os.getenv("ECHO_PORT", str(DEFAULT_PORT))),
            timeout=_optional_float(os.getenv("ECHO_CLIENT_TIMEOUT")),
        )

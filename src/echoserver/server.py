"""
=============================================================================
ECHO SERVER
=============================================================================

The orchestrator that ties the components together.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    ECHO SERVER ARCHITECTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   EchoServer    │                          │
    │                        │  (Orchestrator) │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │                 ┌───────────────┴───────────────┐                   │
    │                 ▼                               ▼                   │
    │         ┌──────────────┐               ┌──────────────────┐         │
    │         │ SocketServer │ ─ serve() ──► │ Strategy         │         │
    │         │ (listener)   │               │ threaded /       │         │
    │         └──────────────┘               │ multiplexed      │         │
    │                                        └────────┬─────────┘         │
    │                                                 │                    │
    │                                                 ▼                    │
    │                                  ┌──────────────────────────┐       │
    │                                  │ handle_one_message()     │       │
    │                                  │ session + cipher + codec │       │
    │                                  └──────────────────────────┘       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Usage:

    from echoserver import EchoServer, ServerConfig

    server = EchoServer(ServerConfig(port=8080, mode="threaded"))
    server.run()   # blocks until Ctrl+C / SIGTERM / server.shutdown()

=============================================================================
"""

import logging
from typing import Optional, Tuple

from .config import ServerConfig
from .core import SocketServer, create_strategy


logger = logging.getLogger(__name__)


class EchoServer:
    """
    Authenticated echo server.

    Validates its configuration up front, then runs the selected
    concurrency strategy on a SocketServer.
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        self._socket_server = SocketServer(self.config)
        self._strategy = create_strategy(self.config)

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    @property
    def mode(self) -> str:
        return self.config.mode

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port), resolved once the server is listening."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._socket_server.is_running

    @property
    def active_connections(self) -> int:
        return self._strategy.active_connections

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self, configure_logging: bool = True):
        """
        Start the server (blocking).

        Args:
            configure_logging: Call logging.basicConfig from the config.
                               Embedders with their own logging setup
                               pass False.
        """
        if configure_logging:
            self._setup_logging()

        logger.info(
            f"Starting echo server on {self.config.host}:{self.config.port} "
            f"({self.config.mode})"
        )

        try:
            self._socket_server.start(self._strategy)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
            self._socket_server.shutdown()
        finally:
            logger.info("Server stopped")

    def shutdown(self):
        """Stop the server. Safe to call from another thread."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_for_shutdown(timeout)

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("echoserver").setLevel(level)

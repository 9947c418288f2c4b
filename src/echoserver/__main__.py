"""
=============================================================================
ECHO SERVER CLI ENTRY POINT
=============================================================================

    # Multiplexed server on the default port (8080)
    python -m echoserver serve

    # Thread-per-connection server
    python -m echoserver serve --threaded

    # Interactive client
    python -m echoserver client

    # Benchmark: 10 concurrent clients replaying lorem_ipsum.txt
    python -m echoserver client --benchmark --sample lorem_ipsum.txt

=============================================================================
BENCHMARK MODE
=============================================================================

Client thread i reads line i of the sample file and uses its first two
words as username and password. It logs in, then echoes every line of the
file `--rounds` times. The total wall time is printed when all threads
finish.

=============================================================================
"""

import argparse
import logging
import sys
import threading
import time
from pathlib import Path
from typing import List

from . import __version__
from .client import EchoClient
from .config import ClientConfig, ServerConfig, THREADED, MULTIPLEXED
from .protocol.messages import ProtocolError
from .server import EchoServer


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="echoserver",
        description="Authenticated echo server over a binary TCP protocol",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"echoserver {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # ─────────────────────────────────────────────────────────────────────
    # SERVER
    # ─────────────────────────────────────────────────────────────────────

    env = ServerConfig.from_env()

    serve = subparsers.add_parser("serve", help="Run the echo server")
    serve.add_argument("--host", "-H", default=env.host,
                       help=f"Host to bind to (default: {env.host})")
    serve.add_argument("--port", "-p", type=int, default=env.port,
                       help=f"Port to listen on (default: {env.port})")
    serve.add_argument("--threaded", "-t", action="store_true",
                       default=env.mode == THREADED,
                       help="Thread per connection instead of the multiplexed loop")
    serve.add_argument("--read-timeout", type=float, default=env.read_timeout,
                       help="Drop clients that stall mid-read for this many seconds")
    serve.add_argument("--log-level", "-l",
                       choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                       default=env.log_level.upper(),
                       help="Logging level (default: INFO)")

    # ─────────────────────────────────────────────────────────────────────
    # CLIENT
    # ─────────────────────────────────────────────────────────────────────

    client_env = ClientConfig.from_env()

    client = subparsers.add_parser("client", help="Run the echo client")
    client.add_argument("--host", "-H", default=client_env.host)
    client.add_argument("--port", "-p", type=int, default=client_env.port)
    client.add_argument("--benchmark", "-b", action="store_true",
                        help="Run the concurrent load benchmark")
    client.add_argument("--sample", default="lorem_ipsum.txt",
                        help="Sample text for benchmark mode")
    client.add_argument("--clients", type=int, default=10,
                        help="Concurrent benchmark clients (default: 10)")
    client.add_argument("--rounds", type=int, default=1000,
                        help="Times each client replays the sample (default: 1000)")

    return parser


# =============================================================================
# SERVER
# =============================================================================

def run_server(args) -> int:
    config = ServerConfig(
        host=args.host,
        port=args.port,
        mode=THREADED if args.threaded else MULTIPLEXED,
        read_timeout=args.read_timeout,
        log_level=args.log_level,
    )

    try:
        server = EchoServer(config)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


# =============================================================================
# CLIENT
# =============================================================================

def run_interactive(config: ClientConfig) -> int:
    """Prompt for credentials, then echo lines until 'exit'."""
    try:
        client = EchoClient(config).connect()
    except OSError as e:
        print(f"Error connecting to server: {e}", file=sys.stderr)
        return 1

    print(f"Connected to the server on port {config.port}")

    with client:
        username = ""
        while not username:
            username = input("Enter username: ")
        password = input("Enter password: ")

        client.login(username, password)

        while True:
            message = input("Enter a message (or 'exit' to quit): ")
            if message == "exit":
                break
            echoed = client.echo(message)
            print(f"Server echoed: {echoed.decode('utf-8', errors='replace')}")

    return 0


def read_sample_text(path: Path) -> List[str]:
    with open(path, encoding="utf-8") as f:
        return [line.rstrip("\n") for line in f]


def run_benchmark(config: ClientConfig, lines: List[str], clients: int, rounds: int) -> float:
    """
    Run `clients` concurrent sessions against the server.

    Returns:
        Elapsed wall time in milliseconds.

    Raises:
        ValueError: Fewer sample lines than clients.
        RuntimeError: A client thread failed.
    """
    if len(lines) < clients:
        raise ValueError(f"Need at least {clients} sample lines, got {len(lines)}")

    errors: List[BaseException] = []

    def worker(index: int):
        words = lines[index].split()
        username = words[0] if words else f"user{index}"
        password = words[1] if len(words) > 1 else ""
        try:
            with EchoClient(config) as client:
                client.login(username, password)
                for _ in range(rounds):
                    for line in lines:
                        client.echo(line)
        except Exception as e:
            logger.error(f"Benchmark client {index} failed: {e}")
            errors.append(e)

    threads = [
        threading.Thread(target=worker, args=(i,), name=f"bench-{i}")
        for i in range(clients)
    ]

    start = time.perf_counter()
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    elapsed_ms = (time.perf_counter() - start) * 1000

    if errors:
        raise RuntimeError(f"{len(errors)} benchmark client(s) failed") from errors[0]
    return elapsed_ms


def run_client(args) -> int:
    config = ClientConfig(host=args.host, port=args.port)

    try:
        if not args.benchmark:
            return run_interactive(config)

        lines = read_sample_text(Path(args.sample))
        elapsed_ms = run_benchmark(config, lines, args.clients, args.rounds)
    except (EOFError, KeyboardInterrupt):
        # Input closed or Ctrl+C at a prompt
        print()
        return 0
    except (OSError, ValueError, RuntimeError, ProtocolError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"benchmark time: {elapsed_ms:.1f} ms")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        return run_server(args)
    return run_client(args)


if __name__ == "__main__":
    sys.exit(main())

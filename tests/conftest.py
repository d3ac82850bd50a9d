"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from typing import Callable, Generator, List
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from echoserver import EventLoopServer, ServerConfig


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def config(free_port: int) -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(host="127.0.0.1", port=free_port)


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll predicate every 10ms until it is true or timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def recv_exactly(sock: socket.socket, size: int, timeout: float = 5.0) -> bytes:
    """Read from a blocking client socket until size bytes arrived or EOF."""
    sock.settimeout(timeout)
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


class ServerThread:
    """Runs an EventLoopServer in a background thread."""

    def __init__(self, server: EventLoopServer):
        self.server = server
        self.error: BaseException = None
        self._thread: threading.Thread = None

    def _run(self):
        try:
            self.server.start()
        except BaseException as e:  # reported by the test that owns us
            self.error = e

    def start(self):
        """Start server in background thread and wait until it listens."""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        if not wait_until(lambda: self.server.is_running):
            raise RuntimeError("Server failed to start")

    def stop(self):
        """Stop the loop and release every socket."""
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
        self.server.close()

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


@pytest.fixture
def running_server(config: ServerConfig) -> Generator[ServerThread, None, None]:
    """An echo server running in a background thread."""
    srv = ServerThread(EventLoopServer(config=config))
    srv.start()

    yield srv

    srv.stop()


@pytest.fixture
def connect(running_server: ServerThread) -> Generator[Callable[[], socket.socket], None, None]:
    """Factory for blocking client sockets connected to running_server."""
    clients: List[socket.socket] = []

    def _connect() -> socket.socket:
        sock = socket.create_connection(("127.0.0.1", running_server.server.port), timeout=5.0)
        clients.append(sock)
        return sock

    yield _connect

    for sock in clients:
        sock.close()

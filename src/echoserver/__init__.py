"""
=============================================================================
ECHOSERVER - Single-Threaded TCP Echo Server
=============================================================================

A TCP echo server that serves any number of clients from one thread using
a readiness-multiplexing event loop: every byte a client sends is written
straight back to that client.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    echoserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m echoserver PORT)
    ├── server.py            # EventLoopServer: the event loop
    ├── config.py            # ServerConfig dataclass + port validation
    ├── errors.py            # Exception hierarchy
    ├── log.py               # Logging setup (text / json)
    └── core/                # Low-level components
        ├── listen_socket.py # Owned, non-blocking listening socket
        ├── connection.py    # One client: read a chunk, echo it
        └── readiness.py     # select() / selectors readiness wait

=============================================================================
QUICK START
=============================================================================

    from echoserver import EventLoopServer

    with EventLoopServer(7007) as server:
        server.start()   # Blocks; call server.shutdown() from elsewhere

    $ python -m echoserver 7007
    $ nc localhost 7007
    ping
    ping

=============================================================================
"""

__version__ = "1.0.0"

from .server import EventLoopServer
from .config import ServerConfig
from .core import ListenSocket
from .errors import (
    EchoServerError,
    InvalidPort,
    InvalidConfig,
    SocketCreateFailed,
    SocketOptionFailed,
    BindFailed,
    ListenFailed,
    AlreadyListening,
    AlreadyStarted,
    AcceptFailed,
    ReadinessWaitFailed,
)

__all__ = [
    "EventLoopServer",
    "ServerConfig",
    "ListenSocket",
    "EchoServerError",
    "InvalidPort",
    "InvalidConfig",
    "SocketCreateFailed",
    "SocketOptionFailed",
    "BindFailed",
    "ListenFailed",
    "AlreadyListening",
    "AlreadyStarted",
    "AcceptFailed",
    "ReadinessWaitFailed",
    "__version__",
]

"""
=============================================================================
CORE COMPONENTS
=============================================================================

Low-level building blocks of the echo server:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        CORE COMPONENTS                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  ListenSocket      The one bound, non-blocking listening socket     │
    │  Connection        One accepted client: read a chunk, echo it       │
    │  ReadinessWaiter   "Sleep until one of these fds is readable"       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

EventLoopServer (in echoserver.server) ties them together in a single
thread: no worker pool, no thread per connection.
"""

from .listen_socket import ListenSocket
from .connection import Connection, ConnectionState, ReadResult
from .readiness import ReadinessWaiter, SelectWaiter, SelectorWaiter, create_waiter

__all__ = [
    "ListenSocket",     # Owned listening socket
    "Connection",       # Wrapper for one client socket
    "ConnectionState",  # ACCEPTED / CLOSED
    "ReadResult",       # Outcome of one Connection.service() step
    "ReadinessWaiter",  # Readiness wait interface
    "SelectWaiter",     # select() backend
    "SelectorWaiter",   # selectors.DefaultSelector backend
    "create_waiter",    # Backend factory by name
]

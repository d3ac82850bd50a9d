"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one accepted client socket and performs the only thing
an echo server ever does with it: read a chunk, write the same chunk back.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. If a client sends:

        send("Hello")
        send("World")

the server might receive any split of those ten bytes:

        recv() -> "HelloWorld"
        recv() -> "Hel"  then  recv() -> "loWorld"

An echo server does not care. It has no framing: whatever bytes one recv()
returned are written straight back, in order. The client sees the same
byte stream it sent, possibly cut into different chunks.

=============================================================================
ONE SERVICE STEP
=============================================================================

The event loop calls service() once per readiness notification:

    ┌─────────────────────────────────────────────────────────────────┐
    │                      service() Outcomes                          │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   recv(buffer_size)                                              │
    │       │                                                          │
    │       ├── N > 0 bytes ──► send(those N bytes), once              │
    │       │                   └── ReadResult.ECHOED                  │
    │       │                                                          │
    │       ├── BlockingIOError ──► nothing to do yet                  │
    │       │                   └── ReadResult.WOULD_BLOCK             │
    │       │                                                          │
    │       └── b"" (peer closed) or any other OSError                 │
    │                           └── close()                            │
    │                           └── ReadResult.CLOSED                  │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

=============================================================================
BEST-EFFORT WRITES
=============================================================================

The echo is a single non-blocking send(). If the kernel send buffer only
takes part of the chunk, the rest is dropped: there is no retry and no
per-connection output queue. A failed send (reset, broken pipe, would
block) does not close the connection either; the next recv() will report
the problem if the peer is really gone.

=============================================================================
STATE MACHINE
=============================================================================

    ACCEPTED ──(data > 0, echo)──► ACCEPTED
    ACCEPTED ──(eof or error)────► CLOSED      (terminal)

There is no half-closed or draining state. Shutdown is immediate and
covers both directions.

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Tuple
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states."""
    ACCEPTED = "accepted"  # Open and tracked by the event loop
    CLOSED = "closed"      # Shut down, socket released


class ReadResult(Enum):
    """What one service() step did."""
    ECHOED = "echoed"
    WOULD_BLOCK = "would_block"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    One accepted client connection.

    Attributes:
        socket: The client socket (switched to non-blocking on creation).
        address: Client's (ip, port) tuple.
        id: Short identifier for log lines.
        fd: Descriptor value, kept after close for logging and bookkeeping.
        state: ACCEPTED or CLOSED.
        bytes_received: Total bytes read from the client.
        bytes_sent: Total bytes the kernel accepted for sending.
    """

    socket: socket.socket
    address: Tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.ACCEPTED
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    bytes_received: int = 0
    bytes_sent: int = 0

    buffer_size: int = 1024

    fd: int = field(init=False, default=-1)

    def __post_init__(self):
        # Every read/write on this socket must return immediately.
        self.socket.setblocking(False)
        self.fd = self.socket.fileno()

    def fileno(self) -> int:
        """Descriptor value while open, -1 once closed."""
        if self.state == ConnectionState.CLOSED:
            return -1
        return self.fd

    @property
    def is_open(self) -> bool:
        return self.state == ConnectionState.ACCEPTED

    @property
    def peer(self) -> str:
        """Client address as "ip:port" for log lines."""
        return f"{self.address[0]}:{self.address[1]}" if self.address else "?"

    # =========================================================================
    # SERVICE: one read, one echo
    # =========================================================================

    def service(self) -> ReadResult:
        """
        Read up to buffer_size bytes and echo them back.

        Never raises for per-connection failures; those close the
        connection and return ReadResult.CLOSED.
        """
        if self.state == ConnectionState.CLOSED:
            return ReadResult.CLOSED

        try:
            data = self.socket.recv(self.buffer_size)
        except BlockingIOError:
            return ReadResult.WOULD_BLOCK
        except OSError as e:
            logger.debug(f"[{self.id}] Read failed: {e}")
            self.close()
            return ReadResult.CLOSED

        if not data:
            # Orderly shutdown from the peer
            self.close()
            return ReadResult.CLOSED

        self.bytes_received += len(data)
        self.last_activity = time.time()
        self._echo(data)
        return ReadResult.ECHOED

    def _echo(self, data: bytes) -> None:
        """Single best-effort send; short writes are not retried."""
        try:
            sent = self.socket.send(data)
        except BlockingIOError:
            sent = 0
        except OSError as e:
            logger.debug(f"[{self.id}] Send failed: {e}")
            return

        self.bytes_sent += sent
        if sent < len(data):
            logger.debug(f"[{self.id}] Short write: {sent} of {len(data)} bytes sent")

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """
        Shut down both directions and release the descriptor.

        Idempotent. Errors from shutdown() are expected here (the peer may
        already be gone) and are ignored.
        """
        if self.state == ConnectionState.CLOSED:
            return

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Not connected anymore, that's fine

        self.socket.close()
        self.state = ConnectionState.CLOSED
        logger.debug(
            f"[{self.id}] Connection from {self.peer} closed "
            f"({self.bytes_received} bytes in, {self.bytes_sent} bytes out)"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

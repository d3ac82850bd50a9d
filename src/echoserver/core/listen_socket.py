"""
=============================================================================
LISTENING SOCKET
=============================================================================

This module owns the one listening endpoint of the echo server. It is the
"ears" of the server: clients connect to it, and every accept() hands back
a brand new socket for that client while this one keeps listening.

=============================================================================
SOCKET LIFECYCLE (Server Side)
=============================================================================

    1. socket()    Create a TCP/IPv4 socket           -> SocketCreateFailed
    2. setsockopt  SO_REUSEADDR                        -> SocketOptionFailed
    3. O_NONBLOCK  setblocking(False)                  -> SocketOptionFailed
    4. bind()      Associate with 0.0.0.0:PORT         -> BindFailed
    5. listen()    Start queueing connections          -> ListenFailed
    6. accept()    Hand out one client socket (never blocks)
    7. close()     Release the descriptor, exactly once

Steps 1-4 happen in the constructor. If any of 2-4 fails, the descriptor
from step 1 is closed before the error propagates, so a failed constructor
never leaks a file descriptor.

=============================================================================
OWNERSHIP
=============================================================================

A ListenSocket is the single owner of its descriptor:

    - It cannot be copied. copy.copy(), copy.deepcopy() and pickle raise
      TypeError, since two owners would close the same descriptor twice.

    - It can be transferred. transfer() returns a new ListenSocket that
      owns the descriptor, and leaves the original released:

          a = ListenSocket(7007)
          b = a.transfer()
          a.fileno()  # -1
          b.fileno()  # the descriptor

    - close() is idempotent. Closing a released, transferred or already
      closed ListenSocket is a no-op.

=============================================================================
NON-BLOCKING MODE
=============================================================================

The descriptor is switched to non-blocking before bind(). A readiness wait
tells the event loop WHEN to call accept(); non-blocking mode guarantees
that the call itself never parks the thread if the pending connection
disappeared in the meantime (accept() raises BlockingIOError instead).

=============================================================================
"""

import socket
import logging
from typing import Optional, Tuple

from ..config import validate_port
from ..errors import (
    AlreadyListening,
    BindFailed,
    ListenFailed,
    SocketCreateFailed,
    SocketOptionFailed,
)


logger = logging.getLogger(__name__)


class ListenSocket:
    """
    Owned handle around a bound, non-blocking TCP/IPv4 listening socket.

    Usage:
        with ListenSocket(7007) as listener:
            listener.listen()
            client, address = listener.accept()
    """

    def __init__(
        self,
        port: int,
        host: str = "0.0.0.0",
        backlog: int = socket.SOMAXCONN,
    ):
        """
        Create, configure and bind the socket.

        Args:
            port: Port to bind to, 1-65535.
            host: IPv4 address to bind to.
            backlog: Queue length used by listen().

        Raises:
            InvalidPort: before any socket is created.
            SocketCreateFailed, SocketOptionFailed, BindFailed: with the
                descriptor already released.
        """
        validate_port(port)

        self._socket: Optional[socket.socket] = None
        self._listening = False
        self._backlog = backlog

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP)
        except OSError as e:
            raise SocketCreateFailed(f"socket(): {e}") from e

        try:
            self._configure(sock, host, port)
        except BaseException:
            sock.close()
            raise

        self._socket = sock

    @staticmethod
    def _configure(sock: socket.socket, host: str, port: int) -> None:
        # SO_REUSEADDR: restart right after a crash without waiting for
        # TIME_WAIT sockets on this port to expire.
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        except OSError as e:
            raise SocketOptionFailed(f"setsockopt(SO_REUSEADDR): {e}") from e

        try:
            sock.setblocking(False)
        except OSError as e:
            raise SocketOptionFailed(f"fcntl(O_NONBLOCK): {e}") from e

        try:
            sock.bind((host, port))
        except OSError as e:
            raise BindFailed(f"bind() to {host}:{port}: {e}") from e

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def closed(self) -> bool:
        """True once the descriptor was released (closed or transferred)."""
        return self._socket is None

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def address(self) -> Tuple[str, int]:
        """The (host, port) the OS actually bound, or ("", 0) once closed."""
        if self._socket is None:
            return ("", 0)
        return self._socket.getsockname()[:2]

    @property
    def port(self) -> int:
        return self.address[1]

    def fileno(self) -> int:
        """
        Raw descriptor for the readiness wait, or -1 once released.

        Having fileno() also lets select() and selectors accept the
        ListenSocket object itself.
        """
        if self._socket is None:
            return -1
        return self._socket.fileno()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def listen(self) -> None:
        """
        Start queueing incoming connections.

        Raises:
            AlreadyListening: on the second call.
            ListenFailed: if the OS refuses, or the socket was released.
        """
        if self._listening:
            raise AlreadyListening("Already listening")
        if self._socket is None:
            raise ListenFailed("listen(): socket is closed")

        try:
            self._socket.listen(self._backlog)
        except OSError as e:
            raise ListenFailed(f"listen(): {e}") from e

        self._listening = True
        logger.debug(f"Listening on {self.address[0]}:{self.address[1]} (backlog {self._backlog})")

    def accept(self) -> Tuple[socket.socket, Tuple[str, int]]:
        """
        Accept one pending connection.

        Returns:
            (client_socket, client_address)

        Raises:
            BlockingIOError: nothing is pending.
            OSError: any other accept() failure.
        """
        if self._socket is None:
            raise OSError("accept(): socket is closed")
        return self._socket.accept()

    def close(self) -> None:
        """Release the descriptor. Safe to call any number of times."""
        sock, self._socket = self._socket, None
        if sock is None:
            return
        self._listening = False
        sock.close()

    def transfer(self) -> "ListenSocket":
        """
        Move ownership of the descriptor to a new ListenSocket.

        The source is left released, exactly as if it had been closed,
        except that the descriptor stays open in the returned object.
        """
        target = ListenSocket.__new__(ListenSocket)
        target._socket, self._socket = self._socket, None
        target._listening, self._listening = self._listening, False
        target._backlog = self._backlog
        return target

    # =========================================================================
    # SINGLE OWNERSHIP
    # =========================================================================

    def __copy__(self):
        raise TypeError("ListenSocket cannot be copied; use transfer()")

    def __deepcopy__(self, memo):
        raise TypeError("ListenSocket cannot be copied; use transfer()")

    def __reduce__(self):
        raise TypeError("ListenSocket cannot be pickled")

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        state = "closed" if self.closed else ("listening" if self._listening else "bound")
        return f"<ListenSocket fd={self.fileno()} {state}>"

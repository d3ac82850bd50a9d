"""
=============================================================================
EVENT LOOP ECHO SERVER
=============================================================================

EventLoopServer serves any number of clients from ONE thread. Instead of a
thread per connection, it asks the OS which sockets are ready and only
touches those.

=============================================================================
ONE ITERATION OF THE LOOP
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         _run_once()                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. BUILD INTEREST SET                                               │
    │     └── listener fd + wake fd + every open client fd                 │
    │                                                                      │
    │  2. WAIT FOR READINESS  (the only place the thread ever sleeps)      │
    │     └── no timeout: returns only when something is readable          │
    │                                                                      │
    │  3. SERVICE CLIENTS  (ascending fd order)                            │
    │     └── data     -> echo it back, stay open                         │
    │     └── nothing  -> stay open                                       │
    │     └── eof/err  -> shutdown + close, drop from the set             │
    │                                                                      │
    │  4. SERVICE LISTENER                                                 │
    │     └── accept ONE connection, make it non-blocking, add to set     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Clients are serviced BEFORE the listener, so a connection accepted in
step 4 is first looked at in the NEXT iteration, when it is part of the
interest set.

=============================================================================
CONCURRENCY MODEL
=============================================================================

The connection set is only ever touched by the loop thread, so it needs
no lock. If the loop is ever split across threads, that changes.

The single exception is shutdown(): it may be called from another thread
or from a signal handler. It only sets a threading.Event and writes one
byte to an internal socketpair whose read end is always in the interest
set. That byte wakes the indefinite wait; the event is checked at the top
of the next iteration.

    other thread / signal            loop thread
    ─────────────────────            ───────────
    shutdown()
      ├── event.set()
      └── wake_w.send(b"\\0") ──────► select() returns (wake fd ready)
                                      drain wake fd, finish iteration
                                      top of loop: event set -> exit
                                      close every client connection

=============================================================================
FAILURE POLICY
=============================================================================

    Per connection (never propagates):
        recv() -> b"" or OSError      close that connection only
        send() -> OSError / partial   ignored, connection stays open

    Whole server (propagates out of start()):
        accept() -> OSError           AcceptFailed
        wait()   -> OSError           ReadinessWaitFailed

accept() raising BlockingIOError is NOT a failure: the pending client went
away between the readiness report and the accept() call.

A client accepted on a descriptor the readiness backend cannot watch
(fd >= FD_SETSIZE with select()) is closed right away and logged. The
connections already being served are not affected.

=============================================================================
"""

import signal
import socket
import logging
import threading
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from .config import ServerConfig
from .core.connection import Connection, ReadResult
from .core.listen_socket import ListenSocket
from .core.readiness import create_waiter
from .errors import AcceptFailed, AlreadyStarted, SocketOptionFailed


logger = logging.getLogger(__name__)


class EventLoopServer:
    """
    Single-threaded TCP echo server.

    Usage:
        with EventLoopServer(7007) as server:
            server.start()  # Blocks until shutdown() or a fatal error

    The listening socket is created and bound in the constructor, so a bad
    port or a busy address is reported before start() is ever called.
    """

    def __init__(self, port: Optional[int] = None, config: Optional[ServerConfig] = None):
        """
        Validate the configuration and bind the listening socket.

        Args:
            port: Port to listen on. Overrides config.port when given.
            config: Full configuration. Defaults to ServerConfig().

        Raises:
            InvalidPort, InvalidConfig: before any socket is created.
            SocketCreateFailed, SocketOptionFailed, BindFailed: with nothing
                left open.
        """
        config = config or ServerConfig()
        if port is not None:
            config = replace(config, port=port)
        config.validate()  # Fail-fast on invalid config
        self.config = config

        self._socket = ListenSocket(config.port, host=config.host, backlog=config.backlog)

        try:
            self._waiter = create_waiter(config.poller)
            self._wake_r, self._wake_w = socket.socketpair()
            self._wake_r.setblocking(False)
            self._wake_w.setblocking(False)
        except BaseException:
            self._socket.close()
            raise

        # Live client connections, keyed by descriptor
        self._connections: Dict[int, Connection] = {}

        self._started = False
        self._running = False
        self._shutdown_event = threading.Event()
        self._original_handlers: dict = {}

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def started(self) -> bool:
        return self._started

    @property
    def is_running(self) -> bool:
        """True while start() is inside its loop."""
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The (host, port) the listening socket is bound to."""
        return self._socket.address

    @property
    def port(self) -> int:
        return self._socket.port

    @property
    def connection_count(self) -> int:
        """Number of live client connections."""
        return len(self._connections)

    @property
    def connection_fds(self) -> List[int]:
        """Sorted snapshot of the live client descriptors."""
        return sorted(self._connections)

    @property
    def connections(self) -> List[Connection]:
        """Snapshot of the live connections, in descriptor order."""
        return [conn for _, conn in sorted(self._connections.items())]

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """
        Listen and run the event loop.

        Blocks until shutdown() is called or a fatal error propagates.
        Every client connection is closed on the way out; the listening
        socket stays open until close().

        Raises:
            AlreadyStarted: start() was already called on this server.
                It is a same-thread reentrancy guard: the loop owns the
                thread, so there is never a second loop to interfere with.
            ListenFailed, AcceptFailed, ReadinessWaitFailed: fatal errors.
        """
        if self._started:
            raise AlreadyStarted("Already started")

        self._socket.listen()
        self._started = True
        self._running = True

        host, port = self.address
        logger.info(f"Echo server listening on {host}:{port} ({self.config.poller} backend)")

        try:
            if self.config.install_signal_handlers:
                self._setup_signals()

            while not self._shutdown_event.is_set():
                self._run_once()
        finally:
            self._running = False
            self._restore_signals()
            self._close_connections()
            logger.info("Event loop stopped")

    def shutdown(self) -> None:
        """
        Ask the loop to stop.

        Safe to call from another thread or a signal handler, and safe to
        call more than once. Returns immediately; start() returns once the
        current iteration completes.
        """
        if not self._shutdown_event.is_set():
            logger.info("Shutdown requested")
        self._shutdown_event.set()

        wake_w = self._wake_w
        if wake_w.fileno() == -1:
            return
        try:
            wake_w.send(b"\0")
        except BlockingIOError:
            pass  # Buffer full: a wakeup is already pending
        except OSError as e:
            # close() ran concurrently; there is no loop left to wake
            logger.debug(f"Wakeup not delivered: {e}")

    def close(self) -> None:
        """
        Release every resource the server owns. Idempotent.

        Call after start() has returned (or instead of it).
        """
        self._close_connections()
        self._waiter.close()
        self._wake_w.close()
        self._wake_r.close()
        self._socket.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # =========================================================================
    # THE LOOP
    # =========================================================================

    def _run_once(self, timeout: Optional[float] = None) -> None:
        """
        One iteration: build interest set, wait, service clients, accept.

        Args:
            timeout: Passed to the readiness wait. The loop always uses
                None; single-stepping tests pass a bound.
        """
        listener_fd = self._socket.fileno()
        wake_fd = self._wake_r.fileno()

        interest = [listener_fd, wake_fd]
        interest.extend(self._connections)

        ready = self._waiter.wait(interest, timeout)

        if wake_fd in ready:
            self._drain_wakeups()

        for fd in sorted(self._connections):
            if fd in ready:
                self._service_client(fd)

        if listener_fd in ready:
            self._accept_one()

    def _service_client(self, fd: int) -> None:
        conn = self._connections[fd]
        if conn.service() is ReadResult.CLOSED:
            del self._connections[fd]
            self._waiter.forget(fd)

    def _accept_one(self) -> None:
        """Accept exactly one pending connection and start tracking it."""
        try:
            client_socket, client_address = self._socket.accept()
        except BlockingIOError:
            logger.debug("Listener was readable but no connection was pending")
            return
        except OSError as e:
            logger.error(f"Accept error: {e}")
            raise AcceptFailed(f"accept(): {e}") from e

        if not self._waiter.can_watch(client_socket.fileno()):
            logger.warning(
                f"Refusing connection from {client_address[0]}:{client_address[1]}: "
                f"fd {client_socket.fileno()} is beyond what the {self._waiter.name} backend can watch"
            )
            client_socket.close()
            return

        try:
            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
            )
        except OSError as e:
            client_socket.close()
            raise SocketOptionFailed(f"fcntl(O_NONBLOCK) on accepted socket: {e}") from e

        self._connections[conn.fd] = conn
        logger.debug(f"[{conn.id}] Accepted connection from {conn.peer} on fd {conn.fd}")

    def _drain_wakeups(self) -> None:
        while True:
            try:
                if not self._wake_r.recv(4096):
                    return
            except BlockingIOError:
                return

    def _close_connections(self) -> None:
        while self._connections:
            fd, conn = self._connections.popitem()
            conn.close()
            self._waiter.forget(fd)

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def _setup_signals(self):
        """
        Route SIGINT (Ctrl+C) and SIGTERM (kill, docker stop) to shutdown().

        The previous handlers are saved and put back when start() returns,
        in case the server is embedded in a larger application.
        """
        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        """Restore original signal handlers."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

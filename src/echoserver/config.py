"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the echo server.

=============================================================================
WHY A CONFIG CLASS?
=============================================================================

The server itself only needs a port, but a handful of knobs sit around it
(bind address, backlog, read size, which readiness backend to use, logging).
Keeping them in one dataclass gives us:

1. One place to see all options
2. Typed fields with defaults
3. Eager validation (fail before any socket exists)

=============================================================================
WHERE VALUES COME FROM
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION SOURCES                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m echoserver 7007 --poller selector               │
    │                                                                      │
    │   2. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

There is no environment-variable or file layer. The process reads no
configuration file and no environment.

=============================================================================
"""

import socket
from dataclasses import dataclass

from .errors import InvalidConfig, InvalidPort


MIN_PORT = 1
MAX_PORT = 65535

POLLERS = ("select", "selector")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


def validate_port(port) -> int:
    """
    Check that ``port`` is a usable TCP port.

    Booleans are rejected even though ``bool`` is an ``int`` subclass;
    ``True`` as a port number is always a bug.

    Returns:
        The port, unchanged.

    Raises:
        InvalidPort: if port is not an int in 1..65535.
    """
    if isinstance(port, bool) or not isinstance(port, int):
        raise InvalidPort(f"Invalid port: {port!r}. Must be an integer 1-65535.")
    if not MIN_PORT <= port <= MAX_PORT:
        raise InvalidPort(f"Invalid port: {port}. Must be 1-65535.")
    return port


@dataclass
class ServerConfig:
    """
    Configuration for the echo server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size

    EVENT LOOP
    - poller, install_signal_handlers

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IPv4 address to bind to.
    - "0.0.0.0" - All interfaces (the default)
    - "127.0.0.1" - Localhost only (handy in tests)
    """

    port: int = 7007
    """The TCP port to listen on (1-65535)."""

    backlog: int = socket.SOMAXCONN
    """
    Maximum number of queued, not-yet-accepted connections.
    Defaults to the OS maximum.
    """

    buffer_size: int = 1024
    """
    Bytes read per recv() call, and therefore the largest chunk echoed
    back in one loop iteration.
    """

    # ─────────────────────────────────────────────────────────────────────
    # EVENT LOOP
    # ─────────────────────────────────────────────────────────────────────

    poller: str = "select"
    """
    Readiness backend.
    - "select"   - rebuild and scan a descriptor set every iteration
    - "selector" - selectors.DefaultSelector (epoll/kqueue), better fan-out
    """

    install_signal_handlers: bool = False
    """
    Install SIGINT/SIGTERM handlers that request a graceful shutdown.
    Only possible from the main thread, so the library default is off
    and the CLI turns it on.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "WARNING"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Log format: 'text' for humans, 'json' for log aggregators."""

    def validate(self) -> None:
        """
        Validate configuration values.

        Called from EventLoopServer.__init__ so that a bad value is
        reported before any socket is created.
        """
        validate_port(self.port)

        if self.backlog < 1:
            raise InvalidConfig(f"backlog must be >= 1, got {self.backlog}")

        if self.buffer_size < 1:
            raise InvalidConfig(f"buffer_size must be >= 1, got {self.buffer_size}")

        if self.poller not in POLLERS:
            raise InvalidConfig(
                f"Unknown poller: {self.poller!r}. Expected one of {', '.join(POLLERS)}."
            )

        if self.log_level.upper() not in LOG_LEVELS:
            raise InvalidConfig(f"Unknown log level: {self.log_level!r}")

        if self.log_format not in LOG_FORMATS:
            raise InvalidConfig(f"Unknown log format: {self.log_format!r}")

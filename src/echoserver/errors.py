"""
Exception hierarchy for the echo server.

Every fatal condition the server can hit derives from EchoServerError, so
the CLI only has to catch one type to turn a failure into an exit code:

    EchoServerError
    ├── InvalidPort           (also a ValueError)
    ├── InvalidConfig         (also a ValueError)
    ├── SocketCreateFailed
    ├── SocketOptionFailed
    ├── BindFailed
    ├── ListenFailed
    ├── AlreadyListening
    ├── AlreadyStarted
    ├── AcceptFailed
    └── ReadinessWaitFailed

Errors that wrap an OSError are raised with ``raise ... from e`` so the
original errno stays on ``__cause__``.

Per-connection failures (peer reset, EOF, broken pipe) are NOT represented
here. They are handled locally by closing that one connection.
"""


class EchoServerError(Exception):
    """Base class for all echo server errors."""


class InvalidPort(EchoServerError, ValueError):
    """Port is not an integer in 1..65535."""


class InvalidConfig(EchoServerError, ValueError):
    """A ServerConfig field has an unusable value."""


class SocketCreateFailed(EchoServerError):
    """socket() failed."""


class SocketOptionFailed(EchoServerError):
    """setsockopt() or switching to non-blocking mode failed."""


class BindFailed(EchoServerError):
    """bind() failed (address in use, permission denied, ...)."""


class ListenFailed(EchoServerError):
    """listen() failed."""


class AlreadyListening(EchoServerError):
    """listen() was called twice on the same ListenSocket."""


class AlreadyStarted(EchoServerError):
    """start() was called twice on the same EventLoopServer."""


class AcceptFailed(EchoServerError):
    """accept() reported an OS error other than 'nothing pending'."""


class ReadinessWaitFailed(EchoServerError):
    """The readiness wait (select/epoll/kqueue) reported an OS error."""

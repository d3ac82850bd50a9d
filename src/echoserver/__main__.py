"""
=============================================================================
ECHO SERVER CLI ENTRY POINT
=============================================================================

    # Serve on port 7007 (all interfaces)
    python -m echoserver 7007

    # Verbose logging, one JSON object per line
    python -m echoserver 7007 --log-level DEBUG --log-format json

    # epoll/kqueue instead of select()
    python -m echoserver 7007 --poller selector

=============================================================================
EXIT CODES
=============================================================================

    0   Malformed command line: wrong number of positional arguments,
        unknown option or bad option value (usage printed to stderr),
        or the server was stopped with Ctrl+C / SIGTERM.
    1   Any EchoServerError: bad port, bind/listen failure, fatal accept
        failure. A one-line "Error: ..." is printed to stderr.

A usage mistake exits 0, not 2 as argparse would.

=============================================================================
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import LOG_FORMATS, LOG_LEVELS, POLLERS, ServerConfig
from .errors import EchoServerError, InvalidPort
from .log import setup_logging
from .server import EventLoopServer


class UsageError(Exception):
    """Raised instead of argparse's exit(2) on a malformed command line."""


class ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that leaves the exit status of usage errors to main()."""

    def error(self, message):
        raise UsageError(message)


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="echoserver",
        description="Single-threaded TCP echo server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m echoserver 7007                      # Echo on port 7007
  python -m echoserver 7007 --log-level DEBUG    # Log every connection
  python -m echoserver 7007 --poller selector    # epoll/kqueue backend
        """
    )

    # PORT is collected with nargs="*" so that a wrong count can be
    # reported with exit status 0 instead of argparse's 2.
    parser.add_argument(
        "port",
        nargs="*",
        metavar="PORT",
        help="TCP port to listen on (1-65535)"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        default="WARNING",
        help="Logging level (default: WARNING)"
    )

    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default="text",
        help="Log line format (default: text)"
    )

    parser.add_argument(
        "--poller",
        choices=POLLERS,
        default="select",
        help="Readiness backend (default: select)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"echoserver {__version__}"
    )

    return parser


def parse_port(value: str) -> int:
    """Decimal port string to int; anything unparsable is an InvalidPort."""
    try:
        return int(value, 10)
    except ValueError:
        raise InvalidPort(f"Invalid port: {value!r}") from None


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the server from the command line.

    Returns:
        The process exit status.
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except UsageError as e:
        parser.print_usage(sys.stderr)
        print(f"{parser.prog}: error: {e}", file=sys.stderr)
        return 0

    if len(args.port) != 1:
        parser.print_usage(sys.stderr)
        return 0

    setup_logging(args.log_level, args.log_format)

    try:
        config = ServerConfig(
            port=parse_port(args.port[0]),
            poller=args.poller,
            log_level=args.log_level,
            log_format=args.log_format,
            install_signal_handlers=True,
        )
        with EventLoopServer(config=config) as server:
            server.start()
    except EchoServerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

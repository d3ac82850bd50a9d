"""
Unit tests for the owned listening socket.
"""

import copy
import pickle
import socket

import pytest

from echoserver.core.listen_socket import ListenSocket
from echoserver.errors import (
    AlreadyListening,
    BindFailed,
    InvalidPort,
    ListenFailed,
    SocketCreateFailed,
    SocketOptionFailed,
)


class TestCreate:
    """Tests for construction (socket + options + bind)."""

    @pytest.mark.parametrize("port", [0, 70000])
    def test_invalid_port_before_socket(self, port, monkeypatch):
        """An invalid port is rejected before any socket is allocated."""
        def no_sockets(*args, **kwargs):
            raise AssertionError("socket() must not be called")

        monkeypatch.setattr(socket, "socket", no_sockets)

        with pytest.raises(InvalidPort):
            ListenSocket(port)

    def test_binds_non_blocking_with_reuseaddr(self, free_port):
        with ListenSocket(free_port, host="127.0.0.1") as listener:
            sock = listener._socket

            assert listener.fileno() >= 0
            assert listener.port == free_port
            assert listener.listening is False
            assert sock.getblocking() is False
            assert sock.getsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR) != 0
            assert sock.family == socket.AF_INET
            assert sock.type == socket.SOCK_STREAM

    def test_default_host_is_all_interfaces(self, free_port):
        with ListenSocket(free_port) as listener:
            assert listener.address == ("0.0.0.0", free_port)

    def test_socket_create_failure(self, free_port, monkeypatch):
        def failing_socket(*args, **kwargs):
            raise OSError(24, "Too many open files")

        monkeypatch.setattr(socket, "socket", failing_socket)

        with pytest.raises(SocketCreateFailed) as exc_info:
            ListenSocket(free_port)
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_bind_failure_releases_descriptor(self, free_port, monkeypatch):
        """A failed bind() closes the socket before BindFailed propagates."""
        seen = []

        def recording_bind(self, address):
            seen.append(self)
            raise OSError(98, "Address already in use")

        monkeypatch.setattr(socket.socket, "bind", recording_bind)

        with pytest.raises(BindFailed):
            ListenSocket(free_port)

        assert len(seen) == 1
        assert seen[0].fileno() == -1

    def test_option_failure_releases_descriptor(self, free_port, monkeypatch):
        seen = []

        def failing_setsockopt(self, *args):
            seen.append(self)
            raise OSError(22, "Invalid argument")

        monkeypatch.setattr(socket.socket, "setsockopt", failing_setsockopt)

        with pytest.raises(SocketOptionFailed):
            ListenSocket(free_port)

        assert seen[0].fileno() == -1

    def test_bind_failure_on_busy_port(self):
        """Binding a port another socket is listening on fails."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
            busy.bind(("0.0.0.0", 0))
            busy.listen()
            port = busy.getsockname()[1]

            with pytest.raises(BindFailed, match=str(port)):
                ListenSocket(port)


class TestListen:
    """Tests for listen() and accept()."""

    def test_listen_once(self, free_port):
        with ListenSocket(free_port, host="127.0.0.1") as listener:
            listener.listen()
            assert listener.listening is True

    def test_listen_twice(self, free_port):
        with ListenSocket(free_port, host="127.0.0.1") as listener:
            listener.listen()
            with pytest.raises(AlreadyListening):
                listener.listen()

    def test_listen_after_close(self, free_port):
        listener = ListenSocket(free_port, host="127.0.0.1")
        listener.close()

        with pytest.raises(ListenFailed):
            listener.listen()

    def test_accept_does_not_block(self, free_port):
        """With nothing pending, accept() raises instead of waiting."""
        with ListenSocket(free_port, host="127.0.0.1") as listener:
            listener.listen()
            with pytest.raises(BlockingIOError):
                listener.accept()

    def test_accept_pending_connection(self, free_port):
        with ListenSocket(free_port, host="127.0.0.1") as listener:
            listener.listen()
            with socket.create_connection(("127.0.0.1", free_port), timeout=5.0) as client:
                server_side, address = listener.accept()
                with server_side:
                    assert address == client.getsockname()


class TestOwnership:
    """Tests for close(), copy and transfer semantics."""

    def test_close_is_idempotent(self, free_port):
        listener = ListenSocket(free_port, host="127.0.0.1")

        listener.close()
        listener.close()

        assert listener.closed is True
        assert listener.fileno() == -1
        assert listener.address == ("", 0)

    def test_close_releases_port(self, free_port):
        listener = ListenSocket(free_port, host="127.0.0.1")
        listener.listen()
        listener.close()

        # The same port can be bound again straight away
        with ListenSocket(free_port, host="127.0.0.1"):
            pass

    def test_not_copyable(self, free_port):
        with ListenSocket(free_port, host="127.0.0.1") as listener:
            with pytest.raises(TypeError):
                copy.copy(listener)
            with pytest.raises(TypeError):
                copy.deepcopy(listener)
            with pytest.raises(TypeError):
                pickle.dumps(listener)

    def test_transfer_invalidates_source(self, free_port):
        source = ListenSocket(free_port, host="127.0.0.1")
        source.listen()
        fd = source.fileno()

        target = source.transfer()

        assert source.closed is True
        assert source.fileno() == -1
        assert source.listening is False
        assert target.fileno() == fd
        assert target.listening is True

        # Closing the moved-from handle must not touch the descriptor
        source.close()
        assert target.fileno() == fd

        target.close()
        assert target.fileno() == -1

    def test_transfer_of_closed_socket(self, free_port):
        source = ListenSocket(free_port, host="127.0.0.1")
        source.close()

        target = source.transfer()

        assert target.closed is True
        target.close()

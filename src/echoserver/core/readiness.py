"""
=============================================================================
READINESS WAIT
=============================================================================

The event loop needs exactly one blocking primitive: "sleep until at least
one of these descriptors is readable". This module hides how that is done
behind a tiny interface:

    waiter.wait(fds)  ->  set of ready descriptors

=============================================================================
TWO BACKENDS
=============================================================================

SelectWaiter ("select")
───────────────────────
    Calls select.select() with the full interest set every time.

        iteration 1:  select([3, 5, 6, 9])   kernel scans 4 fds
        iteration 2:  select([3, 5, 6, 9])   kernel scans 4 fds again

    O(n) per iteration and limited to descriptors below FD_SETSIZE
    (usually 1024), but stateless and portable. Good for small servers.

SelectorWaiter ("selector")
───────────────────────────
    Keeps a selectors.DefaultSelector (epoll on Linux, kqueue on BSD/macOS)
    registered with the interest set. Each wait() only registers the fds
    that appeared and unregisters the ones that went away since the last
    call, then asks the kernel for the ready ones.

        iteration 1:  register 3, 5, 6, 9;  epoll_wait()
        iteration 2:  unregister 6;         epoll_wait()

    Scales to many connections. The event loop sees exactly the same
    ready sets, so per-connection behavior does not change.

=============================================================================
INTERRUPTED WAITS
=============================================================================

Since Python 3.5 (PEP 475) select() and selector.select() retry on EINTR by
themselves, recomputing the timeout. Any other OSError is a fatal
ReadinessWaitFailed.

=============================================================================
"""

import select
import selectors
import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Set

from ..errors import ReadinessWaitFailed


logger = logging.getLogger(__name__)


class ReadinessWaiter(ABC):
    """Blocks until at least one descriptor in an interest set is readable."""

    name = "abstract"

    @abstractmethod
    def wait(self, fds: Iterable[int], timeout: Optional[float] = None) -> Set[int]:
        """
        Wait for read readiness.

        Args:
            fds: The interest set (descriptor values).
            timeout: Seconds to wait. None = wait indefinitely.

        Returns:
            The subset of fds that are readable (empty only on timeout).
        """

    def can_watch(self, fd: int) -> bool:
        """Whether fd can ever be part of the interest set of this backend."""
        return fd >= 0

    def forget(self, fd: int) -> None:
        """
        Drop fd from any kernel-side registration.

        Must be called as soon as the owner closes fd, before the OS can
        hand the same number to a new socket.
        """

    def close(self) -> None:
        """Release any kernel resources. Idempotent."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class SelectWaiter(ReadinessWaiter):
    """Descriptor-set scan via select.select()."""

    name = "select"

    # FD_SETSIZE on Linux, macOS and the BSDs; select() rejects anything above
    fd_limit = 1024

    def can_watch(self, fd: int) -> bool:
        return 0 <= fd < self.fd_limit

    def wait(self, fds: Iterable[int], timeout: Optional[float] = None) -> Set[int]:
        try:
            readable, _, _ = select.select(list(fds), [], [], timeout)
        except (OSError, ValueError) as e:
            # ValueError: a descriptor >= FD_SETSIZE or negative
            raise ReadinessWaitFailed(f"select(): {e}") from e
        return set(readable)


class SelectorWaiter(ReadinessWaiter):
    """
    Registration-based readiness via selectors.DefaultSelector.

    The registered set is synced to the interest set on every wait(), so
    callers can treat it exactly like SelectWaiter.
    """

    name = "selector"

    def __init__(self):
        self._selector: Optional[selectors.BaseSelector] = selectors.DefaultSelector()
        self._registered: Set[int] = set()

    @property
    def registered(self) -> Set[int]:
        return set(self._registered)

    def forget(self, fd: int) -> None:
        if self._selector is None or fd not in self._registered:
            return
        self._registered.discard(fd)
        try:
            self._selector.unregister(fd)
        except (KeyError, ValueError):
            pass

    def _sync(self, wanted: Set[int]) -> None:
        for fd in self._registered - wanted:
            self.forget(fd)
        for fd in wanted - self._registered:
            try:
                self._selector.register(fd, selectors.EVENT_READ)
            except (KeyError, ValueError, OSError) as e:
                raise ReadinessWaitFailed(f"register({fd}): {e}") from e
            self._registered.add(fd)

    def wait(self, fds: Iterable[int], timeout: Optional[float] = None) -> Set[int]:
        if self._selector is None:
            raise ReadinessWaitFailed("selector is closed")

        self._sync(set(fds))

        try:
            events = self._selector.select(timeout)
        except OSError as e:
            raise ReadinessWaitFailed(f"{type(self._selector).__name__}.select(): {e}") from e

        return {key.fd for key, _ in events}

    def close(self) -> None:
        selector, self._selector = self._selector, None
        if selector is not None:
            selector.close()
        self._registered = set()


_WAITERS = {
    SelectWaiter.name: SelectWaiter,
    SelectorWaiter.name: SelectorWaiter,
}


def create_waiter(kind: str = "select") -> ReadinessWaiter:
    """
    Build a waiter by name ("select" or "selector").

    Raises:
        ValueError: unknown backend name.
    """
    try:
        waiter_class = _WAITERS[kind]
    except KeyError:
        raise ValueError(f"Unknown poller: {kind!r}") from None
    logger.debug(f"Using {kind} readiness backend")
    return waiter_class()

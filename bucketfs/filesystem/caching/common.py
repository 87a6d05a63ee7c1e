"""Synchronization primitives shared by the caches."""

import collections
from contextlib import contextmanager
import threading
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar

T = TypeVar("T")


class LockIndex:
    """
    Collection of mutexes to lock critical sections by arbitrary values.

    Its use case is to lock critical sections based on unpredictable input values, like
    object paths. Locks are automatically garbage collected when no longer in use (no
    threads in the critical section and none waiting to enter).
    """

    def __init__(self) -> None:
        """Instantiate a LockIndex."""
        self._global_lock = threading.Lock()

        self._locks: Dict[Any, threading.Lock] = collections.defaultdict(threading.Lock)
        self._lock_users: Dict[Any, int] = collections.defaultdict(int)

    @contextmanager
    def lock(self, key: Any, blocking=True) -> Iterator[bool]:
        """Lock a critical section based on the specified key."""
        with self._global_lock:
            self._lock_users[key] += 1
            lock = self._locks[key]

        acquired = lock.acquire(blocking)

        try:
            yield acquired
        finally:
            if acquired:
                lock.release()

            with self._global_lock:
                self._lock_users[key] -= 1

                if self._lock_users[key] == 0:
                    del self._lock_users[key]
                    del self._locks[key]

    @property
    def lock_count(self):
        """Return the number of locks currently in use."""
        with self._global_lock:
            return len(self._locks)


class _Call:
    """An in-flight call of a SingleFlight group."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.result: Any = None
        self.error: Optional[BaseException] = None


class SingleFlight:
    """
    Collapse concurrent calls for the same key into a single execution.

    The first caller for a key executes the function. Callers that arrive while it is
    still running wait for it to finish and receive the same result, or the same
    exception. Once a call has finished, the next caller for that key starts a new one.

    The internal lock is only held to register and unregister calls, so a slow function
    never blocks callers for other keys.
    """

    def __init__(self) -> None:
        """Instantiate a SingleFlight group."""
        self._lock = threading.Lock()
        self._calls: Dict[Any, _Call] = {}

    def do(self, key: Any, fn: Callable[[], T]) -> T:
        """Run fn for key, or wait for an identical call that is already running."""
        with self._lock:
            call = self._calls.get(key)

            if call is not None:
                leader = False
            else:
                call = _Call()
                self._calls[key] = call
                leader = True

        if not leader:
            call.done.wait()

            if call.error is not None:
                raise call.error

            return call.result

        try:
            call.result = fn()
            return call.result
        except BaseException as e:
            call.error = e
            raise
        finally:
            with self._lock:
                del self._calls[key]

            call.done.set()

    @property
    def in_flight(self) -> int:
        """Return the number of calls that are currently running."""
        with self._lock:
            return len(self._calls)

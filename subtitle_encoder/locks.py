"""Per-key mutual exclusion for cache conversions (single-flight)."""

import asyncio
import threading
import weakref
from typing import Awaitable, Callable, Tuple, TypeVar

T = TypeVar("T")


class KeyedLockRegistry:
    """Hands out one :class:`asyncio.Lock` per key and event loop.

    Locks are held weakly: an entry lives exactly as long as some task holds
    or waits on its lock, so the registry does not grow with every key ever
    seen.  Get-or-insert runs under a thread lock, so two first requests for
    the same key always receive the same lock object.

    An asyncio lock only works on one loop, so entries are keyed by the
    running loop as well.  Callers on different loops (threads each running
    their own ``asyncio.run``) are not serialized against each other.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[Tuple[asyncio.AbstractEventLoop, str], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def __contains__(self, key: object) -> bool:
        with self._guard:
            return any(entry == key for _, entry in self._locks.keys())

    def get_lock(self, key: str) -> asyncio.Lock:
        """Return the running loop's lock for *key*, creating it on first use."""
        slot = (asyncio.get_running_loop(), key)
        with self._guard:
            lock = self._locks.get(slot)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[slot] = lock
            return lock

    async def run_exclusive(self, key: str, work: Callable[[], Awaitable[T]]) -> T:
        """Run *work* while holding the lock for *key* and return its result.

        Only the wait for the lock is cancellable.  Once the lock is granted
        *work* runs in its own task that owns the lock until it finishes, so
        cancelling the caller stops the caller's wait but never the work
        other waiters depend on.
        """
        lock = self.get_lock(key)
        await lock.acquire()
        try:
            task = asyncio.ensure_future(_release_after(lock, work))
        except BaseException:
            lock.release()
            raise
        task.add_done_callback(_retrieve_result)
        return await asyncio.shield(task)


async def _release_after(lock: asyncio.Lock, work: Callable[[], Awaitable[T]]) -> T:
    try:
        return await work()
    finally:
        lock.release()


def _retrieve_result(task: "asyncio.Future[object]") -> None:
    # Failures are logged by the work itself; mark them retrieved so an
    # abandoned task does not warn on garbage collection.
    if not task.cancelled():
        task.exception()


#: Process-wide registry shared by every encoder that is not given its own.
default_registry = KeyedLockRegistry()

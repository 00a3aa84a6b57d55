import asyncio
from typing import Dict


class ThreadLockRegistry:
    """
    One asyncio.Lock per thread id, created on demand.

    Serializes submissions and retries on the same thread inside this
    process. A lock is dropped once nobody holds or waits for it.
    Acquire and release may happen in different tasks.
    """

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._users: Dict[int, int] = {}

    async def acquire(self, thread_id: int) -> None:

        lock = self._locks.setdefault(thread_id, asyncio.Lock())
        self._users[thread_id] = self._users.get(thread_id, 0) + 1

        try:
            await lock.acquire()
        except BaseException:
            self._forget(thread_id)
            raise

    def release(self, thread_id: int) -> None:

        lock = self._locks.get(thread_id)

        if lock is None or not lock.locked():
            return

        lock.release()
        self._forget(thread_id)

    def _forget(self, thread_id: int) -> None:

        remaining = self._users.get(thread_id, 1) - 1

        if remaining <= 0:
            self._users.pop(thread_id, None)
            self._locks.pop(thread_id, None)
        else:
            self._users[thread_id] = remaining

from __future__ import annotations

import asyncio
import weakref
from collections import defaultdict


class UserRunLocks:
    """One asyncio.Lock per uid so a manual trigger and the sweep never overlap.

    Locks are kept per event loop; an asyncio.Lock cannot be shared between loops.
    """

    def __init__(self) -> None:
        self._by_loop: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[str, asyncio.Lock]] = (
            weakref.WeakKeyDictionary()
        )

    def for_user(self, uid: str) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        locks = self._by_loop.get(loop)
        if locks is None:
            locks = defaultdict(asyncio.Lock)
            self._by_loop[loop] = locks
        return locks[uid]


_RUN_LOCKS: UserRunLocks | None = None


def get_run_locks() -> UserRunLocks:
    global _RUN_LOCKS
    if _RUN_LOCKS is None:
        _RUN_LOCKS = UserRunLocks()
    return _RUN_LOCKS

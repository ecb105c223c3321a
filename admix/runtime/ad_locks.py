import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator


# ad_id -> lock serialising pointer writes and the rebuild that follows them
ad_locks: dict[str, asyncio.Lock] = {}
# ad_id -> tasks holding or waiting for the lock; the entry goes when this drops to 0
_lock_users: defaultdict[str, int] = defaultdict(int)


@asynccontextmanager
async def ad_lock(ad_id: str) -> AsyncIterator[None]:
    lock = ad_locks.setdefault(ad_id, asyncio.Lock())
    _lock_users[ad_id] += 1
    try:
        async with lock:
            yield
    finally:
        _lock_users[ad_id] -= 1
        if _lock_users[ad_id] == 0:
            del _lock_users[ad_id]
            ad_locks.pop(ad_id, None)

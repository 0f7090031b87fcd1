"""Per-dataset serialization for lifecycle mutations.

The in-process lock serializes concurrent handlers in one API process; the
`SELECT ... FOR UPDATE` taken inside it on the dataset row serializes across
processes on PostgreSQL.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class DatasetLocks:
    """Registry of one `asyncio.Lock` per dataset id.

    Entries are reference-counted and dropped once no task holds or waits on
    them, so the registry does not grow with the number of datasets ever seen.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}
        self._guard = asyncio.Lock()

    @asynccontextmanager
    async def hold(self, dataset_id: str) -> AsyncIterator[None]:
        async with self._guard:
            lock = self._locks.setdefault(dataset_id, asyncio.Lock())
            self._waiters[dataset_id] = self._waiters.get(dataset_id, 0) + 1

        try:
            async with lock:
                yield
        finally:
            async with self._guard:
                self._waiters[dataset_id] -= 1
                if self._waiters[dataset_id] == 0:
                    del self._waiters[dataset_id]
                    del self._locks[dataset_id]

    def __len__(self) -> int:
        return len(self._locks)


"""Change notification for long-poll watchers.

Every write bumps a revision for the written path and for the collection
that contains it. A watcher passes the last revision it saw; wait() returns
as soon as the path's revision moves past it, or after the timeout.

Revisions come from one counter seeded with the process start time, so a
client that watched a previous process always sees the first revision of a
new one as newer than anything it holds.
"""

import asyncio
import time

from obscura.store import parent_collection


class Notifier:
    def __init__(self) -> None:
        self._counter = time.time_ns() // 1000
        self._start = self._counter
        self._revisions: dict[str, int] = {}
        self._waiters: dict[str, set[asyncio.Event]] = {}

    def revision(self, path: str) -> int:
        return self._revisions.get(path, self._start)

    def bump(self, path: str) -> int:
        """Record a change to `path` (and its collection) and wake watchers."""
        self._counter += 1
        targets = [path]
        parent = parent_collection(path)
        if parent:
            targets.append(parent)
        for target in targets:
            self._revisions[target] = self._counter
            for event in self._waiters.get(target, set()):
                event.set()
        return self._counter

    async def wait(self, path: str, after: int, timeout: float) -> bool:
        """Wait until `path` changes past `after`. Returns False on timeout."""
        if self.revision(path) > after:
            return True
        if timeout <= 0:
            return False
        event = asyncio.Event()
        self._waiters.setdefault(path, set()).add(event)
        try:
            await asyncio.wait_for(event.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            waiters = self._waiters.get(path)
            if waiters is not None:
                waiters.discard(event)
                if not waiters:
                    del self._waiters[path]


notifier = Notifier()

"""Rate-free work queue with de-duplication and single-flight processing.

Semantics:

- An item added while already pending is not queued twice.
- An item being processed is never handed to a second worker. If it is added
  again meanwhile, it is queued once processing finishes (:meth:`done`).
- :meth:`add_after` schedules an add for later; the earliest schedule wins.
- :meth:`shut_down` wakes every waiting worker; :meth:`get` then returns None.
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from collections import deque
from collections.abc import Hashable


class WorkQueue[T: Hashable]:
    """Thread-safe work queue keyed by item identity.

    Args:
        name: Used in logs and thread names.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._cond = threading.Condition()
        self._queue: deque[T] = deque()
        self._dirty: set[T] = set()
        self._processing: set[T] = set()
        self._delayed: list[tuple[float, int, T]] = []
        self._delayed_at: dict[T, float] = {}
        self._counter = itertools.count()
        self._shutting_down = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def add(self, item: T) -> None:
        with self._cond:
            self._add_locked(item)

    def _add_locked(self, item: T) -> None:
        if self._shutting_down or item in self._dirty:
            return
        self._dirty.add(item)
        if item in self._processing:
            return
        self._queue.append(item)
        self._cond.notify()

    def add_after(self, item: T, delay: float) -> None:
        """Add ``item`` once ``delay`` seconds have passed."""
        if delay <= 0:
            self.add(item)
            return
        ready_at = time.monotonic() + delay
        with self._cond:
            if self._shutting_down:
                return
            scheduled = self._delayed_at.get(item)
            if scheduled is not None and scheduled <= ready_at:
                return
            self._delayed_at[item] = ready_at
            heapq.heappush(self._delayed, (ready_at, next(self._counter), item))
            self._cond.notify()

    def _promote_due_locked(self) -> float | None:
        """Move due delayed items into the queue; return seconds to the next one."""
        now = time.monotonic()
        while self._delayed:
            ready_at, _, item = self._delayed[0]
            if self._delayed_at.get(item) != ready_at:
                heapq.heappop(self._delayed)
                continue
            if ready_at > now:
                return ready_at - now
            heapq.heappop(self._delayed)
            del self._delayed_at[item]
            self._add_locked(item)
        return None

    def get(self, timeout: float | None = None) -> T | None:
        """Take the next item, blocking until one is available.

        Returns:
            The item, or None on shutdown or when ``timeout`` expires. Every
            returned item must be passed to :meth:`done`.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._shutting_down:
                    return None
                next_due = self._promote_due_locked()
                if self._queue:
                    item = self._queue.popleft()
                    self._dirty.discard(item)
                    self._processing.add(item)
                    return item
                wait = next_due
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, item: T) -> None:
        """Mark processing of ``item`` finished, re-queueing it if it was re-added."""
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty and not self._shutting_down:
                self._queue.append(item)
                self._cond.notify()

    def is_idle(self) -> bool:
        """True when nothing is queued or being processed; delayed adds are ignored."""
        with self._cond:
            return not self._queue and not self._processing

    def shut_down(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._delayed.clear()
            self._delayed_at.clear()
            self._cond.notify_all()


__all__ = ["WorkQueue"]

"""Keyed work queue.

A key is handed to at most one worker at a time. Adding a key that is
already queued is a no-op, and adding a key that is being processed defers
it until the worker calls ``done``. This gives one logical worker per
application while different applications proceed in parallel.
"""

from __future__ import annotations

import threading
from collections import deque


class KeyedWorkQueue:
    """Thread-safe de-duplicating queue of ``namespace/name`` keys."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._queue: deque[str] = deque()
        self._dirty: set[str] = set()
        self._processing: set[str] = set()
        self._timers: dict[str, threading.Timer] = {}
        self._shutting_down = False

    def add(self, key: str) -> None:
        """Queue a key unless it is already waiting."""
        with self._cond:
            if self._shutting_down or key in self._dirty:
                return
            self._dirty.add(key)
            if key in self._processing:
                return
            self._queue.append(key)
            self._cond.notify()

    def add_after(self, key: str, delay: float) -> None:
        """Queue a key after ``delay`` seconds, replacing any pending delay."""
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            pending = self._timers.pop(key, None)
            if pending is not None:
                pending.cancel()
            timer = threading.Timer(delay, self._fire, args=(key,))
            timer.daemon = True
            self._timers[key] = timer
            timer.start()

    def _fire(self, key: str) -> None:
        with self._cond:
            self._timers.pop(key, None)
        self.add(key)

    def get(self, timeout: float | None = None) -> str | None:
        """Take the next key, or None on timeout or shutdown."""
        with self._cond:
            if not self._queue and not self._shutting_down:
                self._cond.wait(timeout)
            if not self._queue:
                return None
            key = self._queue.popleft()
            self._processing.add(key)
            self._dirty.discard(key)
            return key

    def done(self, key: str) -> None:
        """Mark a key as processed, re-queuing it if it was added meanwhile."""
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty and not self._shutting_down:
                self._queue.append(key)
                self._cond.notify()

    def shutdown(self) -> None:
        """Stop accepting keys and wake every waiting worker."""
        with self._cond:
            self._shutting_down = True
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._queue.clear()
            self._cond.notify_all()

    @property
    def is_shutting_down(self) -> bool:
        """Whether ``shutdown`` was called."""
        with self._cond:
            return self._shutting_down

    def pending(self, key: str) -> bool:
        """Whether a key is waiting to be processed."""
        with self._cond:
            return key in self._dirty

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

"""Coalescing work queue with per-key back-off."""

from __future__ import annotations

import logging
from collections import deque
from threading import Condition, Timer
from typing import Deque, Dict, List, Optional, Set

LOG = logging.getLogger(__name__)

# Upper bound on back-off doublings per key.
_MAX_BACKOFF_EXPONENT = 32


class WorkQueue:
    """FIFO of keys where each key is pending at most once.

    A key added while it is being processed is marked dirty and handed out
    again only after :meth:`done`, so no two workers ever hold the same key.
    """

    def __init__(self, base_delay: float = 0.005, max_delay: float = 300.0) -> None:
        self._cond = Condition()
        self._queue: Deque[str] = deque()
        self._dirty: Set[str] = set()
        self._processing: Set[str] = set()
        self._failures: Dict[str, int] = {}
        self._timers: List[Timer] = []
        self._shutting_down = False
        self._base_delay = base_delay
        self._max_delay = max_delay

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, key: str) -> None:
        with self._cond:
            if self._shutting_down or key in self._dirty:
                return
            self._dirty.add(key)
            if key in self._processing:
                return
            self._queue.append(key)
            self._cond.notify()

    def get(self, timeout: Optional[float] = None) -> Optional[str]:
        """Block until a key is available; ``None`` on shutdown or timeout."""

        with self._cond:
            if not self._cond.wait_for(
                lambda: self._queue or self._shutting_down, timeout=timeout
            ):
                return None
            if not self._queue:
                return None
            key = self._queue.popleft()
            self._processing.add(key)
            self._dirty.discard(key)
            return key

    def done(self, key: str) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    # ------------------------------------------------------------------
    # Retry handling
    # ------------------------------------------------------------------
    def add_rate_limited(self, key: str) -> float:
        """Re-add ``key`` after an exponentially growing delay."""

        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
            exponent = min(failures, _MAX_BACKOFF_EXPONENT)
            delay = min(self._base_delay * (2 ** exponent), self._max_delay)
            if self._shutting_down:
                return delay
            timer = Timer(delay, self.add, args=(key,))
            timer.daemon = True
            self._timers = [t for t in self._timers if t.is_alive()]
            self._timers.append(timer)
        timer.start()
        LOG.debug("Requeueing %s in %.3fs (attempt %d)", key, delay, failures + 1)
        return delay

    def forget(self, key: str) -> None:
        with self._cond:
            self._failures.pop(key, None)

    def num_requeues(self, key: str) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    def shut_down(self) -> None:
        with self._cond:
            self._shutting_down = True
            timers, self._timers = self._timers, []
            self._cond.notify_all()
        for timer in timers:
            timer.cancel()

"""Minimum-spacing gate for generative collaborator calls."""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict


class RateGate:
    """Enforce a minimum interval between consecutive calls sharing a key.

    ``wait(key)`` blocks until ``min_interval_ms`` has elapsed since the last
    call recorded for ``key`` and then records the current call. Distinct keys
    never delay each other.
    """

    def __init__(
        self,
        min_interval_ms: int = 1000,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = max(0, min_interval_ms) / 1000.0
        self._clock = clock
        self._sleep = sleep
        self._last_call: Dict[str, float] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def wait(self, key: str) -> float:
        """Block as needed for ``key``; return the seconds slept."""
        with self._lock_for(key):
            slept = 0.0
            last = self._last_call.get(key)
            if last is not None:
                remaining = self.min_interval - (self._clock() - last)
                if remaining > 0:
                    self._sleep(remaining)
                    slept = remaining
            self._last_call[key] = self._clock()
            return slept

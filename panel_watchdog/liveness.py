"""Liveness mark for the reconciliation loop."""

import time
from threading import Lock
from typing import Callable


class LivenessReporter:
    """
    Remembers when the last reconciliation pass completed.

    The mark starts at construction time so a freshly started process
    reports healthy until it has had a chance to run.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = Lock()
        self._last_mark = clock()

    def mark_progress(self) -> None:
        with self._lock:
            self._last_mark = self._clock()

    def seconds_since_progress(self) -> float:
        with self._lock:
            return self._clock() - self._last_mark

    def is_healthy(self, stale_after: float) -> bool:
        """True iff a pass completed less than stale_after seconds ago."""
        return self.seconds_since_progress() < stale_after

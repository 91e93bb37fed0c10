"""Spacing between consecutive units of work in a tracking cycle."""

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Enforces a minimum delay between consecutive ``acquire`` calls.

    The first call never waits. ``sleep`` and ``clock`` are injectable so
    the limiter can be driven without real time passing.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if min_interval < 0:
            raise ValueError("min_interval must not be negative")
        self.min_interval = min_interval
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()
        self._last: float | None = None

    def acquire(self) -> float:
        """
        Wait until ``min_interval`` has passed since the previous call.

        Returns:
            Time waited in seconds
        """
        with self._lock:
            waited = 0.0
            if self._last is not None:
                remaining = self._last + self.min_interval - self._clock()
                if remaining > 0:
                    logger.debug("Rate limiter: waiting %.2fs", remaining)
                    self._sleep(remaining)
                    waited = remaining
            self._last = self._clock()
            return waited

    def reset(self) -> None:
        with self._lock:
            self._last = None

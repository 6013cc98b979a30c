"""
Rate keeping for host control loops, after openpilot's common.realtime.
"""

from __future__ import annotations

import time
from typing import Callable

from common.logger import get_logger

logger = get_logger("realtime")


def monotonic_time() -> float:
    """Return monotonic time in seconds."""
    return time.monotonic()


class RateKeeper:
    """
    Hold a loop at a fixed rate:
    - monitor_time(): advance one frame, return remaining time (negative if late)
    - keep_time(): monitor_time() then sleep for whatever is left
    """

    def __init__(
        self,
        rate_hz: float,
        clock: Callable[[], float] = monotonic_time,
        sleep: Callable[[float], None] = time.sleep,
        lag_warn_threshold: float | None = 0.01,
    ):
        if rate_hz <= 0.0:
            raise ValueError("rate_hz must be positive")
        self.period = 1.0 / rate_hz
        self.clock = clock
        self.sleep = sleep
        self.lag_warn_threshold = lag_warn_threshold
        self.frame = 0
        self.lagged_frames = 0
        self._next = self.clock() + self.period

    def monitor_time(self) -> float:
        now = self.clock()
        remaining = self._next - now
        if self.lag_warn_threshold is not None and remaining < -self.lag_warn_threshold:
            self.lagged_frames += 1
            logger.warning(f"Control loop lagging by {-remaining * 1000:.2f} ms (frame {self.frame})")
        self._next += self.period
        self.frame += 1
        return remaining

    def keep_time(self) -> bool:
        """Sleep out the rest of the frame. Returns True if the frame ran late."""
        remaining = self.monitor_time()
        if remaining > 0.0:
            self.sleep(remaining)
        return remaining < 0.0

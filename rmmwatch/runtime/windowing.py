import math
from collections import deque
from datetime import datetime
from typing import Optional


class DurationTracker:
    """
    Continuous-truth window over per-tick outcomes.

    The window holds the last ``ceil(window / tick)`` outcomes; it is satisfied
    only once it is full and every outcome is true. Skipped ticks (sample
    unavailable) leave the buffer untouched.

    A true outcome observed less than one tick interval after the previous
    accepted true outcome does not advance the window, so extra evaluations
    between ticks cannot shorten it. A false outcome always breaks the run.
    """

    def __init__(self, window_seconds: float, tick_seconds: float):
        self.window_seconds = window_seconds
        self.tick_seconds = tick_seconds
        self.required = max(1, math.ceil(window_seconds / tick_seconds))
        self.buffer = deque(maxlen=self.required)
        self._last_true: Optional[datetime] = None

    def add(self, outcome: bool, now: Optional[datetime] = None) -> bool:
        if not outcome:
            self.buffer.append(False)
            self._last_true = None
            return False
        if now is not None and self._last_true is not None:
            if (now - self._last_true).total_seconds() < self.tick_seconds:
                return self.satisfied
        self.buffer.append(True)
        self._last_true = now
        return self.satisfied

    def skip(self) -> bool:
        return self.satisfied

    def reset(self) -> None:
        self.buffer.clear()
        self._last_true = None

    @property
    def satisfied(self) -> bool:
        return len(self.buffer) == self.required and all(self.buffer)

    @property
    def progress(self) -> int:
        """Number of trailing consecutive true outcomes."""
        n = 0
        for outcome in reversed(self.buffer):
            if not outcome:
                break
            n += 1
        return n

    def is_ready(self) -> bool:
        return len(self.buffer) == self.required


def make_tracker(window_seconds: Optional[float], tick_seconds: float) -> Optional[DurationTracker]:
    if not window_seconds:
        return None
    return DurationTracker(window_seconds, tick_seconds)

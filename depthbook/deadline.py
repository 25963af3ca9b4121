import math
import time
from typing import Callable, Optional

from depthbook.errors import DeadlineExceededError


class Deadline:
    """Wall-clock budget for one depth query."""

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.expires_at = None if seconds is None else clock() + seconds

    def remaining(self) -> float:
        if self.expires_at is None:
            return math.inf
        return max(0.0, self.expires_at - self._clock())

    def expired(self) -> bool:
        return self.expires_at is not None and self._clock() >= self.expires_at

    def check(self, stage: str = "query") -> None:
        if self.expired():
            raise DeadlineExceededError(f"{stage} exceeded the query deadline")

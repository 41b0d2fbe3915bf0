from __future__ import annotations

from typing import Callable, NamedTuple
import math
import time

SPEED_ALPHA = 0.2  # higher = more responsive, more jitter
NOISE_FLOOR = 1.0  # bytes/sec


class RateSample(NamedTuple):
    timestamp: float
    bytes: int


class RateEstimator:
    """Exponentially-weighted moving average of throughput.

    ``sample`` is called on a fixed cadence with the running byte count. The
    first non-zero instantaneous rate seeds the average directly so the
    estimate does not ramp up slowly from zero.
    """

    def __init__(
        self,
        alpha: float = SPEED_ALPHA,
        noise_floor: float = NOISE_FLOOR,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not 0.0 < alpha < 1.0:
            raise ValueError(f"alpha must be in (0, 1), got {alpha}")
        self.alpha = alpha
        self.noise_floor = noise_floor
        self._clock = clock
        self._last = RateSample(clock(), 0)
        self._seeded = False
        self.rate = 0.0
        self.instantaneous = 0.0

    @property
    def last_sample(self) -> RateSample:
        return self._last

    def sample(self, uploaded: int, now: float | None = None) -> float:
        now = self._clock() if now is None else now
        dt = now - self._last.timestamp
        if dt <= 0:
            return self.rate

        inst = (uploaded - self._last.bytes) / dt
        self.instantaneous = inst
        if not self._seeded:
            if inst > 0:
                self.rate = inst
                self._seeded = True
        else:
            self.rate = self.alpha * inst + (1 - self.alpha) * self.rate

        self._last = RateSample(now, uploaded)
        return self.rate

    def eta(self, total: int, uploaded: int) -> float:
        """Seconds until ``total`` is reached, ``math.inf`` when unknown."""
        if self.rate <= self.noise_floor:
            return math.inf
        return max(0, total - uploaded) / self.rate

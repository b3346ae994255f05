"""
Latest-value cell shared between the detector thread and the render loop.
"""

import threading
import time
from typing import Callable, Generic, Optional, Tuple, TypeVar

from .gesture import GestureSample

T = TypeVar("T")


class LatestValue(Generic[T]):
    """
    Thread-safe single-slot cell holding the newest value.

    Every write replaces the previous value and stamps it with a
    monotonic timestamp.
    """

    def __init__(self, initial: T, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._value = initial
        self._updated_at: Optional[float] = None
        self._writes = 0

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value
            self._updated_at = self._clock()
            self._writes += 1

    def get(self) -> Tuple[T, Optional[float]]:
        """Return (value, update timestamp); timestamp is None if never set."""
        with self._lock:
            return self._value, self._updated_at

    def age(self) -> Optional[float]:
        """Seconds since the last write, or None if never written."""
        with self._lock:
            if self._updated_at is None:
                return None
            return self._clock() - self._updated_at

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    @property
    def writes(self) -> int:
        return self._writes


def read_sample(cell: LatestValue[GestureSample], max_age: float) -> GestureSample:
    """
    Read the current gesture sample, degrading to idle when stale.

    Args:
        cell: Cell written by the landmark source
        max_age: Samples older than this (seconds) count as no hand
    """
    sample, updated_at = cell.get()
    if updated_at is None or cell.clock() - updated_at > max_age:
        return GestureSample.idle()
    return sample

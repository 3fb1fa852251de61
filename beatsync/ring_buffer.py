"""Circular mono sample buffer shared between a capture thread and the tick loop."""

import numpy as np
from typing import Tuple

from .logging_utils import log_event


class SampleRingBuffer:
    """
    Single-producer circular buffer with a monotonically advancing write cursor.

    The capture thread calls ``write``; readers keep their own absolute cursor
    and call ``read_since`` from the tick loop. Neither side blocks. A reader
    that falls more than ``capacity`` samples behind skips to the oldest
    retained sample.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = int(capacity)
        self._data = np.zeros(self.capacity, dtype=np.float32)
        self._written = 0  # Total samples ever written

    @property
    def write_cursor(self) -> int:
        return self._written

    def write(self, samples: np.ndarray) -> None:
        samples = np.asarray(samples, dtype=np.float32).ravel()
        if len(samples) == 0:
            return
        if len(samples) > self.capacity:
            dropped = len(samples) - self.capacity
            samples = samples[-self.capacity:]
            self._written += dropped

        start = self._written % self.capacity
        first = min(len(samples), self.capacity - start)
        self._data[start:start + first] = samples[:first]
        if first < len(samples):
            self._data[:len(samples) - first] = samples[first:]
        # Cursor moves only after the data is in place
        self._written += len(samples)

    def available(self, cursor: int) -> int:
        return min(self._written - cursor, self.capacity)

    def read_since(self, cursor: int, min_samples: int = 1) -> Tuple[np.ndarray, int]:
        """
        Read everything written after ``cursor``.

        Returns:
            (samples, new_cursor). Samples is empty and the cursor unchanged
            when fewer than ``min_samples`` new samples exist.
        """
        written = self._written
        pending = written - cursor
        if pending < min_samples:
            return np.zeros(0, dtype=np.float32), cursor

        if pending > self.capacity:
            log_event("warning", "Source", "Reader lapped by writer, skipping ahead",
                      lost_samples=pending - self.capacity)
            cursor = written - self.capacity
            pending = self.capacity

        out = self._copy_out(cursor, pending)

        # The producer may have overwritten the oldest samples during the copy
        overwritten = self._written - self.capacity - cursor
        if overwritten > 0:
            log_event("warning", "Source", "Samples overwritten while reading, dropped",
                      lost_samples=min(overwritten, pending))
            out = out[overwritten:]
        return out, written

    def _copy_out(self, cursor: int, count: int) -> np.ndarray:
        start = cursor % self.capacity
        first = min(count, self.capacity - start)
        out = np.empty(count, dtype=np.float32)
        out[:first] = self._data[start:start + first]
        if first < count:
            out[first:] = self._data[:count - first]
        return out

    def clear(self) -> None:
        self._data[:] = 0.0
        self._written = 0

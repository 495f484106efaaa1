import numpy as np
import logging

from .types import BufferSnapshot


class WindowBuffer:
    """Fixed-capacity circular buffer of conditioned samples and their timestamps."""

    def __init__(self, capacity=256):
        self.logger = logging.getLogger('FingerPulse.WindowBuffer')
        if not 128 <= capacity <= 1024:
            raise ValueError(f"capacity must be within 128-1024, got {capacity}")

        self.capacity = capacity
        self._values = np.zeros(capacity, dtype=np.float64)
        self._timestamps = np.zeros(capacity, dtype=np.float64)
        self._head = 0          # next write position
        self._size = 0
        self.total_count = 0    # accepted samples since the last clear
        self.dropped_count = 0

    def __len__(self):
        return self._size

    @property
    def last_timestamp(self):
        if self._size == 0:
            return None
        return float(self._timestamps[(self._head - 1) % self.capacity])

    def accepts(self, timestamp):
        last = self.last_timestamp
        return last is None or timestamp > last

    def reject(self, timestamp):
        """Count a sample dropped for a non-increasing timestamp."""
        self.dropped_count += 1
        self.logger.warning("Dropping sample with non-monotonic timestamp %.1f (last %.1f)",
                            timestamp, self.last_timestamp)

    def append(self, timestamp, value):
        """
        Append one sample, overwriting the oldest when full.

        Returns:
            bool: False if the sample was dropped for a non-increasing timestamp
        """
        if not self.accepts(timestamp):
            self.reject(timestamp)
            return False

        self._values[self._head] = value
        self._timestamps[self._head] = timestamp
        self._head = (self._head + 1) % self.capacity
        self._size = min(self._size + 1, self.capacity)
        self.total_count += 1
        return True

    def snapshot(self):
        """Oldest-first copy of the buffered window; the arrays are read-only."""
        if self._size < self.capacity:
            values = self._values[:self._size].copy()
            timestamps = self._timestamps[:self._size].copy()
        else:
            values = np.roll(self._values, -self._head)
            timestamps = np.roll(self._timestamps, -self._head)

        values.setflags(write=False)
        timestamps.setflags(write=False)
        return BufferSnapshot(
            timestamps=timestamps,
            values=values,
            start_index=self.total_count - self._size,
        )

    def clear(self):
        self._head = 0
        self._size = 0
        self.total_count = 0
        self.dropped_count = 0

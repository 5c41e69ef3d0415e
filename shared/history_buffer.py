from __future__ import annotations

from collections import deque
from threading import Lock
from typing import Deque, Iterable

import numpy as np

from .errors import ConfigurationError


class HistoryBuffer:
    """
    Thread-safe, bounded FIFO of scalar values for live display.

    The ingest worker appends; any other thread may take a snapshot. Eviction
    and append happen under the same lock, so a snapshot never holds more
    than `capacity` values.
    """

    def __init__(self, capacity: int) -> None:
        if int(capacity) <= 0:
            raise ConfigurationError("history capacity must be positive")
        self._capacity = int(capacity)
        self._buffer: Deque[float] = deque(maxlen=self._capacity)
        self._lock = Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, value: float) -> None:
        """Append a value at the tail, dropping the head if the buffer is full."""
        with self._lock:
            self._buffer.append(float(value))

    def extend(self, values: Iterable[float]) -> None:
        with self._lock:
            self._buffer.extend(float(v) for v in values)

    def snapshot(self) -> np.ndarray:
        """Return a read-only copy of the buffered values, oldest first."""
        with self._lock:
            arr = np.fromiter(self._buffer, dtype=np.float64, count=len(self._buffer))
        arr.setflags(write=False)
        return arr

    def last(self, default: float = 0.0) -> float:
        with self._lock:
            return self._buffer[-1] if self._buffer else default

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


__all__ = ["HistoryBuffer"]

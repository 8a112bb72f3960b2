"""SampleBuffer — fixed-capacity ring buffer for one sensor channel."""

from __future__ import annotations

import time

import numpy as np


class SampleBuffer:
    """Single-writer/single-reader ring buffer that drops on overflow.

    When the buffer is full new samples are discarded, so a slow reader
    keeps the oldest unread data rather than the newest.

    Usage::

        buf = SampleBuffer(256)
        buf.write(12.5)
        value = buf.read()  # 12.5, or None once empty
    """

    def __init__(self, capacity: int = 256):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._memory = np.zeros(capacity, dtype=np.float64)
        self.head = 0
        self.tail = 0
        self.length = 0
        self.is_full = False
        self.last_write: float = 0.0

    def __len__(self) -> int:
        return self.length

    @property
    def is_empty(self) -> bool:
        return self.head == self.tail and not self.is_full

    def _next(self, index: int) -> int:
        index += 1
        return 0 if index == self.capacity else index

    def write(self, value: float) -> None:
        """Append a sample, or drop it if the buffer is full."""
        self.last_write = time.time()
        if self.is_full:
            return
        self.head = self._next(self.head)
        self._memory[self.head] = value
        if self.head == self.tail:
            self.is_full = True
        self.length += 1

    def read(self) -> float | None:
        """Pop the oldest sample, or return None when there is nothing to read."""
        if self.is_empty:
            return None
        self.tail = self._next(self.tail)
        self.is_full = False
        self.length -= 1
        return float(self._memory[self.tail])

    def drain(self) -> list[float]:
        """Read every pending sample in FIFO order."""
        values = []
        while (value := self.read()) is not None:
            values.append(value)
        return values

"""
Fixed-window moving average.

Unlike rolling windows over a whole array, values arrive one at a time
(one per consensus pair), so the window is a circular buffer.
"""

import logging
from typing import Optional

import numpy as np


logger = logging.getLogger(__name__)


class MovingAverage:
    """
    Circular buffer of the last `size` values.

    average() is None until the buffer has been filled once.
    """

    def __init__(self, size: int):
        if size < 1:
            logger.warning("Moving average window %d too small, using 1.", size)
            size = 1
        self.size = size
        self._values = np.zeros(size, dtype=np.float64)
        self._filled = 0
        self._pos = 0

    def add(self, value: float) -> None:
        self._values[self._pos] = value
        self._pos = (self._pos + 1) % self.size
        if self._filled < self.size:
            self._filled += 1

    def is_full(self) -> bool:
        return self._filled == self.size

    def average(self) -> Optional[float]:
        if not self.is_full():
            return None
        return float(self._values.mean())

    def __len__(self) -> int:
        return self._filled

"""
Online sequences — hourly presence of one participant, one bitmask per day.

Bit h of a day mask is set when the participant appeared in that day's
h-th consensus. Sequences only ever grow; every tracked sequence gains a
day at the same time, so all sequences in one run have the same length.
"""

from typing import Iterable, List, Optional

import numpy as np


HOURS_PER_DAY = 24

_DAY_MASK = (1 << HOURS_PER_DAY) - 1


class OnlineSequence:
    """Append-only list of 24-bit day masks."""

    __slots__ = ('days',)

    def __init__(self, days: Optional[Iterable[int]] = None):
        self.days: List[int] = [int(d) & _DAY_MASK for d in (days or ())]

    @classmethod
    def empty(cls, num_days: int) -> 'OnlineSequence':
        """num_days all-offline days (back-fill for newcomers)."""
        return cls([0] * num_days)

    def add_day(self) -> None:
        self.days.append(0)

    def mark_online(self, hour: int, day: int = -1) -> None:
        """Set the bit for hour in the given day (default: the current day)."""
        if not 0 <= hour < HOURS_PER_DAY:
            raise ValueError(f"hour out of range: {hour}")
        self.days[day] |= 1 << hour

    def is_online(self, day: int, hour: int) -> bool:
        return bool(self.days[day] >> hour & 1)

    def total_uptime(self) -> int:
        """Number of hours online."""
        return sum(bin(day).count('1') for day in self.days)

    def to_array(self) -> np.ndarray:
        """
        Flatten to a 0/1 float vector, one entry per hour.

        Returns:
            Array of shape (len(days) * 24,)
        """
        if not self.days:
            return np.zeros(0, dtype=np.float64)
        masks = np.asarray(self.days, dtype=np.uint32)[:, None]
        bits = (masks >> np.arange(HOURS_PER_DAY, dtype=np.uint32)) & 1
        return bits.ravel().astype(np.float64)

    def __len__(self) -> int:
        return len(self.days)

    def __eq__(self, other) -> bool:
        if not isinstance(other, OnlineSequence):
            return NotImplemented
        return self.days == other.days

    def __repr__(self) -> str:
        return f"OnlineSequence({len(self.days)} days, {self.total_uptime()}h online)"

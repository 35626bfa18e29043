"""
Half-open time intervals.

Every interval comparison in the scheduling engine goes through this module.
An ``Interval`` is ``[start, end)``: the start instant belongs to it, the end
instant does not, so a booking ending at 10:30 never collides with one that
starts at 10:30.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, List

from core.exceptions import ValidationError
from utils.datetime_utils import combine


@dataclass(frozen=True, order=True)
class Interval:
    """Half-open interval ``[start, end)`` with ``start < end``."""
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValidationError(
                f"Interval start must be before end ({self.start.isoformat()} >= {self.end.isoformat()})"
            )

    @classmethod
    def from_wall_times(cls, target_date: date, start: time, end: time) -> "Interval":
        """Build an interval from two wall-clock times on the same date."""
        return cls(combine(target_date, start), combine(target_date, end))

    @classmethod
    def whole_day(cls, target_date: date) -> "Interval":
        """The interval covering an entire calendar date."""
        start = combine(target_date, time(0, 0))
        return cls(start, start + timedelta(days=1))

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def with_buffer(self, minutes: int) -> "Interval":
        """Extend the end by ``minutes`` of buffer time."""
        if minutes <= 0:
            return self
        return Interval(self.start, self.end + timedelta(minutes=minutes))

    def overlaps(self, other: "Interval") -> bool:
        return overlaps(self, other)

    def contains(self, other: "Interval") -> bool:
        return contains(self, other)


def overlaps(a: Interval, b: Interval) -> bool:
    """True when the intervals share at least one instant; touching does not count."""
    return a.start < b.end and b.start < a.end


def contains(outer: Interval, inner: Interval) -> bool:
    """True when ``inner`` lies entirely within ``outer``."""
    return outer.start <= inner.start and outer.end >= inner.end


def merge(intervals: Iterable[Interval]) -> List[Interval]:
    """
    Return the sorted union of the intervals.

    Overlapping and touching intervals are coalesced into one.
    """
    merged: List[Interval] = []
    for interval in sorted(intervals):
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            if interval.end > last.end:
                merged[-1] = Interval(last.start, interval.end)
        else:
            merged.append(interval)
    return merged


def subtract(base: Interval, blocks: Iterable[Interval]) -> List[Interval]:
    """
    Return the parts of ``base`` not covered by any block, in order.

    Args:
        base: Interval to carve up
        blocks: Intervals to remove (need not be sorted or disjoint)

    Returns:
        Remaining non-empty intervals
    """
    remaining: List[Interval] = []
    cursor = base.start
    for block in merge(blocks):
        if not overlaps(base, block):
            continue
        if block.start > cursor:
            remaining.append(Interval(cursor, block.start))
        if block.end > cursor:
            cursor = block.end
        if cursor >= base.end:
            break
    if cursor < base.end:
        remaining.append(Interval(cursor, base.end))
    return remaining

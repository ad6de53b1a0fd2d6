from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal


@dataclass(frozen=True, order=True)
class PricePoint:
    """Price of one unit in the reporting currency at a point in time."""

    timestamp: datetime
    price: Decimal


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start > self.end:
            msg = f"TimeRange start {self.start.isoformat()} is after end {self.end.isoformat()}"
            raise ValueError(msg)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps_or_adjacent(self, other: TimeRange, padding: timedelta = timedelta(0)) -> bool:
        """True when the ranges overlap or the gap between them is at most ``padding``."""
        return self.start <= other.end + padding and other.start <= self.end + padding

    def contains(self, timestamp: datetime) -> bool:
        return self.start <= timestamp <= self.end

    def merge(self, other: TimeRange) -> TimeRange:
        return TimeRange(start=min(self.start, other.start), end=max(self.end, other.end))

    def intersect(self, other: TimeRange) -> TimeRange | None:
        start = max(self.start, other.start)
        end = min(self.end, other.end)
        if start <= end:
            return TimeRange(start=start, end=end)
        return None

    def subtract(self, other: TimeRange) -> list[TimeRange]:
        """Parts of this range not covered by ``other``."""
        if other.end < self.start or other.start > self.end:
            return [self]

        remainder: list[TimeRange] = []
        if self.start < other.start:
            remainder.append(TimeRange(start=self.start, end=other.start))
        if self.end > other.end:
            remainder.append(TimeRange(start=other.end, end=self.end))
        return remainder


__all__ = ["PricePoint", "TimeRange"]

"""Historical prices per currency with linear interpolation.

Prices are stored as sorted series of points in the reporting currency. The
history answers point-in-time estimates together with their accuracy (the
distance to the nearest point used) and reports the time windows that still
have to be fetched from an external source to value a set of timestamps.
"""

from __future__ import annotations

import logging
from bisect import bisect_left
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Mapping

from config import config
from domain.base_types import Amount

from .price_types import PricePoint, TimeRange

logger = logging.getLogger(__name__)

_MICROSECOND = timedelta(microseconds=1)


class PriceSeries:
    def __init__(self, points: Iterable[PricePoint] = ()) -> None:
        self._points: list[PricePoint] = []
        self.add_points(points)

    def __len__(self) -> int:
        return len(self._points)

    @property
    def points(self) -> list[PricePoint]:
        return list(self._points)

    def add_points(self, points: Iterable[PricePoint]) -> None:
        """Insert points at their sorted position; an existing timestamp keeps its price."""
        dropped = 0
        for point in points:
            idx = bisect_left(self._points, point.timestamp, key=lambda p: p.timestamp)
            if idx < len(self._points) and self._points[idx].timestamp == point.timestamp:
                dropped += 1
                continue
            self._points.insert(idx, point)

        if dropped:
            logger.debug("Ignored %d price points with already known timestamps", dropped)

    def estimate_price(self, timestamp: datetime) -> tuple[Decimal, timedelta] | None:
        if not self._points:
            return None

        idx = bisect_left(self._points, timestamp, key=lambda p: p.timestamp)
        next_point = self._points[idx] if idx < len(self._points) else self._points[-1]
        prev_point = self._points[idx - 1] if idx > 0 else None

        if prev_point is None:
            return next_point.price, abs(next_point.timestamp - timestamp)

        accuracy = min(abs(timestamp - prev_point.timestamp), abs(next_point.timestamp - timestamp))
        total = (next_point.timestamp - prev_point.timestamp) // _MICROSECOND
        if total <= 0:
            return next_point.price, accuracy

        elapsed = (timestamp - prev_point.timestamp) // _MICROSECOND
        price = prev_point.price + (next_point.price - prev_point.price) * Decimal(elapsed) / Decimal(total)
        return price, accuracy

    def missing_ranges(
        self,
        timestamps: Iterable[datetime],
        tolerance: timedelta,
        padding: timedelta,
    ) -> list[TimeRange]:
        """Windows to fetch so that every timestamp can be estimated within ``tolerance``.

        Timestamps must be sorted. Each window spans ``tolerance`` around its
        timestamp and is merged into the previous one when they overlap or lie
        within ``padding`` of each other.
        """
        missing: list[TimeRange] = []
        for timestamp in timestamps:
            estimate = self.estimate_price(timestamp)
            if estimate is not None and estimate[1] <= tolerance:
                continue

            needed = TimeRange(start=timestamp - tolerance, end=timestamp + tolerance)
            if missing and missing[-1].overlaps_or_adjacent(needed, padding):
                missing[-1] = missing[-1].merge(needed)
            else:
                missing.append(needed)

        return missing

    def covered_range(self) -> TimeRange | None:
        if not self._points:
            return None
        return TimeRange(start=self._points[0].timestamp, end=self._points[-1].timestamp)


class PriceHistory:
    """Price series per currency; the reporting currency always has price 1."""

    def __init__(self, *, reporting_currency: str | None = None) -> None:
        self.reporting_currency = (reporting_currency or config().reporting_currency).upper()
        self._series: dict[str, PriceSeries] = {}

    def currencies(self) -> list[str]:
        return sorted(self._series)

    def price_data(self, currency: str) -> PriceSeries:
        symbol = currency.strip().upper()
        series = self._series.get(symbol)
        if series is None:
            series = self._series[symbol] = PriceSeries()
        return series

    def add_points(self, currency: str, points: Iterable[PricePoint]) -> None:
        self.price_data(currency).add_points(points)

    def estimate_price_with_accuracy(self, timestamp: datetime, currency: str) -> tuple[Decimal, timedelta] | None:
        symbol = currency.strip().upper()
        if symbol == self.reporting_currency:
            return Decimal(1), timedelta(0)

        series = self._series.get(symbol)
        if series is None:
            return None
        return series.estimate_price(timestamp)

    def estimate_price(self, timestamp: datetime, currency: str) -> Decimal | None:
        estimate = self.estimate_price_with_accuracy(timestamp, currency)
        return None if estimate is None else estimate[0]

    def estimate_value(self, timestamp: datetime, amount: Amount) -> Amount | None:
        """Value of ``amount`` in the reporting currency, when its price is known."""
        if amount.token_id is not None:
            return None

        price = self.estimate_price(timestamp, amount.currency)
        if price is None:
            return None
        return Amount(quantity=price * amount.quantity, currency=self.reporting_currency)

    def missing_ranges(
        self,
        requirements: Mapping[str, Iterable[datetime]],
        tolerance: timedelta | None = None,
        padding: timedelta | None = None,
    ) -> dict[str, list[TimeRange]]:
        settings = config()
        tolerance = settings.price_tolerance if tolerance is None else tolerance
        padding = settings.price_padding if padding is None else padding

        result: dict[str, list[TimeRange]] = {}
        for currency, timestamps in requirements.items():
            symbol = currency.strip().upper()
            if symbol == self.reporting_currency:
                continue

            series = self._series.get(symbol) or PriceSeries()
            missing = series.missing_ranges(sorted(timestamps), tolerance, padding)
            if missing:
                result[symbol] = missing

        return result

    def covered_range(self, currency: str) -> TimeRange | None:
        series = self._series.get(currency.strip().upper())
        return None if series is None else series.covered_range()


class PriceRequirements:
    """Timestamps at which the price of each currency is needed."""

    def __init__(self, *, reporting_currency: str | None = None) -> None:
        self.reporting_currency = (reporting_currency or config().reporting_currency).upper()
        self._requirements: dict[str, list[datetime]] = defaultdict(list)

    def add(self, currency: str, timestamp: datetime) -> None:
        symbol = currency.strip().upper()
        if symbol == self.reporting_currency:
            return
        self._requirements[symbol].append(timestamp)

    def as_dict(self) -> dict[str, list[datetime]]:
        return {currency: list(timestamps) for currency, timestamps in self._requirements.items()}

    def missing_ranges(
        self,
        price_history: PriceHistory,
        tolerance: timedelta | None = None,
        padding: timedelta | None = None,
    ) -> dict[str, list[TimeRange]]:
        return price_history.missing_ranges(self._requirements, tolerance, padding)


def split_ranges(ranges: Iterable[TimeRange], max_span: timedelta) -> list[TimeRange]:
    """Split ranges into consecutive chunks no longer than ``max_span``."""
    if max_span <= timedelta(0):
        raise ValueError("max_span must be positive")

    chunks: list[TimeRange] = []
    for time_range in ranges:
        start = time_range.start
        while time_range.end - start > max_span:
            chunks.append(TimeRange(start=start, end=start + max_span))
            start += max_span
        chunks.append(TimeRange(start=start, end=time_range.end))
    return chunks


__all__ = ["PriceHistory", "PriceRequirements", "PriceSeries", "split_ranges"]

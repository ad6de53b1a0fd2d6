from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from services.price_history import PriceHistory, PriceRequirements, PriceSeries, split_ranges
from services.price_types import PricePoint, TimeRange
from tests.constants import BTC, EUR
from tests.helpers.time_utils import amount

T0 = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _at(hours: float) -> datetime:
    return T0 + timedelta(hours=hours)


def _point(hours: float, price: str | int) -> PricePoint:
    return PricePoint(timestamp=_at(hours), price=Decimal(price))


def test_interpolates_between_points() -> None:
    series = PriceSeries([_point(0, 100), _point(10, 200)])

    assert series.estimate_price(_at(5)) == (Decimal(150), timedelta(hours=5))
    assert series.estimate_price(_at(8)) == (Decimal(180), timedelta(hours=2))


def test_holds_edge_price_outside_range() -> None:
    series = PriceSeries([_point(0, 100), _point(10, 200)])

    assert series.estimate_price(_at(-5)) == (Decimal(100), timedelta(hours=5))
    assert series.estimate_price(_at(13)) == (Decimal(200), timedelta(hours=3))


def test_exact_point_has_perfect_accuracy() -> None:
    series = PriceSeries([_point(0, 100), _point(10, 200)])

    assert series.estimate_price(_at(10)) == (Decimal(200), timedelta(0))
    assert series.estimate_price(_at(0)) == (Decimal(100), timedelta(0))


def test_empty_series_has_no_estimate() -> None:
    assert PriceSeries().estimate_price(T0) is None


def test_add_points_keeps_order_and_first_write() -> None:
    series = PriceSeries([_point(5, 150)])
    series.add_points([_point(10, 200), _point(0, 100), _point(5, 999)])

    assert series.points == [_point(0, 100), _point(5, 150), _point(10, 200)]
    assert len(series) == 3


def test_missing_ranges_merge_within_padding() -> None:
    series = PriceSeries()
    tolerance = timedelta(hours=2)
    padding = timedelta(hours=1)

    # Windows [10:00, 14:00], [14:30, 18:30] and [20:00, 00:00]
    ranges = series.missing_ranges([_at(12), _at(16.5), _at(22)], tolerance, padding)

    assert ranges == [
        TimeRange(start=_at(10), end=_at(18.5)),
        TimeRange(start=_at(20), end=_at(24)),
    ]


def test_needed_windows_merge_when_gap_within_padding() -> None:
    padding = timedelta(hours=1)
    first = TimeRange(start=_at(10), end=_at(14))
    second = TimeRange(start=_at(14.5), end=_at(16))
    third = TimeRange(start=_at(20), end=_at(22))

    assert first.overlaps_or_adjacent(second, padding)
    merged = first.merge(second)
    assert merged == TimeRange(start=_at(10), end=_at(16))
    assert not merged.overlaps_or_adjacent(third, padding)


def test_missing_ranges_skip_accurate_estimates() -> None:
    series = PriceSeries([_point(0, 100), _point(1, 110), _point(30, 120)])

    ranges = series.missing_ranges([_at(0.5), _at(10)], timedelta(hours=1), timedelta(0))

    assert ranges == [TimeRange(start=_at(9), end=_at(11))]


def test_time_range_operations() -> None:
    first = TimeRange(start=_at(0), end=_at(4))
    second = TimeRange(start=_at(4.5), end=_at(6))

    assert not first.overlaps_or_adjacent(second)
    assert first.overlaps_or_adjacent(second, timedelta(minutes=30))
    assert first.merge(second) == TimeRange(start=_at(0), end=_at(6))
    assert first.intersect(second) is None
    assert first.intersect(TimeRange(start=_at(2), end=_at(8))) == TimeRange(start=_at(2), end=_at(4))
    assert first.subtract(TimeRange(start=_at(1), end=_at(2))) == [
        TimeRange(start=_at(0), end=_at(1)),
        TimeRange(start=_at(2), end=_at(4)),
    ]
    assert first.contains(_at(4))
    assert first.duration == timedelta(hours=4)

    with pytest.raises(ValueError):
        TimeRange(start=_at(1), end=_at(0))


def test_reporting_currency_is_identity(price_history: PriceHistory) -> None:
    assert price_history.estimate_price_with_accuracy(T0, EUR) == (Decimal(1), timedelta(0))
    assert price_history.estimate_value(T0, amount(12, "eur")) == amount(12, EUR)
    assert price_history.missing_ranges({EUR: [T0]}) == {}


def test_estimate_value(price_history: PriceHistory) -> None:
    price_history.add_points(BTC, [_point(0, 100), _point(10, 200)])

    assert price_history.estimate_value(_at(5), amount(2, BTC)) == amount(300, EUR)
    assert price_history.estimate_value(_at(5), amount(2, "ETH")) is None
    assert price_history.estimate_value(_at(5), amount(1, BTC, token_id="x")) is None


def test_missing_ranges_per_currency(price_history: PriceHistory) -> None:
    price_history.add_points(BTC, [_point(0, 100), _point(10, 200)])
    requirements = PriceRequirements(reporting_currency=EUR)
    requirements.add(EUR, _at(3))
    requirements.add(BTC, _at(30))
    requirements.add("eth", _at(2))
    requirements.add(BTC, _at(10))

    missing = requirements.missing_ranges(price_history, timedelta(hours=1), timedelta(hours=1))

    assert missing == {
        BTC: [TimeRange(start=_at(29), end=_at(31))],
        "ETH": [TimeRange(start=_at(1), end=_at(3))],
    }
    assert requirements.as_dict() == {BTC: [_at(30), _at(10)], "ETH": [_at(2)]}


def test_covered_range(price_history: PriceHistory) -> None:
    price_history.add_points(BTC, [_point(3, 100), _point(1, 200)])

    assert price_history.covered_range(BTC) == TimeRange(start=_at(1), end=_at(3))
    assert price_history.covered_range("ETH") is None
    assert price_history.currencies() == [BTC]


def test_split_ranges() -> None:
    ranges = [TimeRange(start=_at(0), end=_at(10)), TimeRange(start=_at(20), end=_at(21))]

    chunks = split_ranges(ranges, timedelta(hours=4))

    assert chunks == [
        TimeRange(start=_at(0), end=_at(4)),
        TimeRange(start=_at(4), end=_at(8)),
        TimeRange(start=_at(8), end=_at(10)),
        TimeRange(start=_at(20), end=_at(21)),
    ]


def test_price_data_reuses_the_series(price_history: PriceHistory) -> None:
    series = price_history.price_data("btc")
    series.add_points([_point(0, 100)])

    assert price_history.price_data(BTC) is series
    assert price_history.estimate_price(_at(0), BTC) == Decimal(100)

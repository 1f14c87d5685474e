from __future__ import annotations

import math

import pytest

from digitaldivide.aliases import ResolverTables
from digitaldivide.models import GeographicFeature, YearIndex
from digitaldivide.resolver import IdentityResolver
from digitaldivide.scenes import (
    ALL_REGIONS,
    bubble_radius,
    filter_by_region,
    global_average,
    linear_regression,
    region_order,
    resolve_scene,
    scatter_x_domain,
    trend_line_points,
)

from .conftest import make_record


def test_global_average_of_year_slice() -> None:
    records = [make_record(code, penetration=pct) for code, pct in (("A", 30), ("B", 50), ("C", 10))]
    assert global_average(records) == 30.0


def test_global_average_rounds_to_one_decimal() -> None:
    records = [make_record(code, penetration=pct) for code, pct in (("A", 10.0), ("B", 10.1), ("C", 10.1))]
    assert global_average(records) == 10.1
    assert global_average([make_record("A", penetration=0.25), make_record("B", penetration=0.1)]) == 0.2


def test_global_average_of_empty_slice_is_zero() -> None:
    assert global_average([]) == 0.0


def test_regression_needs_three_records() -> None:
    records = [make_record("A", gdp=1000, penetration=10), make_record("B", gdp=10000, penetration=60)]
    assert linear_regression(records) is None
    assert linear_regression([]) is None


def test_regression_slope_follows_correlation() -> None:
    rising = [
        make_record("A", gdp=500, penetration=5),
        make_record("B", gdp=5000, penetration=40),
        make_record("C", gdp=50000, penetration=90),
    ]
    trend = linear_regression(rising)
    assert trend is not None
    assert trend.slope > 0
    assert trend.n == 3

    falling = [
        make_record("A", gdp=500, penetration=90),
        make_record("B", gdp=5000, penetration=40),
        make_record("C", gdp=50000, penetration=5),
    ]
    assert linear_regression(falling).slope < 0


def test_regression_is_exact_on_a_log_linear_series() -> None:
    records = [
        make_record(str(i), gdp=10.0**i, penetration=20.0 * i - 10.0) for i in range(1, 5)
    ]
    trend = linear_regression(records)
    assert trend.slope == pytest.approx(20.0)
    assert trend.intercept == pytest.approx(-10.0)
    assert trend.predict(1000.0) == pytest.approx(50.0)


def test_regression_skips_unplottable_gdp() -> None:
    records = [
        make_record("A", gdp=500, penetration=5),
        make_record("B", gdp=0, penetration=40),
        make_record("C", gdp=math.nan, penetration=90),
    ]
    assert linear_regression(records) is None


def test_regression_without_gdp_spread_has_no_line() -> None:
    records = [make_record(code, gdp=1000, penetration=pct) for code, pct in (("A", 1), ("B", 2), ("C", 3))]
    assert linear_regression(records) is None


def test_trend_line_is_clamped_to_visible_range() -> None:
    records = [
        make_record("A", gdp=100, penetration=0),
        make_record("B", gdp=1000, penetration=50),
        make_record("C", gdp=10000, penetration=100),
        make_record("D", gdp=100000, penetration=100),
    ]
    trend = linear_regression(records)
    (x0, y0), (x1, y1) = trend_line_points(records, trend)
    assert (x0, x1) == (100, 100000)
    assert 0.0 <= y0 <= 100.0
    assert y1 == 100.0

    (px0, py0), (px1, py1) = trend_line_points(records, trend, x_domain=(200, 50000))
    assert (px0, px1) == (200, 50000)
    assert (py0, py1) == (y0, y1)


def test_filter_by_region() -> None:
    records = [
        make_record("A", region="South Asia"),
        make_record("B", region="North America"),
        make_record("C", region="South Asia"),
    ]
    assert filter_by_region(records, ALL_REGIONS) == tuple(records)
    assert [r.country_code for r in filter_by_region(records, "South Asia")] == ["A", "C"]
    assert filter_by_region(records, "Antarctica") == ()


def test_region_order_is_first_appearance() -> None:
    records = [
        make_record("A", region="South Asia"),
        make_record("B", region="North America"),
        make_record("C", region="South Asia"),
    ]
    assert region_order(records) == ("South Asia", "North America")


def test_scatter_x_domain_respects_floor() -> None:
    records = [make_record("A", gdp=150), make_record("B", gdp=50000)]
    assert scatter_x_domain(records, floor=200) == pytest.approx((200, 55000))
    records = [make_record("A", gdp=1000), make_record("B", gdp=2000)]
    assert scatter_x_domain(records, floor=200) == pytest.approx((900, 2200))


def test_bubble_radius_uses_square_root_scale() -> None:
    assert bubble_radius(0, 100, (4, 20)) == 4
    assert bubble_radius(100, 100, (4, 20)) == 20
    assert bubble_radius(25, 100, (4, 20)) == pytest.approx(12)
    assert bubble_radius(math.nan, 100, (4, 20)) == 4


def test_resolve_scene_pairs_every_feature(
    sample_features: list[GeographicFeature],
    alias_tables: ResolverTables,
) -> None:
    index = YearIndex.from_records(
        [
            make_record("USA", country="United States", year=2000),
            make_record("DEU", country="Germany", year=2000),
            make_record("USA", country="United States", year=2024),
        ]
    )
    resolver = IdentityResolver(alias_tables)

    frame = resolve_scene(sample_features, index, 2000, resolver)
    assert frame.year == 2000
    assert frame.total_count == 3
    assert frame.matched_count == 2
    assert [p.feature.id for p in frame.unmatched] == ["999999"]

    later = resolve_scene(sample_features, index, 2024, resolver)
    assert later.matched_count == 1
    assert resolve_scene(sample_features, index, 2010, resolver).matched_count == 0


def test_global_average_propagates_missing_values() -> None:
    records = [make_record("A", penetration=30.0), make_record("B", penetration=math.nan)]
    assert math.isnan(global_average(records))

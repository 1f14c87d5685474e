"""Scene data pipeline: year slices, summary statistics and trend lines."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

from .models import ConnectivityRecord, GeographicFeature, ResolvedPair, YearIndex
from .resolver import IdentityResolver


ALL_REGIONS = "all"
MIN_TREND_POINTS = 3
PENETRATION_RANGE = (0.0, 100.0)


@dataclass(frozen=True, slots=True)
class SceneFrame:
    """Features of one render pass paired with their record for `year`."""

    year: int
    pairs: tuple[ResolvedPair, ...]

    @property
    def matched_count(self) -> int:
        return sum(1 for pair in self.pairs if pair.matched)

    @property
    def total_count(self) -> int:
        return len(self.pairs)

    @property
    def unmatched(self) -> tuple[ResolvedPair, ...]:
        return tuple(pair for pair in self.pairs if not pair.matched)


def resolve_scene(
    features: Sequence[GeographicFeature],
    index: YearIndex,
    year: int,
    resolver: IdentityResolver,
) -> SceneFrame:
    """Resolve every feature against the year slice. The lookup is rebuilt per call."""
    lookup = resolver.lookup_for(index.slice(year))
    return SceneFrame(year=year, pairs=resolver.resolve_all(features, lookup))


def _round_half_up(value: float, digits: int) -> float:
    if not math.isfinite(value):
        return value
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def global_average(records: Sequence[ConnectivityRecord]) -> float:
    """Mean internet penetration of a year slice, one decimal; 0 for an empty slice."""
    if not records:
        return 0.0
    total = sum(record.internet_penetration for record in records)
    return _round_half_up(total / len(records), 1)


def filter_by_region(
    records: Iterable[ConnectivityRecord],
    region: str,
) -> tuple[ConnectivityRecord, ...]:
    if region == ALL_REGIONS:
        return tuple(records)
    return tuple(record for record in records if record.region == region)


def region_order(records: Iterable[ConnectivityRecord]) -> tuple[str, ...]:
    """Regions in order of first appearance; this fixes their colour assignment."""
    return tuple(dict.fromkeys(record.region for record in records))


@dataclass(frozen=True, slots=True)
class TrendLine:
    """Least-squares fit of penetration against log10(GDP per capita)."""

    slope: float
    intercept: float
    n: int

    def predict(self, gdp_per_capita: float) -> float:
        return self.slope * math.log10(gdp_per_capita) + self.intercept


def _trend_inputs(records: Iterable[ConnectivityRecord]) -> list[tuple[float, float]]:
    points: list[tuple[float, float]] = []
    for record in records:
        gdp = record.gdp_per_capita
        y = record.internet_penetration
        if not (math.isfinite(gdp) and gdp > 0 and math.isfinite(y)):
            continue
        points.append((math.log10(gdp), y))
    return points


def linear_regression(
    records: Sequence[ConnectivityRecord],
    *,
    min_points: int = MIN_TREND_POINTS,
) -> TrendLine | None:
    """Fit y = slope * log10(gdp) + intercept, or None below `min_points` usable records.

    Records with non-positive or missing GDP cannot be placed on a log axis
    and are left out of the fit.
    """
    if len(records) < min_points:
        return None
    points = _trend_inputs(records)
    n = len(points)
    if n < min_points:
        return None

    sum_x = sum(x for x, _ in points)
    sum_y = sum(y for _, y in points)
    sum_xy = sum(x * y for x, y in points)
    sum_xx = sum(x * x for x, _ in points)
    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return None
    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n
    return TrendLine(slope=slope, intercept=intercept, n=n)


def trend_line_points(
    records: Sequence[ConnectivityRecord],
    trend: TrendLine,
    *,
    x_domain: tuple[float, float] | None = None,
) -> tuple[tuple[float, float], tuple[float, float]]:
    """End points at the subset's min/max GDP, y clamped to the visible [0, 100] range.

    With `x_domain`, the x positions are pinned into it after y is predicted
    from the real GDP, as a clamped log axis would place them.
    """
    gdps = [
        record.gdp_per_capita
        for record in records
        if math.isfinite(record.gdp_per_capita) and record.gdp_per_capita > 0
    ]
    if not gdps:
        raise ValueError("No positive GDP values to anchor the trend line")
    lo, hi = PENETRATION_RANGE
    x_min, x_max = min(gdps), max(gdps)
    y_min = min(hi, max(lo, trend.predict(x_min)))
    y_max = min(hi, max(lo, trend.predict(x_max)))
    if x_domain is not None:
        d_lo, d_hi = x_domain
        x_min = min(max(x_min, d_lo), d_hi)
        x_max = min(max(x_max, d_lo), d_hi)
    return ((x_min, y_min), (x_max, y_max))


def scatter_x_domain(
    records: Sequence[ConnectivityRecord],
    *,
    floor: float,
) -> tuple[float, float]:
    """Log-axis GDP domain with 10% headroom on both sides, never below `floor`."""
    gdps = [
        record.gdp_per_capita
        for record in records
        if math.isfinite(record.gdp_per_capita) and record.gdp_per_capita > 0
    ]
    if not gdps:
        return (floor, floor * 10)
    return (max(floor, min(gdps) * 0.9), max(gdps) * 1.1)


def bubble_radius(
    population: float,
    max_population: float,
    radius_range: tuple[float, float],
) -> float:
    """Square-root scale from [0, max_population] onto `radius_range`."""
    r_min, r_max = radius_range
    if not (math.isfinite(population) and math.isfinite(max_population)) or max_population <= 0:
        return r_min
    share = min(max(population / max_population, 0.0), 1.0)
    return r_min + (r_max - r_min) * math.sqrt(share)

from __future__ import annotations

import math

import pytest

from digitaldivide.annotations import (
    describe_unmatched,
    gdp_tick_label,
    legend_stops,
    legend_title,
    map_tooltip,
    region_legend_label,
    scatter_tooltip,
    static_map_annotation,
    timeline_annotation,
    wrap_annotation_text,
)
from digitaldivide.models import GeographicFeature

from .conftest import make_record


@pytest.mark.parametrize(
    ("value", "label"),
    [(200, "0.2"), (500, "0.5"), (1000, "1"), (2500, "2.5"), (50000, "50"), (100000, "100")],
)
def test_gdp_tick_labels_are_in_thousands(value: float, label: str) -> None:
    assert gdp_tick_label(value) == label


def test_long_region_names_are_truncated() -> None:
    assert region_legend_label("South Asia") == "South Asia"
    assert region_legend_label("Latin America & Caribbean") == "Latin America ..."
    assert region_legend_label("Europe & Centra") == "Europe & Centr..."


def test_timeline_annotation_shows_year_and_average() -> None:
    annotation = timeline_annotation(2010, 29.5)
    assert annotation.title == "2010: Internet Revolution"
    assert annotation.lines == ("Year: 2010", "Global Average: 29.5%")
    assert timeline_annotation(2000, 30.0).lines[-1] == "Global Average: 30%"


def test_static_annotation_counts_matches() -> None:
    annotation = static_map_annotation(142)
    assert annotation.title == "142 countries matched"
    assert annotation.as_text().startswith("142 countries matched\nGray areas")


def test_wrap_never_returns_empty() -> None:
    assert wrap_annotation_text("") == ("",)
    assert all(len(line) <= 10 for line in wrap_annotation_text("one two three four five", 10))


def test_legend_helpers() -> None:
    assert legend_title() == "Internet Penetration (%)"
    assert legend_title(2012) == "Internet Penetration (2012)"
    stops = legend_stops(60.0, steps=4)
    assert stops[0] == (0.0, 0.0)
    assert stops[-1] == (100.0, 60.0)
    assert len(stops) == 5


def test_map_tooltip_for_matched_feature() -> None:
    record = make_record("USA", country="United States", penetration=43.1, gdp=36330)
    feature = GeographicFeature(id="840", properties={"name": "United States of America"})
    title, body = map_tooltip(feature, record)
    assert title == "United States"
    assert body == (
        "Internet Users: 43.1%",
        "GDP per capita: $36,330",
        "Region: North America",
    )
    _, yearly = map_tooltip(feature, record, year=2000)
    assert yearly[0] == "2000 Data:"


def test_map_tooltip_for_unmatched_feature() -> None:
    feature = GeographicFeature(id="999999")
    assert map_tooltip(feature, None) == ("Country 999999", ("No connectivity data available",))
    assert map_tooltip(feature, None, year=2015) == ("Country 999999", ("No data available for 2015",))


def test_scatter_tooltip_marks_estimated_population() -> None:
    record = make_record("NGA", country="Nigeria", year=2024, penetration=45.5, gdp=1597.5,
                         population=50_000_000, imputed=True)
    title, body = scatter_tooltip(record)
    assert title == "Nigeria"
    assert body[0] == "2024 Statistics:"
    assert "GDP per capita: $1,597.50" in body
    assert "Population: 50.0M (estimated)" in body


def test_tooltips_tolerate_missing_values() -> None:
    record = make_record("TCD", penetration=math.nan, gdp=math.nan, population=math.nan)
    _, body = scatter_tooltip(record)
    assert "Internet Users: n/a" in body
    assert "GDP per capita: n/a" in body
    assert "Population: n/a" in body


def test_describe_unmatched() -> None:
    assert describe_unmatched([]) == "All countries matched"
    assert describe_unmatched(["Kosovo", "Taiwan"]) == "No data: Kosovo, Taiwan"
    labels = [f"C{i}" for i in range(10)]
    assert describe_unmatched(labels, limit=3) == "No data: C0, C1, C2, ... (+7 more)"

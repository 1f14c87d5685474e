"""Annotation, legend and tooltip text derived from the current data slice."""

from __future__ import annotations

import math
import textwrap
from dataclasses import dataclass
from typing import Sequence

from .models import ConnectivityRecord, GeographicFeature


ANNOTATION_WRAP_CHARS = 28
LEGEND_LABEL_MAX_CHARS = 14


@dataclass(frozen=True, slots=True)
class Annotation:
    title: str
    lines: tuple[str, ...]

    def as_text(self) -> str:
        return "\n".join((self.title, *self.lines))


def wrap_annotation_text(text: str, width: int = ANNOTATION_WRAP_CHARS) -> tuple[str, ...]:
    return tuple(textwrap.wrap(text, width=width)) or ("",)


def static_map_annotation(matched_count: int) -> Annotation:
    return Annotation(
        title=f"{matched_count} countries matched",
        lines=wrap_annotation_text("Gray areas lack connectivity data"),
    )


def timeline_annotation(year: int, average: float) -> Annotation:
    return Annotation(
        title=f"{year}: Internet Revolution",
        lines=(f"Year: {year}", f"Global Average: {average:g}%"),
    )


def scatter_annotation(year: int) -> Annotation:
    return Annotation(
        title=f"Digital Divide {year}",
        lines=(
            "Wealth strongly correlates with",
            "internet connectivity",
            "Size = Population | Filter by region",
        ),
    )


def legend_title(year: int | None = None) -> str:
    if year is None:
        return "Internet Penetration (%)"
    return f"Internet Penetration ({year})"


def legend_stops(vmax: float, steps: int = 10) -> tuple[tuple[float, float], ...]:
    """(offset percent, data value) pairs for a gradient from 0 to `vmax`."""
    return tuple((i / steps * 100.0, i / steps * vmax) for i in range(steps + 1))


def region_legend_label(region: str) -> str:
    if len(region) > LEGEND_LABEL_MAX_CHARS:
        return region[:LEGEND_LABEL_MAX_CHARS] + "..."
    return region


def gdp_tick_label(value: float) -> str:
    """GDP axis labels in thousands of USD: 200 -> "0.2", 1000 -> "1"."""
    thousands = value / 1000.0
    if thousands == int(thousands):
        return str(int(thousands))
    return f"{thousands:g}"


def _fmt_pct(value: float) -> str:
    return f"{value:.1f}%" if math.isfinite(value) else "n/a"


def _fmt_gdp(value: float) -> str:
    if not math.isfinite(value):
        return "n/a"
    return f"${value:,.0f}" if value == int(value) else f"${value:,.2f}"


def _fmt_population(value: float, imputed: bool) -> str:
    if not math.isfinite(value):
        return "n/a"
    text = f"{value / 1_000_000:.1f}M"
    return f"{text} (estimated)" if imputed else text


def map_tooltip(
    feature: GeographicFeature,
    record: ConnectivityRecord | None,
    *,
    year: int | None = None,
) -> tuple[str, tuple[str, ...]]:
    """Tooltip title and body for a map feature; `year` adds the per-year wording."""
    if record is None:
        if year is None:
            return (feature.label, ("No connectivity data available",))
        return (feature.label, (f"No data available for {year}",))
    body: list[str] = []
    if year is not None:
        body.append(f"{year} Data:")
    body.extend(
        [
            f"Internet Users: {_fmt_pct(record.internet_penetration)}",
            f"GDP per capita: {_fmt_gdp(record.gdp_per_capita)}",
            f"Region: {record.region}",
        ]
    )
    return (record.country, tuple(body))


def scatter_tooltip(record: ConnectivityRecord) -> tuple[str, tuple[str, ...]]:
    return (
        record.country,
        (
            f"{record.year} Statistics:",
            f"Internet Users: {_fmt_pct(record.internet_penetration)}",
            f"GDP per capita: {_fmt_gdp(record.gdp_per_capita)}",
            f"Population: {_fmt_population(float(record.population), record.population_imputed)}",
            f"Region: {record.region}",
        ),
    )


def describe_unmatched(labels: Sequence[str], limit: int = 8) -> str:
    if not labels:
        return "All countries matched"
    shown = ", ".join(labels[:limit])
    if len(labels) > limit:
        shown += f", ... (+{len(labels) - limit} more)"
    return f"No data: {shown}"

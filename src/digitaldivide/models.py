"""Domain models shared across the loading, resolution and rendering modules."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Iterable, Mapping


def _require_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _parse_year(value: Any) -> int:
    number = _number(value)
    if not math.isfinite(number) or number != int(number):
        raise ValueError(f"Invalid year: '{value}'")
    return int(number)


def _number(value: Any) -> float:
    return math.nan if value is None else float(value)


@dataclass(frozen=True, slots=True)
class ConnectivityRecord:
    """One country-year observation from the statistics table."""

    country: str
    country_code: str
    year: int
    internet_penetration: float
    gdp_per_capita: float
    population: int | float
    region: str
    population_imputed: bool = False

    @classmethod
    def from_row(
        cls,
        row: Mapping[str, Any],
        *,
        population_fallback: int | None,
    ) -> ConnectivityRecord:
        """Build a record from a CSV row whose numeric columns are already coerced.

        Numeric cells are floats with NaN for anything missing or malformed.
        """
        parsed = _number(row.get("population"))
        imputed = False
        population: int | float
        if math.isfinite(parsed):
            population = int(parsed)
        elif population_fallback is not None:
            population = population_fallback
            imputed = True
        else:
            population = math.nan

        return cls(
            country=str(row.get("country") or "").strip(),
            country_code=_require_str(row.get("countryCode"), "countryCode"),
            year=_parse_year(row.get("year")),
            internet_penetration=_number(row.get("internetPenetration")),
            gdp_per_capita=_number(row.get("gdpPerCapita")),
            population=population,
            region=str(row.get("region") or "").strip(),
            population_imputed=imputed,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "country": self.country,
            "countryCode": self.country_code,
            "year": self.year,
            "internetPenetration": self.internet_penetration,
            "gdpPerCapita": self.gdp_per_capita,
            "population": self.population,
            "region": self.region,
            "populationImputed": self.population_imputed,
        }


@dataclass(frozen=True, slots=True)
class GeographicFeature:
    """One country boundary from the topology source.

    `geometry` is a shapely geometry in lon/lat degrees, or None when the
    topology carries a null geometry for the feature.
    """

    id: str | int | None
    properties: Mapping[str, Any] = field(default_factory=dict)
    geometry: Any = None

    @property
    def label(self) -> str:
        """Display name used when no statistical record is attached."""
        for key in ("NAME", "name", "NAME_EN", "ADMIN"):
            value = self.properties.get(key) if isinstance(self.properties, Mapping) else None
            if isinstance(value, str) and value.strip():
                return value.strip()
        return f"Country {self.id}"


@dataclass(frozen=True, slots=True)
class Resolution:
    """Matched record (or None) plus the name of the strategy that decided it."""

    record: ConnectivityRecord | None
    strategy: str

    @property
    def matched(self) -> bool:
        return self.record is not None


@dataclass(frozen=True, slots=True)
class ResolvedPair:
    feature: GeographicFeature
    record: ConnectivityRecord | None
    strategy: str = "none"

    @property
    def matched(self) -> bool:
        return self.record is not None


@dataclass(frozen=True, slots=True)
class YearIndex:
    """Read-only mapping from year to that year's records in load order."""

    by_year: Mapping[int, tuple[ConnectivityRecord, ...]]

    @classmethod
    def from_records(cls, records: Iterable[ConnectivityRecord]) -> YearIndex:
        grouped: dict[int, list[ConnectivityRecord]] = {}
        for record in records:
            grouped.setdefault(record.year, []).append(record)
        return cls(
            by_year=MappingProxyType({year: tuple(items) for year, items in grouped.items()})
        )

    def slice(self, year: int) -> tuple[ConnectivityRecord, ...]:
        return self.by_year.get(year, ())

    @property
    def years(self) -> tuple[int, ...]:
        return tuple(sorted(self.by_year))

    @property
    def record_count(self) -> int:
        return sum(len(items) for items in self.by_year.values())

    def all_records(self) -> tuple[ConnectivityRecord, ...]:
        return tuple(record for year in self.years for record in self.by_year[year])

    @property
    def countries(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(record.country for record in self.all_records()))

    @property
    def regions(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(record.region for record in self.all_records()))


@dataclass(frozen=True, slots=True)
class BuildManifest:
    """Build metadata used for audit trails."""

    generated_at_utc: str
    config_hash_sha256: str
    git_commit: str | None
    steps: Mapping[str, str]
    artifacts: Mapping[str, str]

    @classmethod
    def create(
        cls,
        *,
        config_hash_sha256: str,
        git_commit: str | None,
        steps: Mapping[str, str],
        artifacts: Mapping[str, str],
    ) -> BuildManifest:
        now = datetime.now(timezone.utc).isoformat()
        return cls(
            generated_at_utc=now,
            config_hash_sha256=config_hash_sha256,
            git_commit=git_commit,
            steps=steps,
            artifacts=artifacts,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at_utc": self.generated_at_utc,
            "config_hash_sha256": self.config_hash_sha256,
            "git_commit": self.git_commit,
            "steps": dict(self.steps),
            "artifacts": dict(self.artifacts),
        }

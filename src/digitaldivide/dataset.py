"""Connectivity statistics loading and year indexing."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Sequence

import pandas as pd

from .config import DatasetConfig
from .models import ConnectivityRecord, YearIndex


REQUIRED_COLUMNS = (
    "country",
    "countryCode",
    "year",
    "internetPenetration",
    "gdpPerCapita",
    "region",
)

NUMERIC_COLUMNS = ("year", "internetPenetration", "gdpPerCapita", "population")

_LOGGER = logging.getLogger("digitaldivide.dataset")


class DataLoadFailure(RuntimeError):
    """Raised when either input source cannot be fetched, parsed or trusted."""


def read_connectivity_rows(path: Path) -> list[dict[str, str]]:
    """Read the statistics CSV as raw string cells keyed by column name."""
    if not path.exists():
        raise DataLoadFailure(f"Connectivity CSV not found: {path}")
    try:
        frame = pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig")
    except (OSError, ValueError, pd.errors.ParserError) as exc:
        raise DataLoadFailure(f"Failed parsing connectivity CSV '{path}': {exc}") from exc

    frame.columns = [str(col).strip() for col in frame.columns]
    missing = [col for col in REQUIRED_COLUMNS if col not in frame.columns]
    if missing:
        raise DataLoadFailure(
            f"Connectivity CSV '{path}' is missing columns: {', '.join(missing)}"
        )
    return frame.to_dict(orient="records")


def coerce_numeric_columns(frame: pd.DataFrame) -> pd.DataFrame:
    """Convert the numeric columns in place; blank or malformed cells become NaN."""
    for column in NUMERIC_COLUMNS:
        if column in frame.columns:
            frame[column] = pd.to_numeric(frame[column], errors="coerce").astype(float)
    return frame


def parse_records(
    rows: Iterable[dict[str, str]],
    *,
    population_fallback: int | None,
) -> list[ConnectivityRecord]:
    """Convert raw rows to records.

    Rows without a usable year or country code cannot be indexed and are
    skipped with a warning. Malformed numeric cells become NaN.
    """
    records: list[ConnectivityRecord] = []
    skipped: list[str] = []
    frame = coerce_numeric_columns(pd.DataFrame(list(rows)))
    for idx, row in enumerate(frame.to_dict(orient="records"), start=2):
        try:
            records.append(
                ConnectivityRecord.from_row(row, population_fallback=population_fallback)
            )
        except ValueError as exc:
            skipped.append(f"line {idx} ({exc})")
    if skipped:
        _LOGGER.warning(
            "Skipped %d unindexable connectivity rows: %s",
            len(skipped),
            "; ".join(skipped[:5]) + (" ..." if len(skipped) > 5 else ""),
        )
    return records


def build_year_index(
    records: Sequence[ConnectivityRecord],
    *,
    first_year: int,
    last_year: int,
) -> YearIndex:
    """Group records by year, enforcing the year range and per-year code uniqueness."""
    out_of_range = sorted({r.year for r in records if not first_year <= r.year <= last_year})
    if out_of_range:
        raise DataLoadFailure(
            f"Connectivity records outside [{first_year}, {last_year}]: "
            + ", ".join(str(year) for year in out_of_range)
        )

    seen: set[tuple[int, str]] = set()
    duplicates: list[str] = []
    for record in records:
        key = (record.year, record.country_code)
        if key in seen:
            duplicates.append(f"{record.country_code}@{record.year}")
        seen.add(key)
    if duplicates:
        raise DataLoadFailure(
            "Duplicate countryCode within a year: " + ", ".join(sorted(set(duplicates))[:12])
        )
    return YearIndex.from_records(records)


def load_year_index(path: Path, dataset_cfg: DatasetConfig) -> YearIndex:
    """Load the statistics CSV into a read-only year index."""
    rows = read_connectivity_rows(path)
    records = parse_records(rows, population_fallback=dataset_cfg.population_fallback)
    index = build_year_index(
        records,
        first_year=dataset_cfg.first_year,
        last_year=dataset_cfg.last_year,
    )
    imputed = sum(1 for record in records if record.population_imputed)
    _LOGGER.info("Loaded %d connectivity records from %s", len(records), path)
    _LOGGER.debug(
        "Data processed: years=%s countries=%d regions=%s",
        list(index.years),
        len(index.countries),
        list(index.regions),
    )
    if imputed:
        _LOGGER.warning(
            "%d records have no population; using fallback %s (bubble sizes for these are estimates)",
            imputed,
            dataset_cfg.population_fallback,
        )
    return index

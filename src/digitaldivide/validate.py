"""Validation layer for config, alias tables and input datasets."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable

from .aliases import ResolverTables, load_resolver_tables
from .config import AppConfig
from .dataset import DataLoadFailure, load_year_index
from .models import YearIndex
from .resolver import IdentityResolver
from .scenes import resolve_scene
from .topology import TopologyRepository
from .util import format_code_list


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class Validator:
    """Top-level input and schema validator."""

    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg

    def run(self, *, with_topology: bool = False) -> ValidationReport:
        report = ValidationReport()
        self._validate_config_paths(report)
        tables = self._validate_alias_tables(report)
        index = self._validate_dataset(report)
        if index is not None:
            self._validate_year_coverage(report, index)
            self._validate_regions(report, index)
            self._validate_values(report, index)
        if with_topology:
            if index is None or tables is None:
                report.add_info("Skipping topology checks because inputs failed to load.")
            else:
                self._validate_topology(report, index, tables)
        return report

    def _validate_config_paths(self, report: ValidationReport) -> None:
        for path in self.cfg.paths.required_input_files:
            if not path.exists():
                report.add_error(f"Missing required input file: {path}")
        topology = self.cfg.topology
        if not topology.is_remote:
            path = topology.local_path(self.cfg.source_path.parent)
            if not path.exists():
                report.add_error(f"Missing topology file: {path}")

    def _validate_alias_tables(self, report: ValidationReport) -> ResolverTables | None:
        path = self.cfg.paths.country_aliases
        if not path.exists():
            return None
        try:
            tables = load_resolver_tables(path)
        except Exception as exc:
            report.add_error(f"Failed parsing country alias tables '{path}': {exc}")
            return None
        report.add_info(
            "Loaded country alias tables: "
            f"alternates={len(tables.alternates)}, "
            f"numeric_codes={len(tables.numeric_to_iso3)}, "
            f"special_names={len(tables.special_names)}"
        )
        bad_targets = sorted(
            code for code in tables.numeric_to_iso3.values() if len(code) != 3 or not code.isupper()
        )
        if bad_targets:
            report.add_warning(
                "Numeric code table maps to values that are not ISO3 codes: "
                f"{format_code_list(bad_targets)}"
            )
        return tables

    def _validate_dataset(self, report: ValidationReport) -> YearIndex | None:
        path = self.cfg.paths.connectivity_csv
        if not path.exists():
            return None
        try:
            index = load_year_index(path, self.cfg.dataset)
        except DataLoadFailure as exc:
            report.add_error(str(exc))
            return None
        report.add_info(
            f"Loaded {index.record_count} connectivity records for "
            f"{len(index.countries)} countries from {path}"
        )
        if index.record_count == 0:
            report.add_error(f"Connectivity CSV has no usable records: {path}")
        return index

    def _validate_year_coverage(self, report: ValidationReport, index: YearIndex) -> None:
        dataset = self.cfg.dataset
        missing = [
            str(year)
            for year in range(dataset.first_year, dataset.last_year + 1)
            if not index.slice(year)
        ]
        if missing:
            report.add_warning(
                "Timeline years without records (map shows no data): " + format_code_list(missing)
            )
        for number in self.cfg.scenes.numbers:
            scene = self.cfg.scenes.get(number)
            if number != 2 and not index.slice(scene.year):
                report.add_error(
                    f"Scene {number} needs data for {scene.year}: "
                    f"No data available for the year {scene.year}"
                )

        counts = {year: len(index.slice(year)) for year in index.years}
        if counts and len(set(counts.values())) > 1:
            uneven = [f"{year}({count})" for year, count in counts.items()]
            report.add_warning("Uneven country counts per year: " + format_code_list(uneven))

    def _validate_regions(self, report: ValidationReport, index: YearIndex) -> None:
        configured = set(self.cfg.dataset.regions)
        unknown = sorted(region for region in index.regions if region not in configured)
        if unknown:
            report.add_warning(
                "Records use regions missing from dataset.regions (not selectable in scene 3): "
                + format_code_list([region or "<empty>" for region in unknown])
            )
        absent = sorted(region for region in configured if region not in set(index.regions))
        if absent:
            report.add_warning("Configured regions with no records: " + format_code_list(absent))

    def _validate_values(self, report: ValidationReport, index: YearIndex) -> None:
        bad_penetration: list[str] = []
        bad_gdp: list[str] = []
        imputed: list[str] = []
        for record in index.all_records():
            key = f"{record.country_code}@{record.year}"
            pct = record.internet_penetration
            if not math.isfinite(pct) or not 0.0 <= pct <= 100.0:
                bad_penetration.append(key)
            gdp = record.gdp_per_capita
            if not math.isfinite(gdp) or gdp <= 0:
                bad_gdp.append(key)
            if record.population_imputed:
                imputed.append(key)

        if bad_penetration:
            report.add_warning(
                "Internet penetration missing or outside 0-100: " + format_code_list(bad_penetration)
            )
        if bad_gdp:
            report.add_warning(
                "GDP per capita missing or non-positive (left off the log-scale scatter): "
                + format_code_list(bad_gdp)
            )
        if imputed:
            report.add_warning(
                f"{len(imputed)} records use the population fallback "
                f"({self.cfg.dataset.population_fallback}): {format_code_list(imputed)}"
            )

    def _validate_topology(
        self,
        report: ValidationReport,
        index: YearIndex,
        tables: ResolverTables,
    ) -> None:
        repo = TopologyRepository(
            self.cfg.topology,
            root_dir=self.cfg.source_path.parent,
            cache_dir=self.cfg.paths.cache_dir,
        )
        try:
            features = repo.load_features()
        except DataLoadFailure as exc:
            report.add_error(str(exc))
            return
        resolver = IdentityResolver(tables)
        for year in sorted({self.cfg.dataset.first_year, self.cfg.dataset.last_year}):
            frame = resolve_scene(features, index, year, resolver)
            report.add_info(
                f"Resolution coverage {year}: {frame.matched_count}/{frame.total_count} features matched"
            )
            unmatched = sorted({pair.feature.label for pair in frame.unmatched})
            if unmatched:
                report.add_warning(
                    f"Features without {year} data: {format_code_list(unmatched)}"
                )


def format_report_lines(report: ValidationReport) -> Iterable[str]:
    for info in report.infos:
        yield f"[INFO] {info}"
    for warning in report.warnings:
        yield f"[WARN] {warning}"
    for error in report.errors:
        yield f"[ERROR] {error}"
    if report.ok:
        yield "[OK] Validation completed with no errors."

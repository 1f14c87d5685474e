"""Loads both input sources once and exposes per-year scene frames."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .aliases import load_resolver_tables
from .animation import Timeline
from .config import AppConfig
from .dataset import DataLoadFailure, load_year_index
from .models import GeographicFeature, YearIndex
from .resolver import IdentityResolver
from .scenes import SceneFrame, resolve_scene
from .topology import TopologyRepository


_LOGGER = logging.getLogger("digitaldivide.tour")


@dataclass(frozen=True, slots=True)
class TourData:
    """Everything the scenes read. Built once at startup, read-only afterwards."""

    index: YearIndex
    features: tuple[GeographicFeature, ...]
    resolver: IdentityResolver

    def frame(self, year: int) -> SceneFrame:
        frame = resolve_scene(self.features, self.index, year, self.resolver)
        _LOGGER.debug(
            "Resolved %d of %d features for %d", frame.matched_count, frame.total_count, year
        )
        return frame


def timeline_from_config(cfg: AppConfig) -> Timeline:
    return Timeline(
        first_year=cfg.dataset.first_year,
        last_year=cfg.dataset.last_year,
        speeds_ms=cfg.animation.speeds_ms,
        default_speed=cfg.animation.default_speed,
    )


def load_tour_data(cfg: AppConfig) -> TourData:
    """Load alias tables, statistics and topology. Any failure is a DataLoadFailure."""
    try:
        tables = load_resolver_tables(cfg.paths.country_aliases)
    except (OSError, ValueError) as exc:
        raise DataLoadFailure(f"Failed loading country alias tables: {exc}") from exc

    index = load_year_index(cfg.paths.connectivity_csv, cfg.dataset)
    repo = TopologyRepository(
        cfg.topology,
        root_dir=cfg.source_path.parent,
        cache_dir=cfg.paths.cache_dir,
    )
    features = repo.load_features()
    return TourData(index=index, features=tuple(features), resolver=IdentityResolver(tables))

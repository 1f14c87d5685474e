"""World-boundary topology download and loading."""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Any

import pandas as pd
import requests

from .config import TopologyConfig
from .dataset import DataLoadFailure
from .models import GeographicFeature


_LOGGER = logging.getLogger("digitaldivide.topology")

BOUNDARY_GEOMETRY_TYPES = frozenset({"Polygon", "MultiPolygon"})


class TopologyRepository:
    """Fetches the boundary topology from a URL or local file, with an optional cache."""

    def __init__(self, cfg: TopologyConfig, *, root_dir: Path, cache_dir: Path | None = None) -> None:
        self.cfg = cfg
        self.root_dir = root_dir
        self.cache_dir = cache_dir
        self._session: requests.Session | None = None

    @property
    def cache_path(self) -> Path | None:
        if not self.cfg.is_remote or not self.cfg.cache or self.cache_dir is None:
            return None
        name = self.cfg.source.rstrip("/").rsplit("/", 1)[-1] or "topology.json"
        return self.cache_dir / name

    def load_features(self) -> list[GeographicFeature]:
        if not self.cfg.is_remote:
            path = self.cfg.local_path(self.root_dir)
            if not path.exists():
                raise DataLoadFailure(f"Topology file not found: {path}")
            return self._read(path)

        cache_path = self.cache_path
        if cache_path is not None and cache_path.exists():
            _LOGGER.info("Using cached topology %s", cache_path)
            return self._read(cache_path)

        content = self._fetch()
        if cache_path is not None:
            cache_path.parent.mkdir(parents=True, exist_ok=True)
            cache_path.write_bytes(content)
            _LOGGER.info("Topology cached at %s", cache_path)
            return self._read(cache_path)

        with tempfile.TemporaryDirectory(prefix="digitaldivide-") as tmp:
            path = Path(tmp) / "topology.json"
            path.write_bytes(content)
            return self._read(path)

    def _fetch(self) -> bytes:
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"User-Agent": self.cfg.user_agent})
        _LOGGER.info("Fetching topology %s", self.cfg.source)
        try:
            response = self._session.get(self.cfg.source, timeout=self.cfg.request_timeout_s)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise DataLoadFailure(f"Failed fetching topology '{self.cfg.source}': {exc}") from exc
        return response.content

    def _read(self, path: Path) -> list[GeographicFeature]:
        gpd = _require_geopandas()
        try:
            frame = gpd.read_file(path, layer=self.cfg.object_name)
        except (OSError, RuntimeError, ValueError) as exc:
            raise DataLoadFailure(
                f"Failed reading topology layer '{self.cfg.object_name}' from {path}: {exc}"
            ) from exc
        try:
            features = features_from_frame(frame)
        except ValueError as exc:
            raise DataLoadFailure(f"Failed decoding topology '{self.cfg.source}': {exc}") from exc
        _LOGGER.info("Loaded world map with %d countries", len(features))
        return features


def _plain(value: Any) -> Any:
    if pd.api.types.is_scalar(value) and pd.isna(value):
        return None
    item = getattr(value, "item", None)
    return item() if callable(item) else value


def features_from_frame(frame: Any) -> list[GeographicFeature]:
    """Turn GeoDataFrame rows into features; `id` and geometry are split from the properties.

    Empty cells are dropped from the properties so name lookups only see real values.
    """
    geometry_column = frame.geometry.name
    features: list[GeographicFeature] = []
    for row in frame.to_dict("records"):
        geometry = row.pop(geometry_column, None)
        if geometry is not None and geometry.is_empty:
            geometry = None
        if geometry is not None and geometry.geom_type not in BOUNDARY_GEOMETRY_TYPES:
            raise ValueError(f"Unsupported geometry type for country boundaries: {geometry.geom_type}")
        feature_id = _plain(row.pop("id", None))
        properties = {key: _plain(value) for key, value in row.items()}
        features.append(
            GeographicFeature(
                id=feature_id,
                properties={key: value for key, value in properties.items() if value is not None},
                geometry=geometry,
            )
        )
    return features


def _require_geopandas() -> Any:
    try:
        import geopandas as gpd
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("geopandas is required for loading country boundaries") from exc
    return gpd

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import geopandas as gpd
import pytest
import requests
from shapely.geometry import LineString, box

from digitaldivide.config import TopologyConfig
from digitaldivide.dataset import DataLoadFailure
from digitaldivide.topology import TopologyRepository, features_from_frame


def _cfg(source: str, *, cache: bool = False) -> TopologyConfig:
    return TopologyConfig(
        source=source,
        object_name="countries",
        cache=cache,
        request_timeout_s=5.0,
        user_agent="digital-divide-tests",
    )


class _FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self.content = json.dumps(payload).encode("utf-8")
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


def _write(tmp_path: Path, topology: dict[str, Any]) -> Path:
    path = tmp_path / "world.json"
    path.write_text(json.dumps(topology), encoding="utf-8")
    return path


def test_local_topology_is_read_through_geopandas(
    tmp_path: Path,
    sample_topology: dict[str, Any],
) -> None:
    _write(tmp_path, sample_topology)
    features = TopologyRepository(_cfg("world.json"), root_dir=tmp_path).load_features()

    assert [f.id for f in features] == ["840", None, "999999"]
    usa, germany, unknown = features
    assert usa.geometry.geom_type == "Polygon"
    assert usa.geometry.area == pytest.approx(400.0)
    assert usa.properties == {"name": "United States of America"}
    assert germany.geometry.geom_type == "MultiPolygon"
    assert len(germany.geometry.geoms) == 2
    assert germany.label == "Germany"
    assert unknown.properties == {}
    assert unknown.label == "Country 999999"


def test_missing_layer_is_a_load_failure(tmp_path: Path, sample_topology: dict[str, Any]) -> None:
    _write(tmp_path, sample_topology)
    cfg = TopologyConfig(
        source="world.json",
        object_name="land",
        cache=False,
        request_timeout_s=5.0,
        user_agent="digital-divide-tests",
    )
    with pytest.raises(DataLoadFailure, match="layer 'land'"):
        TopologyRepository(cfg, root_dir=tmp_path).load_features()


def test_unreadable_topology_is_a_load_failure(tmp_path: Path) -> None:
    (tmp_path / "world.json").write_text("not json at all", encoding="utf-8")
    with pytest.raises(DataLoadFailure, match="Failed reading"):
        TopologyRepository(_cfg("world.json"), root_dir=tmp_path).load_features()


def test_missing_local_topology_is_a_load_failure(tmp_path: Path) -> None:
    repo = TopologyRepository(_cfg("missing.json"), root_dir=tmp_path)
    with pytest.raises(DataLoadFailure, match="not found"):
        repo.load_features()


def test_features_from_frame_drops_empty_cells() -> None:
    frame = gpd.GeoDataFrame(
        {
            "id": ["036", None],
            "name": ["Australia", float("nan")],
            "geometry": [box(0, 0, 1, 1), None],
        },
        geometry="geometry",
    )
    australia, blank = features_from_frame(frame)
    assert australia.id == "036"
    assert dict(australia.properties) == {"name": "Australia"}
    assert australia.geometry.equals(box(0, 0, 1, 1))
    assert blank.id is None
    assert dict(blank.properties) == {}
    assert blank.geometry is None


def test_features_from_frame_rejects_non_polygons() -> None:
    frame = gpd.GeoDataFrame({"id": ["1"], "geometry": [LineString([(0, 0), (1, 1)])]}, geometry="geometry")
    with pytest.raises(ValueError, match="LineString"):
        features_from_frame(frame)


def test_remote_topology_is_fetched_once_and_cached(
    tmp_path: Path,
    sample_topology: dict[str, Any],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls: list[tuple[str, float]] = []

    def fake_get(self: requests.Session, url: str, timeout: float) -> _FakeResponse:
        calls.append((url, timeout))
        return _FakeResponse(sample_topology)

    monkeypatch.setattr(requests.Session, "get", fake_get)
    url = "https://example.test/world/countries-50m.json"
    repo = TopologyRepository(_cfg(url, cache=True), root_dir=tmp_path, cache_dir=tmp_path / "cache")

    assert len(repo.load_features()) == 3
    assert calls == [(url, 5.0)]
    assert repo.cache_path == tmp_path / "cache" / "countries-50m.json"
    assert repo.cache_path.exists()

    again = TopologyRepository(_cfg(url, cache=True), root_dir=tmp_path, cache_dir=tmp_path / "cache")
    assert len(again.load_features()) == 3
    assert len(calls) == 1


def test_remote_topology_without_cache_leaves_no_files(
    tmp_path: Path,
    sample_topology: dict[str, Any],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(requests.Session, "get", lambda self, url, timeout: _FakeResponse(sample_topology))
    repo = TopologyRepository(_cfg("https://example.test/world.json"), root_dir=tmp_path, cache_dir=tmp_path / "cache")
    assert repo.cache_path is None
    assert [f.id for f in repo.load_features()] == ["840", None, "999999"]
    assert list(tmp_path.iterdir()) == []


def test_remote_failure_is_a_load_failure_without_retry(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls: list[str] = []

    def fake_get(self: requests.Session, url: str, timeout: float) -> _FakeResponse:
        calls.append(url)
        return _FakeResponse({}, status_code=503)

    monkeypatch.setattr(requests.Session, "get", fake_get)
    repo = TopologyRepository(_cfg("https://example.test/world.json"), root_dir=tmp_path)
    with pytest.raises(DataLoadFailure, match="503"):
        repo.load_features()
    assert len(calls) == 1

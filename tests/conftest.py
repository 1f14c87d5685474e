from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Callable

import pytest

from digitaldivide.aliases import ResolverTables, load_resolver_tables
from digitaldivide.config import TopologyConfig
from digitaldivide.models import ConnectivityRecord, GeographicFeature
from digitaldivide.topology import TopologyRepository

REPO_ROOT = Path(__file__).resolve().parents[1]

REGIONS = (
    "East Asia & Pacific",
    "Europe & Central Asia",
    "Latin America & Caribbean",
    "Middle East & North Africa",
    "North America",
    "South Asia",
    "Sub-Saharan Africa",
)

CSV_HEADER = "country,countryCode,year,internetPenetration,gdpPerCapita,population,region"

CSV_ROWS = (
    "United States,USA,2000,43.1,36330,282162411,North America",
    "Germany,DEU,2000,30.2,23636,82211508,Europe & Central Asia",
    "India,IND,2000,0.5,443,1056575549,South Asia",
    "Nigeria,NGA,2000,0.1,567,122851984,Sub-Saharan Africa",
    "Brazil,BRA,2000,2.9,3750,174790340,Latin America & Caribbean",
    "United States,USA,2024,92.0,85373,340110988,North America",
    "Germany,DEU,2024,93.5,54343,83280000,Europe & Central Asia",
    "India,IND,2024,55.3,2697,1438069596,South Asia",
    "Nigeria,NGA,2024,45.5,1597,,Sub-Saharan Africa",
    "Brazil,BRA,2024,84.2,10043,216422446,Latin America & Caribbean",
)


def make_record(
    code: str = "USA",
    *,
    country: str | None = None,
    year: int = 2000,
    penetration: float = 10.0,
    gdp: float = 1000.0,
    population: float = 1_000_000,
    region: str = "North America",
    imputed: bool = False,
) -> ConnectivityRecord:
    return ConnectivityRecord(
        country=country if country is not None else f"Country {code}",
        country_code=code,
        year=year,
        internet_penetration=penetration,
        gdp_per_capita=gdp,
        population=population,
        region=region,
        population_imputed=imputed,
    )


@pytest.fixture
def record_factory() -> Callable[..., ConnectivityRecord]:
    return make_record


@pytest.fixture
def alias_tables() -> ResolverTables:
    return load_resolver_tables(REPO_ROOT / "data" / "country_aliases.yaml")


@pytest.fixture
def records_2000() -> list[ConnectivityRecord]:
    return [
        make_record("USA", country="United States", penetration=43.1, gdp=36330,
                    population=282_162_411, region="North America"),
        make_record("DEU", country="Germany", penetration=30.2, gdp=23636,
                    population=82_211_508, region="Europe & Central Asia"),
        make_record("IND", country="India", penetration=0.5, gdp=443,
                    population=1_056_575_549, region="South Asia"),
        make_record("NGA", country="Nigeria", penetration=0.1, gdp=567,
                    population=122_851_984, region="Sub-Saharan Africa"),
        make_record("RUS", country="Russia", penetration=2.0, gdp=1772,
                    population=146_596_557, region="Europe & Central Asia"),
    ]


@pytest.fixture
def connectivity_csv(tmp_path: Path) -> Path:
    path = tmp_path / "connectivity.csv"
    path.write_text("\n".join((CSV_HEADER, *CSV_ROWS)) + "\n", encoding="utf-8")
    return path


def _square(cx: int, cy: int, size: int) -> list[list[int]]:
    # Quantized delta-encoded closed square ring.
    return [[cx, cy], [size, 0], [0, size], [-size, 0], [0, -size]]


@pytest.fixture
def sample_topology() -> dict[str, Any]:
    """Three features: USA by numeric id, Germany by name only, and an unknown one."""
    return {
        "type": "Topology",
        "transform": {"scale": [0.1, 0.1], "translate": [-180.0, -90.0]},
        "objects": {
            "countries": {
                "type": "GeometryCollection",
                "geometries": [
                    {
                        "type": "Polygon",
                        "id": "840",
                        "properties": {"name": "United States of America"},
                        "arcs": [[0]],
                    },
                    {
                        "type": "MultiPolygon",
                        "properties": {"name": "Germany"},
                        "arcs": [[[1]], [[~2]]],
                    },
                    {
                        "type": "Polygon",
                        "id": "999999",
                        "properties": {},
                        "arcs": [[3]],
                    },
                ],
            }
        },
        "arcs": [
            _square(700, 1200, 200),
            _square(1850, 1400, 50),
            _square(1950, 1400, 20),
            _square(100, 100, 10),
        ],
    }


@pytest.fixture
def config_text() -> Callable[..., str]:
    """Return a complete config.yaml body with paths pointing at the given files."""

    def build(*, csv_path: Path, aliases_path: Path, topology_path: Path, build_root: Path) -> str:
        regions = "\n".join(f"    - {region}" for region in REGIONS)
        return f"""
project:
  name: digital-divide-test
  title: Test Tour
paths:
  connectivity_csv: {csv_path.as_posix()}
  country_aliases: {aliases_path.as_posix()}
  build_root: {build_root.as_posix()}
  scenes_dir: {(build_root / 'scenes').as_posix()}
  story_dir: {(build_root / 'story').as_posix()}
  reports_dir: {(build_root / 'reports').as_posix()}
  manifests_dir: {(build_root / 'manifests').as_posix()}
  cache_dir: {(build_root / 'cache').as_posix()}
  logs_dir: {(build_root / 'logs').as_posix()}
dataset:
  first_year: 2000
  last_year: 2024
  population_fallback: 50000000
  regions:
{regions}
topology:
  source: {topology_path.as_posix()}
  object_name: countries
  cache: false
  request_timeout_s: 5
  user_agent: digital-divide-tests
scenes:
  scene1: {{year: 2000, title: The Digital Dark Age, description: Offline world}}
  scene2: {{year: 2000, title: The Connected Revolution, description: Coming online}}
  scene3: {{year: 2024, title: Today's Digital Divide, description: Wealth and access}}
animation:
  speeds_ms: {{slow: 1000, normal: 500, fast: 250}}
  default_speed: normal
render:
  image: {{width_px: 320, height_px: 200, dpi: 50, background: white, format: png}}
  map:
    projection_crs: "+proj=natearth +lon_0=0 +datum=WGS84 +units=m +no_defs"
    no_data_color: "#e2e8f0"
    outline_color: "#ffffff"
    outline_width: 0.3
    static_scale: {{cmap: Blues, domain: [0, 60]}}
    timeline_scale: {{cmap: viridis, domain: [0, 100]}}
  scatter:
    palette: tab10
    radius_px: [4, 20]
    opacity: 0.7
    gdp_floor: 200
    gdp_ticks: [200, 500, 1000, 2000, 5000, 10000, 20000, 50000, 100000]
    show_trendline: true
    trend_color: "#e53e3e"
    trend_width: 3
    trend_dash: [8, 4]
    trend_alpha: 0.8
build:
  write_manifest: true
  write_story: true
"""

    return build


def assert_nan(value: float) -> None:
    assert isinstance(value, float) and math.isnan(value)


@pytest.fixture
def config_path(
    tmp_path: Path,
    connectivity_csv: Path,
    sample_topology: dict[str, Any],
    config_text: Callable[..., str],
) -> Path:
    """A config.yaml wired to the sample CSV, the shipped alias tables and a local topology."""
    topology_path = tmp_path / "world.json"
    topology_path.write_text(json.dumps(sample_topology), encoding="utf-8")
    path = tmp_path / "config.yaml"
    path.write_text(
        config_text(
            csv_path=connectivity_csv,
            aliases_path=REPO_ROOT / "data" / "country_aliases.yaml",
            topology_path=topology_path,
            build_root=tmp_path / "build",
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def sample_features(tmp_path: Path, sample_topology: dict[str, Any]) -> list[GeographicFeature]:
    """`sample_topology` written to disk and read back through the topology loader."""
    root = tmp_path / "topology"
    root.mkdir()
    (root / "world.json").write_text(json.dumps(sample_topology), encoding="utf-8")
    cfg = TopologyConfig(
        source="world.json",
        object_name="countries",
        cache=False,
        request_timeout_s=5.0,
        user_agent="digital-divide-tests",
    )
    return TopologyRepository(cfg, root_dir=root).load_features()

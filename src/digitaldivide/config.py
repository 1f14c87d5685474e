"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, cast

import yaml


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected bool for '{field_name}'")
    return value


def _str_list(value: Any, field_name: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"Expected list for '{field_name}'")
    out: list[str] = []
    for idx, item in enumerate(value):
        out.append(_str(item, f"{field_name}[{idx}]"))
    return tuple(out)


def _float_pair(value: Any, field_name: str) -> tuple[float, float]:
    if not isinstance(value, list) or len(value) != 2:
        raise ValueError(f"Expected two-item list for '{field_name}'")
    return (_float(value[0], f"{field_name}[0]"), _float(value[1], f"{field_name}[1]"))


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    name: str
    title: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ProjectConfig:
        return cls(
            name=_str(raw.get("name"), "project.name"),
            title=_str(raw.get("title"), "project.title"),
        )


@dataclass(frozen=True, slots=True)
class PathsConfig:
    connectivity_csv: Path
    country_aliases: Path
    build_root: Path
    scenes_dir: Path
    story_dir: Path
    reports_dir: Path
    manifests_dir: Path
    cache_dir: Path
    logs_dir: Path

    @property
    def required_input_files(self) -> tuple[Path, ...]:
        return (self.connectivity_csv, self.country_aliases)

    @property
    def build_directories(self) -> tuple[Path, ...]:
        return (
            self.build_root,
            self.scenes_dir,
            self.story_dir,
            self.reports_dir,
            self.manifests_dir,
            self.cache_dir,
            self.logs_dir,
        )

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> PathsConfig:
        return cls(
            connectivity_csv=_path_from_cfg(
                raw.get("connectivity_csv"), "paths.connectivity_csv", root_dir
            ),
            country_aliases=_path_from_cfg(
                raw.get("country_aliases"), "paths.country_aliases", root_dir
            ),
            build_root=_path_from_cfg(raw.get("build_root"), "paths.build_root", root_dir),
            scenes_dir=_path_from_cfg(raw.get("scenes_dir"), "paths.scenes_dir", root_dir),
            story_dir=_path_from_cfg(raw.get("story_dir"), "paths.story_dir", root_dir),
            reports_dir=_path_from_cfg(raw.get("reports_dir"), "paths.reports_dir", root_dir),
            manifests_dir=_path_from_cfg(raw.get("manifests_dir"), "paths.manifests_dir", root_dir),
            cache_dir=_path_from_cfg(raw.get("cache_dir"), "paths.cache_dir", root_dir),
            logs_dir=_path_from_cfg(raw.get("logs_dir"), "paths.logs_dir", root_dir),
        )


@dataclass(frozen=True, slots=True)
class DatasetConfig:
    first_year: int
    last_year: int
    population_fallback: int | None
    regions: tuple[str, ...]

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> DatasetConfig:
        first_year = _int(raw.get("first_year"), "dataset.first_year")
        last_year = _int(raw.get("last_year"), "dataset.last_year")
        if first_year >= last_year:
            raise ValueError("dataset.first_year must be before dataset.last_year")

        fallback_raw = raw.get("population_fallback")
        population_fallback: int | None
        if fallback_raw is None:
            population_fallback = None
        else:
            population_fallback = _int(fallback_raw, "dataset.population_fallback")
            if population_fallback < 0:
                raise ValueError("dataset.population_fallback must be >= 0")

        regions = _str_list(raw.get("regions"), "dataset.regions")
        if not regions:
            raise ValueError("dataset.regions must list at least one region")
        if len(set(regions)) != len(regions):
            raise ValueError("dataset.regions contains duplicates")
        return cls(
            first_year=first_year,
            last_year=last_year,
            population_fallback=population_fallback,
            regions=regions,
        )


@dataclass(frozen=True, slots=True)
class TopologyConfig:
    source: str
    object_name: str
    cache: bool
    request_timeout_s: float
    user_agent: str

    @property
    def is_remote(self) -> bool:
        return self.source.startswith(("http://", "https://"))

    def local_path(self, root_dir: Path) -> Path:
        p = Path(self.source)
        return p if p.is_absolute() else root_dir / p

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> TopologyConfig:
        timeout = _float(raw.get("request_timeout_s"), "topology.request_timeout_s")
        if timeout <= 0:
            raise ValueError("topology.request_timeout_s must be > 0")
        return cls(
            source=_str(raw.get("source"), "topology.source"),
            object_name=_str(raw.get("object_name"), "topology.object_name"),
            cache=_bool(raw.get("cache"), "topology.cache"),
            request_timeout_s=timeout,
            user_agent=_str(raw.get("user_agent"), "topology.user_agent"),
        )


@dataclass(frozen=True, slots=True)
class SceneEntryConfig:
    number: int
    year: int
    title: str
    description: str


@dataclass(frozen=True, slots=True)
class ScenesConfig:
    entries: tuple[SceneEntryConfig, ...]

    def get(self, number: int) -> SceneEntryConfig:
        for entry in self.entries:
            if entry.number == number:
                return entry
        raise KeyError(f"Unknown scene number: {number}")

    @property
    def numbers(self) -> tuple[int, ...]:
        return tuple(entry.number for entry in self.entries)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ScenesConfig:
        entries: list[SceneEntryConfig] = []
        for number in (1, 2, 3):
            key = f"scene{number}"
            item = _mapping(raw.get(key), f"scenes.{key}")
            entries.append(
                SceneEntryConfig(
                    number=number,
                    year=_int(item.get("year"), f"scenes.{key}.year"),
                    title=_str(item.get("title"), f"scenes.{key}.title"),
                    description=_str(item.get("description"), f"scenes.{key}.description"),
                )
            )
        return cls(entries=tuple(entries))


@dataclass(frozen=True, slots=True)
class AnimationConfig:
    speeds_ms: Mapping[str, int]
    default_speed: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> AnimationConfig:
        speeds_raw = _mapping(raw.get("speeds_ms"), "animation.speeds_ms")
        speeds: dict[str, int] = {}
        for name, value in speeds_raw.items():
            key = _str(name, "animation.speeds_ms key")
            interval = _int(value, f"animation.speeds_ms.{key}")
            if interval <= 0:
                raise ValueError(f"animation.speeds_ms.{key} must be > 0")
            speeds[key] = interval
        if not speeds:
            raise ValueError("animation.speeds_ms must define at least one preset")
        default_speed = _str(raw.get("default_speed"), "animation.default_speed")
        if default_speed not in speeds:
            raise ValueError(
                "animation.default_speed must be one of: " + ", ".join(sorted(speeds))
            )
        return cls(speeds_ms=MappingProxyType(speeds), default_speed=default_speed)


@dataclass(frozen=True, slots=True)
class RenderImageConfig:
    width_px: int
    height_px: int
    dpi: int
    background: str
    format: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> RenderImageConfig:
        return cls(
            width_px=_int(raw.get("width_px"), "render.image.width_px"),
            height_px=_int(raw.get("height_px"), "render.image.height_px"),
            dpi=_int(raw.get("dpi"), "render.image.dpi"),
            background=_str(raw.get("background"), "render.image.background"),
            format=_str(raw.get("format"), "render.image.format"),
        )


@dataclass(frozen=True, slots=True)
class ColorScaleConfig:
    cmap: str
    vmin: float
    vmax: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], field_name: str) -> ColorScaleConfig:
        vmin, vmax = _float_pair(raw.get("domain"), f"{field_name}.domain")
        if vmin >= vmax:
            raise ValueError(f"{field_name}.domain must be increasing")
        return cls(cmap=_str(raw.get("cmap"), f"{field_name}.cmap"), vmin=vmin, vmax=vmax)


@dataclass(frozen=True, slots=True)
class MapStyleConfig:
    projection_crs: str
    no_data_color: str
    outline_color: str
    outline_width: float
    static_scale: ColorScaleConfig
    timeline_scale: ColorScaleConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> MapStyleConfig:
        return cls(
            projection_crs=_str(raw.get("projection_crs"), "render.map.projection_crs"),
            no_data_color=_str(raw.get("no_data_color"), "render.map.no_data_color"),
            outline_color=_str(raw.get("outline_color"), "render.map.outline_color"),
            outline_width=_float(raw.get("outline_width"), "render.map.outline_width"),
            static_scale=ColorScaleConfig.from_mapping(
                _mapping(raw.get("static_scale"), "render.map.static_scale"),
                "render.map.static_scale",
            ),
            timeline_scale=ColorScaleConfig.from_mapping(
                _mapping(raw.get("timeline_scale"), "render.map.timeline_scale"),
                "render.map.timeline_scale",
            ),
        )


@dataclass(frozen=True, slots=True)
class ScatterStyleConfig:
    palette: str
    radius_px: tuple[float, float]
    opacity: float
    gdp_floor: float
    gdp_ticks: tuple[float, ...]
    show_trendline: bool
    trend_color: str
    trend_width: float
    trend_dash: tuple[float, float]
    trend_alpha: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ScatterStyleConfig:
        ticks_raw = raw.get("gdp_ticks")
        if not isinstance(ticks_raw, list) or not ticks_raw:
            raise ValueError("Expected non-empty list for 'render.scatter.gdp_ticks'")
        ticks = tuple(
            _float(item, f"render.scatter.gdp_ticks[{idx}]") for idx, item in enumerate(ticks_raw)
        )
        radius = _float_pair(raw.get("radius_px"), "render.scatter.radius_px")
        if radius[0] < 0 or radius[0] > radius[1]:
            raise ValueError("render.scatter.radius_px must be [min, max] with 0 <= min <= max")
        return cls(
            palette=_str(raw.get("palette"), "render.scatter.palette"),
            radius_px=radius,
            opacity=_float(raw.get("opacity"), "render.scatter.opacity"),
            gdp_floor=_float(raw.get("gdp_floor"), "render.scatter.gdp_floor"),
            gdp_ticks=ticks,
            show_trendline=_bool(raw.get("show_trendline"), "render.scatter.show_trendline"),
            trend_color=_str(raw.get("trend_color"), "render.scatter.trend_color"),
            trend_width=_float(raw.get("trend_width"), "render.scatter.trend_width"),
            trend_dash=_float_pair(raw.get("trend_dash"), "render.scatter.trend_dash"),
            trend_alpha=_float(raw.get("trend_alpha"), "render.scatter.trend_alpha"),
        )


@dataclass(frozen=True, slots=True)
class RenderConfig:
    image: RenderImageConfig
    map: MapStyleConfig
    scatter: ScatterStyleConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> RenderConfig:
        return cls(
            image=RenderImageConfig.from_mapping(_mapping(raw.get("image"), "render.image")),
            map=MapStyleConfig.from_mapping(_mapping(raw.get("map"), "render.map")),
            scatter=ScatterStyleConfig.from_mapping(_mapping(raw.get("scatter"), "render.scatter")),
        )


@dataclass(frozen=True, slots=True)
class BuildConfig:
    write_manifest: bool
    write_story: bool

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> BuildConfig:
        return cls(
            write_manifest=_bool(raw.get("write_manifest"), "build.write_manifest"),
            write_story=_bool(raw.get("write_story"), "build.write_story"),
        )


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path
    project: ProjectConfig
    paths: PathsConfig
    dataset: DatasetConfig
    topology: TopologyConfig
    scenes: ScenesConfig
    animation: AnimationConfig
    render: RenderConfig
    build: BuildConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> AppConfig:
        root_dir = source_path.parent.resolve()
        dataset = DatasetConfig.from_mapping(_mapping(raw.get("dataset"), "dataset"))
        scenes = ScenesConfig.from_mapping(_mapping(raw.get("scenes"), "scenes"))
        for entry in scenes.entries:
            if not dataset.first_year <= entry.year <= dataset.last_year:
                raise ValueError(
                    f"scenes.scene{entry.number}.year must fall within "
                    f"[{dataset.first_year}, {dataset.last_year}]"
                )
        return cls(
            source_path=source_path.resolve(),
            project=ProjectConfig.from_mapping(_mapping(raw.get("project"), "project")),
            paths=PathsConfig.from_mapping(_mapping(raw.get("paths"), "paths"), root_dir),
            dataset=dataset,
            topology=TopologyConfig.from_mapping(_mapping(raw.get("topology"), "topology")),
            scenes=scenes,
            animation=AnimationConfig.from_mapping(_mapping(raw.get("animation"), "animation")),
            render=RenderConfig.from_mapping(_mapping(raw.get("render"), "render")),
            build=BuildConfig.from_mapping(_mapping(raw.get("build"), "build")),
        )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)

"""Scene rendering: static choropleth, animated timeline and GDP scatter."""

from __future__ import annotations

import logging
import math
import re
import time
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Sequence

from .animation import playback_years
from .annotations import (
    Annotation,
    describe_unmatched,
    gdp_tick_label,
    legend_title,
    region_legend_label,
    scatter_annotation,
    static_map_annotation,
    timeline_annotation,
)
from .config import AppConfig, ColorScaleConfig, RenderConfig
from .dataset import DataLoadFailure
from .models import ConnectivityRecord, GeographicFeature
from .scenes import (
    ALL_REGIONS,
    SceneFrame,
    TrendLine,
    bubble_radius,
    filter_by_region,
    global_average,
    linear_regression,
    region_order,
    scatter_x_domain,
    trend_line_points,
)
from .tour import TourData, load_tour_data, timeline_from_config
from .util import format_code_list


_LOGGER = logging.getLogger("digitaldivide.render")

GDP_AXIS_LABEL = "GDP per Capita (Thousands USD)"
PENETRATION_AXIS_LABEL = "Internet Penetration (%)"
REGION_LEGEND_TITLE = "Regions"


@dataclass(slots=True)
class RenderScenesReport:
    output_dir: Path | None = None
    outputs: dict[str, Path] = field(default_factory=dict)
    annotations: dict[str, Annotation] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


@dataclass(frozen=True, slots=True)
class ProjectedFeatures:
    """Drawable features in the map projection.

    `positions` maps each projected geometry back to its index in the feature
    list the scene frames were resolved from.
    """

    positions: tuple[int, ...]
    geometries: Any

    def __len__(self) -> int:
        return len(self.positions)


@dataclass(frozen=True, slots=True)
class ScatterSummary:
    shown: int
    plotted: tuple[ConnectivityRecord, ...]
    trend: TrendLine | None
    points: Any = None


def project_features(features: Sequence[GeographicFeature], crs: str) -> ProjectedFeatures:
    """Project feature geometries once; features without geometry are left out."""
    transform = _require_shapely_transform()
    transformer = _require_pyproj_transformer(crs)
    gpd = _require_geopandas()
    positions: list[int] = []
    geometries: list[Any] = []
    for position, feature in enumerate(features):
        if feature.geometry is None or feature.geometry.is_empty:
            continue
        positions.append(position)
        geometries.append(transform(transformer.transform, feature.geometry))
    _LOGGER.debug("Projected %d of %d features", len(positions), len(features))
    return ProjectedFeatures(positions=tuple(positions), geometries=gpd.GeoSeries(geometries))


def region_slug(region: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", region.casefold()).strip("-")
    return slug or "region"


class SceneRenderer:
    """Draws scene content onto matplotlib axes and writes scene files."""

    def __init__(self, cfg: RenderConfig) -> None:
        self.cfg = cfg

    def new_figure(self) -> tuple[Any, Any]:
        plt, _ = _require_matplotlib()
        image = self.cfg.image
        fig, ax = plt.subplots(
            figsize=(image.width_px / image.dpi, image.height_px / image.dpi),
            dpi=image.dpi,
        )
        if image.background.casefold() != "transparent":
            fig.patch.set_facecolor(image.background)
        return (fig, ax)

    def feature_colors(
        self,
        projected: ProjectedFeatures,
        frame: SceneFrame,
        scale: ColorScaleConfig,
    ) -> list[str]:
        """Hex fill per projected feature; unmatched or non-numeric values get the no-data colour."""
        mpl = _require_mpl()
        cmap = mpl.colormaps[scale.cmap]
        norm = mpl.colors.Normalize(vmin=scale.vmin, vmax=scale.vmax, clip=True)
        no_data = self.cfg.map.no_data_color
        colors: list[str] = []
        for position in projected.positions:
            record = frame.pairs[position].record
            if record is None or not math.isfinite(record.internet_penetration):
                colors.append(no_data)
                continue
            colors.append(mpl.colors.to_hex(cmap(norm(record.internet_penetration))))
        return colors

    def draw_choropleth(
        self,
        ax: Any,
        projected: ProjectedFeatures,
        frame: SceneFrame,
        scale: ColorScaleConfig,
    ) -> None:
        ax.set_axis_off()
        if len(projected) == 0:
            return
        projected.geometries.plot(
            ax=ax,
            color=self.feature_colors(projected, frame, scale),
            edgecolor=self.cfg.map.outline_color,
            linewidth=self.cfg.map.outline_width,
        )
        ax.set_aspect("equal")

    def draw_colorbar(
        self,
        fig: Any,
        ax: Any,
        scale: ColorScaleConfig,
        title: str,
        *,
        cax: Any = None,
    ) -> Any:
        """Horizontal legend bar; drawn into `cax` when given, else carved out of `ax`."""
        mpl = _require_mpl()
        mappable = mpl.cm.ScalarMappable(
            norm=mpl.colors.Normalize(vmin=scale.vmin, vmax=scale.vmax),
            cmap=mpl.colormaps[scale.cmap],
        )
        mappable.set_array([])
        if cax is not None:
            cbar = fig.colorbar(mappable, cax=cax, orientation="horizontal")
        else:
            cbar = fig.colorbar(
                mappable,
                ax=ax,
                orientation="horizontal",
                fraction=0.04,
                pad=0.02,
                shrink=0.35,
            )
        cbar.set_label(title, fontsize=9)
        cbar.ax.xaxis.set_major_formatter(mpl.ticker.PercentFormatter(xmax=100, decimals=0))
        cbar.ax.tick_params(labelsize=8)
        return cbar

    def draw_annotation(self, ax: Any, annotation: Annotation, *, loc: str = "lower right") -> Any:
        x, ha = (0.99, "right") if loc.endswith("right") else (0.01, "left")
        y, va = (0.02, "bottom") if loc.startswith("lower") else (0.98, "top")
        return ax.text(
            x,
            y,
            annotation.as_text(),
            transform=ax.transAxes,
            ha=ha,
            va=va,
            fontsize=9,
            bbox={
                "boxstyle": "round,pad=0.5",
                "facecolor": (1.0, 1.0, 1.0, 0.95),
                "edgecolor": "#333333",
            },
        )

    def region_colors(self, regions: Sequence[str]) -> dict[str, Any]:
        mpl = _require_mpl()
        palette = mpl.colormaps[self.cfg.scatter.palette]
        size = getattr(palette, "N", 10)
        return {region: palette(i % size) for i, region in enumerate(regions)}

    def draw_scatter(
        self,
        ax: Any,
        records: Sequence[ConnectivityRecord],
        *,
        region: str = ALL_REGIONS,
        show_trendline: bool = True,
    ) -> ScatterSummary:
        """Plot the year slice as GDP/penetration bubbles, filtered to `region`.

        Axes, colours and bubble sizes come from the full slice so the view
        stays fixed while the filter changes.
        """
        mpl = _require_mpl()
        style = self.cfg.scatter
        dpi = self.cfg.image.dpi
        regions = region_order(records)
        colors = self.region_colors(regions)
        populations = [float(r.population) for r in records if math.isfinite(float(r.population))]
        max_population = max(populations) if populations else 0.0

        x_lo, x_hi = scatter_x_domain(records, floor=style.gdp_floor)
        shown = filter_by_region(records, region)
        xs: list[float] = []
        ys: list[float] = []
        sizes: list[float] = []
        fills: list[Any] = []
        plotted: list[ConnectivityRecord] = []
        for record in shown:
            gdp = record.gdp_per_capita
            pct = record.internet_penetration
            if not (math.isfinite(gdp) and gdp > 0 and math.isfinite(pct)):
                continue
            radius = bubble_radius(float(record.population), max_population, style.radius_px)
            # Log scale is clamped: sub-floor GDP sits on the left edge.
            xs.append(min(max(gdp, x_lo), x_hi))
            ys.append(pct)
            sizes.append((2.0 * radius * 72.0 / dpi) ** 2)
            fills.append(colors[record.region])
            plotted.append(record)

        points = None
        if xs:
            points = ax.scatter(
                xs,
                ys,
                s=sizes,
                c=fills,
                alpha=style.opacity,
                edgecolors=(1.0, 1.0, 1.0, 0.7),
                linewidths=1.0,
            )

        ticks = [tick for tick in style.gdp_ticks if x_lo <= tick <= x_hi]
        ax.set_xscale("log")
        ax.set_xticks(ticks)
        ax.set_xticklabels([gdp_tick_label(tick) for tick in ticks])
        ax.set_xlim(x_lo, x_hi)
        ax.set_ylim(0, 100)
        ax.xaxis.set_minor_locator(mpl.ticker.NullLocator())
        ax.yaxis.set_major_locator(mpl.ticker.MultipleLocator(10))
        ax.yaxis.set_major_formatter(mpl.ticker.PercentFormatter(xmax=100, decimals=0))
        ax.set_xlabel(GDP_AXIS_LABEL)
        ax.set_ylabel(PENETRATION_AXIS_LABEL)
        ax.grid(True, alpha=0.25)

        trend: TrendLine | None = None
        if show_trendline:
            trend = linear_regression(shown)
            if trend is not None:
                (x0, y0), (x1, y1) = trend_line_points(shown, trend, x_domain=(x_lo, x_hi))
                ax.plot(
                    [x0, x1],
                    [y0, y1],
                    color=style.trend_color,
                    linewidth=style.trend_width * 72.0 / dpi,
                    linestyle=(0, style.trend_dash),
                    alpha=style.trend_alpha,
                )

        handles = [
            mpl.lines.Line2D(
                [],
                [],
                marker="o",
                linestyle="",
                markerfacecolor=colors[name],
                markeredgecolor=colors[name],
                alpha=style.opacity,
                label=region_legend_label(name),
            )
            for name in regions
        ]
        if handles:
            ax.legend(
                handles=handles,
                title=REGION_LEGEND_TITLE,
                loc="lower right",
                fontsize=8,
                title_fontsize=9,
                ncol=2,
                frameon=True,
            )
        return ScatterSummary(shown=len(shown), plotted=tuple(plotted), trend=trend, points=points)

    def render_static_map(
        self,
        *,
        projected: ProjectedFeatures,
        frame: SceneFrame,
        title: str,
        output_path: Path,
    ) -> Path:
        plt, _ = _require_matplotlib()
        scale = self.cfg.map.static_scale
        fig, ax = self.new_figure()
        try:
            fig.suptitle(title, fontsize=14)
            self.draw_choropleth(ax, projected, frame, scale)
            self.draw_colorbar(fig, ax, scale, legend_title())
            self.draw_annotation(ax, static_map_annotation(frame.matched_count))
            return self._save(fig, output_path)
        finally:
            plt.close(fig)

    def render_timeline(
        self,
        *,
        projected: ProjectedFeatures,
        frames: Sequence[SceneFrame],
        averages: Sequence[float],
        interval_ms: int,
        title: str,
        output_path: Path,
    ) -> Path:
        """Write the year-by-year animation as a GIF, one frame per rendered year."""
        plt, _ = _require_matplotlib()
        mpl = _require_mpl()
        if not frames:
            raise ValueError("Timeline needs at least one frame")
        if len(frames) != len(averages):
            raise ValueError("Timeline frames and averages differ in length")
        scale = self.cfg.map.timeline_scale
        fig, ax = self.new_figure()
        try:
            fig.suptitle(title, fontsize=14)
            self.draw_colorbar(fig, ax, scale, legend_title())

            def draw_frame(i: int) -> list[Any]:
                ax.clear()
                frame = frames[i]
                self.draw_choropleth(ax, projected, frame, scale)
                self.draw_annotation(ax, timeline_annotation(frame.year, averages[i]))
                return []

            anim = mpl.animation.FuncAnimation(
                fig,
                draw_frame,
                frames=len(frames),
                interval=interval_ms,
                blit=False,
                repeat=False,
            )
            output_path.parent.mkdir(parents=True, exist_ok=True)
            writer = mpl.animation.PillowWriter(fps=1000.0 / interval_ms)
            anim.save(str(output_path), writer=writer, dpi=self.cfg.image.dpi)
            return output_path
        finally:
            plt.close(fig)

    def render_scatter(
        self,
        *,
        records: Sequence[ConnectivityRecord],
        year: int,
        region: str,
        show_trendline: bool,
        title: str,
        output_path: Path,
    ) -> ScatterSummary:
        plt, _ = _require_matplotlib()
        fig, ax = self.new_figure()
        try:
            fig.suptitle(title, fontsize=14)
            summary = self.draw_scatter(
                ax,
                records,
                region=region,
                show_trendline=show_trendline,
            )
            self.draw_annotation(ax, scatter_annotation(year), loc="upper left")
            self._save(fig, output_path)
            return summary
        finally:
            plt.close(fig)

    def _save(self, fig: Any, output_path: Path) -> Path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(
            output_path,
            dpi=self.cfg.image.dpi,
            format=self.cfg.image.format,
            transparent=self.cfg.image.background.casefold() == "transparent",
        )
        return output_path


def run_render_scenes(
    cfg: AppConfig,
    *,
    scenes: Sequence[int] = (1, 2, 3),
    data: TourData | None = None,
) -> RenderScenesReport:
    report = RenderScenesReport(output_dir=cfg.paths.scenes_dir)
    unknown = [n for n in scenes if n not in cfg.scenes.numbers]
    if unknown:
        report.add_error("Unknown scene numbers: " + ", ".join(str(n) for n in unknown))
        return report

    if data is None:
        try:
            data = load_tour_data(cfg)
        except DataLoadFailure as exc:
            report.add_error(str(exc))
            return report
    report.add_info(
        f"Loaded {data.index.record_count} records for {len(data.index.years)} years "
        f"and {len(data.features)} map features"
    )

    try:
        projected = project_features(data.features, cfg.render.map.projection_crs)
    except Exception as exc:
        report.add_error(f"Failed projecting map features: {exc}")
        return report
    dropped = len(data.features) - len(projected)
    if dropped:
        report.add_warning(f"{dropped} map features have no drawable geometry")

    renderer = SceneRenderer(cfg.render)
    render_failures: list[str] = []
    t0 = time.perf_counter()
    for number in scenes:
        try:
            if number == 1:
                _render_scene_one(cfg, data, projected, renderer, report)
            elif number == 2:
                _render_scene_two(cfg, data, projected, renderer, report)
            else:
                _render_scene_three(cfg, data, renderer, report)
        except Exception as exc:
            _LOGGER.debug("Scene %d failed", number, exc_info=True)
            render_failures.append(f"scene{number}({exc})")

    if render_failures:
        report.add_error("Render failures: " + format_code_list(render_failures))
    report.summary = {
        "scenes_requested": len(scenes),
        "files_written": len(report.outputs),
        "scenes_failed": len(render_failures),
    }
    report.add_info(
        "Render summary: "
        f"scenes_requested={len(scenes)}, "
        f"files_written={len(report.outputs)}, "
        f"scenes_failed={len(render_failures)}, "
        f"elapsed={time.perf_counter() - t0:.1f}s"
    )
    if report.ok:
        report.add_info(f"Scene files written to {cfg.paths.scenes_dir}")
    return report


def _render_scene_one(
    cfg: AppConfig,
    data: TourData,
    projected: ProjectedFeatures,
    renderer: SceneRenderer,
    report: RenderScenesReport,
) -> None:
    scene = cfg.scenes.get(1)
    if not data.index.slice(scene.year):
        report.add_error(f"No data available for the year {scene.year}")
        return
    frame = data.frame(scene.year)
    _LOGGER.info("Matched %d out of %d countries", frame.matched_count, frame.total_count)
    _LOGGER.debug(describe_unmatched([pair.feature.label for pair in frame.unmatched]))
    path = renderer.render_static_map(
        projected=projected,
        frame=frame,
        title=scene.title,
        output_path=cfg.paths.scenes_dir / f"scene1_{scene.year}.{cfg.render.image.format}",
    )
    report.outputs["scene1"] = path
    report.annotations["scene1"] = static_map_annotation(frame.matched_count)
    report.add_info(
        f"Scene 1: {frame.matched_count} of {frame.total_count} features matched for {scene.year}"
    )


def _render_scene_two(
    cfg: AppConfig,
    data: TourData,
    projected: ProjectedFeatures,
    renderer: SceneRenderer,
    report: RenderScenesReport,
) -> None:
    scene = cfg.scenes.get(2)
    timeline = timeline_from_config(cfg)
    years = playback_years(timeline, timeline.initial_state())
    frames = [data.frame(year) for year in years]
    averages = [global_average(data.index.slice(year)) for year in years]
    empty_years = [str(year) for year in years if not data.index.slice(year)]
    if empty_years:
        report.add_warning("Timeline years without data: " + format_code_list(empty_years))
    path = renderer.render_timeline(
        projected=projected,
        frames=frames,
        averages=averages,
        interval_ms=timeline.interval_for(timeline.default_speed),
        title=scene.title,
        output_path=cfg.paths.scenes_dir / f"scene2_{years[0]}_{years[-1]}.gif",
    )
    report.outputs["scene2"] = path
    report.annotations["scene2"] = timeline_annotation(years[-1], averages[-1])
    report.add_info(
        f"Scene 2: {len(frames)} frames ({years[0]}-{years[-1]}), "
        f"global average {averages[0]:g}% -> {averages[-1]:g}%"
    )


def _render_scene_three(
    cfg: AppConfig,
    data: TourData,
    renderer: SceneRenderer,
    report: RenderScenesReport,
) -> None:
    scene = cfg.scenes.get(3)
    records = data.index.slice(scene.year)
    if not records:
        report.add_error(f"No data available for the year {scene.year}")
        return
    present = set(region_order(records))
    for region in (ALL_REGIONS, *cfg.dataset.regions):
        if region != ALL_REGIONS and region not in present:
            report.add_warning(f"Scene 3: no {scene.year} records for region '{region}'")
        name = "all" if region == ALL_REGIONS else region_slug(region)
        output_path = cfg.paths.scenes_dir / f"scene3_{scene.year}_{name}.{cfg.render.image.format}"
        summary = renderer.render_scatter(
            records=records,
            year=scene.year,
            region=region,
            show_trendline=cfg.render.scatter.show_trendline,
            title=scene.title,
            output_path=output_path,
        )
        report.outputs[f"scene3:{name}"] = output_path
        if summary.trend is not None:
            _LOGGER.debug(
                "Trend for %s: slope=%.2f intercept=%.2f n=%d",
                region,
                summary.trend.slope,
                summary.trend.intercept,
                summary.trend.n,
            )
    report.annotations["scene3"] = scatter_annotation(scene.year)
    report.add_info(f"Scene 3: {len(records)} countries plotted for {scene.year}")


def format_render_lines(report: RenderScenesReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Scene rendering completed with no errors.")
    return lines


def _require_matplotlib() -> tuple[Any, Any]:
    try:
        import matplotlib

        matplotlib.use("Agg", force=False)
        import matplotlib.pyplot as plt
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for scene rendering") from exc
    return (plt, matplotlib)


@lru_cache(maxsize=1)
def _require_mpl() -> Any:
    """matplotlib with the submodules the draw helpers use; leaves the backend alone."""
    try:
        import matplotlib
        import matplotlib.animation
        import matplotlib.cm
        import matplotlib.colors
        import matplotlib.lines
        import matplotlib.ticker
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for scene rendering") from exc
    return matplotlib


@lru_cache(maxsize=1)
def _require_geopandas() -> Any:
    try:
        import geopandas as gpd
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("geopandas is required for choropleth rendering") from exc
    return gpd


def _require_shapely_transform() -> Any:
    try:
        from shapely.ops import transform
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for geometry projection in rendering") from exc
    return transform


@lru_cache(maxsize=4)
def _require_pyproj_transformer(crs: str) -> Any:
    try:
        from pyproj import Transformer
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("pyproj is required for map projection in rendering") from exc
    return Transformer.from_crs("EPSG:4326", crs, always_xy=True)

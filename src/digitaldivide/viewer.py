"""Interactive three-scene tour in a matplotlib window."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Iterable

from . import animation
from .annotations import (
    legend_title,
    map_tooltip,
    scatter_tooltip,
    static_map_annotation,
    timeline_annotation,
)
from .app import (
    SCATTER_SCENE,
    TIMELINE_SCENE,
    AppEffect,
    AppEvent,
    RenderScene,
    SelectRegion,
    SetTrendline,
    ShowScene,
    TourController,
    UpdateScatter,
)
from .config import AppConfig
from .render import ProjectedFeatures, ScatterSummary, SceneRenderer, project_features
from .scenes import ALL_REGIONS, SceneFrame, global_average
from .tour import TourData, load_tour_data, timeline_from_config


_LOGGER = logging.getLogger("digitaldivide.viewer")

ALL_REGIONS_LABEL = "All Regions"
TRENDLINE_LABEL = "Show Trend Line"


class TourExplorer:
    """Window with scene buttons, timeline controls and scatter filters.

    Widget callbacks only dispatch events; every redraw goes through the
    effects the controller returns.
    """

    def __init__(self, cfg: AppConfig, data: TourData) -> None:
        self.cfg = cfg
        self.data = data
        self.timeline = timeline_from_config(cfg)
        self.controller = TourController(
            self.timeline,
            regions=cfg.dataset.regions,
            show_trendline=cfg.render.scatter.show_trendline,
        )
        self.renderer = SceneRenderer(cfg.render)
        self.projected: ProjectedFeatures = project_features(
            data.features, cfg.render.map.projection_crs
        )
        self._frames: dict[int, SceneFrame] = {}
        self._map_year: int | None = None
        self._scatter: ScatterSummary | None = None
        self._syncing_slider = False
        self._tooltip: Any = None
        self.fig: Any = None

    def frame(self, year: int) -> SceneFrame:
        frame = self._frames.get(year)
        if frame is None:
            frame = self.data.frame(year)
            self._frames[year] = frame
        return frame

    def show(self) -> None:
        plt = _require_pyplot()
        self.build()
        self.dispatch(ShowScene(1))
        plt.show()

    def build(self) -> Any:
        plt = _require_pyplot()
        widgets = _require_widgets()
        image = self.cfg.render.image
        fig = plt.figure(figsize=(image.width_px / image.dpi, image.height_px / image.dpi + 1.5))
        self.fig = fig

        self.map_ax = fig.add_axes([0.03, 0.24, 0.74, 0.64])
        self.scatter_ax = fig.add_axes([0.08, 0.24, 0.68, 0.64])
        self.cbar_ax = fig.add_axes([0.25, 0.19, 0.3, 0.02])

        self.scene_buttons = []
        for i, number in enumerate(self.cfg.scenes.numbers):
            ax = fig.add_axes([0.03 + i * 0.16, 0.92, 0.15, 0.05])
            button = widgets.Button(ax, f"Scene {number}")
            button.on_clicked(lambda _event, n=number: self.dispatch(ShowScene(n)))
            self.scene_buttons.append(button)

        self.play_ax = fig.add_axes([0.03, 0.05, 0.1, 0.06])
        self.play_button = widgets.Button(self.play_ax, animation.PLAY_LABEL)
        self.play_button.on_clicked(lambda _event: self.dispatch(animation.TogglePlay()))
        self.reset_ax = fig.add_axes([0.14, 0.05, 0.08, 0.06])
        self.reset_button = widgets.Button(self.reset_ax, "Reset")
        self.reset_button.on_clicked(lambda _event: self.dispatch(animation.Reset()))

        self.slider_ax = fig.add_axes([0.3, 0.07, 0.35, 0.03])
        self.year_slider = widgets.Slider(
            self.slider_ax,
            "Year",
            self.timeline.first_year,
            self.timeline.last_year,
            valinit=self.timeline.first_year,
            valstep=1,
            valfmt="%d",
        )
        self.year_slider.on_changed(self._on_slider)

        speeds = list(self.cfg.animation.speeds_ms)
        self.speed_ax = fig.add_axes([0.68, 0.02, 0.1, 0.12])
        self.speed_radio = widgets.RadioButtons(
            self.speed_ax, speeds, active=speeds.index(self.cfg.animation.default_speed)
        )
        self.speed_radio.on_clicked(lambda label: self.dispatch(animation.SetSpeed(label)))

        region_labels = [ALL_REGIONS_LABEL, *self.cfg.dataset.regions]
        self.region_ax = fig.add_axes([0.79, 0.4, 0.2, 0.45])
        self.region_radio = widgets.RadioButtons(self.region_ax, region_labels, active=0)
        self.region_radio.on_clicked(self._on_region)
        self.trend_ax = fig.add_axes([0.79, 0.3, 0.2, 0.07])
        self.trend_check = widgets.CheckButtons(
            self.trend_ax,
            [TRENDLINE_LABEL],
            [self.controller.state.scatter.show_trendline],
        )
        self.trend_check.on_clicked(self._on_trendline)

        self.timer = fig.canvas.new_timer(interval=self.timeline.interval_for(self.timeline.default_speed))
        self.timer.add_callback(self._on_tick)
        fig.canvas.mpl_connect("motion_notify_event", self._on_hover)
        return fig

    def dispatch(self, event: AppEvent) -> None:
        try:
            effects = self.controller.dispatch(event)
        except ValueError as exc:
            _LOGGER.warning("Ignored %r: %s", event, exc)
            return
        self.apply(effects)

    def apply(self, effects: Iterable[AppEffect]) -> None:
        for effect in effects:
            if isinstance(effect, animation.StartTimer):
                self.timer.interval = effect.handle.interval_ms
                self.timer.start()
            elif isinstance(effect, animation.CancelTimer):
                self.timer.stop()
            elif isinstance(effect, animation.RenderYear):
                self._draw_timeline_year(effect.year)
            elif isinstance(effect, animation.SetPlayLabel):
                self.play_button.label.set_text(effect.label)
            elif isinstance(effect, RenderScene):
                self._draw_scene(effect.number)
            elif isinstance(effect, UpdateScatter):
                self._draw_scatter(effect.region, effect.show_trendline)
        if self.fig is not None:
            self.fig.canvas.draw_idle()

    def _on_tick(self) -> None:
        self.dispatch(animation.Tick())

    def _on_slider(self, value: float) -> None:
        if self._syncing_slider:
            return
        self.dispatch(animation.Scrub(int(round(value))))

    def _on_region(self, label: str) -> None:
        self.dispatch(SelectRegion(ALL_REGIONS if label == ALL_REGIONS_LABEL else label))

    def _on_trendline(self, _label: str) -> None:
        self.dispatch(SetTrendline(bool(self.trend_check.get_status()[0])))

    def _set_scene_widgets(self, number: int) -> None:
        on_map = number != SCATTER_SCENE
        self.map_ax.set_visible(on_map)
        self.cbar_ax.set_visible(on_map)
        self.scatter_ax.set_visible(not on_map)
        for ax in (self.play_ax, self.reset_ax, self.slider_ax, self.speed_ax):
            ax.set_visible(number == TIMELINE_SCENE)
        for ax in (self.region_ax, self.trend_ax):
            ax.set_visible(number == SCATTER_SCENE)

    def _draw_scene(self, number: int) -> None:
        scene = self.cfg.scenes.get(number)
        self._set_scene_widgets(number)
        self.fig.suptitle(f"{scene.title}\n{scene.description}", fontsize=12)
        self._map_year = None
        self._scatter = None
        if number == SCATTER_SCENE:
            return

        scale = (
            self.cfg.render.map.static_scale
            if number == 1
            else self.cfg.render.map.timeline_scale
        )
        self.cbar_ax.clear()
        self.renderer.draw_colorbar(self.fig, self.map_ax, scale, legend_title(), cax=self.cbar_ax)
        if number == TIMELINE_SCENE:
            self._draw_timeline_year(self.controller.state.timeline.year)
            return

        frame = self.frame(scene.year)
        _LOGGER.info("Matched %d out of %d countries", frame.matched_count, frame.total_count)
        self.map_ax.clear()
        self.renderer.draw_choropleth(self.map_ax, self.projected, frame, scale)
        self.renderer.draw_annotation(self.map_ax, static_map_annotation(frame.matched_count))
        self._map_year = scene.year
        self._tooltip = self._make_tooltip(self.map_ax)

    def _draw_timeline_year(self, year: int) -> None:
        if self.controller.state.scene != TIMELINE_SCENE:
            return
        frame = self.frame(year)
        average = global_average(self.data.index.slice(year))
        self.map_ax.clear()
        self.renderer.draw_choropleth(
            self.map_ax, self.projected, frame, self.cfg.render.map.timeline_scale
        )
        self.renderer.draw_annotation(self.map_ax, timeline_annotation(year, average))
        self._map_year = year
        self._tooltip = self._make_tooltip(self.map_ax)
        self._syncing_slider = True
        try:
            self.year_slider.set_val(year)
        finally:
            self._syncing_slider = False

    def _draw_scatter(self, region: str, show_trendline: bool) -> None:
        scene = self.cfg.scenes.get(SCATTER_SCENE)
        records = self.data.index.slice(scene.year)
        ax = self.scatter_ax
        ax.clear()
        if not records:
            ax.text(
                0.5,
                0.5,
                f"No data available for the year {scene.year}",
                transform=ax.transAxes,
                ha="center",
            )
            self._scatter = None
            return
        self._scatter = self.renderer.draw_scatter(
            ax, records, region=region, show_trendline=show_trendline
        )
        self._tooltip = self._make_tooltip(ax)

    @staticmethod
    def _make_tooltip(ax: Any) -> Any:
        tooltip = ax.annotate(
            "",
            xy=(0, 0),
            xytext=(12, 12),
            textcoords="offset points",
            fontsize=8,
            bbox={"boxstyle": "round,pad=0.4", "facecolor": (0, 0, 0, 0.85), "edgecolor": "none"},
            color="white",
            zorder=10,
        )
        tooltip.set_visible(False)
        return tooltip

    def _on_hover(self, event: Any) -> None:
        if self._tooltip is None or event.xdata is None or event.ydata is None:
            return
        text = None
        if event.inaxes is self.map_ax and self._map_year is not None:
            text = self._map_hover_text(event.xdata, event.ydata)
        elif event.inaxes is self.scatter_ax and self._scatter is not None:
            text = self._scatter_hover_text(event)
        visible = text is not None
        if visible:
            self._tooltip.xy = (event.xdata, event.ydata)
            self._tooltip.set_text(text)
        if visible or self._tooltip.get_visible():
            self._tooltip.set_visible(visible)
            self.fig.canvas.draw_idle()

    def _map_hover_text(self, x: float, y: float) -> str | None:
        point = _require_shapely_point()(x, y)
        hits = self.projected.geometries.contains(point)
        matches = hits[hits].index
        if len(matches) == 0:
            return None
        position = self.projected.positions[int(matches[0])]
        pair = self.frame(self._map_year).pairs[position]
        year = self._map_year if self.controller.state.scene == TIMELINE_SCENE else None
        title, body = map_tooltip(pair.feature, pair.record, year=year)
        return "\n".join((title, *body))

    def _scatter_hover_text(self, event: Any) -> str | None:
        summary = self._scatter
        if summary is None or summary.points is None:
            return None
        hit, info = summary.points.contains(event)
        if not hit or not len(info.get("ind", ())):
            return None
        title, body = scatter_tooltip(summary.plotted[int(info["ind"][0])])
        return "\n".join((title, *body))


def run_explorer(cfg: AppConfig) -> int:
    data = load_tour_data(cfg)
    TourExplorer(cfg, data).show()
    return 0


@lru_cache(maxsize=1)
def _require_pyplot() -> Any:
    try:
        import matplotlib.pyplot as plt
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for the interactive explorer") from exc
    return plt


@lru_cache(maxsize=1)
def _require_widgets() -> Any:
    try:
        from matplotlib import widgets
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for the interactive explorer") from exc
    return widgets


@lru_cache(maxsize=1)
def _require_shapely_point() -> Any:
    try:
        from shapely.geometry import Point
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for map hover lookups") from exc
    return Point

"""Application state and event dispatch for the three-scene tour."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Union

from . import animation
from .animation import AnimationEffect, AnimationEvent, AnimationState, Timeline
from .scenes import ALL_REGIONS


SCENE_NUMBERS = (1, 2, 3)
TIMELINE_SCENE = 2
SCATTER_SCENE = 3


@dataclass(frozen=True, slots=True)
class ScatterState:
    region: str = ALL_REGIONS
    show_trendline: bool = True


@dataclass(frozen=True, slots=True)
class AppState:
    scene: int
    timeline: AnimationState
    scatter: ScatterState


@dataclass(frozen=True, slots=True)
class ShowScene:
    number: int


@dataclass(frozen=True, slots=True)
class SelectRegion:
    region: str


@dataclass(frozen=True, slots=True)
class SetTrendline:
    enabled: bool


AppEvent = Union[ShowScene, SelectRegion, SetTrendline, AnimationEvent]


@dataclass(frozen=True, slots=True)
class RenderScene:
    number: int


@dataclass(frozen=True, slots=True)
class UpdateScatter:
    region: str
    show_trendline: bool


AppEffect = Union[RenderScene, UpdateScatter, AnimationEffect]


def initial_app_state(
    timeline: Timeline,
    *,
    scene: int = 1,
    show_trendline: bool = True,
) -> AppState:
    return AppState(
        scene=scene,
        timeline=timeline.initial_state(),
        scatter=ScatterState(show_trendline=show_trendline),
    )


def handle(
    timeline: Timeline,
    state: AppState,
    event: AppEvent,
    *,
    regions: tuple[str, ...] = (),
) -> tuple[AppState, tuple[AppEffect, ...]]:
    """Return the next application state and the effects to carry out.

    Timeline controls act only while the timeline scene is shown; scatter
    controls update state at any time but redraw only on the scatter scene.
    """
    if isinstance(event, ShowScene):
        return _show_scene(timeline, state, event.number)

    if isinstance(event, SelectRegion):
        if event.region != ALL_REGIONS and regions and event.region not in regions:
            raise ValueError(f"Unknown region '{event.region}'")
        scatter = replace(state.scatter, region=event.region)
        return _with_scatter(state, scatter)

    if isinstance(event, SetTrendline):
        scatter = replace(state.scatter, show_trendline=bool(event.enabled))
        return _with_scatter(state, scatter)

    if state.scene != TIMELINE_SCENE:
        return (state, ())
    transition = animation.step(timeline, state.timeline, event)
    return (replace(state, timeline=transition.state), transition.effects)


def _with_scatter(state: AppState, scatter: ScatterState) -> tuple[AppState, tuple[AppEffect, ...]]:
    new_state = replace(state, scatter=scatter)
    if state.scene != SCATTER_SCENE:
        return (new_state, ())
    return (new_state, (UpdateScatter(scatter.region, scatter.show_trendline),))


def _show_scene(
    timeline: Timeline,
    state: AppState,
    number: int,
) -> tuple[AppState, tuple[AppEffect, ...]]:
    if number not in SCENE_NUMBERS:
        raise ValueError(f"Unknown scene number: {number}")

    # Any live timer is cancelled before the next scene starts.
    exit_transition = animation.step(timeline, state.timeline, animation.Exit())
    effects: list[AppEffect] = list(exit_transition.effects)
    timeline_state = exit_transition.state

    if number == TIMELINE_SCENE:
        timeline_state = timeline.initial_state(timeline_state.speed)
        effects.append(animation.SetPlayLabel(timeline_state.play_label))
    effects.append(RenderScene(number))
    if number == SCATTER_SCENE:
        effects.append(UpdateScatter(state.scatter.region, state.scatter.show_trendline))

    return (replace(state, scene=number, timeline=timeline_state), tuple(effects))


class TourController:
    """Owns the single application state value and applies events to it."""

    def __init__(
        self,
        timeline: Timeline,
        *,
        regions: tuple[str, ...] = (),
        show_trendline: bool = True,
    ) -> None:
        self.timeline = timeline
        self.regions = regions
        self.state = initial_app_state(timeline, show_trendline=show_trendline)

    def dispatch(self, event: AppEvent) -> tuple[AppEffect, ...]:
        self.state, effects = handle(self.timeline, self.state, event, regions=self.regions)
        return effects

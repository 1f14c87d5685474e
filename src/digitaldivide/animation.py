"""Timeline playback state machine for the animated map.

`step` is a pure function of (state, event). It returns the next state plus
effect descriptions (start/cancel a timer, render a year, relabel the play
button) that the caller carries out.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Mapping, Union


IDLE = "idle"
PLAYING = "playing"
PAUSED = "paused"

PLAY_LABEL = "▶ Play"
PAUSE_LABEL = "Pause"


@dataclass(frozen=True, slots=True)
class TimerHandle:
    """Cancellable repeating timer. One is live at most, stored in the state."""

    interval_ms: int
    started_at_year: int


@dataclass(frozen=True, slots=True)
class AnimationState:
    year: int
    phase: str
    speed: str
    timer: TimerHandle | None = None

    @property
    def playing(self) -> bool:
        return self.phase == PLAYING

    @property
    def play_label(self) -> str:
        return PAUSE_LABEL if self.playing else PLAY_LABEL


@dataclass(frozen=True, slots=True)
class Play:
    pass


@dataclass(frozen=True, slots=True)
class Pause:
    pass


@dataclass(frozen=True, slots=True)
class TogglePlay:
    pass


@dataclass(frozen=True, slots=True)
class Tick:
    pass


@dataclass(frozen=True, slots=True)
class Scrub:
    year: int


@dataclass(frozen=True, slots=True)
class Reset:
    pass


@dataclass(frozen=True, slots=True)
class SetSpeed:
    speed: str


@dataclass(frozen=True, slots=True)
class Exit:
    """The timeline scene is being left."""


AnimationEvent = Union[Play, Pause, TogglePlay, Tick, Scrub, Reset, SetSpeed, Exit]


@dataclass(frozen=True, slots=True)
class StartTimer:
    handle: TimerHandle


@dataclass(frozen=True, slots=True)
class CancelTimer:
    handle: TimerHandle


@dataclass(frozen=True, slots=True)
class RenderYear:
    year: int


@dataclass(frozen=True, slots=True)
class SetPlayLabel:
    label: str


AnimationEffect = Union[StartTimer, CancelTimer, RenderYear, SetPlayLabel]


@dataclass(frozen=True, slots=True)
class Transition:
    state: AnimationState
    effects: tuple[AnimationEffect, ...] = ()


@dataclass(frozen=True, slots=True)
class Timeline:
    """Year bounds and tick-speed presets of the animated map."""

    first_year: int
    last_year: int
    speeds_ms: Mapping[str, int]
    default_speed: str

    def __post_init__(self) -> None:
        if self.first_year >= self.last_year:
            raise ValueError("Timeline needs first_year < last_year")
        if self.default_speed not in self.speeds_ms:
            raise ValueError(f"Unknown default speed '{self.default_speed}'")

    def initial_state(self, speed: str | None = None) -> AnimationState:
        return AnimationState(
            year=self.first_year,
            phase=PAUSED,
            speed=speed if speed is not None else self.default_speed,
        )

    def interval_for(self, speed: str) -> int:
        try:
            return self.speeds_ms[speed]
        except KeyError:
            raise ValueError(
                f"Unknown speed '{speed}' (expected one of: {', '.join(self.speeds_ms)})"
            ) from None

    def clamp(self, year: int) -> int:
        return min(self.last_year, max(self.first_year, int(year)))


def _cancel(state: AnimationState) -> tuple[AnimationEffect, ...]:
    return (CancelTimer(state.timer),) if state.timer is not None else ()


def _play(timeline: Timeline, state: AnimationState) -> Transition:
    if state.playing:
        return Transition(state)
    effects: list[AnimationEffect] = list(_cancel(state))
    year = state.year
    if year >= timeline.last_year:
        year = timeline.first_year
        effects.append(RenderYear(year))
    handle = TimerHandle(interval_ms=timeline.interval_for(state.speed), started_at_year=year)
    effects.extend([SetPlayLabel(PAUSE_LABEL), StartTimer(handle)])
    return Transition(replace(state, year=year, phase=PLAYING, timer=handle), tuple(effects))


def _pause(state: AnimationState) -> Transition:
    if not state.playing:
        return Transition(state)
    return Transition(
        replace(state, phase=PAUSED, timer=None),
        (*_cancel(state), SetPlayLabel(PLAY_LABEL)),
    )


def _tick(timeline: Timeline, state: AnimationState) -> Transition:
    if not state.playing:
        return Transition(state)
    year = min(state.year + 1, timeline.last_year)
    if year >= timeline.last_year:
        return Transition(
            replace(state, year=year, phase=IDLE, timer=None),
            (RenderYear(year), *_cancel(state), SetPlayLabel(PLAY_LABEL)),
        )
    return Transition(replace(state, year=year), (RenderYear(year),))


def step(timeline: Timeline, state: AnimationState, event: AnimationEvent) -> Transition:
    """Advance the playback state machine by one event."""
    if isinstance(event, Play):
        return _play(timeline, state)
    if isinstance(event, Pause):
        return _pause(state)
    if isinstance(event, TogglePlay):
        return _pause(state) if state.playing else _play(timeline, state)
    if isinstance(event, Tick):
        return _tick(timeline, state)
    if isinstance(event, Scrub):
        year = timeline.clamp(event.year)
        return Transition(
            replace(state, year=year, phase=PAUSED, timer=None),
            (*_cancel(state), SetPlayLabel(PLAY_LABEL), RenderYear(year)),
        )
    if isinstance(event, Reset):
        return Transition(
            timeline.initial_state(state.speed),
            (*_cancel(state), SetPlayLabel(PLAY_LABEL), RenderYear(timeline.first_year)),
        )
    if isinstance(event, SetSpeed):
        interval = timeline.interval_for(event.speed)
        if not state.playing:
            return Transition(replace(state, speed=event.speed))
        handle = TimerHandle(interval_ms=interval, started_at_year=state.year)
        return Transition(
            replace(state, speed=event.speed, timer=handle),
            (*_cancel(state), StartTimer(handle)),
        )
    if isinstance(event, Exit):
        if state.timer is None and not state.playing:
            return Transition(state)
        phase = PAUSED if state.playing else state.phase
        return Transition(replace(state, phase=phase, timer=None), _cancel(state))
    raise TypeError(f"Unsupported animation event: {event!r}")


def playback_years(timeline: Timeline, state: AnimationState) -> list[int]:
    """Years shown when playing from `state` until playback stops on its own."""
    transition = step(timeline, state, Play())
    years = [transition.state.year]
    while transition.state.playing:
        transition = step(timeline, transition.state, Tick())
        years.extend(
            effect.year for effect in transition.effects if isinstance(effect, RenderYear)
        )
    return years

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .sync import Effect

__all__ = [
    "AudioTransport",
    "ViewportProbe",
    "Box",
    "UnitLayout",
    "ClockTransport",
    "RecordingProbe",
]


class AudioTransport(Protocol):
    """Playback transport driven by the session; positions are milliseconds."""

    def current_position_ms(self) -> int: ...

    def duration_ms(self) -> int | None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def stop(self) -> None: ...

    def seek_to(self, position_ms: int) -> None: ...

    def play_segment(self, start_ms: int, duration_ms: int) -> None: ...


@dataclass(frozen=True, slots=True)
class Box:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height


@dataclass(frozen=True, slots=True)
class UnitLayout:
    """
    Rendered geometry around one unit, in viewport coordinates.

    ``line`` is the box of the unit's direct container, used as the
    vertical scroll reference inside the paragraph container.
    """

    unit: Box
    page: Box
    paragraph: Box
    line: Box


@runtime_checkable
class ViewportProbe(Protocol):
    def is_unit_visible(self, unit_id: str) -> bool: ...

    def scroll_unit_into_view(self, unit_id: str) -> None: ...

    def layout(self, unit_id: str) -> UnitLayout | None: ...

    def apply(self, effect: "Effect") -> None: ...


class RecordingProbe:
    """
    Headless probe that records applied effects.

    Visibility and layout answers come from plain dicts so callers can stage
    a viewport without a renderer.
    """

    def __init__(
        self,
        *,
        visible: dict[str, bool] | None = None,
        layouts: dict[str, UnitLayout] | None = None,
        default_visible: bool = True,
    ) -> None:
        self.visible = dict(visible or {})
        self.layouts = dict(layouts or {})
        self.default_visible = default_visible
        self.effects: list[Effect] = []
        self.revealed: list[str] = []

    def is_unit_visible(self, unit_id: str) -> bool:
        return self.visible.get(unit_id, self.default_visible)

    def scroll_unit_into_view(self, unit_id: str) -> None:
        self.revealed.append(unit_id)
        self.visible[unit_id] = True

    def layout(self, unit_id: str) -> UnitLayout | None:
        return self.layouts.get(unit_id)

    def apply(self, effect: "Effect") -> None:
        self.effects.append(effect)


class ClockTransport:
    """
    Software transport backed by a monotonic clock.

    Stands in for an audio element when the engine runs headless (CLI
    simulation, web API): it tracks position and segment ends but plays
    no sound.
    """

    def __init__(
        self,
        duration_ms: int | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        rate: float = 1.0,
    ) -> None:
        self._duration = duration_ms
        self._clock = clock
        self._lock = threading.Lock()
        self._position = 0.0
        self._started_at: float | None = None
        self._segment_end: float | None = None
        self.rate = rate

    def _elapsed_ms(self) -> float:
        if self._started_at is None:
            return 0.0
        return (self._clock() - self._started_at) * 1000 * self.rate

    def _limit(self) -> float | None:
        if self._segment_end is not None:
            return self._segment_end
        return float(self._duration) if self._duration is not None else None

    def _settle(self) -> float:
        position = self._position + self._elapsed_ms()
        limit = self._limit()
        if limit is not None and position >= limit:
            self._position = limit
            self._started_at = None
            self._segment_end = None
            position = limit
        return position

    def current_position_ms(self) -> int:
        with self._lock:
            return int(self._settle())

    def duration_ms(self) -> int | None:
        return self._duration

    def set_duration(self, duration_ms: int) -> None:
        self._duration = int(duration_ms)

    @property
    def is_playing(self) -> bool:
        self.current_position_ms()
        return self._started_at is not None

    def play(self) -> None:
        with self._lock:
            self._settle()
            self._segment_end = None
            if self._started_at is None:
                self._started_at = self._clock()

    def pause(self) -> None:
        with self._lock:
            self._position = self._settle()
            self._started_at = None

    def stop(self) -> None:
        with self._lock:
            self._position = 0.0
            self._started_at = None
            self._segment_end = None

    def seek_to(self, position_ms: int) -> None:
        with self._lock:
            target = max(0.0, float(position_ms))
            if self._duration is not None:
                target = min(target, float(self._duration))
            self._position = target
            self._segment_end = None
            if self._started_at is not None:
                self._started_at = self._clock()

    def play_segment(self, start_ms: int, duration_ms: int) -> None:
        with self._lock:
            self._position = max(0.0, float(start_ms))
            self._segment_end = self._position + max(0, duration_ms)
            self._started_at = self._clock()

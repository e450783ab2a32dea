from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from typing import Callable, Union

from .alignment import AlignmentTable
from .config import ReadAlongConfig
from .document import Document
from .errors import ReadAlongError
from .interfaces import UnitLayout, ViewportProbe
from .logging_utils import get_logger
from .scroll_guard import ScrollGuard, TimerFactory

_LOGGER = get_logger(__name__)

__all__ = [
    "SyncPhase",
    "PlaybackState",
    "Highlight",
    "ClearHighlight",
    "TurnPage",
    "ScrollVertical",
    "ScrollHorizontal",
    "RevealUnit",
    "Effect",
    "advance",
    "overflows_page",
    "overflows_paragraph",
    "vertical_scroll_delta",
    "PlaybackSync",
]


class SyncPhase(str, Enum):
    IDLE = "idle"
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    SEEKING = "seeking"


@dataclass(slots=True)
class PlaybackState:
    current_time_ms: int = 0
    active_unit_id: str | None = None
    is_playing: bool = False
    auto_scroll_enabled: bool = True
    current_page_id: str | None = None
    phase: SyncPhase = SyncPhase.IDLE
    guide_visible: bool = False

    def to_payload(self) -> dict[str, object]:
        payload = asdict(self)
        payload["phase"] = self.phase.value
        return payload


@dataclass(frozen=True, slots=True)
class Highlight:
    unit_id: str
    previous: str | None = None


@dataclass(frozen=True, slots=True)
class ClearHighlight:
    previous: str | None = None


@dataclass(frozen=True, slots=True)
class TurnPage:
    page_id: str
    axis: str = "horizontal"


@dataclass(frozen=True, slots=True)
class ScrollVertical:
    unit_id: str
    delta: float


@dataclass(frozen=True, slots=True)
class ScrollHorizontal:
    unit_id: str
    left: float


@dataclass(frozen=True, slots=True)
class RevealUnit:
    unit_id: str


Effect = Union[Highlight, ClearHighlight, TurnPage, ScrollVertical, ScrollHorizontal, RevealUnit]


def overflows_page(layout: UnitLayout) -> bool:
    unit_edge = layout.unit.top + layout.unit.height
    below = unit_edge > layout.page.top + layout.page.height
    above = unit_edge < layout.page.top
    return below or above


def overflows_paragraph(layout: UnitLayout) -> bool:
    return layout.unit.right < layout.paragraph.left or layout.unit.right > layout.paragraph.right


def vertical_scroll_delta(layout: UnitLayout) -> float:
    # May be negative; the paragraph container scrolls back up in that case.
    return layout.paragraph.height - layout.line.height


def _page_drifted(layout: UnitLayout, axis: str) -> bool:
    if axis != "horizontal":
        return False
    return layout.unit.left < 0 or layout.page.left != 0


def advance(
    state: PlaybackState,
    seconds: float,
    *,
    table: AlignmentTable,
    document: Document | None = None,
    layout: Callable[[str], UnitLayout | None] | None = None,
    visible: Callable[[str], bool] | None = None,
    config: ReadAlongConfig | None = None,
) -> tuple[PlaybackState, list[Effect]]:
    """
    Compute the next state and the effects for playback position ``seconds``.

    Effects come out in application order: highlight, page navigation,
    vertical scroll, horizontal scroll. Nothing is emitted when the
    resolved unit is absent or already active.
    """
    config = config or ReadAlongConfig()
    new_state = replace(state, current_time_ms=max(0, int(round(seconds * 1000))))
    unit_id = table.resolve_at(seconds)
    if unit_id is None or unit_id == state.active_unit_id:
        return new_state, []

    effects: list[Effect] = [Highlight(unit_id, previous=state.active_unit_id)]
    new_state.active_unit_id = unit_id

    page_id = document.page_of(unit_id) if document is not None else None
    turned = False
    if page_id is not None and page_id != state.current_page_id:
        if state.current_page_id is not None:
            effects.append(TurnPage(page_id, axis=config.page_scrolling))
            turned = True
        new_state.current_page_id = page_id

    geometry = layout(unit_id) if layout is not None else None
    if geometry is not None and page_id is not None and not turned:
        if _page_drifted(geometry, config.page_scrolling):
            effects.append(TurnPage(page_id, axis=config.page_scrolling))

    if not new_state.auto_scroll_enabled:
        return new_state, effects

    if geometry is not None:
        if overflows_page(geometry):
            effects.append(ScrollVertical(unit_id, vertical_scroll_delta(geometry)))
        if overflows_paragraph(geometry):
            effects.append(ScrollHorizontal(unit_id, geometry.unit.left - config.horizontal_inset))
    elif visible is not None and not visible(unit_id):
        effects.append(RevealUnit(unit_id))
    return new_state, effects


class PlaybackSync:
    """
    Owns the ``PlaybackState`` and drives it from playback ticks.

    Ticks, seeks, stops and scroll-guard timers all take the same lock, so a
    tick never observes a half-applied transition.
    """

    def __init__(
        self,
        table: AlignmentTable,
        document: Document | None = None,
        probe: ViewportProbe | None = None,
        *,
        config: ReadAlongConfig | None = None,
        state: PlaybackState | None = None,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        self.table = table
        self.document = document
        self.probe = probe
        self.config = config or ReadAlongConfig()
        self.state = state or PlaybackState()
        self._lock = threading.RLock()
        guard_kwargs: dict[str, object] = {}
        if timer_factory is not None:
            guard_kwargs["timer_factory"] = timer_factory
        self.guard = ScrollGuard(
            self.state,
            probe,
            lock=self._lock,
            delay_ms=self.config.scroll_guard_delay_ms,
            **guard_kwargs,
        )
        if not table.is_empty and self.state.phase is SyncPhase.IDLE:
            self.state.phase = SyncPhase.READY

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def phase(self) -> SyncPhase:
        return self.state.phase

    @property
    def active_unit_id(self) -> str | None:
        return self.state.active_unit_id

    def snapshot(self) -> PlaybackState:
        with self._lock:
            return replace(self.state)

    def load(self, table: AlignmentTable, document: Document | None = None) -> None:
        with self._lock:
            self.table = table
            if document is not None:
                self.document = document
            if self.state.phase is SyncPhase.IDLE and not table.is_empty:
                self.state.phase = SyncPhase.READY

    def play(self) -> None:
        with self._lock:
            if self.state.phase is SyncPhase.IDLE:
                raise ReadAlongError("Playback is not ready: no alignment loaded.")
            self.state.phase = SyncPhase.PLAYING
            self.state.is_playing = True

    def pause(self) -> None:
        with self._lock:
            if self.state.phase is SyncPhase.PLAYING:
                self.state.phase = SyncPhase.PAUSED
            self.state.is_playing = False

    def on_tick(self, seconds: float) -> list[Effect]:
        with self._lock:
            if self.state.phase is not SyncPhase.PLAYING:
                return []
            effects = self._advance(seconds)
            active = self.state.active_unit_id
            if (
                active is not None
                and not self.state.auto_scroll_enabled
                and self.probe is not None
                and self.probe.is_unit_visible(active)
            ):
                self.guard.on_highlighted_unit_visible()
            return effects

    def seek(self, seconds: float) -> list[Effect]:
        """Highlight the unit at ``seconds`` in any phase, holding autoscroll off briefly."""
        with self._lock:
            if self.state.phase is SyncPhase.IDLE:
                return []
            prior = self.state.phase
            self.state.phase = SyncPhase.SEEKING
            self.guard.suspend(self.config.seek_guard_ms)
            try:
                effects = self._advance(seconds)
            finally:
                self.state.phase = SyncPhase.PLAYING if prior is SyncPhase.PLAYING else SyncPhase.PAUSED
            return effects

    def stop(self) -> list[Effect]:
        with self._lock:
            previous = self.state.active_unit_id
            effects: list[Effect] = [ClearHighlight(previous)] if previous is not None else []
            self.state.active_unit_id = None
            self.state.is_playing = False
            if self.state.phase is not SyncPhase.IDLE:
                self.state.phase = SyncPhase.PAUSED
            self.guard.reset()
            self._apply(effects)
            return effects

    def on_playback_end(self) -> list[Effect]:
        with self._lock:
            previous = self.state.active_unit_id
            effects: list[Effect] = [ClearHighlight(previous)] if previous is not None else []
            self.state.active_unit_id = None
            self.state.is_playing = False
            if self.state.phase is SyncPhase.PLAYING:
                self.state.phase = SyncPhase.PAUSED
            self._apply(effects)
            return effects

    def _advance(self, seconds: float) -> list[Effect]:
        probe = self.probe
        new_state, effects = advance(
            self.state,
            seconds,
            table=self.table,
            document=self.document,
            layout=probe.layout if probe is not None else None,
            visible=probe.is_unit_visible if probe is not None else None,
            config=self.config,
        )
        self._commit(new_state)
        self._apply(effects)
        if effects:
            _LOGGER.debug("t=%.3fs -> %s", seconds, effects)
        return effects

    def _commit(self, new_state: PlaybackState) -> None:
        for item in fields(PlaybackState):
            setattr(self.state, item.name, getattr(new_state, item.name))

    def _apply(self, effects: list[Effect]) -> None:
        if self.probe is None:
            return
        for effect in effects:
            if isinstance(effect, RevealUnit):
                self.probe.scroll_unit_into_view(effect.unit_id)
            self.probe.apply(effect)

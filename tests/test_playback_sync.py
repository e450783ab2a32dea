from __future__ import annotations

import pytest

from readalong.alignment import AlignmentTable, parse_alignment
from readalong.config import ReadAlongConfig
from readalong.document import parse_document
from readalong.errors import ReadAlongError
from readalong.interfaces import Box, RecordingProbe, UnitLayout
from readalong.sync import (
    ClearHighlight,
    Highlight,
    PlaybackState,
    PlaybackSync,
    RevealUnit,
    ScrollHorizontal,
    ScrollVertical,
    SyncPhase,
    TurnPage,
    advance,
    overflows_page,
    overflows_paragraph,
)


def _layout(*, unit: Box, page: Box | None = None, paragraph: Box | None = None, line: Box | None = None) -> UnitLayout:
    return UnitLayout(
        unit=unit,
        page=page or Box(0, 0, 800, 600),
        paragraph=paragraph or Box(0, 0, 800, 600),
        line=line or Box(0, 0, 800, 20),
    )


def _sync(sample_tei: str, sample_smil: str, timers, probe=None, **config) -> PlaybackSync:
    table = parse_alignment(sample_smil)
    table.install_total(3000)
    return PlaybackSync(
        table,
        parse_document(sample_tei),
        probe if probe is not None else RecordingProbe(),
        config=ReadAlongConfig(**config),
        timer_factory=timers,
    )


def test_advance_emits_highlight_once_per_unit(sample_smil: str) -> None:
    table = parse_alignment(sample_smil)
    state = PlaybackState()

    state, effects = advance(state, 0.1, table=table)
    assert effects == [Highlight("w0", previous=None)]
    assert state.active_unit_id == "w0"

    state, effects = advance(state, 0.4, table=table)
    assert effects == []
    assert state.current_time_ms == 400

    state, effects = advance(state, 0.7, table=table)
    assert effects == [Highlight("w1", previous="w0")]


def test_advance_does_not_mutate_the_input_state(sample_smil: str) -> None:
    table = parse_alignment(sample_smil)
    state = PlaybackState()

    new_state, _ = advance(state, 0.7, table=table)

    assert state.active_unit_id is None
    assert new_state is not state


def test_advance_turns_pages_when_crossing_boundary(sample_tei: str, sample_smil: str) -> None:
    table = parse_alignment(sample_smil)
    document = parse_document(sample_tei)
    state = PlaybackState()

    state, effects = advance(state, 1.3, table=table, document=document)
    assert effects == [Highlight("w2")]
    assert state.current_page_id == "p0"

    state, effects = advance(state, 1.7, table=table, document=document)
    assert effects == [Highlight("w3", previous="w2"), TurnPage("p1", axis="horizontal")]
    assert state.current_page_id == "p1"


def test_advance_orders_scroll_effects_after_highlight(sample_tei: str, sample_smil: str) -> None:
    table = parse_alignment(sample_smil)
    document = parse_document(sample_tei)
    geometry = _layout(
        unit=Box(900, 650, 40, 20),
        paragraph=Box(0, 0, 800, 300),
        line=Box(0, 0, 800, 40),
    )
    state = PlaybackState(active_unit_id="w0", current_page_id="p0")

    _, effects = advance(
        state,
        0.6,
        table=table,
        document=document,
        layout=lambda unit_id: geometry,
        config=ReadAlongConfig(horizontal_inset=10),
    )

    assert effects == [
        Highlight("w1", previous="w0"),
        ScrollVertical("w1", 260),
        ScrollHorizontal("w1", 890),
    ]


def test_advance_skips_scrolling_while_autoscroll_is_off(sample_tei: str, sample_smil: str) -> None:
    table = parse_alignment(sample_smil)
    geometry = _layout(unit=Box(900, 650, 40, 20))
    state = PlaybackState(auto_scroll_enabled=False)

    _, effects = advance(
        state,
        0.6,
        table=table,
        document=parse_document(sample_tei),
        layout=lambda unit_id: geometry,
        visible=lambda unit_id: False,
    )

    assert effects == [Highlight("w1")]


def test_advance_reveals_hidden_unit_without_geometry(sample_smil: str) -> None:
    table = parse_alignment(sample_smil)

    _, effects = advance(PlaybackState(), 0.6, table=table, visible=lambda unit_id: False)

    assert effects == [Highlight("w1"), RevealUnit("w1")]


def test_overflow_checks() -> None:
    inside = _layout(unit=Box(10, 10, 50, 20))
    below = _layout(unit=Box(10, 590, 50, 20))
    beyond_right = _layout(unit=Box(790, 10, 50, 20))

    assert not overflows_page(inside)
    assert overflows_page(below)
    assert not overflows_paragraph(inside)
    assert overflows_paragraph(beyond_right)


def test_play_requires_loaded_alignment() -> None:
    sync = PlaybackSync(AlignmentTable())

    assert sync.phase is SyncPhase.IDLE
    with pytest.raises(ReadAlongError):
        sync.play()
    assert sync.seek(1.0) == []


def test_ticks_only_advance_while_playing(sample_tei: str, sample_smil: str, timers) -> None:
    probe = RecordingProbe()
    sync = _sync(sample_tei, sample_smil, timers, probe)
    assert sync.phase is SyncPhase.READY

    assert sync.on_tick(0.6) == []

    sync.play()
    assert sync.on_tick(0.6) == [Highlight("w1")]
    assert probe.effects == [Highlight("w1")]
    assert sync.snapshot().is_playing

    sync.pause()
    assert sync.phase is SyncPhase.PAUSED
    assert sync.on_tick(1.3) == []
    assert sync.active_unit_id == "w1"


def test_seek_highlights_and_suspends_autoscroll(sample_tei: str, sample_smil: str, timers) -> None:
    sync = _sync(sample_tei, sample_smil, timers, seek_guard_ms=100)
    sync.play()
    sync.on_tick(0.1)

    effects = sync.seek(1.7)

    assert effects[0] == Highlight("w3", previous="w0")
    assert TurnPage("p1") in effects
    assert sync.phase is SyncPhase.PLAYING
    assert sync.state.auto_scroll_enabled is False
    assert len(timers.pending) == 1

    timers.fire_all()
    assert sync.state.auto_scroll_enabled is True


def test_seek_while_paused_stays_paused(sample_tei: str, sample_smil: str, timers) -> None:
    sync = _sync(sample_tei, sample_smil, timers)

    sync.seek(0.6)

    assert sync.phase is SyncPhase.PAUSED
    assert sync.active_unit_id == "w1"


def test_stop_clears_highlight_and_restores_autoscroll(sample_tei: str, sample_smil: str, timers) -> None:
    probe = RecordingProbe(default_visible=False)
    sync = _sync(sample_tei, sample_smil, timers, probe)
    sync.play()
    sync.on_tick(0.6)
    probe.visible["w1"] = False
    sync.guard.on_manual_scroll()
    assert sync.state.guide_visible

    effects = sync.stop()

    assert effects == [ClearHighlight("w1")]
    assert sync.active_unit_id is None
    assert sync.state.auto_scroll_enabled is True
    assert sync.state.guide_visible is False
    assert sync.phase is SyncPhase.PAUSED
    assert probe.effects[-1] == ClearHighlight("w1")


def test_tick_reenables_autoscroll_once_unit_is_seen(sample_tei: str, sample_smil: str, timers) -> None:
    probe = RecordingProbe(default_visible=False)
    sync = _sync(sample_tei, sample_smil, timers, probe)
    sync.play()
    sync.on_tick(0.6)
    probe.visible["w1"] = False
    sync.guard.on_manual_scroll()

    probe.visible["w1"] = True
    sync.on_tick(0.7)
    sync.on_tick(0.8)

    assert len(timers.pending) == 1
    timers.fire_all()
    assert sync.state.auto_scroll_enabled is True


def test_playback_end_clears_highlight(sample_tei: str, sample_smil: str, timers) -> None:
    sync = _sync(sample_tei, sample_smil, timers)
    sync.play()
    sync.on_tick(2.1)

    assert sync.on_playback_end() == [ClearHighlight("w4")]
    assert sync.phase is SyncPhase.PAUSED
    assert not sync.state.is_playing


def test_snapshot_is_a_detached_copy(sample_tei: str, sample_smil: str, timers) -> None:
    sync = _sync(sample_tei, sample_smil, timers)
    sync.play()
    sync.on_tick(0.6)

    snapshot = sync.snapshot()
    sync.on_tick(1.3)

    assert snapshot.active_unit_id == "w1"
    assert sync.active_unit_id == "w2"

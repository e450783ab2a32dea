from __future__ import annotations

from .alignment import AlignmentTable
from .anchors import Anchor, AnchorEditor
from .config import ReadAlongConfig
from .document import Document
from .errors import AudioLoadFailure, LoadFailure, ReadAlongError, UnknownUnitError
from .interfaces import AudioTransport, ViewportProbe
from .loader import AssetStatus, LoadedAssets
from .logging_utils import get_logger
from .messages import translate
from .scroll_guard import TimerFactory
from .sync import Effect, PlaybackSync, SyncPhase

_LOGGER = get_logger(__name__)

__all__ = ["ReadAlongSession"]


class ReadAlongSession:
    """
    One loaded text/alignment pair bound to a transport and a viewport.

    This is the surface the rendering layer talks to: it forwards user
    gestures (word clicks, progress bar clicks, manual scrolling) and the
    transport's load callbacks, and reads back the state to draw.
    """

    def __init__(
        self,
        assets: LoadedAssets,
        transport: AudioTransport,
        probe: ViewportProbe | None = None,
        *,
        config: ReadAlongConfig | None = None,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        self.assets = assets
        self.transport = transport
        self.probe = probe
        self.config = config or ReadAlongConfig()
        self.sync = PlaybackSync(
            assets.table,
            assets.document,
            probe,
            config=self.config,
            timer_factory=timer_factory,
        )
        self.editor = AnchorEditor.from_document(assets.document, assets.table, palette=self.config.palette)
        self.edit_mode = False
        self._lock = self.sync.lock

    @property
    def document(self) -> Document:
        return self.assets.document

    @property
    def table(self) -> AlignmentTable:
        return self.assets.table

    @property
    def is_loaded(self) -> bool:
        return self.assets.audio_status is not AssetStatus.LOADING

    def on_audio_loaded(self, duration_ms: int | None = None) -> None:
        with self._lock:
            if duration_ms is None:
                duration_ms = self.transport.duration_ms()
            if duration_ms is None:
                raise ReadAlongError("Audio duration is unknown.")
            self.table.install_total(duration_ms)
            self.assets.audio_status = AssetStatus.LOADED
            _LOGGER.info("Audio loaded (%.3fs)", duration_ms / 1000)

    def on_audio_failed(self, reason: str = "", source: str | None = None) -> None:
        with self._lock:
            self.assets.audio_status = AssetStatus.ERROR
            failure = AudioLoadFailure(source=source, reason=reason)
            self.assets.failures.append(failure)
            _LOGGER.warning("%s", failure.describe())

    def play(self) -> None:
        with self._lock:
            self.sync.play()
            self.transport.play()

    def pause(self) -> None:
        with self._lock:
            self.transport.pause()
            self.sync.pause()

    def toggle_play(self) -> None:
        if self.sync.state.is_playing:
            self.pause()
        else:
            self.play()

    def stop(self) -> list[Effect]:
        with self._lock:
            self.transport.stop()
            return self.sync.stop()

    def tick(self) -> list[Effect]:
        """Poll the transport once and advance highlighting."""
        with self._lock:
            position = self.transport.current_position_ms()
            total = self.table.total_duration_ms()
            if self.sync.phase is SyncPhase.PLAYING and total is not None and position >= total:
                return self.sync.on_playback_end()
            return self.sync.on_tick(position / 1000)

    def seek(self, position_ms: int) -> list[Effect]:
        with self._lock:
            if self.sync.phase is SyncPhase.IDLE:
                return []
            self.transport.seek_to(max(0, int(position_ms)))
            return self.sync.seek(max(0, position_ms) / 1000)

    def go_back(self, seconds: float | None = None) -> list[Effect]:
        step = self.config.rewind_seconds if seconds is None else seconds
        with self._lock:
            position = self.transport.current_position_ms()
            return self.seek(max(0, int(position - step * 1000)))

    def go_to_time(self, seconds: float) -> list[Effect]:
        """Jump to the start of the unit playing at ``seconds`` (waveform pointer drops)."""
        with self._lock:
            unit_id = self.table.resolve_at(seconds)
            if unit_id is None:
                return []
            start, _ = self.table.lookup(unit_id)  # type: ignore[misc]
            return self.seek(start)

    def word_clicked(self, unit_id: str) -> Anchor | list[Effect] | None:
        """
        Seek to a word, or toggle an anchor on it in edit mode.

        Outside edit mode the word is played on its own when nothing else
        is playing.
        """
        with self._lock:
            if self.edit_mode:
                return self.editor.toggle(unit_id)
            timing = self.table.lookup(unit_id)
            if timing is None or self.document.word(unit_id) is None:
                raise UnknownUnitError(f"{unit_id} is not an aligned word")
            effects = self.seek(timing[0])
            if not self.sync.state.is_playing:
                self.transport.play_segment(timing[0], timing[1])
            return effects

    def progress_bar_clicked(self, ratio: float) -> list[Effect]:
        with self._lock:
            total = self.table.total_duration_ms()
            if total is None:
                return []
            clamped = min(max(ratio, 0.0), 1.0)
            return self.seek(int(clamped * total))

    def manual_scroll(self) -> bool:
        return self.sync.guard.on_manual_scroll()

    def highlighted_unit_visible(self) -> None:
        self.sync.guard.on_highlighted_unit_visible()

    def return_to_reading(self) -> bool:
        return self.sync.guard.return_to_reading()

    def set_edit_mode(self, enabled: bool) -> None:
        with self._lock:
            if self.edit_mode and not enabled:
                self.editor.clear()
            self.edit_mode = enabled

    def toggle_edit_mode(self) -> bool:
        self.set_edit_mode(not self.edit_mode)
        return self.edit_mode

    def failure_messages(self) -> list[dict[str, object]]:
        messages: list[dict[str, object]] = []
        for failure in self.assets.failures:
            payload = failure.to_payload()
            payload["message"] = translate(failure.message_key, self.config.language)
            messages.append(payload)
        return messages

    def failures(self) -> list[LoadFailure]:
        return list(self.assets.failures)

    def status_payload(self) -> dict[str, object]:
        with self._lock:
            state = self.sync.snapshot()
            return {
                "active_unit_id": state.active_unit_id,
                "auto_scroll_enabled": state.auto_scroll_enabled,
                "current_page_id": state.current_page_id,
                "guide_visible": state.guide_visible,
                "is_playing": state.is_playing,
                "phase": state.phase.value,
                "current_time_ms": state.current_time_ms,
                "edit_mode": self.edit_mode,
                "assets": self.assets.statuses(),
                "failures": self.failure_messages(),
                "duration_ms": self.table.total_duration_ms(),
            }


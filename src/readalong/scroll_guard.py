from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Callable, Protocol

from .logging_utils import get_logger

if TYPE_CHECKING:
    from .interfaces import ViewportProbe
    from .sync import PlaybackState

_LOGGER = get_logger(__name__)

DEFAULT_GUARD_DELAY_MS = 100


class TimerHandle(Protocol):
    daemon: bool

    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


class ScrollGuard:
    """
    Decides whether autoscroll may move the viewport.

    Manual scrolling away from the highlighted unit suspends autoscroll and
    shows the "return to reading position" guide; seeing the unit again
    re-enables it after a debounce. Only one re-enable timer is ever live:
    scheduling cancels the previous one, and a generation counter turns
    any timer that already fired into a no-op.
    """

    def __init__(
        self,
        state: "PlaybackState",
        probe: "ViewportProbe | None" = None,
        *,
        lock: threading.RLock | None = None,
        delay_ms: int = DEFAULT_GUARD_DELAY_MS,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self.state = state
        self.probe = probe
        self.delay_ms = delay_ms
        self._lock = lock or threading.RLock()
        self._timer_factory = timer_factory
        self._timer: TimerHandle | None = None
        self._generation = 0

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    def should_auto_scroll(self) -> bool:
        with self._lock:
            return self.state.auto_scroll_enabled

    def on_manual_scroll(self) -> bool:
        """Handle wheel/scroll input over the text; returns True when autoscroll was suspended."""
        with self._lock:
            active = self.state.active_unit_id
            if active is None:
                return False
            self._cancel_pending()
            if self.probe is not None and self.probe.is_unit_visible(active):
                if not self.state.auto_scroll_enabled:
                    self._schedule(self.delay_ms)
                return False
            if not self.state.auto_scroll_enabled and self.state.guide_visible:
                return False
            self.state.auto_scroll_enabled = False
            self.state.guide_visible = True
            _LOGGER.debug("Autoscroll suspended by manual scroll near %s", active)
            return True

    def on_highlighted_unit_visible(self) -> None:
        with self._lock:
            if self.state.auto_scroll_enabled and not self.state.guide_visible:
                return
            if self._timer is not None:
                return
            self._schedule(self.delay_ms)

    def suspend(self, delay_ms: int | None = None) -> None:
        """Disable autoscroll now and re-enable it once ``delay_ms`` has passed."""
        with self._lock:
            self._cancel_pending()
            self.state.auto_scroll_enabled = False
            self._schedule(self.delay_ms if delay_ms is None else delay_ms)

    def return_to_reading(self) -> bool:
        with self._lock:
            active = self.state.active_unit_id
            if active is None or self.probe is None:
                return False
            self.probe.scroll_unit_into_view(active)
            if self.probe.is_unit_visible(active):
                self.on_highlighted_unit_visible()
            return True

    def cancel(self) -> None:
        with self._lock:
            self._cancel_pending()

    def reset(self) -> None:
        """Cancel pending timers and restore autoscroll immediately."""
        with self._lock:
            self._cancel_pending()
            self.state.auto_scroll_enabled = True
            self.state.guide_visible = False

    def _cancel_pending(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule(self, delay_ms: int) -> None:
        self._cancel_pending()
        generation = self._generation
        timer = self._timer_factory(delay_ms / 1000, lambda: self._fire(generation))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
            self.state.auto_scroll_enabled = True
            self.state.guide_visible = False


__all__ = ["DEFAULT_GUARD_DELAY_MS", "ScrollGuard", "TimerFactory", "TimerHandle"]

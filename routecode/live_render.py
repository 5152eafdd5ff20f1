"""In-place redraw of a streaming response.

The text is shown through a ``rich.live.Live`` display that is refreshed by
hand, so the scrollback holds one copy of the response instead of one per
chunk.
"""

import threading
import time
from typing import Callable, List, Optional

from rich.console import Console, RenderableType
from rich.live import Live

__all__ = ["LiveRenderLoop"]


class LiveRenderLoop:
    def __init__(self, console: Console, ui_config, format_fn: Callable[[str], RenderableType],
                 interval: float = 0.08,
                 timer_factory: Callable[..., threading.Timer] = threading.Timer,
                 live_factory: Callable[..., Live] = Live):
        self.console = console
        self.ui_config = ui_config
        self.format_fn = format_fn
        self.interval = interval
        self._timer_factory = timer_factory
        self._live_factory = live_factory
        self._enabled = (
            ui_config.streaming_mode == "live"
            and console.is_terminal
            and not console.is_dumb_terminal
        )
        self._parts: List[str] = []
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._live: Optional[Live] = None
        self._last_draw: Optional[float] = None
        self._dirty = False
        self._drawn = False
        self._closed = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def append(self, delta: str):
        if not delta:
            return
        with self._lock:
            if self._closed:
                return
            self._parts.append(delta)
            self._dirty = True
            if not self._enabled:
                return
            now = time.monotonic()
            if self._last_draw is None or now - self._last_draw >= self.interval:
                self._cancel_timer_locked()
                self._draw_locked()
            elif self._timer is None:
                self._timer = self._timer_factory(
                    self.interval - (now - self._last_draw), self._on_timer)
                self._timer.daemon = True
                self._timer.start()

    def _on_timer(self):
        with self._lock:
            self._timer = None
            if self._closed or not self._dirty:
                return
            self._draw_locked()

    def _cancel_timer_locked(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _draw_locked(self):
        renderable = self.format_fn(self.text)
        if self._live is None:
            self._live = self._live_factory(
                console=self.console,
                auto_refresh=False,
                transient=False,
                vertical_overflow="visible",
            )
            self._live.start()
        self._live.update(renderable, refresh=True)
        self._last_draw = time.monotonic()
        self._dirty = False
        self._drawn = True

    def _stop_live_locked(self):
        live, self._live = self._live, None
        if live is not None:
            live.stop()

    def finish(self) -> bool:
        """Flush once and close. Returns True if the text is on screen."""
        with self._lock:
            self._cancel_timer_locked()
            try:
                if not self._closed and self._enabled and self._dirty:
                    self._draw_locked()
            finally:
                self._stop_live_locked()
                self._closed = True
            return self._drawn

    def cancel(self):
        with self._lock:
            self._cancel_timer_locked()
            self._stop_live_locked()
            self._closed = True

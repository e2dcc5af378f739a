"""Rate limiting for high-frequency Qt signals.

The player emits a frame update on every tick (30 per second or more while
playing). Publishing each one into editor state would re-render every
listener that often, so updates go through a ``Throttle`` first.

Semantics: the first call in a quiet period is delivered immediately; calls
arriving inside the interval are coalesced and the most recent arguments are
delivered once when the interval elapses.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from PySide6.QtCore import QObject, QTimer

# ~15 Hz
DEFAULT_THROTTLE_MS = 64


class Throttle(QObject):
    def __init__(
        self,
        callback: Callable[..., Any],
        interval_ms: int = DEFAULT_THROTTLE_MS,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self._callback = callback
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self._flush)
        self._pending: tuple | None = None

    def __call__(self, *args: Any) -> None:
        if self._timer.isActive():
            self._pending = args
            return
        self._callback(*args)
        self._timer.start()

    def _flush(self):
        if self._pending is None:
            return
        args, self._pending = self._pending, None
        self._callback(*args)
        # keep the window open so a burst stays rate limited
        self._timer.start()

    def cancel(self):
        self._pending = None
        self._timer.stop()

    def isPending(self) -> bool:
        return self._pending is not None


__all__ = ["Throttle", "DEFAULT_THROTTLE_MS"]

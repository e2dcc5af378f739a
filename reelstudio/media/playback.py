"""Transport over an assembled composition, and the editor's subscription to it.

CompositionPlayer is the local stand-in for the renderer/player: it owns the
playback clock for a ``Composition`` and exposes
    load(composition)
    play() / pause() / toggle()
    seek(frame) / seek_to_start() / seek_to_end() / step(frames)
    current_frame() -> int
Signals:
    frameUpdate(int)     # on every advanced frame during playback
    seeked(int)          # after an explicit seek
    stateChanged(str)    # 'playing' | 'paused'
    compositionLoaded(int)  # total frames

Pacing: a precise QTimer ticks at the composition frame rate. Each tick
computes the desired frame from wall-clock time since play started and jumps
straight to it, so a slow consumer causes dropped frames rather than drift.
Playback stops (paused) on the last frame.

PlayerSubscription is how editor state hears about the player. It is attached
when the preview mounts and detached on teardown. Frame updates arrive far
too often to publish directly, so they pass through a ``Throttle`` first.
"""

from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Callable, Optional

from PySide6.QtCore import QObject, Qt, QTimer, Signal

from ..core.composition import FPS, Composition, SequenceItem
from ..utils.throttle import DEFAULT_THROTTLE_MS, Throttle
from ..utils.timefmt import frames_to_seconds


@dataclass
class PlaybackState:
    playing: bool = False
    current_frame: int = 0
    total_frames: int = 0
    fps: int = FPS


class CompositionPlayer(QObject):
    frameUpdate = Signal(int)
    seeked = Signal(int)
    stateChanged = Signal(str)
    compositionLoaded = Signal(int)

    def __init__(self, parent: Optional[QObject] = None, *, frame_skip: bool = True):
        super().__init__(parent)
        self._composition: Optional[Composition] = None
        self._state = PlaybackState()
        self._timer = QTimer(self)
        self._timer.setTimerType(Qt.PreciseTimer)
        self._timer.timeout.connect(self._tick)
        self._play_start_time: Optional[float] = None
        self._frame_skip_enabled = frame_skip

    def set_frame_skipping(self, enabled: bool):
        self._frame_skip_enabled = enabled

    @property
    def composition(self) -> Optional[Composition]:
        return self._composition

    @property
    def state(self) -> PlaybackState:
        return self._state

    def load(self, composition: Composition):
        """Swap in a freshly assembled composition, keeping the playhead."""
        was_playing = self._state.playing
        self._composition = composition
        total = composition.duration_in_frames
        current = min(self._state.current_frame, max(0, total - 1))
        self._state = PlaybackState(
            playing=False,
            current_frame=current,
            total_frames=total,
            fps=composition.fps,
        )
        self.compositionLoaded.emit(total)
        if was_playing:
            self._timer.stop()
            self.play()

    def is_playing(self) -> bool:
        return self._state.playing

    def current_frame(self) -> int:
        return self._state.current_frame

    def current_time(self) -> float:
        return frames_to_seconds(self._state.current_frame, self._state.fps or FPS)

    def active_items(self) -> list[SequenceItem]:
        if self._composition is None:
            return []
        return self._composition.items_at(self._state.current_frame)

    def play(self):
        if self._composition is None or self._state.total_frames <= 0:
            return
        if self._state.current_frame >= self._state.total_frames - 1:
            self._state.current_frame = 0
        fps = self._state.fps or FPS
        if not self._timer.isActive():
            self._play_start_time = perf_counter() - self._state.current_frame / fps
            self._timer.start(int(1000 / fps))
        if not self._state.playing:
            self._state.playing = True
            self.stateChanged.emit("playing")

    def pause(self):
        if self._timer.isActive():
            self._timer.stop()
        self._play_start_time = None
        if self._state.playing:
            self._state.playing = False
            self.stateChanged.emit("paused")

    def toggle(self):
        if self._state.playing:
            self.pause()
        else:
            self.play()

    def seek(self, frame: int):
        if self._composition is None:
            return
        last = max(0, self._state.total_frames - 1)
        frame = int(max(0, min(frame, last)))
        self._state.current_frame = frame
        if self._timer.isActive():
            self._play_start_time = perf_counter() - frame / (self._state.fps or FPS)
        self.seeked.emit(frame)

    def seek_to_start(self):
        self.seek(0)

    def seek_to_end(self):
        self.seek(self._state.total_frames - 1)

    def step(self, frames: int = 1):
        self.seek(self._state.current_frame + frames)

    def _tick(self):
        if self._composition is None:
            self._timer.stop()
            return
        fps = self._state.fps or FPS
        target = self._state.current_frame + 1
        if self._frame_skip_enabled and self._play_start_time is not None:
            desired = int((perf_counter() - self._play_start_time) * fps)
            if desired > self._state.current_frame:
                target = desired
        if target >= self._state.total_frames:
            self._state.current_frame = max(0, self._state.total_frames - 1)
            self.frameUpdate.emit(self._state.current_frame)
            self.pause()
            return
        self._state.current_frame = target
        self.frameUpdate.emit(target)


class PlayerSubscription(QObject):
    """Listener registration between a player and editor state."""

    def __init__(
        self,
        player: CompositionPlayer,
        on_timestamp: Callable[[float], None],
        on_state: Callable[[str], None],
        throttle_ms: int = DEFAULT_THROTTLE_MS,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self.player = player
        self._on_state = on_state
        self._throttle = Throttle(on_timestamp, throttle_ms, self)
        self._attached = False

    @property
    def attached(self) -> bool:
        return self._attached

    def attach(self):
        if self._attached:
            return
        self.player.frameUpdate.connect(self._onFrame)
        self.player.seeked.connect(self._onFrame)
        self.player.stateChanged.connect(self._onState)
        self._attached = True

    def detach(self):
        if not self._attached:
            return
        self.player.frameUpdate.disconnect(self._onFrame)
        self.player.seeked.disconnect(self._onFrame)
        self.player.stateChanged.disconnect(self._onState)
        self._throttle.cancel()
        self._attached = False

    def _onFrame(self, frame: int):
        self._throttle(frames_to_seconds(frame, self.player.state.fps or FPS))

    def _onState(self, state: str):
        self._on_state(state)


__all__ = ["PlaybackState", "CompositionPlayer", "PlayerSubscription"]

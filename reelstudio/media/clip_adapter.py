"""Thread-safe adapter around MoviePy clips providing simplified access.

Wraps both video files (``VideoFileClip``) and audio-only files
(``AudioFileClip``) behind one interface so metadata extraction does not need
to care which it got. Frame and audio reads go through one mutex because
MoviePy readers are not safe to share between threads.
"""

from __future__ import annotations

from typing import Optional

from moviepy import AudioFileClip, VideoFileClip
from PySide6.QtCore import QMutex


class ClipAdapter:
    def __init__(self, clip, is_audio_only: bool = False):
        self._clip = clip
        self._mutex = QMutex()
        self.is_audio_only = is_audio_only

    @property
    def clip(self):
        return self._clip

    @property
    def duration(self) -> float:
        return float(getattr(self._clip, "duration", 0.0) or 0.0)

    @property
    def fps(self) -> Optional[float]:
        if self.is_audio_only:
            return None
        fps = getattr(self._clip, "fps", None)
        return float(fps) if fps else None

    @property
    def size(self) -> Optional[tuple[int, int]]:
        if self.is_audio_only:
            return None
        size = getattr(self._clip, "size", None)
        if not size:
            return None
        return int(size[0]), int(size[1])

    @property
    def has_audio(self) -> bool:
        if self.is_audio_only:
            return True
        return getattr(self._clip, "audio", None) is not None

    def get_frame(self, t: float):
        self._mutex.lock()
        try:
            return self._clip.get_frame(t)
        finally:
            self._mutex.unlock()

    def audio_array(self, fps: int = 200):
        """Audio samples at ``fps`` Hz, or None when the clip is silent."""
        source = self._clip if self.is_audio_only else getattr(self._clip, "audio", None)
        if source is None:
            return None
        self._mutex.lock()
        try:
            return source.to_soundarray(fps=fps)
        finally:
            self._mutex.unlock()

    def close(self) -> None:
        close = getattr(self._clip, "close", None)
        if close is not None:
            close()

    @classmethod
    def from_path(cls, path: str, audio_only: bool = False) -> "ClipAdapter":
        if audio_only:
            return cls(AudioFileClip(path), is_audio_only=True)
        return cls(VideoFileClip(path))

    @classmethod
    def from_clip(cls, clip, audio_only: bool = False) -> "ClipAdapter":
        return cls(clip, is_audio_only=audio_only)


__all__ = ["ClipAdapter"]

"""Timeline mutations: placing media on tracks and moving/resizing keyframes.

Two kinds of operation live here.

Store operations (``add_to_track``, ``create_keyframe``, ``delete_keyframe``,
``delete_media``) read and write the entity store directly.

Edit math (``move_keyframe``, ``resize_keyframe``, ``round_duration``) is pure:
it takes a keyframe plus the pointer delta and returns the clamped result
without touching the store. The pointer handlers call it on every mouse move,
so it only ever looks at the immediate neighbours of the dragged keyframe.

``KeyframeDrag`` and ``KeyframeResize`` wrap the edit math into a gesture
object: ``update()`` during the drag only changes a local preview copy,
``finish()`` persists once, and ``cancel()`` drops the preview. Nothing is
written to the store until ``finish``.

Pixel deltas convert to milliseconds as::

    delta_ms = pixel_delta / timeline_width_px * timeline_scale_seconds * 1000
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Iterable, Optional, Sequence

from ..errors import EntityNotFoundError, IncompatibleMediaError, MediaNotReadyError
from .media_resolve import resolve_duration
from .schema import (
    TRACK_TYPE_ORDER,
    Keyframe,
    KeyframeData,
    MediaItem,
    Track,
    new_id,
    track_type_for,
)
from .store import EntityStore

logger = logging.getLogger(__name__)

MIN_DURATION_MS = 3000
DEFAULT_KEYFRAME_DURATION_MS = 5000
# gap left between the last keyframe and one appended by add_to_track
APPEND_GAP_MS = 1
DURATION_STEP_MS = 100


# --- store operations ---


def tracks_for_project(store: EntityStore, project_id: str) -> list[Track]:
    tracks = store.tracks.by_project(project_id)
    tracks.sort(key=lambda t: (TRACK_TYPE_ORDER[t.type], t.id))
    return tracks


def find_or_create_track(store: EntityStore, project_id: str, track_type: str) -> Track:
    for track in tracks_for_project(store, project_id):
        if track.type == track_type:
            return track
    track = Track(id=new_id(), project_id=project_id, type=track_type, label=track_type)
    store.tracks.create(track)
    logger.info("created %s track %s for project %s", track_type, track.id, project_id)
    return track


def create_keyframe(
    store: EntityStore,
    track_id: str,
    media_id: str,
    timestamp: int,
    duration: int,
    prompt: Optional[str] = None,
) -> Keyframe:
    """Create a keyframe after checking the media exists and fits the track."""
    track = store.tracks.find(track_id)
    if track is None:
        raise EntityNotFoundError("track", track_id)
    media = store.media.find(media_id)
    if media is None:
        raise EntityNotFoundError("media", media_id)
    if media.project_id != track.project_id:
        raise ValueError(
            f"media {media_id} belongs to project {media.project_id}, "
            f"track {track_id} to {track.project_id}"
        )
    if not track.accepts(media.media_type):
        raise IncompatibleMediaError(media.media_type, track.type)
    keyframe = Keyframe(
        id=new_id(),
        track_id=track_id,
        timestamp=int(timestamp),
        duration=int(duration),
        data=KeyframeData(media_id=media_id, type=media.media_type, prompt=prompt),
    )
    store.keyframes.create(keyframe)
    return keyframe


def append_position(keyframes: Iterable[Keyframe]) -> int:
    """Where the next keyframe goes: after the latest end, or 0 on an empty track."""
    ends = [k.end for k in keyframes]
    if not ends:
        return 0
    return max(ends) + APPEND_GAP_MS


def add_to_track(store: EntityStore, media: MediaItem) -> Keyframe:
    """Append ``media`` to its project's track of the matching type.

    The track is created the first time media of that type is placed. The new
    keyframe takes the media's own duration when known, otherwise
    ``DEFAULT_KEYFRAME_DURATION_MS``.
    """
    current = store.media.find(media.id)
    if current is None:
        raise EntityNotFoundError("media", media.id)
    if current.status != "completed":
        raise MediaNotReadyError(current.id, current.status)
    track = find_or_create_track(
        store, current.project_id, track_type_for(current.media_type)
    )
    timestamp = append_position(store.keyframes.by_track(track.id))
    duration = resolve_duration(current) or DEFAULT_KEYFRAME_DURATION_MS
    prompt = (current.input or {}).get("prompt")
    keyframe = create_keyframe(
        store,
        track.id,
        current.id,
        timestamp,
        duration,
        prompt=prompt if isinstance(prompt, str) else None,
    )
    logger.info(
        "placed media %s on %s track at %dms (%dms)",
        current.id,
        track.type,
        timestamp,
        duration,
    )
    return keyframe


def delete_keyframe(store: EntityStore, keyframe_id: str) -> None:
    # no ripple: siblings keep their timestamps
    store.keyframes.delete(keyframe_id)


def delete_media(store: EntityStore, media_id: str) -> list[str]:
    """Delete a media item and every keyframe that references it.

    Returns the ids of the removed keyframes.
    """
    media = store.media.find(media_id)
    if media is None:
        return []
    removed = []
    for track in store.tracks.by_project(media.project_id):
        for keyframe in store.keyframes.by_track(track.id):
            if keyframe.data.media_id == media_id:
                store.keyframes.delete(keyframe.id)
                removed.append(keyframe.id)
    store.media.delete(media_id)
    logger.info("deleted media %s and %d keyframe(s)", media_id, len(removed))
    return removed


# --- edit math ---


def pixels_to_ms(
    pixel_delta: float, timeline_width_px: float, timeline_scale_seconds: float
) -> float:
    if timeline_width_px <= 0:
        return 0.0
    return pixel_delta / timeline_width_px * timeline_scale_seconds * 1000


def neighbours(
    keyframe: Keyframe, siblings: Sequence[Keyframe]
) -> tuple[Optional[Keyframe], Optional[Keyframe]]:
    """Immediate left and right neighbours of ``keyframe`` on its track."""
    ordered = sorted(
        [k for k in siblings if k.id != keyframe.id] + [keyframe],
        key=lambda k: (k.timestamp, k.id),
    )
    idx = next(i for i, k in enumerate(ordered) if k.id == keyframe.id)
    prev = ordered[idx - 1] if idx > 0 else None
    nxt = ordered[idx + 1] if idx + 1 < len(ordered) else None
    return prev, nxt


def move_bounds(
    keyframe: Keyframe, siblings: Sequence[Keyframe]
) -> tuple[int, Optional[int]]:
    prev, nxt = neighbours(keyframe, siblings)
    lo = prev.end if prev is not None else 0
    hi = nxt.timestamp - keyframe.duration if nxt is not None else None
    return lo, hi


def move_keyframe(
    keyframe: Keyframe,
    pixel_delta: float,
    timeline_width_px: float,
    timeline_scale_seconds: float,
    siblings: Sequence[Keyframe] = (),
) -> int:
    """New timestamp for ``keyframe`` after a horizontal drag of ``pixel_delta``.

    The result stays between the end of the left neighbour and the start of
    the right neighbour minus the keyframe's own duration, and never goes
    below 0. When the keyframe does not fit between its neighbours at all
    (an overlap created programmatically) it keeps its timestamp.
    """
    delta = pixels_to_ms(pixel_delta, timeline_width_px, timeline_scale_seconds)
    lo, hi = move_bounds(keyframe, siblings)
    if hi is not None and hi < lo:
        return keyframe.timestamp
    candidate = int(round(keyframe.timestamp + delta))
    candidate = max(lo, candidate)
    if hi is not None:
        candidate = min(hi, candidate)
    return max(0, candidate)


def duration_bounds(max_duration: Optional[float]) -> tuple[int, Optional[int]]:
    """``(min, max)`` allowed durations; max is None when the source is unbounded.

    A source shorter than ``MIN_DURATION_MS`` caps both bounds at its length.
    """
    if max_duration is None:
        return MIN_DURATION_MS, None
    hi = int(max_duration)
    return min(MIN_DURATION_MS, hi), hi


def _clamp_duration(
    duration: float, max_duration: Optional[float], room: Optional[int] = None
) -> int:
    lo, hi = duration_bounds(max_duration)
    value = int(round(duration))
    value = max(lo, value)
    if hi is not None:
        value = min(hi, value)
    if room is not None:
        value = min(room, value)
    return value


def resize_room(
    keyframe: Keyframe, siblings: Sequence[Keyframe], direction: str = "right"
) -> Optional[int]:
    """Longest duration the moving edge allows before touching a neighbour.

    Right edge: up to the next keyframe's start (None when there is none).
    Left edge: back to the previous keyframe's end, or to 0.
    """
    prev, nxt = neighbours(keyframe, siblings)
    if direction == "right":
        return nxt.timestamp - keyframe.timestamp if nxt is not None else None
    if direction != "left":
        raise ValueError(f"unknown resize direction: {direction!r}")
    return keyframe.end - (prev.end if prev is not None else 0)


def resize_keyframe(
    keyframe: Keyframe,
    pixel_delta: float,
    timeline_width_px: float,
    timeline_scale_seconds: float,
    max_duration: Optional[float] = None,
    direction: str = "right",
    siblings: Sequence[Keyframe] = (),
) -> tuple[int, int]:
    """``(timestamp, duration)`` after dragging an edge by ``pixel_delta``.

    ``direction="right"`` moves the end edge and stops at the next keyframe.
    ``direction="left"`` moves the start edge and keeps the end fixed,
    stopping at the previous keyframe's end or 0. A keyframe that already
    overlaps the neighbour on the moving side is left as it is.
    """
    delta = pixels_to_ms(pixel_delta, timeline_width_px, timeline_scale_seconds)
    room = resize_room(keyframe, siblings, direction)
    if room is not None and room < keyframe.duration:
        return keyframe.timestamp, keyframe.duration
    if direction == "right":
        duration = _clamp_duration(keyframe.duration + delta, max_duration, room)
        return keyframe.timestamp, duration
    duration = _clamp_duration(keyframe.duration - delta, max_duration, room)
    return keyframe.end - duration, duration


def round_duration(duration: float, max_duration: Optional[float] = None) -> int:
    """Round to the nearest 100 ms, then clamp back into the allowed range."""
    rounded = math.floor(duration / DURATION_STEP_MS + 0.5) * DURATION_STEP_MS
    return _clamp_duration(rounded, max_duration)


def max_duration_for(media: Optional[MediaItem]) -> Optional[int]:
    if media is None:
        return None
    return resolve_duration(media)


# --- gestures ---


class _Gesture:
    def __init__(self, keyframe: Keyframe, timeline_width_px: float, timeline_scale_seconds: float):
        self.original = keyframe
        self.preview = keyframe
        self.timeline_width_px = timeline_width_px
        self.timeline_scale_seconds = timeline_scale_seconds
        self.active = True

    @property
    def changed(self) -> bool:
        return (
            self.preview.timestamp != self.original.timestamp
            or self.preview.duration != self.original.duration
        )

    def cancel(self) -> Keyframe:
        self.active = False
        self.preview = self.original
        return self.original

    def _persist(self, store: EntityStore, **changes) -> Optional[Keyframe]:
        self.active = False
        if not self.changed:
            return store.keyframes.find(self.original.id)
        updated = store.keyframes.update(self.original.id, **changes)
        if updated is None:
            logger.info("keyframe %s vanished during gesture", self.original.id)
        return updated


class KeyframeDrag(_Gesture):
    """Drag-to-move of one keyframe, bounded by the neighbours seen at press."""

    def __init__(
        self,
        keyframe: Keyframe,
        siblings: Sequence[Keyframe],
        timeline_width_px: float,
        timeline_scale_seconds: float,
    ):
        super().__init__(keyframe, timeline_width_px, timeline_scale_seconds)
        self.siblings = [k for k in siblings if k.id != keyframe.id]

    @classmethod
    def start(
        cls,
        store: EntityStore,
        keyframe_id: str,
        timeline_width_px: float,
        timeline_scale_seconds: float,
    ) -> Optional["KeyframeDrag"]:
        """Begin a drag, or None when the keyframe is gone or its track locked."""
        keyframe = store.keyframes.find(keyframe_id)
        if keyframe is None:
            return None
        track = store.tracks.find(keyframe.track_id)
        if track is None or track.locked:
            return None
        return cls(
            keyframe,
            store.keyframes.by_track(keyframe.track_id),
            timeline_width_px,
            timeline_scale_seconds,
        )

    def update(self, pixel_delta: float) -> Keyframe:
        """Apply the total pointer offset since press to the preview."""
        timestamp = move_keyframe(
            self.original,
            pixel_delta,
            self.timeline_width_px,
            self.timeline_scale_seconds,
            self.siblings,
        )
        self.preview = replace(self.original, timestamp=timestamp)
        return self.preview

    def finish(self, store: EntityStore) -> Optional[Keyframe]:
        return self._persist(store, timestamp=self.preview.timestamp)


class KeyframeResize(_Gesture):
    """Drag of a keyframe edge, bounded by the neighbours seen at press.

    The duration is rounded to 100 ms on release and capped again so the
    rounding never pushes an edge into a neighbour.
    """

    def __init__(
        self,
        keyframe: Keyframe,
        timeline_width_px: float,
        timeline_scale_seconds: float,
        max_duration: Optional[float] = None,
        direction: str = "right",
        siblings: Sequence[Keyframe] = (),
    ):
        super().__init__(keyframe, timeline_width_px, timeline_scale_seconds)
        self.max_duration = max_duration
        self.direction = direction
        self.siblings = [k for k in siblings if k.id != keyframe.id]
        self.room = resize_room(keyframe, self.siblings, direction)

    @classmethod
    def start(
        cls,
        store: EntityStore,
        keyframe_id: str,
        timeline_width_px: float,
        timeline_scale_seconds: float,
        direction: str = "right",
    ) -> Optional["KeyframeResize"]:
        keyframe = store.keyframes.find(keyframe_id)
        if keyframe is None:
            return None
        track = store.tracks.find(keyframe.track_id)
        if track is None or track.locked:
            return None
        media = store.media.find(keyframe.data.media_id)
        return cls(
            keyframe,
            timeline_width_px,
            timeline_scale_seconds,
            max_duration=max_duration_for(media),
            direction=direction,
            siblings=store.keyframes.by_track(keyframe.track_id),
        )

    def update(self, pixel_delta: float) -> Keyframe:
        timestamp, duration = resize_keyframe(
            self.original,
            pixel_delta,
            self.timeline_width_px,
            self.timeline_scale_seconds,
            max_duration=self.max_duration,
            direction=self.direction,
            siblings=self.siblings,
        )
        self.preview = replace(self.original, timestamp=timestamp, duration=duration)
        return self.preview

    def finish(self, store: EntityStore) -> Optional[Keyframe]:
        if self.room is not None and self.room < self.original.duration:
            # already overlapping on the moving side; update() never changed it
            self.preview = self.original
            return self._persist(store)
        duration = round_duration(self.preview.duration, self.max_duration)
        if self.room is not None:
            duration = min(duration, self.room)
        timestamp = self.preview.timestamp
        if self.direction == "left":
            timestamp = max(0, self.original.end - duration)
        self.preview = replace(self.preview, timestamp=timestamp, duration=duration)
        return self._persist(store, timestamp=timestamp, duration=duration)


__all__ = [
    "MIN_DURATION_MS",
    "DEFAULT_KEYFRAME_DURATION_MS",
    "APPEND_GAP_MS",
    "DURATION_STEP_MS",
    "tracks_for_project",
    "find_or_create_track",
    "create_keyframe",
    "append_position",
    "add_to_track",
    "delete_keyframe",
    "delete_media",
    "pixels_to_ms",
    "neighbours",
    "move_bounds",
    "move_keyframe",
    "duration_bounds",
    "resize_room",
    "resize_keyframe",
    "round_duration",
    "max_duration_for",
    "KeyframeDrag",
    "KeyframeResize",
]

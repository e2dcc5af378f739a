"""Derive a frame-indexed render sequence from tracks, keyframes and media.

The composition is a pure function of store contents. It is rebuilt from
scratch whenever the timeline changes (``load_composition``) rather than
patched, so it can never drift from what is persisted.

Keyframes whose media is missing, not completed, or has no playable URL are
left out. A render must be possible while generations are still running.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from ..utils.timefmt import ms_to_frames
from .media_resolve import resolve_media_url
from .schema import TRACK_TYPE_ORDER, Keyframe, MediaItem, Project, Track
from .store import EntityStore
from .project import get_project

FPS = 30
DEFAULT_DURATION_SECONDS = 5
# silence left after the last keyframe
DURATION_PADDING_MS = 5000

VIDEO_SIZE_MAP = {
    "16:9": (1024, 576),
    "9:16": (576, 1024),
    "1:1": (1024, 1024),
}
DEFAULT_VIDEO_SIZE = VIDEO_SIZE_MAP["16:9"]


@dataclass(frozen=True)
class SequenceItem:
    keyframe_id: str
    media_id: str
    media_type: str
    url: str
    start_frame: int
    duration_frames: int

    @property
    def end_frame(self) -> int:
        return self.start_frame + self.duration_frames

    def covers(self, frame: int) -> bool:
        return self.start_frame <= frame < self.end_frame

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyframeId": self.keyframe_id,
            "mediaId": self.media_id,
            "mediaType": self.media_type,
            "url": self.url,
            "from": self.start_frame,
            "durationInFrames": self.duration_frames,
        }


@dataclass(frozen=True)
class TrackSequence:
    track: Track
    items: tuple[SequenceItem, ...] = ()


@dataclass(frozen=True, eq=False)
class Composition:
    project: Project
    fps: int
    width: int
    height: int
    duration_seconds: int
    tracks: tuple[TrackSequence, ...] = ()
    frames: Mapping[str, list[Keyframe]] = field(default_factory=dict)
    media: Mapping[str, MediaItem] = field(default_factory=dict)

    @property
    def duration_in_frames(self) -> int:
        return self.duration_seconds * self.fps

    @property
    def is_empty(self) -> bool:
        return not any(seq.items for seq in self.tracks)

    def items_at(self, frame: int) -> list[SequenceItem]:
        """Items active at ``frame``, in track render order."""
        return [
            item for seq in self.tracks for item in seq.items if item.covers(frame)
        ]

    def to_render_props(self) -> dict[str, Any]:
        """Input for the renderer/player collaborator."""
        return {
            "tracks": [
                {
                    "id": seq.track.id,
                    "type": seq.track.type,
                    "label": seq.track.label,
                    "items": [item.to_dict() for item in seq.items],
                }
                for seq in self.tracks
            ],
            "frames": {
                track_id: [k.to_dict() for k in kfs]
                for track_id, kfs in self.frames.items()
            },
            "mediaItems": {mid: m.to_dict() for mid, m in self.media.items()},
            "fps": self.fps,
            "width": self.width,
            "height": self.height,
            "durationInFrames": self.duration_in_frames,
        }


def video_size(aspect_ratio: Optional[str]) -> tuple[int, int]:
    return VIDEO_SIZE_MAP.get(aspect_ratio or "", DEFAULT_VIDEO_SIZE)


def total_duration(frames: Mapping[str, Iterable[Keyframe]]) -> int:
    """Composition length in whole seconds.

    The latest keyframe end plus ``DURATION_PADDING_MS``, never shorter than
    ``DEFAULT_DURATION_SECONDS``. Only timing counts, not media content.
    """
    max_end = 0
    for keyframes in frames.values():
        for keyframe in keyframes:
            max_end = max(max_end, keyframe.end)
    return max(DEFAULT_DURATION_SECONDS, math.ceil((max_end + DURATION_PADDING_MS) / 1000))


def _sequence_item(keyframe: Keyframe, media: Optional[MediaItem], fps: int) -> Optional[SequenceItem]:
    if media is None or media.status != "completed":
        return None
    url = resolve_media_url(media)
    if not url:
        return None
    return SequenceItem(
        keyframe_id=keyframe.id,
        media_id=media.id,
        media_type=media.media_type,
        url=url,
        start_frame=ms_to_frames(keyframe.timestamp, fps),
        duration_frames=ms_to_frames(keyframe.duration, fps),
    )


def assemble_composition(
    project: Project,
    tracks: Iterable[Track],
    frames: Mapping[str, Iterable[Keyframe]],
    media_items: Mapping[str, MediaItem],
    fps: int = FPS,
) -> Composition:
    ordered = sorted(tracks, key=lambda t: TRACK_TYPE_ORDER[t.type])
    frames = {
        track_id: sorted(kfs, key=lambda k: (k.timestamp, k.id))
        for track_id, kfs in frames.items()
    }
    sequences = []
    for track in ordered:
        items = []
        for keyframe in frames.get(track.id, []):
            item = _sequence_item(keyframe, media_items.get(keyframe.data.media_id), fps)
            if item is not None:
                items.append(item)
        sequences.append(TrackSequence(track=track, items=tuple(items)))
    width, height = video_size(project.aspect_ratio)
    return Composition(
        project=project,
        fps=fps,
        width=width,
        height=height,
        duration_seconds=total_duration(frames),
        tracks=tuple(sequences),
        frames=frames,
        media=dict(media_items),
    )


def load_composition(store: EntityStore, project_id: str, fps: int = FPS) -> Composition:
    """Read the project's tracks, keyframes and media and assemble them."""
    project = get_project(store, project_id)
    tracks = store.tracks.by_project(project_id)
    frames = {t.id: store.keyframes.by_track(t.id) for t in tracks}
    media = {m.id: m for m in store.media.by_project(project_id)}
    return assemble_composition(project, tracks, frames, media, fps=fps)


__all__ = [
    "FPS",
    "DEFAULT_DURATION_SECONDS",
    "DURATION_PADDING_MS",
    "VIDEO_SIZE_MAP",
    "DEFAULT_VIDEO_SIZE",
    "SequenceItem",
    "TrackSequence",
    "Composition",
    "video_size",
    "total_duration",
    "assemble_composition",
    "load_composition",
]

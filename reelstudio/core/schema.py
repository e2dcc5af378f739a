"""Entity definitions for projects, tracks, keyframes and media items.

Everything the store persists is one of the dataclasses below. Times on the
timeline are integer milliseconds; ``MediaItem.created_at`` is a unix
timestamp in milliseconds so the media list can be sorted newest first.

Media items come in two shapes that share most fields:

* ``GeneratedMedia`` is created when a job is submitted to the generation
  queue. It carries the queue ``endpoint_id`` and ``request_id`` needed to poll
  for the result; neither may change after creation.
* ``UploadedMedia`` wraps a file the user supplied. It always has a ``url`` and
  is ``completed`` from the moment it exists.

Only ``status``, ``output`` and ``metadata`` are mutated on a media item after
creation (see ``MEDIA_MUTABLE_FIELDS``).
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, asdict
from typing import Any, ClassVar, Optional

ASPECT_RATIOS = ("16:9", "9:16", "1:1")
TRACK_TYPES = ("video", "music", "voiceover")
MEDIA_TYPES = ("image", "video", "music", "voiceover")
MEDIA_STATUSES = ("pending", "running", "completed", "failed")
TERMINAL_STATUSES = frozenset({"completed", "failed"})

TRACK_TYPE_ORDER = {"video": 1, "music": 2, "voiceover": 3}

# which media types each track type accepts
TRACK_MEDIA_TYPES = {
    "video": frozenset({"image", "video"}),
    "music": frozenset({"music", "voiceover"}),
    "voiceover": frozenset({"music", "voiceover"}),
}

MEDIA_MUTABLE_FIELDS = frozenset({"status", "output", "metadata"})


def new_id() -> str:
    return uuid.uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)


def track_type_for(media_type: str) -> str:
    """Track type that holds ``media_type`` (images live on the video track)."""
    if media_type == "image":
        return "video"
    if media_type not in TRACK_TYPES:
        raise ValueError(f"unknown media type: {media_type!r}")
    return media_type


def is_compatible(track_type: str, media_type: str) -> bool:
    return media_type in TRACK_MEDIA_TYPES.get(track_type, ())


@dataclass
class Project:
    id: str
    title: str = ""
    description: str = ""
    aspect_ratio: str = "16:9"

    def __post_init__(self):
        if self.aspect_ratio not in ASPECT_RATIOS:
            raise ValueError(f"unsupported aspect ratio: {self.aspect_ratio!r}")

    @property
    def is_placeholder(self) -> bool:
        return self.id == ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Project":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            aspect_ratio=data.get("aspect_ratio", "16:9"),
        )


# Returned where a project is needed before one has been loaded or created.
PROJECT_PLACEHOLDER = Project(id="", title="", description="", aspect_ratio="16:9")


@dataclass
class Track:
    id: str
    project_id: str
    type: str
    label: str = ""
    locked: bool = False

    def __post_init__(self):
        if self.type not in TRACK_TYPES:
            raise ValueError(f"unknown track type: {self.type!r}")

    @property
    def order(self) -> int:
        return TRACK_TYPE_ORDER[self.type]

    def accepts(self, media_type: str) -> bool:
        return is_compatible(self.type, media_type)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Track":
        return cls(
            id=data["id"],
            project_id=data["project_id"],
            type=data["type"],
            label=data.get("label", ""),
            locked=bool(data.get("locked", False)),
        )


@dataclass
class KeyframeData:
    media_id: str
    type: str  # media type of the referenced item
    prompt: Optional[str] = None


@dataclass
class Keyframe:
    id: str
    track_id: str
    timestamp: int  # ms, >= 0
    duration: int  # ms, > 0
    data: KeyframeData

    def __post_init__(self):
        if self.timestamp < 0:
            raise ValueError("keyframe timestamp must be >= 0")
        if self.duration <= 0:
            raise ValueError("keyframe duration must be > 0")

    @property
    def end(self) -> int:
        return self.timestamp + self.duration

    @property
    def media_id(self) -> str:
        return self.data.media_id

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Keyframe":
        return cls(
            id=data["id"],
            track_id=data["track_id"],
            timestamp=int(data["timestamp"]),
            duration=int(data["duration"]),
            data=KeyframeData(**data["data"]),
        )


@dataclass
class MediaItem:
    """Fields shared by generated and uploaded media."""

    kind: ClassVar[str] = ""

    id: str
    project_id: str
    media_type: str
    status: str = "pending"
    created_at: int = field(default_factory=now_ms)
    input: dict[str, Any] = field(default_factory=dict)
    output: Optional[dict[str, Any]] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.media_type not in MEDIA_TYPES:
            raise ValueError(f"unknown media type: {self.media_type!r}")
        if self.status not in MEDIA_STATUSES:
            raise ValueError(f"unknown media status: {self.status!r}")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_audio(self) -> bool:
        return self.media_type in ("music", "voiceover")

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["kind"] = self.kind
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MediaItem":
        kind = data.get("kind")
        target = _MEDIA_KINDS.get(kind)
        if target is None:
            raise ValueError(f"unknown media kind: {kind!r}")
        fields = {k: v for k, v in data.items() if k != "kind"}
        return target(**fields)


@dataclass(kw_only=True)
class GeneratedMedia(MediaItem):
    kind: ClassVar[str] = "generated"

    endpoint_id: str
    request_id: str


@dataclass(kw_only=True)
class UploadedMedia(MediaItem):
    kind: ClassVar[str] = "uploaded"

    url: str

    def __post_init__(self):
        # uploads never go through the queue
        self.status = "completed"
        super().__post_init__()
        if not self.url:
            raise ValueError("uploaded media requires a url")


_MEDIA_KINDS: dict[str, type[MediaItem]] = {
    "generated": GeneratedMedia,
    "uploaded": UploadedMedia,
}


__all__ = [
    "ASPECT_RATIOS",
    "TRACK_TYPES",
    "MEDIA_TYPES",
    "MEDIA_STATUSES",
    "TERMINAL_STATUSES",
    "TRACK_TYPE_ORDER",
    "TRACK_MEDIA_TYPES",
    "MEDIA_MUTABLE_FIELDS",
    "new_id",
    "now_ms",
    "track_type_for",
    "is_compatible",
    "Project",
    "PROJECT_PLACEHOLDER",
    "Track",
    "KeyframeData",
    "Keyframe",
    "MediaItem",
    "GeneratedMedia",
    "UploadedMedia",
]

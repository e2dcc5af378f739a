"""Exception hierarchy shared across the core and services.

Only conditions a caller can act on are modelled here. Interaction bounds
(dragging a keyframe past a neighbour, resizing below the minimum) are clamped
and never raised, and a keyframe pointing at missing media is skipped by the
composition assembler rather than reported.
"""

from __future__ import annotations


class ReelstudioError(Exception):
    """Base class for all application errors."""


class QueueError(ReelstudioError):
    """Transport or protocol failure talking to the generation queue."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SubmissionError(ReelstudioError):
    """The queue rejected a generation request; nothing was persisted."""

    def __init__(self, endpoint_id: str, reason: str):
        super().__init__(f"submission to {endpoint_id} failed: {reason}")
        self.endpoint_id = endpoint_id
        self.reason = reason


class EntityNotFoundError(ReelstudioError):
    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind} not found: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id


class IncompatibleMediaError(ReelstudioError):
    """Media type cannot be placed on the given track type."""

    def __init__(self, media_type: str, track_type: str):
        super().__init__(f"{media_type} media cannot be placed on a {track_type} track")
        self.media_type = media_type
        self.track_type = track_type


class MediaNotReadyError(ReelstudioError):
    """Media is not completed yet and cannot be placed on the timeline."""

    def __init__(self, media_id: str, status: str):
        super().__init__(f"media {media_id} is {status}, expected completed")
        self.media_id = media_id
        self.status = status


__all__ = [
    "ReelstudioError",
    "QueueError",
    "SubmissionError",
    "EntityNotFoundError",
    "IncompatibleMediaError",
    "MediaNotReadyError",
]

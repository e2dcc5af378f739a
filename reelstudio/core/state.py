"""Editor UI state as an immutable value plus pure reducer functions.

One ``EditorState`` exists per open project (owned by ``EditorSession``).
Reducers never mutate; they return a new state via ``dataclasses.replace``,
so listeners can compare old and new values cheaply.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Optional

PLAYER_STATES = ("playing", "paused")
GENERATE_MEDIA_TYPES = ("image", "video", "music", "voiceover")


@dataclass(frozen=True)
class GenerateData:
    prompt: str = ""
    image: Optional[str] = None
    duration: int = 30
    voice: str = ""
    video_url: Optional[str] = None
    audio_url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "prompt": self.prompt,
            "image": self.image,
            "duration": self.duration,
            "voice": self.voice,
            "video_url": self.video_url,
            "audio_url": self.audio_url,
        }


@dataclass(frozen=True)
class EditorState:
    project_id: Optional[str] = None
    project_dialog_open: bool = True
    player_current_timestamp: float = 0.0  # seconds
    player_state: str = "paused"
    generate_dialog_open: bool = False
    generate_media_type: str = "image"
    selected_media_id: Optional[str] = None
    selected_keyframes: frozenset[str] = field(default_factory=frozenset)
    generate_data: GenerateData = field(default_factory=GenerateData)
    export_dialog_open: bool = False

    @classmethod
    def initial(cls, project_id: Optional[str] = None) -> "EditorState":
        # with no project the project picker starts open
        return cls(project_id=project_id, project_dialog_open=not project_id)


def select_keyframe(state: EditorState, keyframe_id: str) -> EditorState:
    """Toggle ``keyframe_id`` in the selection."""
    selected = set(state.selected_keyframes)
    if keyframe_id in selected:
        selected.remove(keyframe_id)
    else:
        selected.add(keyframe_id)
    return replace(state, selected_keyframes=frozenset(selected))


def clear_selection(state: EditorState) -> EditorState:
    return replace(state, selected_keyframes=frozenset())


def open_generate_dialog(state: EditorState, media_type: Optional[str] = None) -> EditorState:
    media_type = media_type or state.generate_media_type
    if media_type not in GENERATE_MEDIA_TYPES:
        raise ValueError(f"unknown media type: {media_type!r}")
    return replace(state, generate_dialog_open=True, generate_media_type=media_type)


def close_generate_dialog(state: EditorState) -> EditorState:
    return replace(state, generate_dialog_open=False)


def set_generate_media_type(state: EditorState, media_type: str) -> EditorState:
    if media_type not in GENERATE_MEDIA_TYPES:
        raise ValueError(f"unknown media type: {media_type!r}")
    return replace(state, generate_media_type=media_type)


def set_player_state(state: EditorState, player_state: str) -> EditorState:
    if player_state not in PLAYER_STATES:
        raise ValueError(f"unknown player state: {player_state!r}")
    return replace(state, player_state=player_state)


def set_player_timestamp(state: EditorState, seconds: float) -> EditorState:
    return replace(state, player_current_timestamp=max(0.0, float(seconds)))


def set_generate_data(state: EditorState, **changes: Any) -> EditorState:
    """Merge ``changes`` into the generation form data."""
    return replace(state, generate_data=replace(state.generate_data, **changes))


def reset_generate_data(state: EditorState) -> EditorState:
    return replace(state, generate_data=GenerateData())


def set_selected_media(state: EditorState, media_id: Optional[str]) -> EditorState:
    return replace(state, selected_media_id=media_id)


def set_export_dialog_open(state: EditorState, open_: bool) -> EditorState:
    return replace(state, export_dialog_open=open_)


def set_project_dialog_open(state: EditorState, open_: bool) -> EditorState:
    return replace(state, project_dialog_open=open_)


def forget_keyframes(state: EditorState, keyframe_ids) -> EditorState:
    """Drop deleted keyframes from the selection."""
    remaining = state.selected_keyframes - frozenset(keyframe_ids)
    if remaining == state.selected_keyframes:
        return state
    return replace(state, selected_keyframes=remaining)


__all__ = [
    "PLAYER_STATES",
    "GENERATE_MEDIA_TYPES",
    "GenerateData",
    "EditorState",
    "select_keyframe",
    "clear_selection",
    "open_generate_dialog",
    "close_generate_dialog",
    "set_generate_media_type",
    "set_player_state",
    "set_player_timestamp",
    "set_generate_data",
    "reset_generate_data",
    "set_selected_media",
    "set_export_dialog_open",
    "set_project_dialog_open",
    "forget_keyframes",
]

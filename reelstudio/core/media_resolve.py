"""Read derived facts (duration, playable url) out of media payloads.

Generation endpoints do not agree on a result shape: image models return an
``images`` list, video models a ``video`` object, audio models one of several
keys. These helpers hide that variety from the timeline and composition code.
"""

from __future__ import annotations

from typing import Any, Optional

from .schema import MediaItem, UploadedMedia

# result keys checked in order when a generation output has no ``images`` list
OUTPUT_URL_KEYS = ("image", "video", "audio", "audio_file", "audio_url")


def _seconds_to_ms(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value <= 0:
        return None
    return int(round(value * 1000))


def resolve_duration(media: MediaItem) -> Optional[int]:
    """Natural length of ``media`` in milliseconds, or None when unknown."""
    duration = _seconds_to_ms((media.metadata or {}).get("duration"))
    if duration is not None:
        return duration
    output = media.output or {}
    duration = _seconds_to_ms(output.get("seconds_total"))
    if duration is not None:
        return duration
    audio = output.get("audio")
    if isinstance(audio, dict):
        duration = _seconds_to_ms(audio.get("duration"))
        if duration is not None:
            return duration
    # the length that was asked for, until the result says otherwise
    if media.media_type != "image":
        return _seconds_to_ms((media.input or {}).get("duration"))
    return None


def resolve_media_url(media: MediaItem) -> Optional[str]:
    if isinstance(media, UploadedMedia):
        return media.url
    output = media.output or {}
    images = output.get("images")
    if isinstance(images, list) and images:
        first = images[0]
        if isinstance(first, dict) and first.get("url"):
            return first["url"]
    for key in OUTPUT_URL_KEYS:
        value = output.get(key)
        if isinstance(value, dict) and value.get("url"):
            return value["url"]
        # some audio endpoints return the url string directly
        if key == "audio_url" and isinstance(value, str) and value:
            return value
    return None


def media_type_from_mime(mime_type: str) -> str:
    major = (mime_type or "").split("/", 1)[0].lower()
    if major == "audio":
        return "music"
    if major in ("image", "video"):
        return major
    raise ValueError(f"unsupported upload type: {mime_type!r}")


__all__ = [
    "OUTPUT_URL_KEYS",
    "resolve_duration",
    "resolve_media_url",
    "media_type_from_mime",
]

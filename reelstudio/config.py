"""Application settings.

Values come from the process environment, optionally seeded from a ``.env``
file in the working directory. ``Settings.from_env()`` is called once by the
GUI entry point; tests construct ``Settings`` directly with overrides.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_QUEUE_URL = "https://queue.fal.run"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class PollSettings:
    """Polling cadence and attempt caps, per media type family.

    Video generation takes minutes so it is polled on a long interval; other
    media types finish within seconds and are polled sub-second.
    """

    video_interval_ms: int = 20_000
    default_interval_ms: int = 500
    # 90 * 20s = 30 minutes of waiting for a video job
    video_max_attempts: int = 90
    # 1200 * 0.5s = 10 minutes for everything else
    default_max_attempts: int = 1200

    def interval_for(self, media_type: str) -> int:
        if media_type == "video":
            return self.video_interval_ms
        return self.default_interval_ms

    def max_attempts_for(self, media_type: str) -> int:
        if media_type == "video":
            return self.video_max_attempts
        return self.default_max_attempts


@dataclass
class Settings:
    fal_key: str | None = None
    queue_url: str = DEFAULT_QUEUE_URL
    request_timeout: float = 30.0
    store_path: Path | None = None
    cache_dir: Path = field(
        default_factory=lambda: Path.home() / ".cache" / "reelstudio"
    )
    metadata_backend: str = "local"  # 'local' (moviepy) | 'remote' (queue endpoint)
    timeline_scale_seconds: float = 30.0
    fps: int = 30
    log_level: str = "INFO"
    screen_index: int | None = None
    poll: PollSettings = field(default_factory=PollSettings)

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        store_path = os.getenv("REELSTUDIO_STORE_PATH")
        cache_dir = os.getenv("REELSTUDIO_CACHE_DIR")
        screen = os.getenv("REELSTUDIO_SCREEN_INDEX")
        settings = cls(
            fal_key=os.getenv("FAL_KEY") or os.getenv("REELSTUDIO_FAL_KEY"),
            queue_url=os.getenv("REELSTUDIO_QUEUE_URL", DEFAULT_QUEUE_URL),
            request_timeout=_env_float("REELSTUDIO_REQUEST_TIMEOUT", 30.0),
            store_path=Path(store_path).expanduser() if store_path else None,
            metadata_backend=os.getenv("REELSTUDIO_METADATA", "local").lower(),
            timeline_scale_seconds=_env_float("REELSTUDIO_TIMELINE_SCALE", 30.0),
            log_level=os.getenv("REELSTUDIO_LOG_LEVEL", "INFO"),
            screen_index=int(screen) if screen and screen.isdigit() else None,
            poll=PollSettings(
                video_interval_ms=_env_int("REELSTUDIO_POLL_VIDEO_MS", 20_000),
                default_interval_ms=_env_int("REELSTUDIO_POLL_DEFAULT_MS", 500),
                video_max_attempts=_env_int("REELSTUDIO_POLL_VIDEO_ATTEMPTS", 90),
                default_max_attempts=_env_int(
                    "REELSTUDIO_POLL_DEFAULT_ATTEMPTS", 1200
                ),
            ),
        )
        if cache_dir:
            settings.cache_dir = Path(cache_dir).expanduser()
        return settings

    def validate(self) -> list[str]:
        """Return a list of configuration problems (empty when usable)."""
        errors = []
        if not self.fal_key:
            errors.append("FAL_KEY environment variable is required for generation")
        if self.metadata_backend not in ("local", "remote"):
            errors.append(
                f"REELSTUDIO_METADATA must be 'local' or 'remote', got {self.metadata_backend!r}"
            )
        if self.timeline_scale_seconds <= 0:
            errors.append("REELSTUDIO_TIMELINE_SCALE must be positive")
        return errors


__all__ = ["Settings", "PollSettings", "DEFAULT_QUEUE_URL"]

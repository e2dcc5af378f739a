"""Time formatting and frame/time conversions.

Timeline positions are stored in integer milliseconds; the renderer works in
frames at a fixed rate. Conversions here always floor, so a keyframe never
claims a frame it only partially covers.
"""

from __future__ import annotations

import math

__all__ = [
    "format_transport",
    "ms_to_frames",
    "frames_to_seconds",
]


def format_transport(current_s: float, total_s: float) -> str:
    """Transport readout: ``00:04.27 / 00:30.00`` (centisecond precision).

    Negative input clamps to zero.
    """

    def _fmt(value: float) -> str:
        value = max(0.0, value)
        m, s = divmod(value, 60)
        return f"{int(m):02d}:{s:05.2f}"

    return f"{_fmt(current_s)} / {_fmt(total_s)}"


def ms_to_frames(ms: float, fps: int) -> int:
    """Number of whole frames covered by ``ms`` milliseconds."""
    return math.floor(ms / (1000 / fps))


def frames_to_seconds(frame: int, fps: int) -> float:
    return frame / fps

"""Technical metadata for completed media: duration, fps, frames, waveform.

Two interchangeable extractors implement ``MetadataExtractor.extract(url,
media_type)``:

* ``LocalMetadataExtractor`` downloads the media into a cache directory and
  inspects it with MoviePy. First and last frames are written as PNG
  thumbnails with Pillow; audio gets a normalised RMS envelope computed with
  numpy.
* ``RemoteMetadataExtractor`` asks the queue's ffmpeg metadata endpoint and
  returns the ``media`` block of its answer.

Both return a plain dict merged into ``MediaItem.metadata``. Keys, when
available: ``duration`` (seconds), ``fps``, ``resolution`` ({width, height}),
``start_frame_url``, ``end_frame_url``, ``waveform`` (list of floats 0..1).
A failure is logged and returns ``{}``; extraction never fails a job.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

import numpy as np
import requests
from PIL import Image

from ..errors import QueueError
from ..media.clip_adapter import ClipAdapter
from .endpoints import METADATA_ENDPOINT_ID
from .queue_client import QueueClient

logger = logging.getLogger(__name__)

AUDIO_MEDIA_TYPES = ("music", "voiceover")


def waveform_envelope(raw: np.ndarray, points: int = 400) -> list[float]:
    """RMS envelope of ``raw`` samples in ``points`` buckets, peak-normalised.

    Multi-channel input is averaged to mono first. A mild ``** 0.85`` curve
    lifts quiet passages so they stay visible on the timeline.
    """
    if raw is None or raw.size == 0:
        return []
    if raw.ndim == 2:
        raw = raw.mean(axis=1)
    n = raw.shape[0]
    points = min(max(1, points), n)
    idx_edges = np.linspace(0, n, points + 1).astype(int)
    rms_vals = []
    for i in range(points):
        s = idx_edges[i]
        e = idx_edges[i + 1]
        if e <= s:
            rms_vals.append(0.0)
            continue
        seg = raw[s:e]
        rms_vals.append(float(np.sqrt(np.mean(seg * seg))))
    rms_arr = np.array(rms_vals, dtype=float)
    peak = float(rms_arr.max()) if rms_arr.size else 1.0
    if peak <= 0:
        peak = 1.0
    env = (rms_arr / peak) ** 0.85
    return env.tolist()


def save_thumbnail(frame, path: Path, target_height: int = 180) -> Path:
    image = Image.fromarray(frame).convert("RGB")
    if image.height > target_height:
        aspect = image.width / image.height
        image = image.resize((max(1, int(target_height * aspect)), target_height))
    path.parent.mkdir(parents=True, exist_ok=True)
    image.save(path, format="PNG")
    return path


class MetadataExtractor:
    def extract(self, url: str, media_type: str) -> dict[str, Any]:
        raise NotImplementedError


class LocalMetadataExtractor(MetadataExtractor):
    def __init__(
        self,
        cache_dir: str | Path,
        session: Optional[requests.Session] = None,
        waveform_points: int = 400,
        thumb_height: int = 180,
        timeout: float = 60.0,
    ):
        self.cache_dir = Path(cache_dir)
        self.session = session or requests.Session()
        self.waveform_points = waveform_points
        self.thumb_height = thumb_height
        self.timeout = timeout

    def _cache_key(self, url: str) -> str:
        return hashlib.sha1(url.encode("utf-8")).hexdigest()[:16]

    def _localize(self, url: str) -> Path:
        """Local path for ``url``, downloading http(s) sources once."""
        parsed = urlparse(url)
        if parsed.scheme in ("", "file"):
            return Path(parsed.path if parsed.scheme == "file" else url)
        suffix = Path(parsed.path).suffix
        target = self.cache_dir / "downloads" / f"{self._cache_key(url)}{suffix}"
        if target.exists():
            return target
        target.parent.mkdir(parents=True, exist_ok=True)
        with self.session.get(url, stream=True, timeout=self.timeout) as resp:
            resp.raise_for_status()
            with open(target, "wb") as fh:
                for chunk in resp.iter_content(chunk_size=1 << 16):
                    fh.write(chunk)
        return target

    def extract(self, url: str, media_type: str) -> dict[str, Any]:
        try:
            path = self._localize(url)
            adapter = ClipAdapter.from_path(
                str(path), audio_only=media_type in AUDIO_MEDIA_TYPES
            )
        except Exception as e:
            logger.warning("could not open %s for metadata: %s", url, e)
            return {}
        try:
            return self.extract_from_clip(adapter, self._cache_key(url))
        except Exception as e:
            logger.warning("metadata extraction failed for %s: %s", url, e)
            return {}
        finally:
            adapter.close()

    def extract_from_clip(self, adapter: ClipAdapter, key: str) -> dict[str, Any]:
        meta: dict[str, Any] = {}
        duration = adapter.duration
        if duration > 0:
            meta["duration"] = duration
        if adapter.fps:
            meta["fps"] = adapter.fps
        size = adapter.size
        if size:
            meta["resolution"] = {"width": size[0], "height": size[1]}
        if not adapter.is_audio_only and duration > 0:
            thumbs = self.cache_dir / "thumbs"
            first = save_thumbnail(
                adapter.get_frame(0.0), thumbs / f"{key}_start.png", self.thumb_height
            )
            # reading exactly at ``duration`` runs past the last decoded frame
            last_t = max(0.0, duration - 1.0 / (adapter.fps or 30.0))
            last = save_thumbnail(
                adapter.get_frame(last_t), thumbs / f"{key}_end.png", self.thumb_height
            )
            meta["start_frame_url"] = first.resolve().as_uri()
            meta["end_frame_url"] = last.resolve().as_uri()
        if adapter.has_audio:
            raw = adapter.audio_array(fps=200)
            if raw is not None and raw.size:
                meta["waveform"] = waveform_envelope(raw, self.waveform_points)
        return meta


class RemoteMetadataExtractor(MetadataExtractor):
    def __init__(self, client: QueueClient, timeout: float = 120.0):
        self.client = client
        self.timeout = timeout

    def extract(self, url: str, media_type: str) -> dict[str, Any]:
        try:
            result = self.client.subscribe(
                METADATA_ENDPOINT_ID,
                {"media_url": url, "extract_frames": True},
                timeout=self.timeout,
            )
        except QueueError as e:
            logger.warning("remote metadata extraction failed for %s: %s", url, e)
            return {}
        media = result.get("media")
        return dict(media) if isinstance(media, dict) else {}


__all__ = [
    "AUDIO_MEDIA_TYPES",
    "waveform_envelope",
    "save_thumbnail",
    "MetadataExtractor",
    "LocalMetadataExtractor",
    "RemoteMetadataExtractor",
]

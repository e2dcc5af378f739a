from pathlib import Path

import numpy as np
from PIL import Image

from reelstudio.errors import QueueError
from reelstudio.media.clip_adapter import ClipAdapter
from reelstudio.services.metadata import (
    LocalMetadataExtractor,
    RemoteMetadataExtractor,
    waveform_envelope,
)
from reelstudio.services.queue_client import QueueClient


class _FakeAudio:
    def __init__(self, samples):
        self.samples = samples

    def to_soundarray(self, fps=200):
        return self.samples


class _FakeVideoClip:
    def __init__(self, duration=2.0, fps=24, size=(64, 36), audio=None):
        self.duration = duration
        self.fps = fps
        self.size = size
        self.audio = audio
        self.closed = False

    def get_frame(self, t):
        frame = np.zeros((self.size[1], self.size[0], 3), dtype=np.uint8)
        frame[:, :, 0] = int(255 * min(1.0, t / self.duration))
        return frame

    def close(self):
        self.closed = True


def test_waveform_envelope_normalised():
    t = np.linspace(0, 1, 2000)
    # quiet first half, loud second half, stereo
    mono = np.where(t < 0.5, 0.1, 0.8) * np.sin(2 * np.pi * 50 * t)
    env = waveform_envelope(np.stack([mono, mono], axis=1), points=10)
    assert len(env) == 10
    assert max(env) == 1.0
    assert all(0.0 <= v <= 1.0 for v in env)
    assert env[0] < env[-1]


def test_waveform_envelope_edge_cases():
    assert waveform_envelope(np.array([]), points=10) == []
    assert waveform_envelope(np.zeros(5), points=10) == [0.0] * 5


def test_extract_from_video_clip(tmp_path):
    audio = _FakeAudio(np.ones((400, 2)) * 0.5)
    adapter = ClipAdapter.from_clip(_FakeVideoClip(audio=audio))
    extractor = LocalMetadataExtractor(tmp_path)

    meta = extractor.extract_from_clip(adapter, "abc")

    assert meta["duration"] == 2.0
    assert meta["fps"] == 24.0
    assert meta["resolution"] == {"width": 64, "height": 36}
    start = Path(meta["start_frame_url"].replace("file://", ""))
    end = Path(meta["end_frame_url"].replace("file://", ""))
    assert start.exists() and end.exists()
    assert Image.open(start).size == (64, 36)
    assert len(meta["waveform"]) == 400


def test_extract_from_audio_only_clip(tmp_path):
    clip = _FakeAudio(np.linspace(-1, 1, 600))
    clip.duration = 3.0
    adapter = ClipAdapter.from_clip(clip, audio_only=True)

    meta = LocalMetadataExtractor(tmp_path, waveform_points=50).extract_from_clip(adapter, "k")

    assert meta["duration"] == 3.0
    assert "fps" not in meta and "start_frame_url" not in meta
    assert len(meta["waveform"]) == 50


def test_local_extract_failure_returns_empty(tmp_path):
    extractor = LocalMetadataExtractor(tmp_path)
    assert extractor.extract(str(tmp_path / "missing.mp4"), "video") == {}


class _MetadataQueue(QueueClient):
    def __init__(self, fail=False):
        self.fail = fail
        self.submitted = []

    def subscribe(self, endpoint_id, input, poll_interval=0.5, timeout=120.0):
        self.submitted.append((endpoint_id, input))
        if self.fail:
            raise QueueError("unavailable")
        return {"media": {"duration": 4.2, "fps": 25, "start_frame_url": "https://x/s.png"}}


def test_remote_extractor_returns_media_block():
    queue = _MetadataQueue()
    meta = RemoteMetadataExtractor(queue).extract("https://cdn/v.mp4", "video")
    assert meta == {"duration": 4.2, "fps": 25, "start_frame_url": "https://x/s.png"}
    assert queue.submitted == [
        ("fal-ai/ffmpeg-api/metadata", {"media_url": "https://cdn/v.mp4", "extract_frames": True})
    ]


def test_remote_extractor_failure_returns_empty():
    assert RemoteMetadataExtractor(_MetadataQueue(fail=True)).extract("u", "music") == {}

import os
import time

import pytest

# Qt widgets in tests render without a display server
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from reelstudio.core.project import create_project  # noqa: E402
from reelstudio.core.schema import GeneratedMedia, UploadedMedia, new_id  # noqa: E402
from reelstudio.core.store import EntityStore  # noqa: E402
from reelstudio.errors import QueueError  # noqa: E402
from reelstudio.services.metadata import MetadataExtractor  # noqa: E402
from reelstudio.services.queue_client import QueueClient  # noqa: E402


class FakeQueueClient(QueueClient):
    """In-memory queue; tests set ``statuses``/``results`` per request id."""

    def __init__(self):
        self.statuses: dict[str, str] = {}
        self.results: dict[str, dict] = {}
        self.fail_submit = False
        self.fail_status: set[str] = set()
        self.fail_result: set[str] = set()
        self.delays: dict[str, float] = {}  # seconds a status call takes
        self.calls: list[tuple] = []
        self._counter = 0

    def submit(self, endpoint_id, input):
        self.calls.append(("submit", endpoint_id, dict(input)))
        if self.fail_submit:
            raise QueueError("422 unprocessable", status_code=422)
        self._counter += 1
        request_id = f"req-{self._counter}"
        self.statuses[request_id] = "pending"
        return request_id

    def status(self, endpoint_id, request_id):
        self.calls.append(("status", endpoint_id, request_id))
        if request_id in self.delays:
            time.sleep(self.delays[request_id])
        if request_id in self.fail_status:
            raise QueueError("connection reset")
        return self.statuses[request_id]

    def result(self, endpoint_id, request_id):
        self.calls.append(("result", endpoint_id, request_id))
        if request_id in self.fail_result:
            raise QueueError("500 internal error", status_code=500)
        return self.results.get(request_id, {})

    def count(self, kind):
        return sum(1 for c in self.calls if c[0] == kind)


class FakeExtractor(MetadataExtractor):
    def __init__(self, metadata=None):
        self.metadata = {"duration": 8.0, "fps": 24} if metadata is None else metadata
        self.calls: list[tuple[str, str]] = []

    def extract(self, url, media_type):
        self.calls.append((url, media_type))
        return dict(self.metadata)


@pytest.fixture
def store():
    return EntityStore()


@pytest.fixture
def project(store):
    return create_project(store, title="Demo", aspect_ratio="16:9")


@pytest.fixture
def fake_queue():
    return FakeQueueClient()


@pytest.fixture
def fake_extractor():
    return FakeExtractor()


@pytest.fixture
def make_media(store, project):
    """Factory persisting completed media with a playable url."""

    def _make(media_type="image", status="completed", project_id=None, **kwargs):
        pid = project_id or project.id
        if kwargs.pop("uploaded", False):
            media = UploadedMedia(
                id=new_id(),
                project_id=pid,
                media_type=media_type,
                url=kwargs.pop("url", f"https://cdn.example/{media_type}.bin"),
                **kwargs,
            )
        else:
            output = kwargs.pop("output", None)
            if output is None and status == "completed":
                key = "images" if media_type == "image" else (
                    "video" if media_type == "video" else "audio_file"
                )
                url = f"https://cdn.example/{new_id()}"
                output = {"images": [{"url": url}]} if key == "images" else {key: {"url": url}}
            media = GeneratedMedia(
                id=new_id(),
                project_id=pid,
                media_type=media_type,
                status=status,
                output=output,
                endpoint_id=kwargs.pop("endpoint_id", "fal-ai/flux/dev"),
                request_id=kwargs.pop("request_id", new_id()),
                **kwargs,
            )
        store.media.create(media)
        return media

    return _make

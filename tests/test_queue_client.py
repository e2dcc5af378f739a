import pytest
import requests

from reelstudio.config import Settings
from reelstudio.errors import QueueError
from reelstudio.services.queue_client import FalQueueClient, QueueClient, app_root


class _Response:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ""
        self.reason = "Error" if status_code >= 400 else "OK"

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _Session:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _client(*responses):
    session = _Session(responses)
    return FalQueueClient("secret", base_url="https://queue.test/", session=session), session


def test_app_root():
    assert app_root("fal-ai/flux/dev") == "fal-ai/flux"
    assert app_root("fal-ai/kling-video/v1.5/pro") == "fal-ai/kling-video"
    assert app_root("fal-ai/stable-audio") == "fal-ai/stable-audio"


def test_submit_posts_input_with_key_header():
    client, session = _client(_Response(payload={"request_id": "abc"}))
    assert client.submit("fal-ai/flux/dev", {"prompt": "fox"}) == "abc"
    method, url, kwargs = session.requests[0]
    assert method == "POST"
    assert url == "https://queue.test/fal-ai/flux/dev"
    assert kwargs["json"] == {"prompt": "fox"}
    assert kwargs["headers"]["Authorization"] == "Key secret"
    assert kwargs["timeout"] == 30.0


def test_status_mapping_uses_app_root():
    client, session = _client(
        _Response(payload={"status": "IN_QUEUE"}),
        _Response(payload={"status": "IN_PROGRESS"}),
        _Response(payload={"status": "COMPLETED"}),
        _Response(payload={"status": "SOMETHING_NEW"}),
    )
    results = [client.status("fal-ai/flux/dev", "r1") for _ in range(4)]
    assert results == ["pending", "running", "completed", "pending"]
    assert session.requests[0][1] == "https://queue.test/fal-ai/flux/requests/r1/status"


def test_result_fetch():
    client, session = _client(_Response(payload={"images": [{"url": "u"}]}))
    assert client.result("fal-ai/flux/dev", "r1") == {"images": [{"url": "u"}]}
    assert session.requests[0][:2] == ("GET", "https://queue.test/fal-ai/flux/requests/r1")


@pytest.mark.parametrize(
    "response",
    [
        _Response(status_code=422, text="invalid prompt"),
        _Response(payload=None),
        _Response(payload={"detail": "no id"}),
        requests.ConnectionError("refused"),
    ],
)
def test_submit_errors_become_queue_error(response):
    client, _ = _client(response)
    with pytest.raises(QueueError):
        client.submit("fal-ai/flux/dev", {"prompt": "x"})


def test_http_error_keeps_status_code():
    client, _ = _client(_Response(status_code=500, text="boom"))
    with pytest.raises(QueueError) as info:
        client.result("fal-ai/flux/dev", "r1")
    assert info.value.status_code == 500
    assert "boom" in str(info.value)


def test_from_settings():
    settings = Settings(fal_key="k", queue_url="https://q.example", request_timeout=5.0)
    client = FalQueueClient.from_settings(settings)
    assert client.base_url == "https://q.example"
    assert client.timeout == 5.0
    assert client._headers()["Authorization"] == "Key k"


class _ScriptedQueue(QueueClient):
    def __init__(self, statuses):
        self.statuses = list(statuses)

    def submit(self, endpoint_id, input):
        return "r"

    def status(self, endpoint_id, request_id):
        return self.statuses.pop(0) if self.statuses else "pending"

    def result(self, endpoint_id, request_id):
        return {"media": {"duration": 3.0}}


def test_subscribe_blocks_until_complete():
    queue = _ScriptedQueue(["pending", "running", "completed"])
    assert queue.subscribe("x/y", {}, poll_interval=0) == {"media": {"duration": 3.0}}


def test_subscribe_times_out():
    queue = _ScriptedQueue([])
    with pytest.raises(QueueError):
        queue.subscribe("x/y", {}, poll_interval=0.01, timeout=0.05)

"""Client for the generation queue service.

The queue has no push channel: a job is submitted, then its status is polled
until it reports completion, then the result is fetched. ``QueueClient``
defines that three-call contract (plus a blocking ``subscribe`` convenience
built on it); ``FalQueueClient`` implements it against the fal.ai queue REST
API using ``requests``.

fal.ai addressing: jobs are submitted to the full endpoint id
(``fal-ai/flux/dev``) but status and result live under the two-segment app
root (``fal-ai/flux``)::

    POST {base}/{endpoint_id}                              -> {"request_id": ...}
    GET  {base}/{app_root}/requests/{request_id}/status    -> {"status": "IN_QUEUE" | ...}
    GET  {base}/{app_root}/requests/{request_id}           -> result payload

Every transport or protocol problem is raised as ``QueueError``.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

import requests

from ..config import DEFAULT_QUEUE_URL, Settings
from ..errors import QueueError

logger = logging.getLogger(__name__)

STATUS_MAP = {
    "IN_QUEUE": "pending",
    "IN_PROGRESS": "running",
    "COMPLETED": "completed",
}


def app_root(endpoint_id: str) -> str:
    """``owner/app`` part of an endpoint id (``fal-ai/flux/dev`` -> ``fal-ai/flux``)."""
    parts = [p for p in endpoint_id.split("/") if p]
    if not parts:
        raise ValueError("empty endpoint id")
    return "/".join(parts[:2])


class QueueClient:
    """Submit/status/result contract of the generation queue."""

    def submit(self, endpoint_id: str, input: dict[str, Any]) -> str:
        raise NotImplementedError

    def status(self, endpoint_id: str, request_id: str) -> str:
        """One of ``pending``, ``running`` or ``completed``."""
        raise NotImplementedError

    def result(self, endpoint_id: str, request_id: str) -> dict[str, Any]:
        raise NotImplementedError

    def subscribe(
        self,
        endpoint_id: str,
        input: dict[str, Any],
        poll_interval: float = 0.5,
        timeout: Optional[float] = 120.0,
    ) -> dict[str, Any]:
        """Submit and block until the job completes; return its result.

        Raises ``QueueError`` when ``timeout`` seconds pass first.
        """
        request_id = self.submit(endpoint_id, input)
        deadline = None if timeout is None else time.monotonic() + timeout
        while self.status(endpoint_id, request_id) != "completed":
            if deadline is not None and time.monotonic() >= deadline:
                raise QueueError(
                    f"{endpoint_id} request {request_id} did not complete in {timeout}s"
                )
            time.sleep(poll_interval)
        return self.result(endpoint_id, request_id)


class FalQueueClient(QueueClient):
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_QUEUE_URL,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "FalQueueClient":
        return cls(
            settings.fal_key,
            base_url=settings.queue_url,
            timeout=settings.request_timeout,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Key {self.api_key}"
        return headers

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            resp = self.session.request(
                method, url, headers=self._headers(), timeout=self.timeout, **kwargs
            )
        except requests.RequestException as exc:
            raise QueueError(f"{method} {url} failed: {exc}") from exc
        if resp.status_code >= 400:
            detail = resp.text[:500] if resp.text else resp.reason
            raise QueueError(
                f"{method} {url} returned {resp.status_code}: {detail}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise QueueError(f"{method} {url} returned invalid JSON") from exc

    def submit(self, endpoint_id: str, input: dict[str, Any]) -> str:
        data = self._request("POST", f"{self.base_url}/{endpoint_id}", json=input)
        request_id = data.get("request_id") if isinstance(data, dict) else None
        if not request_id:
            raise QueueError(f"submit to {endpoint_id} returned no request_id")
        logger.info("submitted %s as request %s", endpoint_id, request_id)
        return request_id

    def status(self, endpoint_id: str, request_id: str) -> str:
        url = f"{self.base_url}/{app_root(endpoint_id)}/requests/{request_id}/status"
        data = self._request("GET", url)
        raw = data.get("status") if isinstance(data, dict) else None
        status = STATUS_MAP.get(raw)
        if status is None:
            logger.debug("unrecognised queue status %r for %s", raw, request_id)
            return "pending"
        return status

    def result(self, endpoint_id: str, request_id: str) -> dict[str, Any]:
        url = f"{self.base_url}/{app_root(endpoint_id)}/requests/{request_id}"
        data = self._request("GET", url)
        if not isinstance(data, dict):
            raise QueueError(f"result for {request_id} is not an object")
        return data


__all__ = ["STATUS_MAP", "app_root", "QueueClient", "FalQueueClient"]

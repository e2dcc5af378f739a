"""Generation job lifecycle: submit to the queue, poll, reconcile into the store.

A generated media item moves through::

    pending -> running -> completed
    pending -> running -> failed
    pending -> completed | failed      (queue skipped the running phase)

``JobLifecycleManager`` splits a poll cycle in two. ``fetch`` does the blocking
part (queue status, result, metadata extraction) and reads nothing but the
snapshot it is given, so it can run on a worker thread. ``apply`` writes the
transition on the caller's thread. It never trusts the snapshot: every write
re-reads the item first and is skipped when the item was deleted or already
reached a terminal state (a user delete or another cycle may have run while
the fetch was in flight). ``poll_once`` runs both back to back.

``PollScheduler`` drives the cycles from Qt timers, one per media id, and runs
each fetch in a ``JobWorker`` on its own ``QThread``. A timer stops as soon as
its item is terminal, when the attempt cap is reached (the item is then marked
failed), or when the owning view calls ``stop_all``. Nothing raised inside a
cycle escapes the scheduler: an unexpected error marks that one item failed
and is logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from functools import partial
from typing import Any, Callable, Optional

from PySide6.QtCore import QCoreApplication, QObject, QThread, QTimer, Signal

from ..config import PollSettings
from ..core.media_resolve import media_type_from_mime, resolve_media_url
from ..core.schema import GeneratedMedia, MediaItem, UploadedMedia, new_id
from ..core.store import EntityStore
from ..errors import QueueError, SubmissionError
from .metadata import MetadataExtractor
from .queue_client import QueueClient

logger = logging.getLogger(__name__)

# workers whose run() has not returned yet; each one removes itself
_ACTIVE_WORKERS: set = set()


@dataclass(frozen=True)
class PollOutcome:
    media_id: str
    status: Optional[str]  # None when the item no longer exists
    terminal: bool
    changed: bool = False


@dataclass(frozen=True)
class QueueReport:
    """What one fetch learned about a job. Nothing has been written yet."""

    status: Optional[str]  # None when the status check failed
    result: Optional[dict] = None
    metadata: dict = field(default_factory=dict)
    error: Optional[str] = None  # result fetch failure


class JobLifecycleManager:
    def __init__(
        self,
        store: EntityStore,
        client: QueueClient,
        extractor: Optional[MetadataExtractor] = None,
    ):
        self.store = store
        self.client = client
        self.extractor = extractor

    # --- creation ---

    def submit(
        self,
        project_id: str,
        endpoint_id: str,
        media_type: str,
        input: dict[str, Any],
    ) -> GeneratedMedia:
        """Submit a generation request and persist its pending media item.

        Raises ``SubmissionError`` when the queue rejects the request; no media
        item is created in that case.
        """
        try:
            request_id = self.client.submit(endpoint_id, input)
        except QueueError as e:
            logger.warning("submission to %s rejected: %s", endpoint_id, e)
            raise SubmissionError(endpoint_id, str(e)) from e
        media = GeneratedMedia(
            id=new_id(),
            project_id=project_id,
            media_type=media_type,
            status="pending",
            input=dict(input),
            endpoint_id=endpoint_id,
            request_id=request_id,
        )
        self.store.media.create(media)
        logger.info(
            "queued %s job %s (%s, request %s)",
            media_type,
            media.id,
            endpoint_id,
            request_id,
        )
        return media

    def register_upload(
        self,
        project_id: str,
        url: str,
        media_type: Optional[str] = None,
        mime_type: Optional[str] = None,
        name: Optional[str] = None,
        enrich: bool = True,
    ) -> UploadedMedia:
        """Persist a user-supplied file as completed media.

        With ``enrich`` its metadata is read right away; pass False when the
        caller extracts it elsewhere (``PollScheduler.enrich``).
        """
        if media_type is None:
            if mime_type is None:
                raise ValueError("media_type or mime_type is required")
            media_type = media_type_from_mime(mime_type)
        media = UploadedMedia(
            id=new_id(),
            project_id=project_id,
            media_type=media_type,
            input={"name": name} if name else {},
            url=url,
        )
        self.store.media.create(media)
        logger.info("registered upload %s (%s)", media.id, media_type)
        if enrich:
            self.apply_metadata(media.id, self.extract_metadata(media))
        return self.store.media.find(media.id) or media

    # --- polling ---

    def poll_once(self, media_id: str) -> PollOutcome:
        media = self.store.media.find(media_id)
        if media is None:
            return PollOutcome(media_id, None, terminal=True)
        if media.is_terminal or not isinstance(media, GeneratedMedia):
            return PollOutcome(media_id, media.status, terminal=True)
        return self.apply(media_id, self.fetch(media))

    def fetch(self, media: GeneratedMedia) -> QueueReport:
        """Ask the queue about ``media``. Blocking; never touches the store."""
        try:
            status = self.client.status(media.endpoint_id, media.request_id)
        except QueueError as e:
            logger.warning("status check for %s failed, will retry: %s", media.id, e)
            return QueueReport(None)
        logger.debug("poll %s: queue reports %s", media.id, status)
        if status != "completed":
            return QueueReport(status)

        try:
            result = self.client.result(media.endpoint_id, media.request_id)
        except QueueError as e:
            logger.warning("result fetch for %s failed: %s", media.id, e)
            return QueueReport(status, error=f"result fetch failed: {e}")
        metadata = {}
        if media.media_type != "image":
            metadata = self.extract_metadata(replace(media, status="completed", output=result))
        return QueueReport(status, result=result, metadata=metadata)

    def apply(self, media_id: str, report: QueueReport) -> PollOutcome:
        """Write the transition ``report`` describes, if the item still wants it."""
        media = self.store.media.find(media_id)
        if media is None:
            logger.debug("dropping poll result for %s: deleted", media_id)
            return PollOutcome(media_id, None, terminal=True)
        if media.is_terminal:
            return PollOutcome(media_id, media.status, terminal=True)

        if report.status == "running":
            if media.status == "running":
                return PollOutcome(media_id, "running", terminal=False)
            updated = self._write(media_id, status="running")
            return self._outcome(media_id, updated, changed=updated is not None)

        if report.status == "completed":
            if report.error is not None:
                updated = self.fail(media_id, report.error)
                return self._outcome(media_id, updated, changed=updated is not None)
            updated = self._write(
                media_id,
                status="completed",
                output=report.result,
                metadata={**media.metadata, **report.metadata},
            )
            if updated is None:
                return self._outcome(media_id, None, changed=False)
            logger.info("media %s completed", media_id)
            return PollOutcome(media_id, "completed", terminal=True, changed=True)

        return PollOutcome(media_id, media.status, terminal=False)

    def fail(self, media_id: str, reason: str) -> Optional[MediaItem]:
        """Mark a non-terminal item failed, recording ``reason`` in its metadata."""
        current = self.store.media.find(media_id)
        if current is None:
            return None
        updated = self._write(
            media_id,
            status="failed",
            metadata={**current.metadata, "error": reason},
        )
        if updated is not None:
            logger.info("media %s failed: %s", media_id, reason)
        return updated

    def pending_media(self, project_id: str) -> list[GeneratedMedia]:
        return [
            m
            for m in self.store.media.by_project(project_id)
            if isinstance(m, GeneratedMedia) and not m.is_terminal
        ]

    # --- metadata ---

    def extract_metadata(self, media: MediaItem) -> dict:
        """Read duration, frames and waveform for ``media``; ``{}`` when unavailable.

        Extraction problems never fail the job, so errors end here.
        """
        if self.extractor is None or media.media_type == "image":
            return {}
        url = resolve_media_url(media)
        if not url:
            logger.debug("no url to read metadata from for %s", media.id)
            return {}
        try:
            return self.extractor.extract(url, media.media_type) or {}
        except Exception:
            logger.exception("metadata extraction for %s raised", media.id)
            return {}

    def apply_metadata(self, media_id: str, metadata: dict) -> Optional[MediaItem]:
        if not metadata:
            return None
        current = self.store.media.find(media_id)
        if current is None:
            return None
        return self.store.media.update(media_id, metadata={**current.metadata, **metadata})

    def _outcome(self, media_id: str, updated: Optional[MediaItem], changed: bool) -> PollOutcome:
        current = updated or self.store.media.find(media_id)
        if current is None:
            return PollOutcome(media_id, None, terminal=True, changed=changed)
        return PollOutcome(media_id, current.status, terminal=current.is_terminal, changed=changed)

    def _write(self, media_id: str, **changes: Any) -> Optional[MediaItem]:
        current = self.store.media.find(media_id)
        if current is None:
            logger.debug("skip write to %s: deleted", media_id)
            return None
        if current.is_terminal:
            logger.debug("skip write to %s: already %s", media_id, current.status)
            return None
        return self.store.media.update(media_id, **changes)


class JobWorker(QObject):
    """Runs one blocking call off the GUI thread and reports back by signal."""

    finished = Signal(str, object)  # media_id, return value
    failed = Signal(str, str)  # media_id, error message

    def __init__(self, media_id: str, task: Callable[[], Any]):
        super().__init__()
        self._media_id = media_id
        self._task = task

    def run(self):  # executed in thread
        try:
            value = self._task()
        except Exception as e:
            logger.exception("background job for %s raised", self._media_id)
            self.failed.emit(self._media_id, str(e))
            return
        finally:
            _ACTIVE_WORKERS.discard(self)
        self.finished.emit(self._media_id, value)


def wait_for_workers(timeout_ms: int = 5000) -> bool:
    """Block until every running ``JobWorker`` thread is done; False on timeout."""
    done = True
    for worker in list(_ACTIVE_WORKERS):
        thread = worker.thread()
        if thread is not None and thread.isRunning():
            done = thread.wait(timeout_ms) and done
    return done


class PollScheduler(QObject):
    """One repeating ``QTimer`` per in-flight media item."""

    mediaUpdated = Signal(str)  # media_id, after any write
    finished = Signal(str, str)  # media_id, terminal status

    def __init__(
        self,
        manager: JobLifecycleManager,
        settings: Optional[PollSettings] = None,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self.manager = manager
        self.settings = settings or PollSettings()
        self._timers: dict[str, QTimer] = {}
        self._attempts: dict[str, int] = {}
        self._limits: dict[str, int] = {}
        self._in_flight: set[str] = set()

    def watch(self, media: MediaItem) -> bool:
        """Start polling ``media``; False when there is nothing to poll."""
        if media.is_terminal or not isinstance(media, GeneratedMedia):
            return False
        if media.id in self._timers:
            return True
        timer = QTimer(self)
        timer.setInterval(self.settings.interval_for(media.media_type))
        timer.timeout.connect(lambda mid=media.id: self._tick(mid))
        self._timers[media.id] = timer
        self._attempts[media.id] = 0
        self._limits[media.id] = self.settings.max_attempts_for(media.media_type)
        timer.start()
        logger.debug(
            "watching %s every %dms", media.id, timer.interval()
        )
        return True

    def watch_pending(self, project_id: str) -> int:
        """Resume polling every unfinished job of a project (e.g. after reopening it)."""
        count = 0
        for media in self.manager.pending_media(project_id):
            if self.watch(media):
                count += 1
        return count

    def unwatch(self, media_id: str) -> None:
        timer = self._timers.pop(media_id, None)
        self._attempts.pop(media_id, None)
        self._limits.pop(media_id, None)
        if timer is not None:
            timer.stop()
            timer.deleteLater()

    def stop_all(self) -> None:
        for media_id in list(self._timers):
            self.unwatch(media_id)

    def enrich(self, media: MediaItem) -> None:
        """Extract metadata for completed ``media`` in the background."""
        self._start(
            media.id,
            partial(self.manager.extract_metadata, media),
            self._onMetadata,
            self._onMetadataFailed,
        )

    def isWatching(self, media_id: str) -> bool:
        return media_id in self._timers

    def isFetching(self, media_id: str) -> bool:
        return media_id in self._in_flight

    def activeIds(self) -> list[str]:
        return list(self._timers)

    def attempts(self, media_id: str) -> int:
        return self._attempts.get(media_id, 0)

    def _start(self, media_id: str, task, on_finished, on_failed) -> None:
        worker = JobWorker(media_id, task)
        # owned by the application so an in-flight fetch outlives this scheduler
        thread = QThread(QCoreApplication.instance())
        worker.moveToThread(thread)
        thread.started.connect(worker.run)
        worker.finished.connect(on_finished)
        worker.failed.connect(on_failed)
        worker.finished.connect(lambda *_: thread.quit())
        worker.failed.connect(lambda *_: thread.quit())
        thread.finished.connect(worker.deleteLater)
        thread.finished.connect(thread.deleteLater)
        _ACTIVE_WORKERS.add(worker)
        thread.start()

    def _tick(self, media_id: str) -> None:
        if media_id not in self._timers or media_id in self._in_flight:
            return
        media = self.manager.store.media.find(media_id)
        if media is None or media.is_terminal or not isinstance(media, GeneratedMedia):
            self._conclude(
                PollOutcome(media_id, media.status if media else None, terminal=True)
            )
            return
        self._attempts[media_id] += 1
        self._in_flight.add(media_id)
        self._start(
            media_id,
            partial(self.manager.fetch, media),
            self._onFetched,
            self._onFetchFailed,
        )

    def _onFetched(self, media_id: str, report: QueueReport) -> None:
        self._in_flight.discard(media_id)
        if media_id not in self._timers:
            logger.debug("ignoring late poll result for %s", media_id)
            return
        try:
            outcome = self.manager.apply(media_id, report)
        except Exception as e:
            logger.exception("applying poll result for %s raised", media_id)
            outcome = self._failed(media_id, f"poll error: {e}")
        self._conclude(outcome)

    def _onFetchFailed(self, media_id: str, message: str) -> None:
        self._in_flight.discard(media_id)
        if media_id not in self._timers:
            return
        self._conclude(self._failed(media_id, f"poll error: {message}"))

    def _onMetadata(self, media_id: str, metadata: dict) -> None:
        if self.manager.apply_metadata(media_id, metadata) is not None:
            self.mediaUpdated.emit(media_id)

    def _onMetadataFailed(self, media_id: str, message: str) -> None:
        logger.warning("metadata for %s unavailable: %s", media_id, message)

    def _failed(self, media_id: str, reason: str) -> PollOutcome:
        failed = self.manager.fail(media_id, reason)
        return PollOutcome(
            media_id,
            failed.status if failed else None,
            terminal=True,
            changed=failed is not None,
        )

    def _conclude(self, outcome: PollOutcome) -> None:
        media_id = outcome.media_id
        if media_id not in self._timers:
            return
        if not outcome.terminal and self._attempts[media_id] >= self._limits[media_id]:
            logger.warning(
                "media %s not finished after %d polls, giving up",
                media_id,
                self._attempts[media_id],
            )
            failed = self.manager.fail(
                media_id, f"no result after {self._attempts[media_id]} polls"
            )
            outcome = PollOutcome(
                media_id,
                failed.status if failed else outcome.status,
                terminal=True,
                changed=outcome.changed or failed is not None,
            )
        if outcome.changed:
            self.mediaUpdated.emit(media_id)
        if outcome.terminal:
            self.unwatch(media_id)
            if outcome.status is not None:
                self.finished.emit(media_id, outcome.status)


__all__ = [
    "PollOutcome",
    "QueueReport",
    "JobLifecycleManager",
    "JobWorker",
    "PollScheduler",
    "wait_for_workers",
]

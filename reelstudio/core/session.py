"""Per-project editor session.

An ``EditorSession`` is created when a project is opened and closed when the
user switches away. It owns everything with a lifetime tied to that project:
the ``EditorState`` value, the poll scheduler for its unfinished jobs, and
the player subscription. ``close()`` tears all of it down so no timer
outlives the view that started it.

The data-flow operations the UI triggers (generate, upload, add to track,
commit a drag, delete) go through here so the right signals fire afterwards:

    stateChanged(EditorState)   editor state replaced
    timelineChanged()           tracks/keyframes changed, player reloaded
    mediaChanged(str)           a media item was created, updated or deleted
    jobFinished(str, str)       a generation reached completed/failed
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional

from PySide6.QtCore import QObject, Signal

from ..config import Settings
from ..errors import EntityNotFoundError
from ..media.playback import CompositionPlayer, PlayerSubscription
from ..services.endpoints import ApiInfo, build_input, resolve_endpoint_id
from ..services.jobs import JobLifecycleManager, PollScheduler
from . import state as st
from . import timeline
from .composition import Composition, load_composition
from .project import get_project
from .schema import GeneratedMedia, Keyframe, Project, UploadedMedia
from .store import EntityStore

logger = logging.getLogger(__name__)


class EditorSession(QObject):
    stateChanged = Signal(object)
    timelineChanged = Signal()
    mediaChanged = Signal(str)
    jobFinished = Signal(str, str)

    def __init__(
        self,
        store: EntityStore,
        jobs: JobLifecycleManager,
        project_id: Optional[str] = None,
        settings: Optional[Settings] = None,
        player: Optional[CompositionPlayer] = None,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self.store = store
        self.jobs = jobs
        self.settings = settings or Settings()
        self._state = st.EditorState.initial(project_id)
        self._closed = False

        self.scheduler = PollScheduler(jobs, self.settings.poll, self)
        self.scheduler.mediaUpdated.connect(self.mediaChanged)
        self.scheduler.finished.connect(self.jobFinished)

        self.player = player or CompositionPlayer(self)
        self.subscription = PlayerSubscription(
            self.player, self._onPlayerTimestamp, self._onPlayerState, parent=self
        )
        self.subscription.attach()

        if project_id:
            resumed = self.scheduler.watch_pending(project_id)
            if resumed:
                logger.info("resumed polling for %d job(s)", resumed)
            self.refresh_player()

    # --- state ---

    @property
    def state(self) -> st.EditorState:
        return self._state

    @property
    def project_id(self) -> Optional[str]:
        return self._state.project_id

    @property
    def project(self) -> Project:
        return get_project(self.store, self._state.project_id)

    @property
    def closed(self) -> bool:
        return self._closed

    def dispatch(self, reducer: Callable[..., st.EditorState], *args: Any, **kwargs: Any) -> st.EditorState:
        """Apply a reducer from ``reelstudio.core.state`` and publish the result."""
        new_state = reducer(self._state, *args, **kwargs)
        if new_state != self._state:
            self._state = new_state
            self.stateChanged.emit(new_state)
        return self._state

    def _require_project(self) -> str:
        if not self._state.project_id:
            raise RuntimeError("no project is open")
        return self._state.project_id

    # --- composition / player ---

    def composition(self) -> Composition:
        return load_composition(self.store, self._state.project_id or "", fps=self.settings.fps)

    def refresh_player(self) -> Composition:
        composition = self.composition()
        self.player.load(composition)
        return composition

    def _timeline_changed(self) -> None:
        self.refresh_player()
        self.timelineChanged.emit()

    def _onPlayerTimestamp(self, seconds: float) -> None:
        self.dispatch(st.set_player_timestamp, seconds)

    def _onPlayerState(self, player_state: str) -> None:
        self.dispatch(st.set_player_state, player_state)

    # --- media ---

    def generate(self, api_info: ApiInfo) -> GeneratedMedia:
        """Submit the current generate form to ``api_info`` and start polling.

        ``SubmissionError`` propagates to the caller; the dialog stays open.
        """
        project_id = self._require_project()
        data = self._state.generate_data
        media = self.jobs.submit(
            project_id,
            resolve_endpoint_id(api_info, data),
            api_info.category,
            build_input(api_info, data, self.project.aspect_ratio),
        )
        self.scheduler.watch(media)
        self.mediaChanged.emit(media.id)
        self.dispatch(st.close_generate_dialog)
        self.dispatch(st.reset_generate_data)
        return media

    def upload(self, url: str, mime_type: str, name: Optional[str] = None) -> UploadedMedia:
        project_id = self._require_project()
        media = self.jobs.register_upload(
            project_id, url, mime_type=mime_type, name=name, enrich=False
        )
        self.mediaChanged.emit(media.id)
        self.scheduler.enrich(media)
        return media

    def delete_media(self, media_id: str) -> list[str]:
        self.scheduler.unwatch(media_id)
        removed = timeline.delete_media(self.store, media_id)
        self.dispatch(st.forget_keyframes, removed)
        if self._state.selected_media_id == media_id:
            self.dispatch(st.set_selected_media, None)
        self.mediaChanged.emit(media_id)
        if removed:
            self._timeline_changed()
        return removed

    # --- timeline ---

    def add_to_track(self, media_id: str) -> Keyframe:
        media = self.store.media.find(media_id)
        if media is None:
            raise EntityNotFoundError("media", media_id)
        keyframe = timeline.add_to_track(self.store, media)
        self._timeline_changed()
        return keyframe

    def begin_drag(self, keyframe_id: str, timeline_width_px: float) -> Optional[timeline.KeyframeDrag]:
        return timeline.KeyframeDrag.start(
            self.store, keyframe_id, timeline_width_px, self.settings.timeline_scale_seconds
        )

    def begin_resize(
        self, keyframe_id: str, timeline_width_px: float, direction: str = "right"
    ) -> Optional[timeline.KeyframeResize]:
        return timeline.KeyframeResize.start(
            self.store,
            keyframe_id,
            timeline_width_px,
            self.settings.timeline_scale_seconds,
            direction=direction,
        )

    def commit_gesture(self, gesture) -> Optional[Keyframe]:
        result = gesture.finish(self.store)
        if gesture.changed:
            self._timeline_changed()
        return result

    def select_keyframe(self, keyframe_id: str) -> st.EditorState:
        return self.dispatch(st.select_keyframe, keyframe_id)

    def delete_keyframes(self, keyframe_ids: Iterable[str]) -> None:
        ids = list(keyframe_ids)
        for keyframe_id in ids:
            timeline.delete_keyframe(self.store, keyframe_id)
        self.dispatch(st.forget_keyframes, ids)
        if ids:
            self._timeline_changed()

    def delete_selected_keyframes(self) -> None:
        self.delete_keyframes(sorted(self._state.selected_keyframes))

    # --- teardown ---

    def close(self) -> None:
        if self._closed:
            return
        self.scheduler.stop_all()
        self.subscription.detach()
        self.player.pause()
        self._closed = True
        logger.debug("closed session for project %s", self._state.project_id)


__all__ = ["EditorSession"]

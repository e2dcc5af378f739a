import pytest
from PySide6.QtCore import QEventLoop, QTimer
from PySide6.QtWidgets import QApplication

from reelstudio.config import PollSettings, Settings
from reelstudio.core import state as st
from reelstudio.core.session import EditorSession
from reelstudio.errors import SubmissionError
from reelstudio.services.endpoints import find_endpoint
from reelstudio.services.jobs import JobLifecycleManager

_app = None


def _ensure_app():
    global _app
    if _app is None:
        _app = QApplication.instance() or QApplication([])


def _spin(ms):
    loop = QEventLoop()
    QTimer.singleShot(ms, loop.quit)
    loop.exec()


@pytest.fixture
def session(store, project, fake_queue, fake_extractor):
    _ensure_app()
    settings = Settings(poll=PollSettings(video_interval_ms=20, default_interval_ms=10))
    jobs = JobLifecycleManager(store, fake_queue, fake_extractor)
    s = EditorSession(store, jobs, project.id, settings)
    yield s
    s.close()


def test_generate_submits_form_and_polls(session, store, fake_queue):
    session.dispatch(st.open_generate_dialog, "image")
    session.dispatch(st.set_generate_data, prompt="a red fox")
    finished = []
    session.jobFinished.connect(lambda mid, status: finished.append((mid, status)))

    media = session.generate(find_endpoint("fal-ai/flux/dev"))

    assert fake_queue.calls[0] == (
        "submit", "fal-ai/flux/dev", {"prompt": "a red fox", "image_size": "landscape_16_9"}
    )
    assert not session.state.generate_dialog_open
    assert session.state.generate_data == st.GenerateData()
    assert session.scheduler.isWatching(media.id)

    fake_queue.statuses[media.request_id] = "completed"
    fake_queue.results[media.request_id] = {"images": [{"url": "https://cdn/fox.png"}]}
    _spin(60)
    assert finished == [(media.id, "completed")]
    assert store.media.find(media.id).status == "completed"


def test_generate_failure_keeps_dialog_open(session, store, fake_queue):
    fake_queue.fail_submit = True
    session.dispatch(st.open_generate_dialog, "image")
    with pytest.raises(SubmissionError):
        session.generate(find_endpoint("fal-ai/flux/dev"))
    assert session.state.generate_dialog_open
    assert store.media.list() == []


def test_open_session_resumes_pending_jobs(store, project, fake_queue, fake_extractor):
    _ensure_app()
    jobs = JobLifecycleManager(store, fake_queue, fake_extractor)
    media = jobs.submit(project.id, "fal-ai/stable-audio", "music", {"prompt": "x"})
    session = EditorSession(store, jobs, project.id)
    try:
        assert session.scheduler.activeIds() == [media.id]
    finally:
        session.close()
    assert session.scheduler.activeIds() == []


def test_add_to_track_reloads_player(session, make_media):
    changes = []
    session.timelineChanged.connect(lambda: changes.append(True))
    keyframe = session.add_to_track(make_media("image").id)
    assert keyframe.timestamp == 0
    assert changes == [True]
    assert session.player.state.total_frames == 300


def test_drag_commit_persists_once(session, store, make_media):
    first = session.add_to_track(make_media("image").id)
    second = session.add_to_track(make_media("image").id)
    changes = []
    session.timelineChanged.connect(lambda: changes.append(True))

    drag = session.begin_drag(second.id, timeline_width_px=300)
    drag.update(100)  # 100px of 300px over 30s -> +10s
    assert store.keyframes.find(second.id).timestamp == second.timestamp
    session.commit_gesture(drag)

    assert store.keyframes.find(second.id).timestamp == second.timestamp + 10_000
    assert store.keyframes.find(first.id).timestamp == 0
    assert changes == [True]


def test_select_and_delete_keyframes(session, store, make_media):
    a = session.add_to_track(make_media("image").id)
    b = session.add_to_track(make_media("image").id)
    session.select_keyframe(a.id)
    session.select_keyframe(b.id)
    session.select_keyframe(b.id)
    assert session.state.selected_keyframes == {a.id}

    session.delete_selected_keyframes()
    assert store.keyframes.find(a.id) is None
    assert store.keyframes.find(b.id) is not None
    assert session.state.selected_keyframes == frozenset()


def test_delete_media_cascades_and_clears_selection(session, store, make_media):
    media = make_media("video")
    keyframe = session.add_to_track(media.id)
    session.select_keyframe(keyframe.id)
    session.dispatch(st.set_selected_media, media.id)

    removed = session.delete_media(media.id)

    assert removed == [keyframe.id]
    assert store.media.find(media.id) is None
    assert session.state.selected_keyframes == frozenset()
    assert session.state.selected_media_id is None
    assert session.composition().is_empty


def test_player_updates_reach_state(session, make_media):
    session.add_to_track(make_media("image").id)
    states = []
    session.stateChanged.connect(states.append)
    session.player.seek(60)
    assert session.state.player_current_timestamp == 2.0
    session.player.play()
    assert session.state.player_state == "playing"
    session.close()
    assert session.state.player_state == "playing"  # detached before pause
    assert session.closed
    assert states


def test_upload_reads_metadata_in_background(session, store, fake_extractor):
    updated = []
    session.mediaChanged.connect(updated.append)

    media = session.upload("file:///tmp/clip.mp4", "video/mp4", name="clip.mp4")

    assert media.metadata == {}
    _spin(60)
    assert fake_extractor.calls == [("file:///tmp/clip.mp4", "video")]
    assert store.media.find(media.id).metadata["duration"] == 8.0
    assert updated == [media.id, media.id]

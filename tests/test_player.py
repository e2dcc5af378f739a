from PySide6.QtCore import QEventLoop, QTimer
from PySide6.QtWidgets import QApplication

from reelstudio.core.composition import load_composition
from reelstudio.core.timeline import add_to_track
from reelstudio.media.playback import CompositionPlayer, PlayerSubscription

_app = None


def _ensure_app():
    global _app
    if _app is None:
        _app = QApplication.instance() or QApplication([])


def _spin(ms):
    loop = QEventLoop()
    QTimer.singleShot(ms, loop.quit)
    loop.exec()


def _loaded_player(store, project, make_media):
    add_to_track(store, make_media("image"))  # 5s clip -> 10s composition
    player = CompositionPlayer()
    player.load(load_composition(store, project.id))
    return player


def test_load_reports_total_frames(store, project, make_media):
    _ensure_app()
    player = CompositionPlayer()
    totals = []
    player.compositionLoaded.connect(totals.append)
    player.load(load_composition(store, project.id))
    add_to_track(store, make_media("image"))
    player.load(load_composition(store, project.id))
    assert totals == [150, 300]
    assert player.state.total_frames == 300


def test_seek_clamps(store, project, make_media):
    _ensure_app()
    player = _loaded_player(store, project, make_media)
    seeks = []
    player.seeked.connect(seeks.append)
    player.seek(-10)
    player.seek(10_000)
    player.seek(45)
    assert seeks == [0, 299, 45]
    assert player.current_time() == 1.5
    player.step(-50)
    assert player.current_frame() == 0
    player.seek_to_end()
    assert player.current_frame() == 299


def test_reload_keeps_playhead(store, project, make_media):
    _ensure_app()
    player = _loaded_player(store, project, make_media)
    player.seek(120)
    player.load(load_composition(store, project.id))
    assert player.current_frame() == 120


def test_play_advances_monotonically(store, project, make_media):
    _ensure_app()
    player = _loaded_player(store, project, make_media)
    frames = []
    states = []
    player.frameUpdate.connect(frames.append)
    player.stateChanged.connect(states.append)
    player.play()
    _spin(200)
    player.pause()
    assert states == ["playing", "paused"]
    assert frames
    assert frames == sorted(frames)
    assert player.active_items() and player.active_items()[0].media_type == "image"


def test_playback_pauses_on_last_frame(store, project, make_media):
    _ensure_app()
    player = _loaded_player(store, project, make_media)
    player.seek(295)
    player.play()
    _spin(400)
    assert not player.is_playing()
    assert player.current_frame() == 299
    # play from the end restarts at the beginning
    player.play()
    assert player.current_frame() == 0
    player.pause()


def test_play_without_composition_is_noop():
    _ensure_app()
    player = CompositionPlayer()
    player.play()
    player.seek(10)
    assert not player.is_playing()
    assert player.current_frame() == 0


def test_subscription_throttles_and_detaches(store, project, make_media):
    _ensure_app()
    player = _loaded_player(store, project, make_media)
    timestamps = []
    states = []
    sub = PlayerSubscription(player, timestamps.append, states.append, throttle_ms=50)
    sub.attach()
    sub.attach()  # second attach is ignored

    for frame in (30, 31, 32, 60):
        player.seek(frame)
    assert timestamps == [1.0]
    _spin(100)
    assert timestamps == [1.0, 2.0]

    sub.detach()
    assert not sub.attached
    player.seek(90)
    player.play()
    player.pause()
    _spin(80)
    assert timestamps == [1.0, 2.0]
    assert states == []

from reelstudio.core.composition import (
    DEFAULT_DURATION_SECONDS,
    FPS,
    assemble_composition,
    load_composition,
    total_duration,
    video_size,
)
from reelstudio.core.project import get_project
from reelstudio.core.schema import Keyframe, KeyframeData, new_id
from reelstudio.core.timeline import add_to_track, create_keyframe, find_or_create_track


def _kf(timestamp, duration):
    return Keyframe(
        id=new_id(),
        track_id="t",
        timestamp=timestamp,
        duration=duration,
        data=KeyframeData(media_id="m", type="image"),
    )


def test_total_duration_floor_and_padding():
    assert total_duration({}) == DEFAULT_DURATION_SECONDS
    # latest end 15002ms + 5s padding -> 20.002s -> 21
    frames = {"t": [_kf(0, 5000), _kf(5001, 5000), _kf(10002, 5000)]}
    assert total_duration(frames) == 21
    assert total_duration({"t": [_kf(0, 3000), _kf(7000, 3000)]}) == 15


def test_total_duration_is_monotonic_as_keyframes_are_added():
    frames = {"a": [], "b": []}
    previous = total_duration(frames)
    for i, (ts, dur) in enumerate([(0, 4000), (12000, 3000), (2000, 1000), (30000, 5000)]):
        frames["a" if i % 2 else "b"].append(_kf(ts, dur))
        current = total_duration(frames)
        assert current >= previous
        previous = current


def test_frames_are_floored_at_30fps(store, project, make_media):
    track = find_or_create_track(store, project.id, "video")
    media = make_media("image")
    create_keyframe(store, track.id, media.id, 1010, 4990)
    comp = load_composition(store, project.id)
    (item,) = comp.tracks[0].items
    assert comp.fps == FPS
    assert item.start_frame == 30  # 1010 / 33.33
    assert item.duration_frames == 149
    assert item.url == media.output["images"][0]["url"]


def test_unfinished_or_missing_media_is_skipped(store, project, make_media):
    ready = make_media("image")
    pending = make_media("image", status="pending")
    failed = make_media("image", status="failed")
    track = find_or_create_track(store, project.id, "video")
    ok = create_keyframe(store, track.id, ready.id, 0, 5000)
    create_keyframe(store, track.id, pending.id, 5001, 5000)
    create_keyframe(store, track.id, failed.id, 10002, 5000)
    orphan = create_keyframe(store, track.id, ready.id, 15003, 5000)
    store.keyframes.update(orphan.id, data=KeyframeData(media_id="gone", type="image"))

    comp = load_composition(store, project.id)

    assert [i.keyframe_id for i in comp.tracks[0].items] == [ok.id]
    # skipped intervals still count toward the timeline length
    assert comp.duration_seconds == 26


def test_completed_media_without_url_is_skipped(store, project, make_media):
    media = make_media("video", output={"video": {}})
    add_to_track(store, media)
    comp = load_composition(store, project.id)
    assert comp.tracks[0].items == ()


def test_track_order_and_size_follow_project(store, make_media):
    from reelstudio.core.project import create_project

    vertical = create_project(store, title="Vertical", aspect_ratio="9:16")
    add_to_track(store, make_media("voiceover", project_id=vertical.id))
    add_to_track(store, make_media("music", project_id=vertical.id))
    add_to_track(store, make_media("image", project_id=vertical.id))

    comp = load_composition(store, vertical.id)

    assert [s.track.type for s in comp.tracks] == ["video", "music", "voiceover"]
    assert (comp.width, comp.height) == (576, 1024)
    props = comp.to_render_props()
    assert props["durationInFrames"] == comp.duration_seconds * FPS
    assert [t["type"] for t in props["tracks"]] == ["video", "music", "voiceover"]
    assert set(props["mediaItems"]) == {m.id for m in store.media.by_project(vertical.id)}


def test_items_at_frame(store, project, make_media):
    add_to_track(store, make_media("image"))  # frames 0-148
    add_to_track(store, make_media("music", metadata={"duration": 10}))  # frames 0-298
    comp = load_composition(store, project.id)
    assert [i.media_type for i in comp.items_at(0)] == ["image", "music"]
    assert [i.media_type for i in comp.items_at(148)] == ["image", "music"]
    assert [i.media_type for i in comp.items_at(149)] == ["music"]
    assert [i.media_type for i in comp.items_at(200)] == ["music"]
    assert comp.items_at(400) == []


def test_assemble_is_pure(store, project, make_media):
    add_to_track(store, make_media("image"))
    tracks = store.tracks.by_project(project.id)
    frames = {t.id: store.keyframes.by_track(t.id) for t in tracks}
    media = {m.id: m for m in store.media.list()}
    proj = get_project(store, project.id)
    first = assemble_composition(proj, tracks, frames, media)
    second = assemble_composition(proj, tracks, frames, media)
    assert first.tracks == second.tracks
    assert first.duration_seconds == second.duration_seconds


def test_missing_project_uses_placeholder_size(store):
    comp = load_composition(store, "nope")
    assert comp.project.is_placeholder
    assert comp.is_empty
    assert (comp.width, comp.height) == (1024, 576)


def test_unknown_aspect_ratio_renders_landscape():
    assert video_size("16:9") == (1024, 576)
    assert video_size(None) == (1024, 576)
    assert video_size("4:3") == (1024, 576)
    assert video_size("1:1") == (1024, 1024)

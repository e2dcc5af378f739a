import json

import pytest

from reelstudio.core.schema import GeneratedMedia, Keyframe, KeyframeData, Track
from reelstudio.core.store import EntityStore


def _media(mid, created_at, project_id="p"):
    return GeneratedMedia(
        id=mid, project_id=project_id, media_type="image", created_at=created_at,
        endpoint_id="fal-ai/flux/dev", request_id=f"r-{mid}",
    )


def test_update_stores_copy():
    store = EntityStore()
    store.media.create(_media("m", 1))
    before = store.media.find("m")
    after = store.media.update("m", status="running")
    assert before.status == "pending"
    assert after.status == "running"
    assert store.media.find("m") is after


def test_media_identity_fields_are_immutable():
    store = EntityStore()
    store.media.create(_media("m", 1))
    with pytest.raises(ValueError):
        store.media.update("m", request_id="other")
    with pytest.raises(ValueError):
        store.media.update("m", id="x")
    with pytest.raises(ValueError):
        store.media.update("m", colour="red")
    assert store.media.update("missing", status="failed") is None


def test_duplicate_create_rejected():
    store = EntityStore()
    store.media.create(_media("m", 1))
    with pytest.raises(ValueError):
        store.media.create(_media("m", 2))


def test_sorted_queries():
    store = EntityStore()
    for mid, created in (("old", 1), ("new", 3), ("mid", 2)):
        store.media.create(_media(mid, created))
    store.media.create(_media("other", 9, project_id="q"))
    assert [m.id for m in store.media.by_project("p")] == ["new", "mid", "old"]

    store.tracks.create(Track(id="t", project_id="p", type="video"))
    for kid, ts in (("b", 5000), ("a", 0), ("c", 2000)):
        store.keyframes.create(
            Keyframe(id=kid, track_id="t", timestamp=ts, duration=1000, data=KeyframeData("m", "image"))
        )
    assert [k.id for k in store.keyframes.by_track("t")] == ["a", "c", "b"]
    assert [t.id for t in store.tracks.by_project("p")] == ["t"]


def test_snapshot_persists_and_reloads(tmp_path):
    path = tmp_path / "store" / "reelstudio.json"
    store = EntityStore(path)
    store.media.create(_media("m", 1))
    store.tracks.create(Track(id="t", project_id="p", type="music", locked=True))
    store.media.update("m", status="completed", output={"images": [{"url": "u"}]})

    on_disk = json.loads(path.read_text())
    assert on_disk["media"][0]["kind"] == "generated"
    assert not path.with_suffix(".json.tmp").exists()

    reloaded = EntityStore(path)
    media = reloaded.media.find("m")
    assert isinstance(media, GeneratedMedia)
    assert media.output == {"images": [{"url": "u"}]}
    assert reloaded.tracks.find("t").locked


def test_save_without_path_raises():
    with pytest.raises(ValueError):
        EntityStore().save()

from pathlib import Path

from reelstudio.config import PollSettings, Settings


def test_poll_settings_per_media_type():
    poll = PollSettings()
    assert poll.interval_for("video") == 20_000
    assert poll.interval_for("image") == 500
    assert poll.max_attempts_for("video") == 90
    assert poll.max_attempts_for("voiceover") == 1200


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("FAL_KEY", "abc")
    monkeypatch.setenv("REELSTUDIO_STORE_PATH", str(tmp_path / "s.json"))
    monkeypatch.setenv("REELSTUDIO_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("REELSTUDIO_METADATA", "Remote")
    monkeypatch.setenv("REELSTUDIO_POLL_DEFAULT_MS", "250")
    monkeypatch.setenv("REELSTUDIO_POLL_VIDEO_MS", "not-a-number")
    monkeypatch.setenv("REELSTUDIO_SCREEN_INDEX", "1")

    settings = Settings.from_env(dotenv=False)

    assert settings.fal_key == "abc"
    assert settings.store_path == tmp_path / "s.json"
    assert settings.cache_dir == Path(tmp_path / "cache")
    assert settings.metadata_backend == "remote"
    assert settings.poll.default_interval_ms == 250
    assert settings.poll.video_interval_ms == 20_000  # falls back on bad input
    assert settings.screen_index == 1
    assert settings.validate() == []


def test_validate_reports_problems(monkeypatch):
    monkeypatch.delenv("FAL_KEY", raising=False)
    monkeypatch.delenv("REELSTUDIO_FAL_KEY", raising=False)
    settings = Settings.from_env(dotenv=False)
    settings.metadata_backend = "cloud"
    settings.timeline_scale_seconds = 0
    problems = settings.validate()
    assert len(problems) == 3
    assert any("FAL_KEY" in p for p in problems)

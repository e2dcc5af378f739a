from reelstudio.utils.timefmt import format_transport, frames_to_seconds, ms_to_frames


def test_format_transport():
    assert format_transport(0, 0) == "00:00.00 / 00:00.00"
    assert format_transport(-3.0, 21.0) == "00:00.00 / 00:21.00"
    assert format_transport(4.267, 30) == "00:04.27 / 00:30.00"
    assert format_transport(75.5, 3600) == "01:15.50 / 60:00.00"


def test_ms_to_frames_floors():
    assert ms_to_frames(0, 30) == 0
    assert ms_to_frames(5000, 30) == 149
    assert ms_to_frames(10000, 30) == 299
    assert ms_to_frames(4990, 30) == 149
    assert ms_to_frames(1010, 30) == 30
    assert ms_to_frames(33, 30) == 0
    assert ms_to_frames(34, 30) == 1


def test_frames_to_seconds():
    assert frames_to_seconds(45, 30) == 1.5
    assert frames_to_seconds(0, 24) == 0.0

from __future__ import annotations

from datetime import datetime

import pytest

from session_replay.compression import create_file_compressed_timeline
from session_replay.mapping import CompressedMapper, LinearMapper
from session_replay.models import AppActivatedEvent, AppDeactivatedEvent
from session_replay.segments import (
    activity_at_index,
    activity_segments,
    app_activity_segments,
    compressed_file_segments,
    current_file_segment,
    file_segments,
    typing_activity_segments,
    typing_speed,
)


def test_activity_segments_split_on_long_pauses(make_keystrokes):
    segments = activity_segments(make_keystrokes([0, 60, 400, 410, 710]))
    assert len(segments) == 3
    assert segments[0].start == pytest.approx(10.0)
    assert segments[0].end == pytest.approx(10 + 60 / 3600)
    assert segments[1].start == pytest.approx(10 + 400 / 3600)
    assert segments[1].end == pytest.approx(10 + 410 / 3600)
    # Exactly five minutes apart starts a new segment.
    assert segments[2].start == segments[2].end == pytest.approx(10 + 710 / 3600)
    assert activity_segments([]) == []


def test_app_segments_are_clipped_to_the_session():
    events = [
        AppActivatedEvent(datetime(2024, 1, 1, 9, 59), epoch_time=0),
        AppDeactivatedEvent(datetime(2024, 1, 1, 10, 2), epoch_time=0),
        AppActivatedEvent(datetime(2024, 1, 1, 10, 3), epoch_time=0, away_duration=60_000),
    ]
    start = datetime(2024, 1, 1, 10, 0, 1)
    end = datetime(2024, 1, 1, 10, 10)
    segments = app_activity_segments(events, start, end)
    assert len(segments) == 2
    assert segments[0].start == pytest.approx(10 + 1 / 3600)
    assert segments[0].end == pytest.approx(10 + 2 / 60)
    assert segments[1].start == pytest.approx(10 + 3 / 60)
    assert segments[1].end == pytest.approx(10 + 10 / 60)


def test_app_segments_without_prior_activation():
    events = [
        AppDeactivatedEvent(datetime(2024, 1, 1, 9, 0), epoch_time=0),
        AppActivatedEvent(datetime(2024, 1, 1, 10, 5), epoch_time=0),
    ]
    segments = app_activity_segments(
        events, datetime(2024, 1, 1, 10, 0), datetime(2024, 1, 1, 10, 30)
    )
    assert len(segments) == 1
    assert segments[0].start == pytest.approx(10 + 5 / 60)
    assert segments[0].end == pytest.approx(10.5)
    assert app_activity_segments([], None, None) == []


def test_file_segments_follow_runs(make_keystrokes):
    keystrokes = (
        make_keystrokes([0, 1], filename="A.java")
        + make_keystrokes([2, 3], filename="B.java")
        + make_keystrokes([4], filename="A.java")
    )
    mapper = LinearMapper(len(keystrokes), 10.0, 4 / 3600)
    segments = file_segments(keystrokes, mapper)
    assert [(s.filename, s.start_index, s.end_index) for s in segments] == [
        ("A.java", 0, 1),
        ("B.java", 2, 3),
        ("A.java", 4, 4),
    ]
    assert segments[1].start == pytest.approx(mapper.index_to_time(2))
    assert segments[1].end == pytest.approx(mapper.index_to_time(3))
    assert current_file_segment(segments, 3).filename == "B.java"
    assert current_file_segment(segments, 9) is None


def test_compressed_file_segments_only_cover_retained_keystrokes(make_keystrokes):
    keystrokes = (
        make_keystrokes([0, 1], filename="A.java")
        + make_keystrokes([2, 3], filename="B.java")
        + make_keystrokes([4], filename="A.java")
    )
    result = create_file_compressed_timeline(keystrokes, "A.java")
    segments = compressed_file_segments(result, CompressedMapper(result, 10.0))
    assert [(s.filename, s.start_index, s.end_index) for s in segments] == [("A.java", 0, 4)]


def test_typing_segments_need_enough_keystrokes(make_keystrokes):
    keystrokes = make_keystrokes([0, 1, 2, 10, 11, 20, 21, 22, 25])
    mapper = LinearMapper(len(keystrokes), 10.0, 25 / 3600)
    segments = typing_activity_segments(keystrokes, mapper)
    assert [(s.start_index, s.end_index, s.keystroke_count) for s in segments] == [
        (0, 2, 3),
        (5, 8, 4),
    ]
    assert activity_at_index(segments, 1, len(keystrokes)) == "active"
    assert activity_at_index(segments, 3, len(keystrokes)) == "inactive"
    assert activity_at_index(segments, -1, len(keystrokes)) == "inactive"
    assert activity_at_index(segments, 9, len(keystrokes)) == "inactive"


def test_typing_speed_over_last_ten_keystrokes(make_keystrokes):
    keystrokes = make_keystrokes([6 * step for step in range(12)])
    assert typing_speed(keystrokes, 9) == 0
    # Keystrokes 2..11 span 54 seconds.
    assert typing_speed(keystrokes, 11) == 11
    assert typing_speed(keystrokes, 12) == 0
    assert typing_speed(make_keystrokes([0] * 12), 11) == 0

"""Tests for log line parsing."""
from __future__ import annotations

from datetime import datetime
from pathlib import Path

from session_replay.models import (
    AndroidRunStartedEvent,
    AppActivatedEvent,
    AppDeactivatedEvent,
    CompileEndedEvent,
    CompileStartedEvent,
    DeleteEvent,
    FileOpenedEvent,
    InsertEvent,
)
from session_replay.parser import (
    parse_line,
    parse_log_text,
    parse_session_logs,
    parse_timestamp,
    read_session_directory,
    unescape_text,
)


def test_insert_line_is_unescaped():
    event = parse_line(r'2024-01-01T10:00:00.000: Text inserted at position 0: "a\nb"')
    assert isinstance(event, InsertEvent)
    assert event.offset == 0
    assert event.inserted_text == "a\nb"
    assert event.length == 3
    assert event.timestamp == datetime(2024, 1, 1, 10, 0, 0)
    assert event.is_initial_content is False


def test_unescape_order():
    assert unescape_text(r'say \"hi\"\tnow\\') == 'say "hi"\tnow\\'
    assert unescape_text(r"a\r\nb") == "a\r\nb"
    # The escaped backslash is decoded last, so "\\n" becomes backslash + newline.
    assert unescape_text(r"\\n") == "\\\n"


def test_insert_keeps_inner_quotes():
    event = parse_line(
        r'2024-01-01T10:00:00.000: Text inserted at position 4: "print(\"hi\")"'
    )
    assert isinstance(event, InsertEvent)
    assert event.inserted_text == 'print("hi")'


def test_initial_content_line():
    event = parse_line(
        r'2024-01-01T10:00:00.000: Initial content at position 0: "class A {}\n"',
        "A.java",
    )
    assert isinstance(event, InsertEvent)
    assert event.is_initial_content is True
    assert event.inserted_text == "class A {}\n"
    assert event.filename == "A.java"


def test_delete_line_carries_explicit_length():
    event = parse_line("2024-01-01T10:00:00.250: Text deleted at position 7 (length: 3)")
    assert isinstance(event, DeleteEvent)
    assert (event.offset, event.length) == (7, 3)
    assert event.timestamp.microsecond == 250_000


def test_environment_lines():
    activated = parse_line(
        "2024-01-01T10:00:00.000: APP_ACTIVATED: 1704103200000 (away for 4500ms)"
    )
    assert isinstance(activated, AppActivatedEvent)
    assert activated.epoch_time == 1704103200000
    assert activated.away_duration == 4500

    plain = parse_line("2024-01-01T10:00:00.000: APP_ACTIVATED: 1704103200000")
    assert isinstance(plain, AppActivatedEvent)
    assert plain.away_duration is None

    deactivated = parse_line("2024-01-01T10:00:00.000: APP_DEACTIVATED: 1704103200000")
    assert isinstance(deactivated, AppDeactivatedEvent)

    opened = parse_line("2024-01-01T10:00:00.000: FILE_OPENED: /tmp/My File.java")
    assert isinstance(opened, FileOpenedEvent)
    assert opened.file_path == "/tmp/My File.java"

    started = parse_line("2024-01-01T10:00:00.000: COMPILE_STARTED: 1704103200000")
    ended = parse_line("2024-01-01T10:00:01.000: COMPILE_ENDED: 1704103201000")
    assert isinstance(started, CompileStartedEvent)
    assert isinstance(ended, CompileEndedEvent)
    assert ended.epoch_time == 1704103201000

    android = parse_line(
        r"2024-01-01T10:00:00.000: ANDROID_RUN_STARTED: C:\proj\App.java: 1704103200000"
    )
    assert isinstance(android, AndroidRunStartedEvent)
    assert android.filename == r"C:\proj\App.java"
    assert android.epoch_time == 1704103200000


def test_unknown_and_unrecoverable_lines_are_dropped():
    assert parse_line("hello world") is None
    assert parse_line("2024-01-01T10:00:00.000: SOMETHING_NEW: 12") is None
    assert parse_line("2024-01-01T10:00:00.000: Text inserted at position 3 (length: 2)") is None


def test_timestamp_precision_variants():
    assert parse_timestamp("2024-01-01T10:00:00") == datetime(2024, 1, 1, 10, 0, 0)
    assert parse_timestamp("2024-01-01T10:00:00.5").microsecond == 500_000
    assert parse_timestamp("2024-01-01T10:00:00.123456789").microsecond == 123_456


def test_parse_log_text_counts_only_known_lines():
    text = "\n".join(
        [
            '2024-01-01T10:00:00.000: Text inserted at position 0: "ab"',
            "noise",
            "",
            "2024-01-01T10:00:01.000: Text deleted at position 0 (length: 1)",
        ]
    )
    events = parse_log_text(text, "Main.java")
    assert [event.type for event in events] == ["insert", "delete"]
    assert all(event.filename == "Main.java" for event in events)


def test_session_logs_sorted_and_stable():
    activity = "2024-01-01T10:00:05.000: APP_DEACTIVATED: 1\n2024-01-01T10:00:01.000: APP_ACTIVATED: 0\n"
    changes = {
        "B.java": '2024-01-01T10:00:01.000: Text inserted at position 0: "b"\n',
        "A.java": '2024-01-01T10:00:03.000: Text inserted at position 0: "a"\n',
    }
    events = parse_session_logs(activity, changes)
    assert [event.type for event in events] == [
        "app_activated",
        "insert",
        "insert",
        "app_deactivated",
    ]
    # Equal timestamps keep encounter order: activity log first, then change logs.
    assert events[1].filename == "B.java"
    timestamps = [event.timestamp for event in events]
    assert timestamps == sorted(timestamps)


def test_read_session_directory(session_dir: Path):
    logs = read_session_directory(session_dir)
    assert logs.warnings == []
    assert logs.file_errors == {}
    keystrokes = [event for event in logs.events if event.is_keystroke]
    assert len(keystrokes) == 5
    assert {event.filename for event in keystrokes} == {"Main.java", "Util.java"}
    assert sum(1 for event in logs.events if not event.is_keystroke) == 6


def test_missing_activity_log_is_a_warning(session_dir: Path):
    (session_dir / "activity.log").unlink()
    logs = read_session_directory(session_dir)
    assert len(logs.warnings) == 1
    assert len(logs.events) == 5


def test_missing_change_dir_means_no_keystrokes(tmp_path: Path):
    (tmp_path / "activity.log").write_text(
        "2024-01-01T10:00:00.000: APP_ACTIVATED: 1\n", encoding="utf-8"
    )
    logs = read_session_directory(tmp_path)
    assert logs.warnings == []
    assert [event.type for event in logs.events] == ["app_activated"]


def test_unreadable_change_log_only_affects_its_file(session_dir: Path):
    (session_dir / "changes" / "Broken.java.log").write_bytes(b"\xff\xfe\x00bad")
    logs = read_session_directory(session_dir)
    assert set(logs.file_errors) == {"Broken.java"}
    assert logs.file_errors["Broken.java"].filename == "Broken.java"
    assert len([event for event in logs.events if event.is_keystroke]) == 5

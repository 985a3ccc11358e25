"""Split a session into activity, application, file and typing segments."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Sequence

from .compression import elapsed_ms
from .mapping import PositionMapper, day_origin, to_timeline_hours
from .models import (
    AppActivatedEvent,
    AppDeactivatedEvent,
    CompressionResult,
    FileSegment,
    KeystrokeEvent,
    LogEvent,
    Segment,
    TypingSegment,
    keystroke_filename,
)

SESSION_GAP_MS = 5 * 60 * 1000
TYPING_GAP_MS = 3000
MIN_TYPING_KEYSTROKES = 3
TYPING_SPEED_WINDOW = 10


def activity_segments(
    keystrokes: Sequence[KeystrokeEvent], session_gap_ms: float = SESSION_GAP_MS
) -> list[Segment]:
    """Group keystrokes into runs whose neighbours are closer than the gap."""
    if not keystrokes:
        return []
    origin = day_origin(keystrokes[0].timestamp)
    segments: list[Segment] = []
    current: Optional[Segment] = None
    previous: Optional[datetime] = None
    for event in keystrokes:
        hours = to_timeline_hours(event.timestamp, origin)
        if current is None:
            current = Segment(start=hours, end=hours)
        elif previous is not None and elapsed_ms(previous, event.timestamp) < session_gap_ms:
            current.end = hours
        else:
            segments.append(current)
            current = Segment(start=hours, end=hours)
        previous = event.timestamp
    if current is not None:
        segments.append(current)
    return segments


def app_activity_segments(
    events: Sequence[LogEvent],
    session_start_time: Optional[datetime],
    session_end_time: Optional[datetime],
) -> list[Segment]:
    """Spans within the keystroke session during which the editor had focus."""
    if not events or session_start_time is None or session_end_time is None:
        return []
    origin = day_origin(session_start_time)
    start_hours = to_timeline_hours(session_start_time, origin)
    end_hours = to_timeline_hours(session_end_time, origin)
    focus_events = sorted(
        (
            event
            for event in events
            if isinstance(event, (AppActivatedEvent, AppDeactivatedEvent))
        ),
        key=lambda event: event.timestamp,
    )

    active_since: Optional[float] = None
    for event in reversed(focus_events):
        if event.timestamp < session_start_time:
            if isinstance(event, AppActivatedEvent):
                active_since = start_hours
            break

    segments: list[Segment] = []
    for event in focus_events:
        hours = to_timeline_hours(event.timestamp, origin)
        if hours < start_hours or hours > end_hours:
            continue
        if isinstance(event, AppDeactivatedEvent):
            if active_since is not None:
                segments.append(
                    Segment(start=max(active_since, start_hours), end=min(hours, end_hours))
                )
                active_since = None
        else:
            active_since = max(hours, start_hours)
    if active_since is not None:
        segments.append(Segment(start=active_since, end=end_hours))
    return segments


def _file_runs(
    indexed: Iterable[tuple[int, KeystrokeEvent]], mapper: PositionMapper
) -> list[FileSegment]:
    segments: list[FileSegment] = []
    current_file: Optional[str] = None
    run_start = run_end = -1
    for index, event in indexed:
        filename = keystroke_filename(event)
        if filename != current_file:
            if current_file is not None:
                segments.append(_file_segment(current_file, run_start, run_end, mapper))
            current_file = filename
            run_start = index
        run_end = index
    if current_file is not None:
        segments.append(_file_segment(current_file, run_start, run_end, mapper))
    return segments


def _file_segment(
    filename: str, start_index: int, end_index: int, mapper: PositionMapper
) -> FileSegment:
    return FileSegment(
        filename=filename,
        start=mapper.index_to_time(start_index),
        end=mapper.index_to_time(end_index),
        start_index=start_index,
        end_index=end_index,
    )


def file_segments(
    keystrokes: Sequence[KeystrokeEvent], mapper: PositionMapper
) -> list[FileSegment]:
    """Contiguous same-file keystroke runs placed on ``mapper``'s timeline."""
    return _file_runs(enumerate(keystrokes), mapper)


def compressed_file_segments(
    compression: CompressionResult, mapper: PositionMapper
) -> list[FileSegment]:
    """File runs over the keystrokes retained by a compression result."""
    return _file_runs(
        (
            (entry.original_index, entry.keystroke)
            for entry in compression.compressed_keystroke_logs
        ),
        mapper,
    )


def current_file_segment(
    segments: Sequence[FileSegment], keystroke_index: int
) -> Optional[FileSegment]:
    for segment in segments:
        if segment.start_index <= keystroke_index <= segment.end_index:
            return segment
    return None


def typing_activity_segments(
    keystrokes: Sequence[KeystrokeEvent],
    mapper: PositionMapper,
    typing_gap_ms: float = TYPING_GAP_MS,
    min_keystrokes: int = MIN_TYPING_KEYSTROKES,
) -> list[TypingSegment]:
    """Bursts of typing: keystrokes no more than ``typing_gap_ms`` apart."""
    segments: list[TypingSegment] = []
    run_start = 0
    for index in range(1, len(keystrokes) + 1):
        ended = index == len(keystrokes) or (
            elapsed_ms(keystrokes[index - 1].timestamp, keystrokes[index].timestamp)
            > typing_gap_ms
        )
        if not ended:
            continue
        count = index - run_start
        if count >= min_keystrokes:
            segments.append(
                TypingSegment(
                    start=mapper.index_to_time(run_start),
                    end=mapper.index_to_time(index - 1),
                    start_index=run_start,
                    end_index=index - 1,
                    keystroke_count=count,
                )
            )
        run_start = index
    return segments


def activity_at_index(
    segments: Sequence[TypingSegment], keystroke_index: int, keystroke_count: int
) -> str:
    if keystroke_index < 0 or keystroke_index >= keystroke_count:
        return "inactive"
    for segment in segments:
        if segment.start_index <= keystroke_index <= segment.end_index:
            return "active"
    return "inactive"


def typing_speed(
    keystrokes: Sequence[KeystrokeEvent],
    keystroke_index: int,
    window: int = TYPING_SPEED_WINDOW,
) -> int:
    """Keystrokes per minute over the ``window`` keystrokes ending at the index."""
    if keystroke_index < window or keystroke_index >= len(keystrokes):
        return 0
    start = keystrokes[keystroke_index - window + 1].timestamp
    end = keystrokes[keystroke_index].timestamp
    minutes = elapsed_ms(start, end) / (1000 * 60)
    if minutes == 0:
        return 0
    return int(round(window / minutes))

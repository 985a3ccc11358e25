"""Detect inactivity gaps and build a compressed replay timeline.

Gaps longer than a threshold are collapsed so that replay feels continuous,
while the relative pacing inside each run of activity is preserved. A small
buffer is kept on both sides of every removed gap so the replay does not jump
straight into or out of a burst of typing.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional, Sequence

from .models import (
    ActiveSegment,
    CompressedKeystroke,
    CompressionResult,
    Gap,
    KeystrokeEvent,
    keystroke_filename,
)

logger = logging.getLogger(__name__)

DEFAULT_GAP_THRESHOLD_MS = 3 * 60 * 1000
DEFAULT_BUFFER_MS = 3 * 1000

IndexedKeystroke = tuple[int, KeystrokeEvent]


def elapsed_ms(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() * 1000


def _make_gap(
    start: IndexedKeystroke,
    end: IndexedKeystroke,
    buffer_ms: float,
    reason: str = "idle",
) -> Gap:
    duration = elapsed_ms(start[1].timestamp, end[1].timestamp)
    return Gap(
        start_keystroke_index=start[0],
        end_keystroke_index=end[0],
        start_time=start[1].timestamp,
        end_time=end[1].timestamp,
        duration=duration,
        removed_duration=max(0.0, duration - 2 * buffer_ms),
        buffer_ms=buffer_ms,
        reason=reason,
    )


def _find_gaps(
    indexed: Sequence[IndexedKeystroke],
    gap_threshold_ms: float,
    buffer_ms: float,
    *,
    split_on_foreign: bool = False,
) -> list[tuple[int, Gap]]:
    """Return ``(position, gap)`` pairs; the gap sits after ``indexed[position]``."""
    found: list[tuple[int, Gap]] = []
    for position in range(len(indexed) - 1):
        current, following = indexed[position], indexed[position + 1]
        if split_on_foreign and following[0] - current[0] > 1:
            found.append((position, _make_gap(current, following, buffer_ms, "file_switch")))
        elif elapsed_ms(current[1].timestamp, following[1].timestamp) > gap_threshold_ms:
            found.append((position, _make_gap(current, following, buffer_ms)))
    return found


def detect_activity_gaps(
    keystrokes: Sequence[KeystrokeEvent],
    gap_threshold_ms: float = DEFAULT_GAP_THRESHOLD_MS,
    buffer_ms: float = DEFAULT_BUFFER_MS,
) -> list[Gap]:
    """Find every pair of adjacent keystrokes further apart than the threshold."""
    if len(keystrokes) < 2:
        return []
    indexed = list(enumerate(keystrokes))
    return [gap for _, gap in _find_gaps(indexed, gap_threshold_ms, buffer_ms)]


def _empty_result() -> CompressionResult:
    return CompressionResult(
        compressed_keystroke_logs=[],
        gaps=[],
        active_segments=[],
        total_original_duration=0.0,
        total_compressed_duration=0.0,
        compression_ratio=1.0,
    )


def _compress(
    indexed: Sequence[IndexedKeystroke], found: Sequence[tuple[int, Gap]]
) -> CompressionResult:
    if not indexed:
        return _empty_result()

    first_time = indexed[0][1].timestamp
    last_time = indexed[-1][1].timestamp
    total_original = elapsed_ms(first_time, last_time)

    if not found:
        return CompressionResult(
            compressed_keystroke_logs=[
                CompressedKeystroke(event, event.timestamp, original_index)
                for original_index, event in indexed
            ],
            gaps=[],
            active_segments=[
                ActiveSegment(
                    original_start_time=first_time,
                    original_end_time=last_time,
                    compressed_start_time=first_time,
                    compressed_end_time=last_time,
                    start_keystroke_index=indexed[0][0],
                    end_keystroke_index=indexed[-1][0],
                    duration=total_original,
                )
            ],
            total_original_duration=total_original,
            total_compressed_duration=total_original,
            compression_ratio=1.0,
        )

    boundaries = [position for position, _ in found]
    # A buffer never claims more than half of the gap it borders.
    buffers = [min(gap.buffer_ms, gap.duration / 2) for _, gap in found]
    starts = [0] + [position + 1 for position in boundaries]
    ends = boundaries + [len(indexed) - 1]

    compressed: list[CompressedKeystroke] = []
    active_segments: list[ActiveSegment] = []
    offset = 0.0
    for number, (start, end) in enumerate(zip(starts, ends)):
        lead = buffers[number - 1] if number > 0 else 0.0
        trail = buffers[number] if number < len(boundaries) else 0.0
        segment_start = indexed[start][1].timestamp
        segment_end = indexed[end][1].timestamp
        width = lead + elapsed_ms(segment_start, segment_end) + trail
        window_start = first_time + timedelta(milliseconds=offset)

        active_segments.append(
            ActiveSegment(
                original_start_time=segment_start - timedelta(milliseconds=lead),
                original_end_time=segment_end + timedelta(milliseconds=trail),
                compressed_start_time=window_start,
                compressed_end_time=window_start + timedelta(milliseconds=width),
                start_keystroke_index=indexed[start][0],
                end_keystroke_index=indexed[end][0],
                duration=width,
            )
        )
        for original_index, event in indexed[start : end + 1]:
            relative = elapsed_ms(segment_start, event.timestamp)
            compressed.append(
                CompressedKeystroke(
                    keystroke=event,
                    compressed_timestamp=first_time
                    + timedelta(milliseconds=offset + lead + relative),
                    original_index=original_index,
                )
            )
        offset += width

    ratio = offset / total_original if total_original > 0 else 1.0
    logger.debug(
        "Compressed %.0f ms to %.0f ms across %d gap(s)",
        total_original,
        offset,
        len(found),
    )
    return CompressionResult(
        compressed_keystroke_logs=compressed,
        gaps=[gap for _, gap in found],
        active_segments=active_segments,
        total_original_duration=total_original,
        total_compressed_duration=offset,
        compression_ratio=ratio,
    )


def create_compressed_timeline(
    keystrokes: Sequence[KeystrokeEvent],
    gap_threshold_ms: float = DEFAULT_GAP_THRESHOLD_MS,
    buffer_ms: float = DEFAULT_BUFFER_MS,
) -> CompressionResult:
    """Collapse inactivity gaps out of the session's keystroke timeline."""
    indexed = list(enumerate(keystrokes))
    return _compress(indexed, _find_gaps(indexed, gap_threshold_ms, buffer_ms))


def create_file_compressed_timeline(
    keystrokes: Sequence[KeystrokeEvent],
    filename: str,
    gap_threshold_ms: float = DEFAULT_GAP_THRESHOLD_MS,
    buffer_ms: float = DEFAULT_BUFFER_MS,
) -> CompressionResult:
    """Compress the timeline of a single file.

    Time spent editing other files is always removed; idle time inside the
    file is removed only past ``gap_threshold_ms``. Indices in the result
    refer to positions in the full ``keystrokes`` sequence.
    """
    indexed = [
        (index, event)
        for index, event in enumerate(keystrokes)
        if keystroke_filename(event) == filename
    ]
    found = _find_gaps(indexed, gap_threshold_ms, buffer_ms, split_on_foreign=True)
    return _compress(indexed, found)


def compress_for(
    keystrokes: Sequence[KeystrokeEvent],
    gap_threshold_ms: float,
    buffer_ms: float,
    filename: Optional[str] = None,
) -> CompressionResult:
    if filename:
        return create_file_compressed_timeline(keystrokes, filename, gap_threshold_ms, buffer_ms)
    return create_compressed_timeline(keystrokes, gap_threshold_ms, buffer_ms)


def format_gap_duration(duration_ms: float) -> str:
    """Render a gap length as ``"1h 5m"``, ``"2h"`` or ``"7m"``."""
    minutes = int(duration_ms // (1000 * 60))
    hours, remaining = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {remaining}m" if remaining else f"{hours}h"
    return f"{minutes}m"

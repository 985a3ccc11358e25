"""Translate between keystroke indices and timeline positions.

Timeline positions are fractional hours counted from local midnight of the
day the session's first keystroke falls on, so a session that runs past
midnight keeps increasing (``23.5``, ``24.25``, ...).

Two coordinate spaces exist. The linear space spreads keystrokes evenly by
index across the real session span. The compressed space places each
keystroke at its compressed timestamp, so idle gaps shrink to their buffers.
"""

from __future__ import annotations

import math
from bisect import bisect_left, bisect_right
from datetime import datetime, timedelta
from typing import Optional, Protocol, Sequence

from .compression import elapsed_ms
from .models import CompressionResult, KeystrokeEvent

MS_PER_HOUR = 60 * 60 * 1000


def day_origin(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def to_timeline_hours(moment: datetime, origin: datetime) -> float:
    return elapsed_ms(origin, moment) / MS_PER_HOUR


def session_bounds(keystrokes: Sequence[KeystrokeEvent]) -> tuple[float, float]:
    """Return ``(start, duration)`` of the keystroke span in timeline hours."""
    if not keystrokes:
        return 0.0, 0.0
    first = keystrokes[0].timestamp
    start = to_timeline_hours(first, day_origin(first))
    return start, elapsed_ms(first, keystrokes[-1].timestamp) / MS_PER_HOUR


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class PositionMapper(Protocol):
    start: float

    @property
    def duration(self) -> float: ...

    @property
    def end(self) -> float: ...

    @property
    def real_duration_ms(self) -> float: ...

    @property
    def keystroke_count(self) -> int: ...

    @property
    def first_index(self) -> int: ...

    @property
    def last_index(self) -> int: ...

    def index_to_time(self, index: int) -> float: ...

    def time_to_index(self, position: float) -> int: ...

    def step(self, index: int, count: int) -> int: ...


class LinearMapper:
    """Index-proportional placement across the uncompressed session."""

    def __init__(self, keystroke_count: int, start: float, duration: float) -> None:
        self._count = keystroke_count
        self.start = start
        self._duration = max(0.0, duration)

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def end(self) -> float:
        return self.start + self._duration

    @property
    def real_duration_ms(self) -> float:
        return self._duration * MS_PER_HOUR

    @property
    def keystroke_count(self) -> int:
        return self._count

    @property
    def first_index(self) -> int:
        return 0

    @property
    def last_index(self) -> int:
        return max(0, self._count - 1)

    def index_to_time(self, index: int) -> float:
        if self._count <= 1:
            return self.start
        return self.start + (index / (self._count - 1)) * self._duration

    def time_to_index(self, position: float) -> int:
        if self._duration == 0 or self._count == 0:
            return 0
        progress = _clamp((position - self.start) / self._duration, 0.0, 1.0)
        return min(self._count - 1, _round_half_up(progress * (self._count - 1)))

    def step(self, index: int, count: int) -> int:
        return max(0, min(self.last_index, index + count))


class CompressedMapper:
    """Placement by compressed timestamp.

    ``index_to_time`` is a dictionary lookup and ``time_to_index`` a binary
    search over the compressed offsets, so both stay cheap on long sessions.
    """

    def __init__(self, result: CompressionResult, start: float) -> None:
        self.result = result
        self.start = start
        logs = result.compressed_keystroke_logs
        self._offsets = [
            elapsed_ms(logs[0].compressed_timestamp, entry.compressed_timestamp)
            for entry in logs
        ]
        self._original_indices = [entry.original_index for entry in logs]
        self._offset_by_index = dict(zip(self._original_indices, self._offsets))
        self._segment_starts = [
            segment.start_keystroke_index for segment in result.active_segments
        ]

    @property
    def duration(self) -> float:
        return self.result.total_compressed_duration / MS_PER_HOUR

    @property
    def end(self) -> float:
        return self.start + self.duration

    @property
    def real_duration_ms(self) -> float:
        return self.result.total_compressed_duration

    @property
    def keystroke_count(self) -> int:
        return len(self._offsets)

    @property
    def first_index(self) -> int:
        return self._original_indices[0] if self._original_indices else 0

    @property
    def last_index(self) -> int:
        return self._original_indices[-1] if self._original_indices else 0

    def _hours_from_offset(self, offset_ms: float) -> float:
        total = self.result.total_compressed_duration
        if total == 0:
            return self.start
        return self.start + (offset_ms / total) * self.duration

    def index_to_time(self, index: int) -> float:
        offset = self._offset_by_index.get(index)
        if offset is not None:
            return self._hours_from_offset(offset)
        segments = self.result.active_segments
        if not segments:
            return self.start
        # A keystroke that was not kept sits between two segments, where the
        # next one begins and the previous one ends.
        following = bisect_right(self._segment_starts, index)
        if following >= len(segments):
            return self.end
        first = segments[0].compressed_start_time
        return self._hours_from_offset(
            elapsed_ms(first, segments[following].compressed_start_time)
        )

    def step(self, index: int, count: int) -> int:
        """Move ``count`` kept keystrokes away from ``index``, clamped to the ends."""
        if not self._original_indices:
            return 0
        position = bisect_right(self._original_indices, index) - 1
        kept = position >= 0 and self._original_indices[position] == index
        if not kept and count < 0:
            # The kept keystroke before ``index`` is already one step back.
            count += 1
        target = max(0, min(len(self._original_indices) - 1, position + count))
        return self._original_indices[target]

    def time_to_index(self, position: float) -> int:
        if not self._offsets:
            return 0
        total = self.result.total_compressed_duration
        if total == 0:
            return self._original_indices[0]
        progress = _clamp((position - self.start) / self.duration, 0.0, 1.0)
        if progress == 0:
            return self._original_indices[0]
        if progress == 1:
            return self._original_indices[-1]

        target = progress * total
        right = bisect_left(self._offsets, target)
        if right >= len(self._offsets):
            return self._original_indices[-1]
        if right == 0:
            return self._original_indices[0]
        left = right - 1
        # Ties go to the earlier keystroke.
        if target - self._offsets[left] <= self._offsets[right] - target:
            return self._original_indices[left]
        return self._original_indices[right]


def build_mapper(
    keystroke_count: int,
    start: float,
    duration: float,
    compression: Optional[CompressionResult] = None,
) -> PositionMapper:
    if compression is not None:
        return CompressedMapper(compression, start)
    return LinearMapper(keystroke_count, start, duration)


def original_to_compressed_position(
    position: float,
    compression: Optional[CompressionResult],
    session_start: float,
    session_duration: float,
) -> float:
    """Move a position on the uncompressed timeline onto the compressed one."""
    if compression is None or not compression.active_segments:
        return position
    segments = compression.active_segments
    original_first = segments[0].original_start_time
    compressed_first = segments[0].compressed_start_time
    total_compressed = compression.total_compressed_duration
    compressed_hours = total_compressed / MS_PER_HOUR

    progress = (position - session_start) / session_duration if session_duration else 0.0
    target = original_first + timedelta(
        milliseconds=progress * compression.total_original_duration
    )

    for segment in segments:
        if segment.original_start_time <= target <= segment.original_end_time:
            span = elapsed_ms(segment.original_start_time, segment.original_end_time)
            within = elapsed_ms(segment.original_start_time, target) / span if span else 0.0
            compressed_target = segment.compressed_start_time + timedelta(
                milliseconds=within
                * elapsed_ms(segment.compressed_start_time, segment.compressed_end_time)
            )
            if total_compressed == 0:
                return session_start
            return session_start + (
                elapsed_ms(compressed_first, compressed_target) / total_compressed
            ) * compressed_hours

    if target < original_first:
        return session_start
    if total_compressed == 0:
        return session_start
    last = segments[-1]
    return session_start + (
        elapsed_ms(compressed_first, last.compressed_end_time) / total_compressed
    ) * compressed_hours


def compressed_to_original_position(
    position: float,
    compression: Optional[CompressionResult],
    session_start: float,
    session_duration: float,
) -> float:
    """Move a position on the compressed timeline back onto the uncompressed one."""
    if compression is None or not compression.active_segments:
        return position
    segments = compression.active_segments
    total_compressed = compression.total_compressed_duration
    compressed_hours = total_compressed / MS_PER_HOUR
    if total_compressed == 0:
        return session_start

    progress = (position - session_start) / compressed_hours
    compressed_first = segments[0].compressed_start_time
    target = compressed_first + timedelta(milliseconds=progress * total_compressed)

    for segment in segments:
        if segment.compressed_start_time <= target <= segment.compressed_end_time:
            span = elapsed_ms(segment.compressed_start_time, segment.compressed_end_time)
            within = elapsed_ms(segment.compressed_start_time, target) / span if span else 0.0
            original_target = segment.original_start_time + timedelta(
                milliseconds=within
                * elapsed_ms(segment.original_start_time, segment.original_end_time)
            )
            total_original = compression.total_original_duration
            if total_original == 0:
                return session_start
            return session_start + (
                elapsed_ms(segments[0].original_start_time, original_target) / total_original
            ) * session_duration

    if target < compressed_first:
        return session_start
    return session_start + session_duration

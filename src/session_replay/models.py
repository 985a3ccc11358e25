"""Domain models for recorded coding sessions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional, Union

UNTITLED_DOCUMENT = "untitled_document"


@dataclass(slots=True)
class LogEvent:
    """A single timestamped line from an activity or text-change log."""

    type: ClassVar[str] = "event"

    timestamp: datetime

    @property
    def is_keystroke(self) -> bool:
        return False


@dataclass(slots=True)
class InsertEvent(LogEvent):
    type: ClassVar[str] = "insert"

    offset: int
    inserted_text: str
    filename: Optional[str] = None
    is_initial_content: bool = False

    @property
    def length(self) -> int:
        return len(self.inserted_text)

    @property
    def is_keystroke(self) -> bool:
        return True


@dataclass(slots=True)
class DeleteEvent(LogEvent):
    type: ClassVar[str] = "delete"

    offset: int
    length: int
    filename: Optional[str] = None

    @property
    def is_keystroke(self) -> bool:
        return True


@dataclass(slots=True)
class AppActivatedEvent(LogEvent):
    type: ClassVar[str] = "app_activated"

    epoch_time: int
    away_duration: Optional[int] = None
    filename: Optional[str] = None


@dataclass(slots=True)
class AppDeactivatedEvent(LogEvent):
    type: ClassVar[str] = "app_deactivated"

    epoch_time: int
    filename: Optional[str] = None


@dataclass(slots=True)
class FileOpenedEvent(LogEvent):
    type: ClassVar[str] = "file_opened"

    file_path: str
    filename: Optional[str] = None


@dataclass(slots=True)
class CompileStartedEvent(LogEvent):
    type: ClassVar[str] = "compile_started"

    epoch_time: int
    filename: Optional[str] = None


@dataclass(slots=True)
class CompileEndedEvent(LogEvent):
    type: ClassVar[str] = "compile_ended"

    epoch_time: int
    filename: Optional[str] = None


@dataclass(slots=True)
class AndroidRunStartedEvent(LogEvent):
    type: ClassVar[str] = "android_run_started"

    filename: str
    epoch_time: int


KeystrokeEvent = Union[InsertEvent, DeleteEvent]


def keystroke_filename(event: KeystrokeEvent) -> str:
    """Return the file a keystroke belongs to, defaulting legacy logs."""
    if event.filename and event.filename.strip():
        return event.filename.strip()
    return UNTITLED_DOCUMENT


@dataclass(slots=True)
class Segment:
    """A contiguous span of the timeline, in timeline units (hours)."""

    start: float
    end: float


@dataclass(slots=True)
class FileSegment:
    """A contiguous run of keystrokes that all touch the same file."""

    filename: str
    start: float
    end: float
    start_index: int
    end_index: int


@dataclass(slots=True)
class TypingSegment:
    start: float
    end: float
    start_index: int
    end_index: int
    keystroke_count: int


@dataclass(slots=True)
class Gap:
    """A removable span of inactivity between two adjacent keystrokes."""

    start_keystroke_index: int
    end_keystroke_index: int
    start_time: datetime
    end_time: datetime
    duration: float
    removed_duration: float
    buffer_ms: float
    reason: str = "idle"

    @property
    def duration_minutes(self) -> int:
        return int(round(self.duration / (1000 * 60)))

    @property
    def duration_hours(self) -> float:
        return self.duration / (1000 * 60 * 60)


@dataclass(slots=True)
class CompressedKeystroke:
    keystroke: KeystrokeEvent
    compressed_timestamp: datetime
    original_index: int

    @property
    def original_timestamp(self) -> datetime:
        return self.keystroke.timestamp


@dataclass(slots=True)
class ActiveSegment:
    """A run of keystrokes kept in the compressed timeline, buffers included."""

    original_start_time: datetime
    original_end_time: datetime
    compressed_start_time: datetime
    compressed_end_time: datetime
    start_keystroke_index: int
    end_keystroke_index: int
    duration: float


@dataclass(slots=True)
class CompressionResult:
    compressed_keystroke_logs: list[CompressedKeystroke]
    gaps: list[Gap]
    active_segments: list[ActiveSegment]
    total_original_duration: float
    total_compressed_duration: float
    compression_ratio: float

    @property
    def total_removed_duration(self) -> float:
        return sum(gap.removed_duration for gap in self.gaps)


class PlaybackStatus(str, Enum):
    PAUSED = "paused"
    PLAYING = "playing"
    SCRUBBING = "scrubbing"


@dataclass(slots=True)
class PlaybackState:
    current_index: int = 0
    current_time: float = 0.0
    is_playing: bool = False
    playback_speed: float = 1.0
    is_scrubbing: bool = False

    @property
    def status(self) -> PlaybackStatus:
        if self.is_playing:
            return PlaybackStatus.PLAYING
        if self.is_scrubbing:
            return PlaybackStatus.SCRUBBING
        return PlaybackStatus.PAUSED

"""Configuration models and helpers for session replay."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional


@dataclass(slots=True)
class CompressionSettings:
    """How inactive stretches are collapsed out of the timeline."""

    enabled: bool = False
    gap_threshold: timedelta = timedelta(minutes=3)
    buffer: timedelta = timedelta(seconds=3)
    file: Optional[str] = None

    @classmethod
    def from_values(
        cls,
        gap_minutes: float = 3.0,
        buffer_seconds: float = 3.0,
        *,
        enabled: bool = True,
        file: Optional[str] = None,
    ) -> "CompressionSettings":
        if gap_minutes < 0 or buffer_seconds < 0:
            raise ValueError("gap threshold and buffer must not be negative")
        return cls(
            enabled=enabled,
            gap_threshold=timedelta(minutes=gap_minutes),
            buffer=timedelta(seconds=buffer_seconds),
            file=file or None,
        )

    @classmethod
    def from_milliseconds(
        cls,
        gap_threshold_ms: float,
        buffer_ms: float,
        *,
        enabled: bool = True,
        file: Optional[str] = None,
    ) -> "CompressionSettings":
        return cls.from_values(
            gap_minutes=gap_threshold_ms / 60_000,
            buffer_seconds=buffer_ms / 1000,
            enabled=enabled,
            file=file,
        )

    @property
    def gap_threshold_ms(self) -> float:
        return self.gap_threshold.total_seconds() * 1000

    @property
    def buffer_ms(self) -> float:
        return self.buffer.total_seconds() * 1000


@dataclass(slots=True)
class SegmentSettings:
    """Thresholds used when splitting keystrokes into activity segments."""

    session_gap: timedelta = timedelta(minutes=5)
    typing_gap: timedelta = timedelta(seconds=3)
    min_typing_keystrokes: int = 3


@dataclass(slots=True)
class PlaybackSettings:
    """Runtime configuration for the playback coordinator."""

    skip_fraction: float = 0.1
    scrub_settle: timedelta = timedelta(milliseconds=500)
    frame_interval: timedelta = timedelta(milliseconds=16)
    # UI bounds; the coordinator itself accepts any positive speed.
    min_speed: float = 0.5
    max_speed: float = 4.0


@dataclass(slots=True)
class SessionLayout:
    """File names used inside a session log directory."""

    activity_log: str = "activity.log"
    change_log_dir: str = "changes"
    change_log_suffix: str = ".log"


@dataclass(slots=True)
class ReplaySettings:
    compression: CompressionSettings = field(default_factory=CompressionSettings)
    segments: SegmentSettings = field(default_factory=SegmentSettings)
    playback: PlaybackSettings = field(default_factory=PlaybackSettings)
    layout: SessionLayout = field(default_factory=SessionLayout)

"""A loaded session: parsed events plus everything derived from them."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from functools import cached_property
from pathlib import Path
from typing import Mapping, Optional, Sequence

from .compression import compress_for
from .config import CompressionSettings, ReplaySettings
from .errors import ChangeLogReadError
from .mapping import (
    LinearMapper,
    PositionMapper,
    build_mapper,
    compressed_to_original_position,
    original_to_compressed_position,
    session_bounds,
)
from .models import (
    CompressionResult,
    FileSegment,
    KeystrokeEvent,
    LogEvent,
    Segment,
    TypingSegment,
    keystroke_filename,
)
from .parser import parse_session_logs, read_session_directory, sort_events
from .reconstruction import SessionDocuments
from .segments import (
    activity_segments,
    app_activity_segments,
    compressed_file_segments,
    file_segments,
    typing_activity_segments,
)

logger = logging.getLogger(__name__)


class ReplaySession:
    """Immutable view of one recorded session.

    Changing compression produces a new session through
    :meth:`with_compression`; derived data is never patched in place.
    """

    def __init__(
        self,
        events: Sequence[LogEvent],
        settings: Optional[ReplaySettings] = None,
        *,
        warnings: Sequence[str] = (),
        file_errors: Optional[Mapping[str, ChangeLogReadError]] = None,
        source: Optional[Path] = None,
    ) -> None:
        self.settings = settings or ReplaySettings()
        self.events: tuple[LogEvent, ...] = tuple(sort_events(events))
        self.keystrokes: tuple[KeystrokeEvent, ...] = tuple(
            event for event in self.events if event.is_keystroke  # type: ignore[misc]
        )
        self.warnings = list(warnings)
        self.file_errors = dict(file_errors or {})
        self.source = source
        self.session_start, self.session_duration = session_bounds(self.keystrokes)

        compression = self.settings.compression
        if compression.file and compression.file not in self.files:
            raise ValueError(f"Unknown file for compression: {compression.file}")
        self.compression: Optional[CompressionResult] = None
        if compression.enabled:
            self.compression = compress_for(
                self.keystrokes,
                compression.gap_threshold_ms,
                compression.buffer_ms,
                compression.file,
            )
        self.mapper: PositionMapper = build_mapper(
            len(self.keystrokes), self.session_start, self.session_duration, self.compression
        )

    @classmethod
    def from_directory(
        cls, log_dir: Path, settings: Optional[ReplaySettings] = None
    ) -> "ReplaySession":
        settings = settings or ReplaySettings()
        logs = read_session_directory(Path(log_dir), settings.layout)
        return cls(
            logs.events,
            settings,
            warnings=logs.warnings,
            file_errors=logs.file_errors,
            source=Path(log_dir),
        )

    @classmethod
    def from_texts(
        cls,
        activity_text: Optional[str],
        change_logs: Mapping[str, str],
        settings: Optional[ReplaySettings] = None,
    ) -> "ReplaySession":
        return cls(parse_session_logs(activity_text, change_logs), settings)

    def with_compression(self, compression: CompressionSettings) -> "ReplaySession":
        settings = replace(self.settings, compression=compression)
        logger.info(
            "Rebuilding session timeline (compression=%s, file=%s)",
            compression.enabled,
            compression.file,
        )
        return ReplaySession(
            self.events,
            settings,
            warnings=self.warnings,
            file_errors=self.file_errors,
            source=self.source,
        )

    @property
    def session_start_time(self) -> Optional[datetime]:
        return self.keystrokes[0].timestamp if self.keystrokes else None

    @property
    def session_end_time(self) -> Optional[datetime]:
        return self.keystrokes[-1].timestamp if self.keystrokes else None

    @property
    def session_end(self) -> float:
        return self.session_start + self.session_duration

    @cached_property
    def files(self) -> list[str]:
        """Files with at least one keystroke, in order of first edit."""
        return list(dict.fromkeys(keystroke_filename(event) for event in self.keystrokes))

    @cached_property
    def linear_mapper(self) -> LinearMapper:
        return LinearMapper(len(self.keystrokes), self.session_start, self.session_duration)

    @cached_property
    def segments(self) -> list[Segment]:
        gap_ms = self.settings.segments.session_gap.total_seconds() * 1000
        return activity_segments(self.keystrokes, gap_ms)

    @cached_property
    def app_segments(self) -> list[Segment]:
        return app_activity_segments(
            self.events, self.session_start_time, self.session_end_time
        )

    @cached_property
    def file_segments(self) -> list[FileSegment]:
        if self.compression is not None:
            return compressed_file_segments(self.compression, self.mapper)
        return file_segments(self.keystrokes, self.mapper)

    @cached_property
    def typing_segments(self) -> list[TypingSegment]:
        config = self.settings.segments
        return typing_activity_segments(
            self.keystrokes,
            self.mapper,
            config.typing_gap.total_seconds() * 1000,
            config.min_typing_keystrokes,
        )

    @cached_property
    def _documents(self) -> SessionDocuments:
        return SessionDocuments(self.keystrokes)

    def document_at(self, filename: str, keystroke_index: Optional[int] = None) -> str:
        """Text of ``filename`` after session keystrokes ``0..keystroke_index``."""
        return self._documents.text_at(filename, keystroke_index)

    def to_active_position(self, linear_position: float) -> float:
        """Translate an uncompressed timeline position into this session's timeline."""
        return original_to_compressed_position(
            linear_position, self.compression, self.session_start, self.session_duration
        )

    def to_linear_position(self, position: float) -> float:
        return compressed_to_original_position(
            position, self.compression, self.session_start, self.session_duration
        )

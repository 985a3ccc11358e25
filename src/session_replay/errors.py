"""Exceptions raised by the replay engine."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class SessionReplayError(Exception):
    """Base class for replay engine failures."""


class ChangeLogReadError(SessionReplayError):
    """A per-file text-change log could not be read."""

    def __init__(self, filename: str, path: Path, reason: str) -> None:
        super().__init__(f"Could not read change log for {filename} at {path}: {reason}")
        self.filename = filename
        self.path = path
        self.reason = reason


class MalformedEditError(SessionReplayError):
    """An insert or delete points outside the document being rebuilt."""

    def __init__(
        self,
        *,
        index: int,
        offset: int,
        length: int,
        buffer_length: int,
        filename: Optional[str] = None,
    ) -> None:
        target = filename or "document"
        super().__init__(
            f"Edit #{index} on {target} spans [{offset}, {offset + length}) "
            f"but the document is only {buffer_length} characters long"
        )
        self.index = index
        self.offset = offset
        self.length = length
        self.buffer_length = buffer_length
        self.filename = filename

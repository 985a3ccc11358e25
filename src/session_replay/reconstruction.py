"""Rebuild file contents by replaying insert and delete events."""

from __future__ import annotations

import logging
from bisect import bisect_right
from typing import Optional, Sequence

from .errors import MalformedEditError
from .models import DeleteEvent, InsertEvent, KeystrokeEvent, keystroke_filename

logger = logging.getLogger(__name__)


def apply_edit(buffer: str, event: KeystrokeEvent, index: int = 0) -> str:
    """Apply a single keystroke event to ``buffer``."""
    if isinstance(event, InsertEvent):
        if event.offset > len(buffer):
            raise MalformedEditError(
                index=index,
                offset=event.offset,
                length=0,
                buffer_length=len(buffer),
                filename=event.filename,
            )
        return buffer[: event.offset] + event.inserted_text + buffer[event.offset :]
    if isinstance(event, DeleteEvent):
        if event.offset + event.length > len(buffer):
            raise MalformedEditError(
                index=index,
                offset=event.offset,
                length=event.length,
                buffer_length=len(buffer),
                filename=event.filename,
            )
        return buffer[: event.offset] + buffer[event.offset + event.length :]
    raise TypeError(f"Not a keystroke event: {event!r}")


def reconstruct_document(events: Sequence[KeystrokeEvent], index: int) -> str:
    """Return the text after applying ``events[0..index]`` inclusive."""
    buffer = ""
    for position in range(min(index + 1, len(events))):
        buffer = apply_edit(buffer, events[position], position)
    return buffer


class DocumentReconstructor:
    """Replays one file's keystrokes, reusing the last result when moving forward."""

    def __init__(self, events: Sequence[KeystrokeEvent]) -> None:
        self._events = events
        self._cached_index = -1
        self._cached_text = ""

    def __len__(self) -> int:
        return len(self._events)

    def text_at(self, index: int) -> str:
        if index < 0:
            return ""
        index = min(index, len(self._events) - 1)
        if index < self._cached_index:
            self._cached_index = -1
            self._cached_text = ""
        buffer = self._cached_text
        for position in range(self._cached_index + 1, index + 1):
            buffer = apply_edit(buffer, self._events[position], position)
        self._cached_index = index
        self._cached_text = buffer
        return buffer


class SessionDocuments:
    """Per-file reconstructors addressed by session-wide keystroke index."""

    def __init__(self, keystrokes: Sequence[KeystrokeEvent]) -> None:
        per_file: dict[str, list[KeystrokeEvent]] = {}
        positions: dict[str, list[int]] = {}
        for index, event in enumerate(keystrokes):
            name = keystroke_filename(event)
            per_file.setdefault(name, []).append(event)
            positions.setdefault(name, []).append(index)
        self._positions = positions
        self._reconstructors = {
            name: DocumentReconstructor(events) for name, events in per_file.items()
        }

    @property
    def filenames(self) -> list[str]:
        return list(self._reconstructors)

    def local_index(self, filename: str, keystroke_index: int) -> int:
        """Index of the last ``filename`` keystroke at or before ``keystroke_index``."""
        positions = self._positions.get(filename)
        if not positions:
            return -1
        return bisect_right(positions, keystroke_index) - 1

    def text_at(self, filename: str, keystroke_index: Optional[int] = None) -> str:
        reconstructor = self._reconstructors.get(filename)
        if reconstructor is None:
            raise KeyError(filename)
        if keystroke_index is None:
            return reconstructor.text_at(len(reconstructor) - 1)
        local = self.local_index(filename, keystroke_index)
        logger.debug("Reconstructing %s up to local edit %d", filename, local)
        return reconstructor.text_at(local)

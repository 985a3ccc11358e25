"""Parse activity and text-change logs into a time-ordered event stream."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Mapping, Optional

from .config import SessionLayout
from .errors import ChangeLogReadError
from .models import (
    AndroidRunStartedEvent,
    AppActivatedEvent,
    AppDeactivatedEvent,
    CompileEndedEvent,
    CompileStartedEvent,
    DeleteEvent,
    FileOpenedEvent,
    InsertEvent,
    LogEvent,
)
from .paths import activity_log_path, filename_for_change_log, list_change_logs

logger = logging.getLogger(__name__)

_TIMESTAMP = r"(?P<ts>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?)"

_INSERT_PATTERN = re.compile(
    _TIMESTAMP + r': Text inserted at position (?P<offset>\d+): "(?P<text>.*)"'
)
_INITIAL_CONTENT_PATTERN = re.compile(
    _TIMESTAMP + r': Initial content at position (?P<offset>\d+): "(?P<text>.*)"'
)
_DELETE_PATTERN = re.compile(
    _TIMESTAMP + r": Text deleted at position (?P<offset>\d+) \(length: (?P<length>\d+)\)"
)
_APP_ACTIVATED_PATTERN = re.compile(
    _TIMESTAMP + r": APP_ACTIVATED: (?P<epoch>\d+)(?: \(away for (?P<away>\d+)ms\))?"
)
_APP_DEACTIVATED_PATTERN = re.compile(_TIMESTAMP + r": APP_DEACTIVATED: (?P<epoch>\d+)")
_FILE_OPENED_PATTERN = re.compile(_TIMESTAMP + r": FILE_OPENED: (?P<path>.+?)\s*$")
_COMPILE_STARTED_PATTERN = re.compile(_TIMESTAMP + r": COMPILE_STARTED: (?P<epoch>\d+)")
_COMPILE_ENDED_PATTERN = re.compile(_TIMESTAMP + r": COMPILE_ENDED: (?P<epoch>\d+)")
_ANDROID_RUN_PATTERN = re.compile(
    _TIMESTAMP + r": ANDROID_RUN_STARTED: (?P<filename>.+?): (?P<epoch>\d+)\s*$"
)

# Applied in order; backslashes go last so a decoded backslash is never read
# as the start of another escape.
_ESCAPES: tuple[tuple[str, str], ...] = (
    ('\\"', '"'),
    ("\\t", "\t"),
    ("\\r", "\r"),
    ("\\n", "\n"),
    ("\\\\", "\\"),
)


def unescape_text(value: str) -> str:
    """Decode the escape sequences the editor writes into inserted text."""
    for escaped, literal in _ESCAPES:
        value = value.replace(escaped, literal)
    return value


def parse_timestamp(value: str) -> datetime:
    """Parse ``YYYY-MM-DDTHH:MM:SS[.fraction]`` with any fraction precision."""
    base, _, fraction = value.partition(".")
    parsed = datetime.strptime(base, "%Y-%m-%dT%H:%M:%S")
    if fraction:
        micros = int(fraction[:6].ljust(6, "0"))
        parsed = parsed.replace(microsecond=micros)
    return parsed


def _insert(match: re.Match[str], filename: Optional[str]) -> LogEvent:
    return InsertEvent(
        timestamp=parse_timestamp(match["ts"]),
        offset=int(match["offset"]),
        inserted_text=unescape_text(match["text"]),
        filename=filename,
    )


def _initial_content(match: re.Match[str], filename: Optional[str]) -> LogEvent:
    return InsertEvent(
        timestamp=parse_timestamp(match["ts"]),
        offset=int(match["offset"]),
        inserted_text=unescape_text(match["text"]),
        filename=filename,
        is_initial_content=True,
    )


def _delete(match: re.Match[str], filename: Optional[str]) -> LogEvent:
    return DeleteEvent(
        timestamp=parse_timestamp(match["ts"]),
        offset=int(match["offset"]),
        length=int(match["length"]),
        filename=filename,
    )


def _app_activated(match: re.Match[str], filename: Optional[str]) -> LogEvent:
    away = match["away"]
    return AppActivatedEvent(
        timestamp=parse_timestamp(match["ts"]),
        epoch_time=int(match["epoch"]),
        away_duration=int(away) if away else None,
        filename=filename,
    )


def _app_deactivated(match: re.Match[str], filename: Optional[str]) -> LogEvent:
    return AppDeactivatedEvent(
        timestamp=parse_timestamp(match["ts"]),
        epoch_time=int(match["epoch"]),
        filename=filename,
    )


def _file_opened(match: re.Match[str], filename: Optional[str]) -> LogEvent:
    return FileOpenedEvent(
        timestamp=parse_timestamp(match["ts"]),
        file_path=match["path"],
        filename=filename,
    )


def _compile_started(match: re.Match[str], filename: Optional[str]) -> LogEvent:
    return CompileStartedEvent(
        timestamp=parse_timestamp(match["ts"]),
        epoch_time=int(match["epoch"]),
        filename=filename,
    )


def _compile_ended(match: re.Match[str], filename: Optional[str]) -> LogEvent:
    return CompileEndedEvent(
        timestamp=parse_timestamp(match["ts"]),
        epoch_time=int(match["epoch"]),
        filename=filename,
    )


def _android_run(match: re.Match[str], filename: Optional[str]) -> LogEvent:
    return AndroidRunStartedEvent(
        timestamp=parse_timestamp(match["ts"]),
        filename=match["filename"],
        epoch_time=int(match["epoch"]),
    )


_GRAMMARS: tuple[
    tuple[re.Pattern[str], Callable[[re.Match[str], Optional[str]], LogEvent]], ...
] = (
    (_INSERT_PATTERN, _insert),
    (_INITIAL_CONTENT_PATTERN, _initial_content),
    (_DELETE_PATTERN, _delete),
    (_APP_ACTIVATED_PATTERN, _app_activated),
    (_APP_DEACTIVATED_PATTERN, _app_deactivated),
    (_FILE_OPENED_PATTERN, _file_opened),
    (_COMPILE_STARTED_PATTERN, _compile_started),
    (_COMPILE_ENDED_PATTERN, _compile_ended),
    (_ANDROID_RUN_PATTERN, _android_run),
)


def parse_line(line: str, filename: Optional[str] = None) -> Optional[LogEvent]:
    """Return the event a log line describes, or ``None`` if it matches no grammar."""
    line = line.rstrip("\r\n")
    for pattern, build in _GRAMMARS:
        match = pattern.match(line)
        if match:
            return build(match, filename)
    return None


def parse_log_text(text: str, filename: Optional[str] = None) -> list[LogEvent]:
    """Parse every recognised line in ``text``, keeping encounter order."""
    events: list[LogEvent] = []
    skipped = 0
    for line in text.split("\n"):
        event = parse_line(line, filename)
        if event is None:
            if line.strip():
                skipped += 1
            continue
        events.append(event)
    if skipped:
        logger.debug(
            "Skipped %d unrecognised line(s) in %s", skipped, filename or "activity log"
        )
    return events


def sort_events(events: Iterable[LogEvent]) -> list[LogEvent]:
    # sorted() is stable, so equal timestamps keep their encounter order.
    return sorted(events, key=lambda event: event.timestamp)


def parse_session_logs(
    activity_text: Optional[str],
    change_logs: Mapping[str, str],
) -> list[LogEvent]:
    """Merge the activity log and per-file change logs into one sorted stream."""
    events: list[LogEvent] = []
    if activity_text:
        events.extend(parse_log_text(activity_text))
    for filename, text in change_logs.items():
        events.extend(parse_log_text(text, filename))
    return sort_events(events)


@dataclass(slots=True)
class SessionLogs:
    """Parsed events for a session directory plus any per-source problems."""

    events: list[LogEvent] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    file_errors: dict[str, ChangeLogReadError] = field(default_factory=dict)


def read_session_directory(log_dir: Path, layout: Optional[SessionLayout] = None) -> SessionLogs:
    """Read and parse all logs found in ``log_dir``.

    A missing or unreadable activity log only produces a warning. An
    unreadable change log is recorded against its file; the remaining files
    are still parsed.
    """
    layout = layout or SessionLayout()
    log_dir = Path(log_dir)
    result = SessionLogs()

    activity_text: Optional[str] = None
    activity_path = activity_log_path(log_dir, layout)
    try:
        activity_text = activity_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        message = f"Activity log unavailable at {activity_path}: {exc}"
        logger.warning(message)
        result.warnings.append(message)

    change_texts: dict[str, str] = {}
    for path in list_change_logs(log_dir, layout):
        filename = filename_for_change_log(path, layout)
        try:
            change_texts[filename] = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            error = ChangeLogReadError(filename, path, str(exc))
            logger.error("%s", error)
            result.file_errors[filename] = error

    result.events = parse_session_logs(activity_text, change_texts)
    logger.info(
        "Loaded %d events from %s (%d change log(s), %d unreadable)",
        len(result.events),
        log_dir,
        len(change_texts),
        len(result.file_errors),
    )
    return result

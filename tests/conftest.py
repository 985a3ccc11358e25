"""Shared pytest fixtures."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

import pytest

from session_replay.models import InsertEvent

BASE_TIME = datetime(2024, 1, 1, 10, 0, 0)

ACTIVITY_LOG = """\
2024-01-01T09:59:00.000: APP_ACTIVATED: 1704103140000
2024-01-01T10:00:00.500: FILE_OPENED: /home/student/Main.java
some garbage line
2024-01-01T10:02:00.000: APP_DEACTIVATED: 1704103320000
2024-01-01T10:03:00.000: APP_ACTIVATED: 1704103380000 (away for 60000ms)
2024-01-01T10:04:00.000: COMPILE_STARTED: 1704103440000
2024-01-01T10:04:02.000: COMPILE_ENDED: 1704103442000
"""

MAIN_LOG = r"""2024-01-01T10:00:01.000: Text inserted at position 0: "class Main {}"
2024-01-01T10:00:02.000: Text inserted at position 12: "\n"
2024-01-01T10:00:03.000: Text deleted at position 12 (length: 1)
"""

UTIL_LOG = r"""2024-01-01T10:01:00.000: Text inserted at position 0: "int x;"
2024-01-01T10:10:00.000: Text inserted at position 6: " // later"
"""


@dataclass
class _Timer:
    due: float
    seq: int
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic stand-in for the asyncio scheduler."""

    def __init__(self, frame_interval_ms: float = 16.0) -> None:
        self.current = 0.0
        self.frame_interval_ms = frame_interval_ms
        self._timers: list[_Timer] = []
        self._seq = 0

    def now(self) -> float:
        return self.current

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> _Timer:
        self._seq += 1
        timer = _Timer(self.current + delay_ms, self._seq, callback)
        self._timers.append(timer)
        return timer

    def request_frame(self, callback: Callable[[], None]) -> _Timer:
        return self.call_later(self.frame_interval_ms, callback)

    @property
    def pending(self) -> int:
        return sum(1 for timer in self._timers if not timer.cancelled)

    def advance(self, milliseconds: float) -> None:
        target = self.current + milliseconds
        while True:
            self._timers = [timer for timer in self._timers if not timer.cancelled]
            due = [timer for timer in self._timers if timer.due <= target]
            if not due:
                break
            timer = min(due, key=lambda item: (item.due, item.seq))
            self._timers.remove(timer)
            self.current = timer.due
            timer.callback()
        self.current = target


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def make_keystrokes() -> Callable[..., list[InsertEvent]]:
    """Build single-character inserts at the given second offsets."""

    def factory(
        seconds: list[float], filename: Optional[str] = "Main.java"
    ) -> list[InsertEvent]:
        return [
            InsertEvent(
                timestamp=BASE_TIME + timedelta(seconds=offset),
                offset=index,
                inserted_text="x",
                filename=filename,
            )
            for index, offset in enumerate(seconds)
        ]

    return factory


@pytest.fixture
def gap_scenario(make_keystrokes) -> list[InsertEvent]:
    """Ten keystrokes a second apart with a five-minute pause after the fifth."""
    return make_keystrokes([0, 1, 2, 3, 4, 304, 305, 306, 307, 308])


@pytest.fixture
def session_dir(tmp_path: Path) -> Path:
    """A session directory with an activity log and two change logs."""
    log_dir = tmp_path / "logs"
    changes = log_dir / "changes"
    changes.mkdir(parents=True)
    (log_dir / "activity.log").write_text(ACTIVITY_LOG, encoding="utf-8")
    (changes / "Main.java.log").write_text(MAIN_LOG, encoding="utf-8")
    (changes / "Util.java.log").write_text(UTIL_LOG, encoding="utf-8")
    return log_dir

"""Playback state machine driven by an injected clock."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Callable, Optional, Protocol

from .config import PlaybackSettings
from .mapping import PositionMapper
from .models import PlaybackState, PlaybackStatus

logger = logging.getLogger(__name__)

Listener = Callable[[PlaybackState], None]


class Handle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Clock plus the two callback primitives the coordinator relies on."""

    def now(self) -> float:
        """Monotonic wall time in milliseconds."""
        ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> Handle: ...

    def request_frame(self, callback: Callable[[], None]) -> Handle: ...


class AsyncioScheduler:
    """Runs callbacks on the current asyncio event loop."""

    def __init__(
        self,
        frame_interval_ms: float = 16.0,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.frame_interval_ms = frame_interval_ms
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def now(self) -> float:
        return time.monotonic() * 1000

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> Handle:
        return self._get_loop().call_later(delay_ms / 1000, callback)

    def request_frame(self, callback: Callable[[], None]) -> Handle:
        return self.call_later(self.frame_interval_ms, callback)


class PlaybackCoordinator:
    """Owns the playback state for one loaded session.

    While playing, each frame derives the timeline position from the wall
    time elapsed since the last anchor and then derives the keystroke index
    from that position. Index and time are never advanced independently.
    """

    def __init__(
        self,
        mapper: PositionMapper,
        scheduler: Scheduler,
        settings: Optional[PlaybackSettings] = None,
    ) -> None:
        self._mapper = mapper
        self._scheduler = scheduler
        self._settings = settings or PlaybackSettings()
        self._state = PlaybackState(current_index=mapper.first_index, current_time=mapper.start)
        self._anchor_wall = scheduler.now()
        self._anchor_time = mapper.start
        self._frame: Optional[Handle] = None
        self._settle: Optional[Handle] = None
        self._listeners: list[Listener] = []

    @property
    def state(self) -> PlaybackState:
        return replace(self._state)

    @property
    def status(self) -> PlaybackStatus:
        return self._state.status

    @property
    def mapper(self) -> PositionMapper:
        return self._mapper

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def play(self) -> None:
        if self._state.is_playing or self._mapper.keystroke_count == 0:
            return
        self._cancel_settle()
        self._state.is_scrubbing = False
        if self._state.current_index >= self._mapper.last_index:
            self._state.current_index = self._mapper.first_index
            self._state.current_time = self._mapper.start
        self._state.is_playing = True
        self._anchor()
        self._schedule_frame()
        logger.debug("Playback started at index %d", self._state.current_index)
        self._notify()

    def pause(self) -> None:
        self._cancel_frame()
        if not self._state.is_playing:
            return
        self._state.is_playing = False
        logger.debug("Playback paused at index %d", self._state.current_index)
        self._notify()

    def toggle(self) -> None:
        if self._state.is_playing:
            self.pause()
        else:
            self.play()

    def restart(self) -> None:
        self._cancel_all()
        self._state.is_playing = False
        self._state.is_scrubbing = False
        self._state.current_index = self._mapper.first_index
        self._state.current_time = self._mapper.start
        self._anchor()
        self._notify()

    def skip_to_end(self) -> None:
        self._cancel_all()
        self._state.is_playing = False
        self._state.is_scrubbing = False
        self._state.current_index = self._mapper.last_index
        self._state.current_time = self._mapper.end
        self._anchor()
        self._notify()

    def skip_backward(self) -> None:
        self._skip(-self._skip_amount())

    def skip_forward(self) -> None:
        self._skip(self._skip_amount())

    def scrub(self, target_time: float) -> None:
        self._cancel_all()
        position = max(self._mapper.start, min(self._mapper.end, target_time))
        self._state.is_playing = False
        self._state.is_scrubbing = True
        self._state.current_index = self._mapper.time_to_index(position)
        self._state.current_time = position
        self._anchor()
        self._settle = self._scheduler.call_later(
            self._settings.scrub_settle.total_seconds() * 1000, self._on_settle
        )
        self._notify()

    def set_speed(self, multiplier: float) -> None:
        if not multiplier > 0:
            raise ValueError(f"Playback speed must be positive, got {multiplier!r}")
        self._state.playback_speed = float(multiplier)
        if self._state.is_playing:
            self._anchor()
            self._schedule_frame()
        self._notify()

    def close(self) -> None:
        """Cancel every pending callback; used when a new session replaces this one."""
        self._cancel_all()
        self._state.is_playing = False
        self._state.is_scrubbing = False
        self._listeners.clear()

    def _skip_amount(self) -> int:
        return max(1, int(self._mapper.keystroke_count * self._settings.skip_fraction))

    def _skip(self, delta: int) -> None:
        index = self._mapper.step(self._state.current_index, delta)
        self._state.current_index = index
        self._state.current_time = self._mapper.index_to_time(index)
        if self._state.is_playing:
            self._anchor()
            self._schedule_frame()
        self._notify()

    def _anchor(self) -> None:
        self._anchor_wall = self._scheduler.now()
        self._anchor_time = self._state.current_time

    def _position_now(self) -> float:
        elapsed = (self._scheduler.now() - self._anchor_wall) * self._state.playback_speed
        real_duration = self._mapper.real_duration_ms
        if real_duration <= 0:
            return self._mapper.end
        return self._anchor_time + (elapsed / real_duration) * self._mapper.duration

    def _on_frame(self) -> None:
        self._frame = None
        if not self._state.is_playing:
            return
        position = self._position_now()
        if position >= self._mapper.end:
            self._state.current_time = self._mapper.end
            self._state.current_index = self._mapper.last_index
            self._state.is_playing = False
            logger.debug("Playback reached the end of the session")
        else:
            self._state.current_time = position
            self._state.current_index = self._mapper.time_to_index(position)
            self._schedule_frame()
        self._notify()

    def _on_settle(self) -> None:
        self._settle = None
        if self._state.is_scrubbing:
            self._state.is_scrubbing = False
            self._notify()

    def _schedule_frame(self) -> None:
        self._cancel_frame()
        self._frame = self._scheduler.request_frame(self._on_frame)

    def _cancel_frame(self) -> None:
        if self._frame is not None:
            self._frame.cancel()
            self._frame = None

    def _cancel_settle(self) -> None:
        if self._settle is not None:
            self._settle.cancel()
            self._settle = None

    def _cancel_all(self) -> None:
        self._cancel_frame()
        self._cancel_settle()

    def _notify(self) -> None:
        snapshot = self.state
        for listener in list(self._listeners):
            listener(snapshot)

"""FastAPI application that exposes a recorded session to a local viewer."""

from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field

from . import __version__
from .compression import DEFAULT_BUFFER_MS, DEFAULT_GAP_THRESHOLD_MS
from .config import CompressionSettings, ReplaySettings
from .errors import MalformedEditError
from .models import (
    CompressionResult,
    Gap,
    InsertEvent,
    LogEvent,
    PlaybackState,
)
from .paths import resolve_log_dir
from .playback import AsyncioScheduler, PlaybackCoordinator, Scheduler
from .segments import activity_at_index, current_file_segment, typing_speed
from .session import ReplaySession

logger = logging.getLogger(__name__)


class SessionRunner:
    """Own the loaded session and its playback coordinator."""

    def __init__(
        self,
        log_dir: Path,
        settings: ReplaySettings,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self._log_dir = Path(log_dir)
        self._settings = settings
        self._scheduler = scheduler or AsyncioScheduler(
            frame_interval_ms=settings.playback.frame_interval.total_seconds() * 1000
        )
        self.session = ReplaySession.from_directory(self._log_dir, settings)
        self.coordinator = self._new_coordinator()

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def _new_coordinator(self) -> PlaybackCoordinator:
        return PlaybackCoordinator(
            self.session.mapper, self._scheduler, self._settings.playback
        )

    def reload(self) -> None:
        self.coordinator.close()
        self.session = ReplaySession.from_directory(
            self._log_dir, self.session.settings
        )
        self.coordinator = self._new_coordinator()
        logger.info("Session reloaded from %s", self._log_dir)

    def configure_compression(self, compression: CompressionSettings) -> None:
        previous_session = self.session
        previous = self.coordinator.state
        new_session = previous_session.with_compression(compression)

        self.coordinator.close()
        self.session = new_session
        self.coordinator = self._new_coordinator()
        self.coordinator.set_speed(previous.playback_speed)
        if previous.current_index > 0:
            linear = previous_session.to_linear_position(previous.current_time)
            self.coordinator.scrub(new_session.to_active_position(linear))

    def close(self) -> None:
        self.coordinator.close()


class CompressionPayload(BaseModel):
    enabled: bool = True
    gap_threshold_ms: float = Field(default=DEFAULT_GAP_THRESHOLD_MS, ge=0)
    buffer_ms: float = Field(default=DEFAULT_BUFFER_MS, ge=0)
    file: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ScrubPayload(BaseModel):
    time: float

    model_config = ConfigDict(extra="forbid")


class SpeedPayload(BaseModel):
    speed: float = Field(gt=0)

    model_config = ConfigDict(extra="forbid")


_ACTIONS = {
    "play": PlaybackCoordinator.play,
    "pause": PlaybackCoordinator.pause,
    "toggle": PlaybackCoordinator.toggle,
    "restart": PlaybackCoordinator.restart,
    "skip-to-end": PlaybackCoordinator.skip_to_end,
    "skip-backward": PlaybackCoordinator.skip_backward,
    "skip-forward": PlaybackCoordinator.skip_forward,
}


def create_app(
    *,
    log_dir: Optional[Path] = None,
    settings: Optional[ReplaySettings] = None,
    scheduler: Optional[Scheduler] = None,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_log_dir = resolve_log_dir(log_dir)
    resolved_settings = settings or ReplaySettings()
    runner = SessionRunner(resolved_log_dir, resolved_settings, scheduler)

    app = FastAPI(title="Session Replay", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r"^http://(localhost|127\.0\.0\.1)(:\d+)?$",
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.runner = runner

    static_dir = Path(__file__).parent / "static"
    if static_dir.exists():
        app.mount("/static", StaticFiles(directory=static_dir), name="static")

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        logger.info("Serving session logs from %s", runner.log_dir)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.close()

    @app.get("/api/status")
    async def status(request: Request) -> Dict[str, Any]:
        current: SessionRunner = request.app.state.runner
        session = current.session
        return {
            "log_directory": str(current.log_dir),
            "event_count": len(session.events),
            "keystroke_count": len(session.keystrokes),
            "files": session.files,
            "compression_enabled": session.compression is not None,
            "warnings": session.warnings,
            "playback": _state_payload(current.coordinator.state),
        }

    @app.get("/api/logs")
    async def logs(request: Request) -> Dict[str, Any]:
        session = request.app.state.runner.session
        return {
            "events": [_event_payload(event) for event in session.events],
            "warnings": session.warnings,
            "file_errors": {name: str(error) for name, error in session.file_errors.items()},
        }

    @app.get("/api/session")
    async def session_overview(request: Request) -> Dict[str, Any]:
        session: ReplaySession = request.app.state.runner.session
        start_time = session.session_start_time
        end_time = session.session_end_time
        return {
            "start_time": start_time.isoformat() if start_time else None,
            "end_time": end_time.isoformat() if end_time else None,
            "session_start": session.session_start,
            "session_end": session.session_end,
            "session_duration": session.session_duration,
            "timeline": {
                "start": session.mapper.start,
                "end": session.mapper.end,
                "duration": session.mapper.duration,
            },
            "keystroke_count": len(session.keystrokes),
            "files": session.files,
            "segments": [asdict(segment) for segment in session.segments],
            "app_segments": [asdict(segment) for segment in session.app_segments],
            "file_segments": [asdict(segment) for segment in session.file_segments],
            "typing_segments": [asdict(segment) for segment in session.typing_segments],
            "warnings": session.warnings,
            "file_errors": {name: str(error) for name, error in session.file_errors.items()},
        }

    @app.post("/api/session/reload")
    async def reload_session(request: Request) -> Dict[str, Any]:
        current: SessionRunner = request.app.state.runner
        current.reload()
        return {
            "keystroke_count": len(current.session.keystrokes),
            "files": current.session.files,
            "warnings": current.session.warnings,
        }

    @app.get("/api/compression")
    async def compression(request: Request) -> Dict[str, Any]:
        session: ReplaySession = request.app.state.runner.session
        return _compression_payload(session)

    @app.put("/api/compression")
    async def configure_compression(
        payload: CompressionPayload, request: Request
    ) -> Dict[str, Any]:
        current: SessionRunner = request.app.state.runner
        settings = CompressionSettings.from_milliseconds(
            payload.gap_threshold_ms,
            payload.buffer_ms,
            enabled=payload.enabled,
            file=payload.file,
        )
        try:
            current.configure_compression(settings)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _compression_payload(current.session)

    @app.get("/api/document")
    async def document(
        request: Request,
        file: Optional[str] = Query(default=None, description="File to reconstruct."),
        index: Optional[int] = Query(
            default=None,
            description="Keystroke index; defaults to the playback position.",
        ),
    ) -> Dict[str, Any]:
        current: SessionRunner = request.app.state.runner
        session = current.session
        target_index = index if index is not None else current.coordinator.state.current_index
        filename = file or _default_file(session, target_index)
        if filename is None:
            raise HTTPException(status_code=404, detail="Session has no files")
        try:
            text = session.document_at(filename, target_index)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Unknown file: {filename}") from exc
        except MalformedEditError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return {"file": filename, "index": target_index, "content": text}

    @app.get("/api/playback")
    async def playback(request: Request) -> Dict[str, Any]:
        current: SessionRunner = request.app.state.runner
        state = current.coordinator.state
        session = current.session
        payload = _state_payload(state)
        segment = current_file_segment(session.file_segments, state.current_index)
        payload["current_file"] = segment.filename if segment else None
        payload["activity"] = activity_at_index(
            session.typing_segments, state.current_index, len(session.keystrokes)
        )
        payload["typing_speed"] = typing_speed(session.keystrokes, state.current_index)
        return payload

    @app.post("/api/playback/scrub")
    async def scrub(payload: ScrubPayload, request: Request) -> Dict[str, Any]:
        coordinator: PlaybackCoordinator = request.app.state.runner.coordinator
        coordinator.scrub(payload.time)
        return _state_payload(coordinator.state)

    @app.post("/api/playback/speed")
    async def speed(payload: SpeedPayload, request: Request) -> Dict[str, Any]:
        playback_settings = resolved_settings.playback
        if not playback_settings.min_speed <= payload.speed <= playback_settings.max_speed:
            raise HTTPException(
                status_code=400,
                detail=(
                    f"speed must be between {playback_settings.min_speed} "
                    f"and {playback_settings.max_speed}"
                ),
            )
        coordinator: PlaybackCoordinator = request.app.state.runner.coordinator
        coordinator.set_speed(payload.speed)
        return _state_payload(coordinator.state)

    @app.post("/api/playback/{action}")
    async def playback_action(action: str, request: Request) -> Dict[str, Any]:
        handler = _ACTIONS.get(action)
        if handler is None:
            raise HTTPException(status_code=404, detail=f"Unknown playback action: {action}")
        coordinator: PlaybackCoordinator = request.app.state.runner.coordinator
        handler(coordinator)
        return _state_payload(coordinator.state)

    @app.get("/")
    def index(request: Request):
        index_path = (Path(__file__).parent / "static" / "index.html").resolve()
        if not index_path.exists():
            raise HTTPException(status_code=404, detail="UI not found")
        return FileResponse(index_path)

    return app


def _default_file(session: ReplaySession, keystroke_index: int) -> Optional[str]:
    segment = current_file_segment(session.file_segments, keystroke_index)
    if segment:
        return segment.filename
    return session.files[0] if session.files else None


def _event_payload(event: LogEvent) -> Dict[str, Any]:
    payload = asdict(event)
    payload["type"] = event.type
    payload["timestamp"] = event.timestamp.isoformat(timespec="milliseconds")
    if isinstance(event, InsertEvent):
        payload["length"] = event.length
    return payload


def _state_payload(state: PlaybackState) -> Dict[str, Any]:
    payload = asdict(state)
    payload["status"] = state.status.value
    return payload


def _gap_payload(gap: Gap) -> Dict[str, Any]:
    payload = asdict(gap)
    payload["start_time"] = gap.start_time.isoformat(timespec="milliseconds")
    payload["end_time"] = gap.end_time.isoformat(timespec="milliseconds")
    payload["duration_minutes"] = gap.duration_minutes
    return payload


def _compression_payload(session: ReplaySession) -> Dict[str, Any]:
    result: Optional[CompressionResult] = session.compression
    settings = session.settings.compression
    payload: Dict[str, Any] = {
        "enabled": result is not None,
        "gap_threshold_ms": settings.gap_threshold_ms,
        "buffer_ms": settings.buffer_ms,
        "file": settings.file,
    }
    if result is None:
        return payload
    payload.update(
        {
            "gaps": [_gap_payload(gap) for gap in result.gaps],
            "active_segments": [
                {
                    "original_start_time": segment.original_start_time.isoformat(),
                    "original_end_time": segment.original_end_time.isoformat(),
                    "compressed_start_time": segment.compressed_start_time.isoformat(),
                    "compressed_end_time": segment.compressed_end_time.isoformat(),
                    "start_keystroke_index": segment.start_keystroke_index,
                    "end_keystroke_index": segment.end_keystroke_index,
                    "duration": segment.duration,
                }
                for segment in result.active_segments
            ],
            "total_original_duration": result.total_original_duration,
            "total_compressed_duration": result.total_compressed_duration,
            "compression_ratio": result.compression_ratio,
        }
    )
    return payload

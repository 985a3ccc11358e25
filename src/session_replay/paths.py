"""Helpers for locating session log directories."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from platformdirs import PlatformDirs

from .config import SessionLayout


APP_NAME = "SessionReplay"
APP_AUTHOR = "SessionReplay"


def get_data_dir() -> Path:
    """Return the base directory for persistent data."""
    dirs = PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR, roaming=True)
    path = Path(dirs.user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_default_log_dir() -> Path:
    """Prefer ``./logs`` next to the caller, else the per-user data directory."""
    local = Path.cwd() / "logs"
    if local.is_dir():
        return local
    return get_data_dir() / "logs"


def resolve_log_dir(log_dir: Optional[Path]) -> Path:
    return Path(log_dir) if log_dir else get_default_log_dir()


def activity_log_path(log_dir: Path, layout: SessionLayout) -> Path:
    return Path(log_dir) / layout.activity_log


def change_log_dir(log_dir: Path, layout: SessionLayout) -> Path:
    return Path(log_dir) / layout.change_log_dir


def filename_for_change_log(path: Path, layout: SessionLayout) -> str:
    """``HelloWorld.java.log`` -> ``HelloWorld.java``."""
    name = Path(path).name
    suffix = layout.change_log_suffix
    if suffix and name.endswith(suffix) and len(name) > len(suffix):
        return name[: -len(suffix)]
    return name


def list_change_logs(log_dir: Path, layout: SessionLayout) -> list[Path]:
    directory = change_log_dir(log_dir, layout)
    if not directory.is_dir():
        return []
    return sorted(
        path
        for path in directory.iterdir()
        if path.is_file() and path.name.endswith(layout.change_log_suffix)
    )

"""Helpers to launch the local replay viewer."""

from __future__ import annotations

import logging
import socket
import threading
import time
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn

from .config import ReplaySettings
from .paths import resolve_log_dir
from .webapp import create_app

DEFAULT_PORT = 3001
PORT_SEARCH_RANGE = 10

logger = logging.getLogger(__name__)


def is_port_available(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def find_available_port(
    host: str = "127.0.0.1",
    start_port: int = DEFAULT_PORT,
    search_range: int = PORT_SEARCH_RANGE,
) -> int:
    """Return the first free port in ``start_port..start_port + search_range``."""
    for port in range(start_port, start_port + search_range + 1):
        if is_port_available(host, port):
            return port
    raise RuntimeError(
        f"No available ports found in range {start_port}-{start_port + search_range}"
    )


def run_dashboard(
    *,
    log_dir: Optional[Path] = None,
    host: str = "127.0.0.1",
    port: Optional[int] = None,
    settings: Optional[ReplaySettings] = None,
    open_browser: bool = True,
    log_level: str = "info",
) -> None:
    """Start the FastAPI viewer and optional browser tab."""
    resolved_log_dir = resolve_log_dir(log_dir)
    if not resolved_log_dir.is_dir():
        raise FileNotFoundError(f"Log directory does not exist: {resolved_log_dir}")

    app = create_app(log_dir=resolved_log_dir, settings=settings or ReplaySettings())

    if port is None:
        port = find_available_port(host)
        if port != DEFAULT_PORT:
            logger.info("Port %d is in use, using port %d instead", DEFAULT_PORT, port)

    if open_browser:
        url = f"http://{host}:{port}"
        threading.Thread(
            target=_launch_browser_after_delay, args=(url,), daemon=True
        ).start()

    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    uvicorn.run(app, host=host, port=port, log_level=log_level)


def _launch_browser_after_delay(url: str, delay: float = 1.0) -> None:
    # Give uvicorn time to bind before the browser requests the page.
    time.sleep(delay)
    try:
        webbrowser.open(url)
    except Exception:
        logger.exception("Could not open a browser at %s", url)

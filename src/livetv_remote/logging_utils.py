"""Logging helpers for :mod:`livetv_remote`."""

from __future__ import annotations

import logging
import os
import threading
from collections import deque
from pathlib import Path
from typing import Any, Callable, Optional, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - only for typing
    from .log_viewer import LogViewer

__all__ = [
    "configure_logging",
    "get_logger",
    "register_log_viewer",
]

LOGGER_NAME = "livetv_remote"
_ENV_LEVEL = "LIVETV_REMOTE_LOG_LEVEL"
_ENV_FILE = "LIVETV_REMOTE_LOG_FILE"
_DEFAULT_LOG_PATH = Path.home() / ".cache" / "livetv_remote.log"
_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _coerce_level(value: str) -> int:
    """Return a logging level derived from *value*."""

    normalized = value.strip().upper()
    if normalized.isdigit():
        level = int(normalized)
        if 0 <= level <= logging.CRITICAL:
            return level
    return getattr(logging, normalized, logging.INFO)


def _open_file_handler(
    logger: logging.Logger, destination: str, formatter: logging.Formatter
) -> Optional[logging.FileHandler]:
    log_path = Path(destination).expanduser()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path, encoding="utf8")
    except OSError:
        logger.warning("Failed to set up file logging at %s", log_path)
        return None
    handler.setFormatter(formatter)
    return handler


class _UILogHandler(logging.Handler):
    """Keeps recent records and forwards new ones to the log panel.

    The panel belongs to the Textual app, so records emitted from worker
    threads are handed over with ``App.call_from_thread``.
    """

    def __init__(self, *, capacity: int = 200) -> None:
        super().__init__()
        self._buffer: deque[str] = deque(maxlen=capacity)
        self._viewer: Optional["LogViewer"] = None
        self._app: Any = None
        self._app_thread: Optional[int] = None
        self._lock = threading.RLock()

    @property
    def messages(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._buffer)

    def set_viewer(self, viewer: Optional["LogViewer"]) -> None:
        with self._lock:
            self._viewer = viewer
            self._app = getattr(viewer, "app", None) if viewer is not None else None
            self._app_thread = threading.get_ident()
            messages = list(self._buffer)
        if viewer is not None:
            viewer.replace_messages(messages)

    def emit(self, record: logging.LogRecord) -> None:
        message = self.format(record)
        with self._lock:
            self._buffer.append(message)
            viewer, app, app_thread = self._viewer, self._app, self._app_thread
        if viewer is None:
            return
        try:
            self._dispatch(app, app_thread, viewer.append_message, message)
        except Exception:  # pragma: no cover - widget may be unmounting
            self.handleError(record)

    @staticmethod
    def _dispatch(
        app: Any, app_thread: Optional[int], callback: Callable[[str], None], message: str
    ) -> None:
        if app is None or threading.get_ident() == app_thread:
            callback(message)
        else:
            app.call_from_thread(callback, message)


class _LoggingState:
    """Handlers installed by :func:`configure_logging`."""

    def __init__(self) -> None:
        self.formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)
        self.stream_handler = logging.StreamHandler()
        self.stream_handler.setFormatter(self.formatter)
        self.ui_handler = _UILogHandler()
        self.ui_handler.setFormatter(self.formatter)
        self.file_handler: Optional[logging.FileHandler] = None
        self.destination: Optional[str] = None
        self.level = logging.INFO

    def swap_file_handler(self, logger: logging.Logger, destination: str) -> None:
        if destination == self.destination:
            return
        self.destination = destination
        if self.file_handler is not None:
            logger.removeHandler(self.file_handler)
            self.file_handler.close()
            self.file_handler = None
        if not destination:
            return
        handler = _open_file_handler(logger, destination, self.formatter)
        if handler is not None:
            logger.addHandler(handler)
            self.file_handler = handler
            logger.debug("File logging enabled at %s", handler.baseFilename)


def configure_logging(
    *,
    level: Optional[str] = None,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """Configure the package logger, installing handlers on first use.

    ``level`` and ``log_file`` override the ``LIVETV_REMOTE_LOG_LEVEL`` and
    ``LIVETV_REMOTE_LOG_FILE`` environment variables. An empty file
    destination disables file logging.
    """

    logger = logging.getLogger(LOGGER_NAME)
    state: Optional[_LoggingState] = getattr(configure_logging, "_state", None)
    requested_level = level if level is not None else os.getenv(_ENV_LEVEL)
    destination = log_file if log_file is not None else os.getenv(_ENV_FILE)

    if state is None:
        state = _LoggingState()
        configure_logging._state = state  # type: ignore[attr-defined]
        logger.propagate = False
        logger.addHandler(state.stream_handler)
        logger.addHandler(state.ui_handler)
        state.level = _coerce_level(requested_level or "INFO")
        state.swap_file_handler(
            logger, destination if destination is not None else str(_DEFAULT_LOG_PATH)
        )
    else:
        if requested_level is not None:
            state.level = _coerce_level(requested_level)
        if destination is not None:
            state.swap_file_handler(logger, destination)

    logger.setLevel(state.level)
    for handler in list(logger.handlers):
        handler.setLevel(state.level)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module-specific logger."""

    base = configure_logging()
    if not name or name == base.name:
        return base
    if name.startswith(base.name + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{base.name}.{name}")


def register_log_viewer(viewer: Optional["LogViewer"]) -> None:
    """Attach *viewer* to the in-app log handler; ``None`` detaches it."""

    configure_logging()
    state: _LoggingState = configure_logging._state  # type: ignore[attr-defined]
    state.ui_handler.set_viewer(viewer)

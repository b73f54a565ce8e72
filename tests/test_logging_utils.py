"""Tests for :mod:`livetv_remote.logging_utils`."""

from __future__ import annotations

import importlib
import logging
import threading
from pathlib import Path
from typing import Any

import pytest


@pytest.fixture
def fresh_logging(monkeypatch: pytest.MonkeyPatch):
    """Reload the logging helpers with no handlers attached."""

    monkeypatch.setenv("LIVETV_REMOTE_LOG_FILE", "")
    monkeypatch.delenv("LIVETV_REMOTE_LOG_LEVEL", raising=False)
    from livetv_remote import logging_utils

    module = importlib.reload(logging_utils)
    logger = logging.getLogger(module.LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    yield module
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


class RecordingViewer:
    def __init__(self, app: Any = None) -> None:
        self.app = app
        self.lines: list[str] = []

    def replace_messages(self, messages) -> None:
        self.lines = list(messages)

    def append_message(self, message: str) -> None:
        self.lines.append(message)


class ThreadHandoffApp:
    """Stands in for ``App.call_from_thread`` and records each hand-off."""

    def __init__(self) -> None:
        self.handoffs: list[str] = []

    def call_from_thread(self, callback, *args) -> None:
        self.handoffs.append(args[0])
        callback(*args)


def test_configure_logging_updates_level(fresh_logging: Any) -> None:
    logger = fresh_logging.configure_logging(level="INFO")
    assert logger.getEffectiveLevel() == logging.INFO

    fresh_logging.configure_logging(level="DEBUG")
    assert logger.getEffectiveLevel() == logging.DEBUG
    assert all(handler.level == logging.DEBUG for handler in logger.handlers)

    fresh_logging.configure_logging()
    assert logger.level == logging.DEBUG


def test_numeric_and_unknown_levels(fresh_logging: Any) -> None:
    logger = fresh_logging.configure_logging(level="30")
    assert logger.level == logging.WARNING
    fresh_logging.configure_logging(level="chatty")
    assert logger.level == logging.INFO


def test_configure_logging_changes_file_destination(fresh_logging: Any, tmp_path: Path) -> None:
    logger = fresh_logging.configure_logging(level="INFO")
    assert not any(isinstance(h, logging.FileHandler) for h in logger.handlers)

    first = tmp_path / "first.log"
    second = tmp_path / "nested" / "second.log"
    fresh_logging.configure_logging(log_file=str(first))
    fresh_logging.configure_logging(log_file=str(second))

    file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
    assert [Path(h.baseFilename) for h in file_handlers] == [second]
    assert first.exists() and second.exists()

    fresh_logging.configure_logging(log_file="")
    assert not any(isinstance(h, logging.FileHandler) for h in logger.handlers)


def test_get_logger_namespaces_under_package(fresh_logging: Any) -> None:
    assert fresh_logging.get_logger("catalog").name == "livetv_remote.catalog"
    assert fresh_logging.get_logger("livetv_remote.session").name == "livetv_remote.session"
    assert fresh_logging.get_logger().name == "livetv_remote"


def test_ui_handler_buffers_and_relays_messages(fresh_logging: Any) -> None:
    logger = fresh_logging.configure_logging(level="INFO")
    logger.info("before viewer")

    viewer = RecordingViewer()
    fresh_logging.register_log_viewer(viewer)
    assert any("before viewer" in line for line in viewer.lines)

    fresh_logging.get_logger("tests").warning("after viewer")
    assert "after viewer" in viewer.lines[-1]
    fresh_logging.register_log_viewer(None)


def test_ui_handler_hands_worker_records_to_app_thread(fresh_logging: Any) -> None:
    fresh_logging.configure_logging(level="INFO")
    app = ThreadHandoffApp()
    viewer = RecordingViewer(app)
    fresh_logging.register_log_viewer(viewer)
    log = fresh_logging.get_logger("worker")

    log.info("from app thread")
    worker = threading.Thread(target=log.info, args=("from worker thread",))
    worker.start()
    worker.join()

    assert len(app.handoffs) == 1
    assert "from worker thread" in app.handoffs[0]
    assert "from app thread" in viewer.lines[-2]
    assert "from worker thread" in viewer.lines[-1]
    fresh_logging.register_log_viewer(None)

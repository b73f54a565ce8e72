"""Textual widget displaying recent log output inside the remote."""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterable, Optional, Tuple

from textual.widgets import Static

from .logging_utils import register_log_viewer


class LogViewer(Static):
    """Rolling buffer of formatted log lines."""

    def __init__(
        self,
        *,
        max_lines: int = 200,
        id: Optional[str] = None,
    ) -> None:
        super().__init__("", id=id, markup=False)
        self._messages: Deque[str] = deque(maxlen=max_lines)

    def on_mount(self) -> None:
        register_log_viewer(self)

    def on_unmount(self) -> None:
        register_log_viewer(None)

    def get_messages(self) -> Tuple[str, ...]:
        return tuple(self._messages)

    def append_message(self, message: str) -> None:
        self._messages.append(message)
        self._refresh_view()

    def replace_messages(self, messages: Iterable[str]) -> None:
        """Replace the current buffer with ``messages`` and refresh display."""

        self._messages.clear()
        self._messages.extend(messages)
        self._refresh_view()

    def _refresh_view(self) -> None:
        self.update("\n".join(self._messages) if self._messages else "No log messages yet.")
        if self.is_mounted:
            self.call_after_refresh(self.scroll_end, animate=False)

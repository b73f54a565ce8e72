"""Playback session state machine driving a single media sink."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional, Protocol

from .catalog import ChannelCatalog
from .logging_utils import get_logger
from .playlist import ALL_CATEGORY, Channel

log = get_logger(__name__)

DEFAULT_VOLUME = 80
DEFAULT_AUTO_SKIP_DELAY = 1.5

Scheduler = Callable[[float, Callable[[], None]], object]
NoticeCallback = Callable[["Notice"], None]


class MediaSink(Protocol):
    """Rendering surface the session drives.

    Completion events are reported back through the session's ``on_*``
    methods carrying the request token they were issued with.
    """

    def load(self, url: str, *, token: int) -> None:
        ...

    def play(self, *, token: int) -> None:
        ...

    def stop(self) -> None:
        ...

    def set_volume(self, volume: int) -> None:
        ...

    def set_muted(self, muted: bool) -> None:
        ...

    def set_fullscreen(self, enabled: bool) -> None:
        ...


@dataclass(slots=True)
class RecoveryPolicy:
    """How the session reacts to failed loads and power cycles."""

    auto_skip: bool = True
    auto_skip_delay: float = DEFAULT_AUTO_SKIP_DELAY
    resume_on_power: bool = False


@dataclass(frozen=True, slots=True)
class Notice:
    """Short user-facing message, rendered as a toast by the UI."""

    message: str
    severity: str = "information"


@dataclass(frozen=True, slots=True)
class SessionState:
    """Immutable view of the session used for rendering."""

    powered: bool
    current_index: int
    channel: Optional[Channel]
    category_index: int
    category: str
    volume: int
    muted: bool
    fullscreen: bool
    loading: bool


class PlaybackSession:
    """Owns transient playback state and the transitions between states."""

    def __init__(
        self,
        catalog: ChannelCatalog,
        sink: MediaSink,
        *,
        policy: Optional[RecoveryPolicy] = None,
        notify: Optional[NoticeCallback] = None,
        schedule: Optional[Scheduler] = None,
        volume: int = DEFAULT_VOLUME,
    ) -> None:
        self._catalog = catalog
        self._sink = sink
        self.policy = policy or RecoveryPolicy()
        self._notify = notify
        # Without a scheduler, skips are queued and run one after another
        # once the outermost error handler has finished.
        self._schedule: Scheduler = schedule or self._defer
        self._deferred: Deque[Callable[[], None]] = deque()
        self._draining = False
        self._powered = False
        self._current_index = -1
        self._selection_generation = catalog.generation
        self._category_index = 0
        self._volume = max(0, min(100, int(volume)))
        self._muted = False
        self._fullscreen = False
        self._loading = False
        self._token = 0

    # -- read-only state -------------------------------------------------

    @property
    def catalog(self) -> ChannelCatalog:
        return self._catalog

    @property
    def powered(self) -> bool:
        return self._powered

    @property
    def current_index(self) -> int:
        self._drop_stale_selection()
        return self._current_index

    @property
    def category_index(self) -> int:
        categories = self._catalog.categories
        if self._category_index >= len(categories):
            self._category_index = 0
        return self._category_index

    @property
    def current_category(self) -> str:
        categories = self._catalog.categories
        return categories[self.category_index] if categories else ALL_CATEGORY

    @property
    def volume(self) -> int:
        return self._volume

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def fullscreen(self) -> bool:
        return self._fullscreen

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def request_token(self) -> int:
        return self._token

    @property
    def current_channel(self) -> Optional[Channel]:
        index = self.current_index
        if index < 0:
            return None
        return self._catalog[index]

    def visible_channels(self) -> List[Channel]:
        """Channels shown in the grid for the active category."""

        return self._catalog.filtered_by(self.current_category)

    def snapshot(self) -> SessionState:
        return SessionState(
            powered=self._powered,
            current_index=self.current_index,
            channel=self.current_channel,
            category_index=self.category_index,
            category=self.current_category,
            volume=self._volume,
            muted=self._muted,
            fullscreen=self._fullscreen,
            loading=self._loading,
        )

    # -- transitions -----------------------------------------------------

    def toggle_power(self) -> None:
        if self._powered:
            self._powered = False
            self._loading = False
            self._token += 1
            self._sink.stop()
            self._emit("Powering Off")
            log.info("Power off")
            return

        self._powered = True
        self._emit("System Starting...")
        log.info("Power on")
        if not len(self._catalog):
            return
        index = self.current_index
        if self.policy.resume_on_power and index >= 0:
            self.select_channel(index)
        else:
            self.select_channel(0)

    def select_channel(self, index: int) -> bool:
        """Tune to catalog *index*; returns False when it is out of range."""

        if index < 0 or index >= len(self._catalog):
            log.debug("Ignoring selection of out-of-range index %d", index)
            return False
        if not self._powered:
            self._powered = True
            log.info("Power on for channel selection")
        channel = self._catalog[index]
        self._current_index = index
        self._selection_generation = self._catalog.generation
        self._loading = True
        self._token += 1
        token = self._token
        log.info("Tuning to %s (%s) with request %d", channel.name, channel.url, token)
        self._sink.load(channel.url, token=token)
        self._sink.play(token=token)
        return True

    def select_by_query(self, query: str) -> bool:
        index = self._catalog.find(query)
        if index < 0:
            self._emit("Not Found", severity="warning")
            return False
        return self.select_channel(index)

    def change_channel(self, direction: int) -> None:
        """Step through the full catalog, wrapping at both ends."""

        total = len(self._catalog)
        if total == 0:
            return
        step = 1 if direction > 0 else -1
        self.select_channel((self.current_index + step + total) % total)

    def cycle_category(self, direction: int) -> str:
        categories = self._catalog.categories
        step = 1 if direction > 0 else -1
        self._category_index = (self.category_index + step) % len(categories)
        label = categories[self._category_index]
        log.debug("Category cursor moved to %s", label)
        return label

    def adjust_volume(self, delta: int) -> int:
        self._volume = max(0, min(100, self._volume + int(delta)))
        self._muted = False
        self._sink.set_muted(False)
        self._sink.set_volume(self._volume)
        self._emit(f"Volume {self._volume}%")
        return self._volume

    def set_muted(self, muted: bool) -> None:
        self._muted = bool(muted)
        self._sink.set_muted(self._muted)

    def toggle_mute(self) -> bool:
        self.set_muted(not self._muted)
        return self._muted

    def toggle_fullscreen(self) -> bool:
        self._fullscreen = not self._fullscreen
        self._sink.set_fullscreen(self._fullscreen)
        return self._fullscreen

    # -- sink events -----------------------------------------------------

    def on_loading(self, token: int) -> None:
        if self._is_current(token):
            self._loading = True

    def on_ready(self, token: int) -> None:
        if not self._is_current(token):
            log.debug("Ignoring stale ready event for request %d", token)
            return
        self._loading = False
        channel = self.current_channel
        if channel is not None:
            log.info("Playing %s", channel.name)

    def on_ended(self, token: int) -> None:
        if not self._is_current(token):
            return
        self._loading = False
        log.info("Stream ended for request %d", token)

    def on_error(self, token: int) -> None:
        if not self._is_current(token):
            log.debug("Ignoring stale error event for request %d", token)
            return
        self._loading = False
        channel = self.current_channel
        if channel is None:
            return
        self._catalog.mark_dead(channel.id)
        log.warning("Channel %s failed to load", channel.name)
        self._emit("Channel Load Error", severity="error")
        if not self.policy.auto_skip:
            return
        if len(self._catalog.dead_ids) >= len(self._catalog):
            log.warning("Every channel has failed; auto-skip stopped")
            self._emit("No working channels", severity="error")
            return

        def skip() -> None:
            if self._token == token and self._powered:
                self.change_channel(+1)
            else:
                log.debug("Auto-skip for request %d superseded", token)

        self._schedule(self.policy.auto_skip_delay, skip)
        self._drain_deferred()

    # -- helpers ---------------------------------------------------------

    def _defer(self, _delay: float, callback: Callable[[], None]) -> None:
        self._deferred.append(callback)

    def _drain_deferred(self) -> None:
        if self._draining:
            return
        self._draining = True
        try:
            while self._deferred:
                self._deferred.popleft()()
        finally:
            self._draining = False

    def _is_current(self, token: int) -> bool:
        return self._powered and token == self._token

    def _drop_stale_selection(self) -> None:
        if self._current_index >= 0 and self._selection_generation != self._catalog.generation:
            log.debug("Catalog replaced; clearing stale selection %d", self._current_index)
            self._current_index = -1
            self._loading = False

    def _emit(self, message: str, *, severity: str = "information") -> None:
        if self._notify is not None:
            self._notify(Notice(message, severity))


__all__ = [
    "DEFAULT_AUTO_SKIP_DELAY",
    "DEFAULT_VOLUME",
    "MediaSink",
    "Notice",
    "PlaybackSession",
    "RecoveryPolicy",
    "SessionState",
]

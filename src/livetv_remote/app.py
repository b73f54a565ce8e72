"""Textual application acting as the on-screen remote."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional, Sequence

try:
    from textual import on
    from textual.app import App, ComposeResult
    from textual.binding import Binding
    from textual.containers import Horizontal, Vertical
    from textual.reactive import reactive
    from textual.screen import ModalScreen
    from textual.widgets import Footer, Header, Input, Label, ListItem, ListView, Static
except ModuleNotFoundError as exc:  # pragma: no cover - dependency guard
    raise ModuleNotFoundError(
        "The 'textual' package is required to run livetv_remote. "
        "Install dependencies with 'pip install -e .[dev]'."
    ) from exc

from rich.markup import escape

from .catalog import QUICK_VIEW_LIMIT, CatalogSource, ChannelCatalog, load_catalog
from .config import CONFIG_PATH, AppConfig
from .log_viewer import LogViewer
from .logging_utils import get_logger
from .player import ExternalPlayerSink
from .playlist import Channel, fetch_playlist_text
from .session import Notice, PlaybackSession, SessionState
from .storage import PersistenceGateway

log = get_logger(__name__)

NOTICE_TIMEOUT = 2.5


class ChannelListItem(ListItem):
    """One tile of the channel grid."""

    def __init__(self, channel: Channel, number: int) -> None:
        self.channel = channel
        self.number = number
        super().__init__(
            Label(f"{number:>3}  {escape(channel.name)}  [dim]{escape(channel.category_label)}[/]")
        )


class StatusBar(Static):
    """Now-playing line under the grid."""

    status: reactive[str] = reactive("Power is off")

    def watch_status(self, status: str) -> None:
        self.update(status)


class ChannelSearchScreen(ModalScreen[Optional[str]]):
    """Prompt for a channel number or part of its name."""

    BINDINGS = [Binding("escape", "cancel", "Close")]

    def __init__(self, quick_view: Sequence[tuple[int, Channel]]) -> None:
        super().__init__()
        self._quick_view = list(quick_view)

    def compose(self) -> ComposeResult:
        shortcuts = "  ".join(
            f"{index + 1}:{escape(channel.name)}" for index, channel in self._quick_view
        )
        with Vertical(id="search-dialog"):
            yield Label("Channel search", id="search-title")
            yield Input(placeholder="Name or number…", id="search-input")
            yield Static(shortcuts or "No channels loaded", id="search-quick-view")

    @on(Input.Submitted, "#search-input")
    def _on_submit(self, event: Input.Submitted) -> None:
        self.dismiss(event.value)

    def action_cancel(self) -> None:
        self.dismiss(None)


class _SessionEvents:
    """Forward sink events to the session and refresh the remote afterwards."""

    def __init__(self, session: PlaybackSession, refresh: Callable[[], None]) -> None:
        self._session = session
        self._refresh = refresh

    def on_loading(self, token: int) -> None:
        self._session.on_loading(token)
        self._refresh()

    def on_ready(self, token: int) -> None:
        self._session.on_ready(token)
        self._refresh()

    def on_ended(self, token: int) -> None:
        self._session.on_ended(token)
        self._refresh()

    def on_error(self, token: int) -> None:
        self._session.on_error(token)
        self._refresh()


_INLINE_DEFAULT_CSS = """
#remote {
    layout: vertical;
    height: 1fr;
    padding: 0 1;
}

#category-title {
    text-style: bold;
    padding: 0 1;
}

#channel-grid {
    height: 2fr;
}

#log-viewer {
    height: 1fr;
    border: heavy $surface;
}

#status {
    padding: 0 1;
}

ChannelSearchScreen {
    align: center middle;
}

#search-dialog {
    width: 60;
    height: auto;
    border: heavy $accent;
    padding: 1 2;
    background: $panel;
}
"""


class RemoteApp(App[None]):
    """Channel grid plus remote-control key bindings."""

    CSS = _INLINE_DEFAULT_CSS
    TITLE = "Live TV"
    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("p", "power", "Power"),
        Binding("plus", "channel(1)", "Ch +"),
        Binding("minus", "channel(-1)", "Ch -"),
        Binding("right_square_bracket", "volume(10)", "Vol +"),
        Binding("left_square_bracket", "volume(-10)", "Vol -"),
        Binding("m", "mute", "Mute"),
        Binding("right", "category(1)", "Next group"),
        Binding("left", "category(-1)", "Prev group"),
        Binding("f", "fullscreen", "Fullscreen"),
        Binding("slash", "search", "Search"),
    ]

    def __init__(
        self,
        config: AppConfig,
        *,
        storage: PersistenceGateway,
        config_path: Optional[Path] = None,
        sink: Optional[Any] = None,
        playlist_text: Optional[str] = None,
    ) -> None:
        super().__init__()
        self._config = config
        self._config_path = config_path or CONFIG_PATH
        self._storage = storage
        self._playlist_text = playlist_text
        self.catalog = ChannelCatalog()
        self.sink = sink if sink is not None else ExternalPlayerSink(
            preferred=config.player, volume=config.volume
        )
        self.session = PlaybackSession(
            self.catalog,
            self.sink,
            policy=config.recovery_policy(),
            notify=self._show_notice,
            schedule=self._schedule,
            volume=config.volume,
        )
        self.sink.attach(_SessionEvents(self.session, self._refresh_view))
        self.catalog_source: Optional[CatalogSource] = None
        self._rendered_ids: tuple[str, ...] = ()
        log.info("RemoteApp initialized; config path=%s", self._config_path)

    def compose(self) -> ComposeResult:
        yield Header()
        with Vertical(id="remote"):
            yield Label("", id="category-title")
            yield ListView(id="channel-grid")
            with Horizontal(id="status-row"):
                yield StatusBar(id="status")
            yield LogViewer(id="log-viewer")
        yield Footer()

    def on_mount(self) -> None:
        log.debug("Application mounted")
        if self._playlist_text is not None:
            self.apply_playlist(self._playlist_text)
        else:
            self.run_worker(self._fetch_playlist, thread=True, name="playlist")
        self._refresh_view()

    def _fetch_playlist(self) -> None:
        text = fetch_playlist_text(self._config.playlists, user_agent=self._config.user_agent)
        self.call_from_thread(self.apply_playlist, text)

    def apply_playlist(self, text: Optional[str]) -> None:
        self.catalog_source = load_catalog(self.catalog, self._storage, text)
        log.info(
            "Catalog loaded from %s with %d channel(s)",
            self.catalog_source.value,
            len(self.catalog),
        )
        self._refresh_view()

    # -- session plumbing -----------------------------------------------

    def _show_notice(self, notice: Notice) -> None:
        self.notify(notice.message, severity=notice.severity, timeout=NOTICE_TIMEOUT)  # type: ignore[arg-type]

    def _schedule(self, delay: float, callback: Callable[[], None]) -> None:
        def fire() -> None:
            callback()
            self._refresh_view()

        self.set_timer(delay, fire)

    def _refresh_view(self) -> None:
        state = self.session.snapshot()
        try:
            title = self.query_one("#category-title", Label)
            grid = self.query_one("#channel-grid", ListView)
            status = self.query_one(StatusBar)
        except Exception:  # pragma: no cover - widgets not mounted yet
            return
        categories = self.catalog.categories
        title.update(
            f"◀ {escape(state.category)} ▶  ({state.category_index + 1}/{len(categories)})"
        )
        visible = self.session.visible_channels()
        ids = tuple(channel.id for channel in visible)
        if ids != self._rendered_ids:
            self._rendered_ids = ids
            grid.clear()
            for channel in visible:
                grid.append(ChannelListItem(channel, self.catalog.index_of(channel.id) + 1))
        status.status = self._format_status(state)

    @staticmethod
    def _format_status(state: SessionState) -> str:
        if not state.powered:
            return "Power is off"
        if state.channel is None:
            return "No channel selected"
        parts = [f"CH {state.current_index + 1}", state.channel.name]
        if state.loading:
            parts.append("loading…")
        parts.append("muted" if state.muted else f"vol {state.volume}%")
        if state.fullscreen:
            parts.append("fullscreen")
        return " • ".join(parts)

    # -- remote actions --------------------------------------------------

    def action_power(self) -> None:
        self.session.toggle_power()
        self._refresh_view()

    def action_channel(self, direction: int) -> None:
        self.session.change_channel(direction)
        self._refresh_view()

    def action_volume(self, delta: int) -> None:
        self.session.adjust_volume(delta)
        self._refresh_view()

    def action_mute(self) -> None:
        self.session.toggle_mute()
        self._refresh_view()

    def action_category(self, direction: int) -> None:
        self.session.cycle_category(direction)
        self._refresh_view()

    def action_fullscreen(self) -> None:
        self.session.toggle_fullscreen()
        self._refresh_view()

    def action_search(self) -> None:
        self.push_screen(
            ChannelSearchScreen(self.catalog.quick_view(QUICK_VIEW_LIMIT)),
            self._on_search_result,
        )

    def _on_search_result(self, query: Optional[str]) -> None:
        if query:
            self.session.select_by_query(query)
        self._refresh_view()

    @on(ListView.Selected, "#channel-grid")
    def _on_channel_selected(self, event: ListView.Selected) -> None:
        item = event.item
        if isinstance(item, ChannelListItem):
            self.session.select_channel(item.number - 1)
            self._refresh_view()

    def on_unmount(self) -> None:
        if self.session.powered:
            self.sink.stop()


__all__ = ["ChannelListItem", "ChannelSearchScreen", "RemoteApp", "StatusBar"]

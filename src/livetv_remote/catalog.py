"""Channel catalog with playback health tracking."""
from __future__ import annotations

from enum import Enum
from typing import Iterable, Iterator, List, Optional, Sequence

from .logging_utils import get_logger
from .playlist import (
    ALL_CATEGORY,
    DEMO_CHANNELS,
    Channel,
    IdFactory,
    derive_categories,
    parse_playlist,
)
from .storage import PersistenceGateway, load_catalog_snapshot, save_catalog_snapshot

log = get_logger(__name__)

QUICK_VIEW_LIMIT = 18


class CatalogSource(str, Enum):
    """Where the active catalog came from."""

    PLAYLIST = "playlist"
    SNAPSHOT = "snapshot"
    DEMO = "demo"


class ChannelCatalog:
    """Owns the channel list of one generation and its dead-channel set."""

    def __init__(self, channels: Iterable[Channel] = ()) -> None:
        self._channels: tuple[Channel, ...] = ()
        self._categories: List[str] = [ALL_CATEGORY]
        self._dead: set[str] = set()
        self._generation = 0
        initial = tuple(channels)
        if initial:
            self.replace(initial)

    def __len__(self) -> int:
        return len(self._channels)

    def __getitem__(self, index: int) -> Channel:
        return self._channels[index]

    def __iter__(self) -> Iterator[Channel]:
        return iter(self._channels)

    @property
    def channels(self) -> tuple[Channel, ...]:
        return self._channels

    @property
    def categories(self) -> List[str]:
        return list(self._categories)

    @property
    def dead_ids(self) -> frozenset[str]:
        return frozenset(self._dead)

    @property
    def generation(self) -> int:
        return self._generation

    def replace(self, channels: Iterable[Channel]) -> None:
        """Swap in a new catalog generation."""

        self._channels = tuple(channels)
        self._dead = set()
        self._categories = derive_categories(self._channels)
        self._generation += 1
        log.info(
            "Catalog generation %d: %d channel(s) in %d categories",
            self._generation,
            len(self._channels),
            len(self._categories) - 1,
        )

    def mark_dead(self, channel_id: str) -> bool:
        """Flag *channel_id* as failed; returns True when it was newly added."""

        if channel_id in self._dead:
            return False
        self._dead.add(channel_id)
        log.info("Marked channel %s as dead", channel_id)
        return True

    def is_dead(self, channel_id: str) -> bool:
        return channel_id in self._dead

    def filtered_by(self, label: str) -> List[Channel]:
        """Return live channels in *label*, or every live channel for ``All``."""

        return [
            channel
            for channel in self._channels
            if (label == ALL_CATEGORY or channel.category_label == label)
            and channel.id not in self._dead
        ]

    def index_of(self, channel_id: str) -> int:
        for index, channel in enumerate(self._channels):
            if channel.id == channel_id:
                return index
        return -1

    def find(self, query: str) -> int:
        """Resolve a channel number or name fragment to a catalog index.

        Numbers are 1-based. Returns -1 when nothing matches.
        """

        needle = query.strip()
        if not needle:
            return -1
        if needle.isdigit():
            number = int(needle)
            if 0 < number <= len(self._channels):
                return number - 1
        lowered = needle.lower()
        for index, channel in enumerate(self._channels):
            if lowered in channel.name.lower():
                return index
        return -1

    def quick_view(self, limit: int = QUICK_VIEW_LIMIT) -> List[tuple[int, Channel]]:
        return list(enumerate(self._channels[: max(limit, 0)]))


def load_catalog(
    catalog: ChannelCatalog,
    storage: PersistenceGateway,
    text: Optional[str],
    *,
    id_factory: Optional[IdFactory] = None,
) -> CatalogSource:
    """Fill *catalog* from playlist *text*, the stored snapshot, or the demo list."""

    channels = parse_playlist(text, id_factory=id_factory)
    if channels:
        catalog.replace(channels)
        save_catalog_snapshot(storage, channels)
        return CatalogSource.PLAYLIST

    log.warning("Playlist yielded no channels; trying stored snapshot")
    stored = load_catalog_snapshot(storage)
    if stored:
        catalog.replace(stored)
        return CatalogSource.SNAPSHOT

    log.warning("No stored catalog available; using demo channels")
    catalog.replace(DEMO_CHANNELS)
    return CatalogSource.DEMO


def import_playlist(
    catalog: ChannelCatalog,
    storage: PersistenceGateway,
    text: Optional[str],
    *,
    id_factory: Optional[IdFactory] = None,
) -> int:
    """Replace *catalog* with the channels in *text* when there are any."""

    channels: Sequence[Channel] = parse_playlist(text, id_factory=id_factory)
    if not channels:
        log.warning("Imported playlist contained no channels; catalog unchanged")
        return 0
    catalog.replace(channels)
    save_catalog_snapshot(storage, channels)
    return len(channels)


__all__ = [
    "QUICK_VIEW_LIMIT",
    "CatalogSource",
    "ChannelCatalog",
    "import_playlist",
    "load_catalog",
]

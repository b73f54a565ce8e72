from __future__ import annotations

import json

from livetv_remote.catalog import (
    CatalogSource,
    ChannelCatalog,
    import_playlist,
    load_catalog,
)
from livetv_remote.playlist import DEMO_CHANNELS, Channel, sequential_id_factory
from livetv_remote.storage import CATALOG_KEY, MemoryStorage


SAMPLE_PLAYLIST = """#EXTM3U
#EXTINF:-1 group-title="News",News One
http://example.com/news1
#EXTINF:-1 group-title="Sports",Sports One
http://example.com/sports1
#EXTINF:-1 group-title="News",News Two
http://example.com/news2
#EXTINF:-1,Plain
http://example.com/plain
"""


def _catalog() -> ChannelCatalog:
    catalog = ChannelCatalog()
    load_catalog(catalog, MemoryStorage(), SAMPLE_PLAYLIST, id_factory=sequential_id_factory())
    return catalog


def test_replace_recomputes_categories_and_bumps_generation() -> None:
    catalog = _catalog()
    assert catalog.categories == ["All", "News", "Sports", "General"]
    generation = catalog.generation

    catalog.replace([Channel(id="x", name="Kids", url="http://k", category="Kids")])

    assert catalog.categories == ["All", "Kids"]
    assert catalog.generation == generation + 1
    assert len(catalog) == 1


def test_filtered_by_respects_category_and_all() -> None:
    catalog = _catalog()
    assert [c.name for c in catalog.filtered_by("All")] == [
        "News One",
        "Sports One",
        "News Two",
        "Plain",
    ]
    assert [c.name for c in catalog.filtered_by("News")] == ["News One", "News Two"]
    assert [c.name for c in catalog.filtered_by("General")] == ["Plain"]
    assert catalog.filtered_by("Missing") == []


def test_mark_dead_is_idempotent_and_hides_channel_everywhere() -> None:
    catalog = _catalog()
    news_one = catalog[0]

    assert catalog.mark_dead(news_one.id) is True
    assert catalog.mark_dead(news_one.id) is False
    assert catalog.is_dead(news_one.id)

    for label in catalog.categories:
        assert news_one not in catalog.filtered_by(label)
    assert [c.name for c in catalog.filtered_by("News")] == ["News Two"]
    assert len(catalog) == 4


def test_replace_clears_dead_set() -> None:
    catalog = _catalog()
    catalog.mark_dead(catalog[1].id)
    catalog.replace(list(catalog.channels))
    assert catalog.dead_ids == frozenset()
    assert len(catalog.filtered_by("All")) == 4


def test_find_by_number_or_name() -> None:
    catalog = _catalog()
    assert catalog.find("2") == 1
    assert catalog.find(" 4 ") == 3
    assert catalog.find("news two") == 2
    assert catalog.find("SPORTS") == 1
    assert catalog.find("9") == -1
    assert catalog.find("0") == -1
    assert catalog.find("") == -1
    assert catalog.find("weather") == -1


def test_quick_view_limits_entries() -> None:
    catalog = _catalog()
    view = catalog.quick_view(2)
    assert [(index, channel.name) for index, channel in view] == [
        (0, "News One"),
        (1, "Sports One"),
    ]
    assert len(catalog.quick_view()) == 4


def test_index_of() -> None:
    catalog = _catalog()
    assert catalog.index_of(catalog[2].id) == 2
    assert catalog.index_of("unknown") == -1


def test_load_catalog_persists_parsed_playlist() -> None:
    storage = MemoryStorage()
    catalog = ChannelCatalog()

    source = load_catalog(catalog, storage, SAMPLE_PLAYLIST)

    assert source is CatalogSource.PLAYLIST
    stored = json.loads(storage.get(CATALOG_KEY) or "[]")
    assert [record["name"] for record in stored] == [c.name for c in catalog]
    assert [record["id"] for record in stored] == [c.id for c in catalog]


def test_load_catalog_falls_back_to_snapshot() -> None:
    storage = MemoryStorage()
    load_catalog(ChannelCatalog(), storage, SAMPLE_PLAYLIST)
    catalog = ChannelCatalog()

    source = load_catalog(catalog, storage, "")

    assert source is CatalogSource.SNAPSHOT
    assert [c.name for c in catalog] == ["News One", "Sports One", "News Two", "Plain"]


def test_load_catalog_falls_back_to_demo_without_snapshot() -> None:
    catalog = ChannelCatalog()

    source = load_catalog(catalog, MemoryStorage(), None)

    assert source is CatalogSource.DEMO
    assert len(catalog) == 2
    assert catalog.channels == DEMO_CHANNELS
    assert catalog.categories == ["All", "News", "Sports"]


def test_load_catalog_ignores_corrupt_snapshot() -> None:
    storage = MemoryStorage({CATALOG_KEY: "{not json"})
    catalog = ChannelCatalog()
    assert load_catalog(catalog, storage, "#EXTM3U\n") is CatalogSource.DEMO
    assert len(catalog) == 2


def test_import_playlist_leaves_catalog_when_empty() -> None:
    storage = MemoryStorage()
    catalog = _catalog()
    before = catalog.channels

    assert import_playlist(catalog, storage, "#EXTM3U\n") == 0
    assert catalog.channels == before
    assert storage.get(CATALOG_KEY) is None

    assert import_playlist(catalog, storage, "#EXTINF:-1,Solo\nhttp://solo\n") == 1
    assert [c.name for c in catalog] == ["Solo"]
    assert storage.get(CATALOG_KEY) is not None

"""Key-value persistence used for catalog snapshots and overlay settings."""
from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence

from .logging_utils import get_logger
from .playlist import Channel

log = get_logger(__name__)

STORAGE_PATH = Path.home() / ".cache" / "livetv_remote" / "storage.sqlite"

CATALOG_KEY = "livetv_catalog"
OVERLAY_KEY = "livetv_overlay"


class PersistenceGateway(Protocol):
    """Opaque key to string store."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryStorage:
    """In-process gateway, mostly useful for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value


def _resolve_storage_path(path: Optional[Path]) -> Path:
    if path is None:
        path = STORAGE_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _ensure_schema(connection: sqlite3.Connection) -> None:
    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS kv (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        ) WITHOUT ROWID
        """
    )


class SqliteStorage:
    """Gateway backed by a single-table sqlite database."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = _resolve_storage_path(path)

    def get(self, key: str) -> Optional[str]:
        connection = sqlite3.connect(self.path)
        try:
            _ensure_schema(connection)
            row = connection.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None
        finally:
            connection.close()

    def set(self, key: str, value: str) -> None:
        connection = sqlite3.connect(self.path)
        try:
            _ensure_schema(connection)
            with connection:
                connection.execute(
                    "INSERT OR REPLACE INTO kv(key, value) VALUES (?, ?)",
                    (key, value),
                )
        finally:
            connection.close()
        log.debug("Stored %d characters under %s", len(value), key)


def save_catalog_snapshot(storage: PersistenceGateway, channels: Sequence[Channel]) -> None:
    """Persist *channels* as a JSON array under :data:`CATALOG_KEY`."""

    payload = json.dumps([channel.as_dict() for channel in channels], ensure_ascii=False)
    storage.set(CATALOG_KEY, payload)
    log.info("Saved catalog snapshot with %d channel(s)", len(channels))


def load_catalog_snapshot(storage: PersistenceGateway) -> List[Channel]:
    """Return the persisted catalog, or an empty list when absent or unreadable."""

    raw = storage.get(CATALOG_KEY)
    if not raw:
        return []
    try:
        records = json.loads(raw)
    except json.JSONDecodeError:
        log.warning("Ignoring unreadable catalog snapshot")
        return []
    if not isinstance(records, list):
        log.warning("Ignoring catalog snapshot with unexpected shape")
        return []
    channels: List[Channel] = []
    seen: set[str] = set()
    for record in records:
        if not isinstance(record, dict):
            continue
        channel = Channel.from_dict(record)
        if channel is None or channel.id in seen:
            continue
        seen.add(channel.id)
        channels.append(channel)
    log.debug("Loaded catalog snapshot with %d channel(s)", len(channels))
    return channels


__all__ = [
    "CATALOG_KEY",
    "OVERLAY_KEY",
    "STORAGE_PATH",
    "MemoryStorage",
    "PersistenceGateway",
    "SqliteStorage",
    "load_catalog_snapshot",
    "save_catalog_snapshot",
]

"""Command line entry point for the live TV remote."""
from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Iterable

from . import __version__
from .app import RemoteApp
from .catalog import ChannelCatalog, import_playlist, load_catalog
from .config import (
    CONFIG_PATH,
    AppConfig,
    load_config,
    load_overlay_settings,
    save_overlay_settings,
    update_overlay_settings,
)
from .logging_utils import configure_logging, get_logger
from .player import PlayerError, probe_player
from .playlist import fetch_playlist_text
from .storage import SqliteStorage

log = get_logger(__name__)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Live TV remote control player")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=CONFIG_PATH,
        help="Path to configuration file (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LIVETV_REMOTE_LOG_LEVEL for this invocation",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Write logs to this file instead of the default or LIVETV_REMOTE_LOG_FILE",
    )
    parser.add_argument(
        "--playlist",
        action="append",
        dest="playlists",
        default=None,
        metavar="SOURCE",
        help="Playlist path or URL to try (repeatable; overrides the configured list)",
    )
    parser.add_argument(
        "--player",
        default=None,
        help="Preferred media player executable (falls back to auto-detect)",
    )
    parser.add_argument(
        "--storage",
        type=Path,
        default=None,
        help="Path to the sqlite file holding the catalog snapshot and overlay settings",
    )
    parser.add_argument(
        "--import",
        dest="import_path",
        type=Path,
        default=None,
        metavar="PATH",
        help="Parse PATH into the stored catalog and exit",
    )
    parser.add_argument(
        "--list-channels",
        action="store_true",
        help="Print the numbered channel catalog and exit",
    )
    parser.add_argument(
        "--check-player",
        action="store_true",
        help="Verify that a supported media player can be started and exit",
    )
    parser.add_argument(
        "--overlay",
        action="store_true",
        help="Print the stored overlay settings as JSON and exit",
    )
    parser.add_argument(
        "--overlay-set",
        action="append",
        default=None,
        metavar="SECTION.FIELD=VALUE",
        help="Update an overlay setting, e.g. watermark.opacity=0.8 (repeatable)",
    )
    return parser.parse_args(argv)


def _resolve_config(args: argparse.Namespace) -> AppConfig:
    config = load_config(args.config)
    if args.playlists:
        config.playlists = list(args.playlists)
    if args.player:
        config.player = args.player
    if args.storage is not None:
        config.storage_path = str(args.storage)
    return config


def _open_storage(config: AppConfig) -> SqliteStorage:
    path = Path(config.storage_path).expanduser() if config.storage_path else None
    return SqliteStorage(path)


def _import(storage: SqliteStorage, path: Path) -> int:
    try:
        text = path.read_text(encoding="utf8", errors="replace")
    except OSError as exc:
        print(f"Cannot read {path}: {exc}")
        return 1
    count = import_playlist(ChannelCatalog(), storage, text)
    if count == 0:
        print(f"No channels found in {path}; stored catalog unchanged.")
        return 1
    print(f"Imported {count} channel(s) from {path}.")
    return 0


def _list_channels(config: AppConfig, storage: SqliteStorage) -> None:
    catalog = ChannelCatalog()
    text = fetch_playlist_text(config.playlists, user_agent=config.user_agent)
    source = load_catalog(catalog, storage, text)
    print(f"Catalog source: {source.value}")
    for number, channel in enumerate(catalog, start=1):
        print(f"{number:>4}  {channel.name}  [{channel.category_label}]  {channel.url}")


def _check_player(config: AppConfig) -> int:
    try:
        summary = probe_player(config.player)
    except PlayerError as exc:
        log.error("Player check failed: %s", exc)
        print(f"Player check failed: {exc}")
        return 1
    print(f"Player available: {summary}")
    return 0


def _overlay(storage: SqliteStorage, assignments: list[str] | None) -> int:
    settings = load_overlay_settings(storage)
    if assignments:
        try:
            for assignment in assignments:
                settings = update_overlay_settings(settings, assignment)
        except ValueError as exc:
            print(str(exc))
            return 1
        save_overlay_settings(storage, settings)
    print(json.dumps(settings.as_dict(), indent=2, ensure_ascii=False))
    return 0


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    configure_logging(
        level=args.log_level,
        log_file=str(args.log_file) if args.log_file is not None else None,
    )
    log.info("CLI invoked with config=%s", args.config)
    config = _resolve_config(args)
    storage = _open_storage(config)

    if args.import_path is not None:
        status = _import(storage, args.import_path)
        if status:
            raise SystemExit(status)
        return
    if args.overlay or args.overlay_set:
        status = _overlay(storage, args.overlay_set)
        if status:
            raise SystemExit(status)
        return
    if args.check_player:
        status = _check_player(config)
        if status:
            raise SystemExit(status)
        return
    if args.list_channels:
        _list_channels(config, storage)
        return

    app = RemoteApp(config, storage=storage, config_path=args.config)
    log.info("Launching Textual application")
    try:
        app.run()
    except KeyboardInterrupt:
        log.info("Keyboard interrupt received; exiting application")
        if app.is_running:
            app.exit()
        raise SystemExit(130) from None


if __name__ == "__main__":  # pragma: no cover
    main()

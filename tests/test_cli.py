"""Tests for the command line interface helpers."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from livetv_remote import cli
from livetv_remote.storage import CATALOG_KEY, SqliteStorage


PLAYLIST = """#EXTM3U
#EXTINF:-1 group-title="News",News One
http://example.com/news1
#EXTINF:-1,Plain
http://example.com/plain
"""


@pytest.fixture
def isolated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("LIVETV_REMOTE_LOG_FILE", "")

    def _unexpected_app(*args, **kwargs):  # pragma: no cover - only used when failing
        raise AssertionError("RemoteApp should not be constructed")

    monkeypatch.setattr(cli, "RemoteApp", _unexpected_app)
    return tmp_path


def test_import_then_list_channels(isolated: Path, capsys: pytest.CaptureFixture[str]) -> None:
    playlist = isolated / "tv.m3u"
    playlist.write_text(PLAYLIST, encoding="utf8")
    db = isolated / "storage.sqlite"
    config = isolated / "config.yaml"

    cli.main(["--config", str(config), "--storage", str(db), "--import", str(playlist)])
    assert "Imported 2 channel(s)" in capsys.readouterr().out
    stored = json.loads(SqliteStorage(db).get(CATALOG_KEY) or "[]")
    assert [record["name"] for record in stored] == ["News One", "Plain"]

    cli.main(
        [
            "--config",
            str(config),
            "--storage",
            str(db),
            "--playlist",
            str(isolated / "missing.m3u"),
            "--list-channels",
        ]
    )
    lines = capsys.readouterr().out.strip().splitlines()
    assert lines[0] == "Catalog source: snapshot"
    assert "News One  [News]" in lines[1]
    assert "Plain  [General]" in lines[2]


def test_import_of_empty_playlist_fails(isolated: Path, capsys: pytest.CaptureFixture[str]) -> None:
    playlist = isolated / "empty.m3u"
    playlist.write_text("#EXTM3U\n", encoding="utf8")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(
            [
                "--config",
                str(isolated / "config.yaml"),
                "--storage",
                str(isolated / "storage.sqlite"),
                "--import",
                str(playlist),
            ]
        )

    assert excinfo.value.code == 1
    assert "No channels found" in capsys.readouterr().out


def test_overlay_set_persists(isolated: Path, capsys: pytest.CaptureFixture[str]) -> None:
    args = ["--config", str(isolated / "config.yaml"), "--storage", str(isolated / "s.sqlite")]

    cli.main([*args, "--overlay-set", "watermark.opacity=0.25", "--overlay-set", "developer.name=Ada"])
    capsys.readouterr()
    cli.main([*args, "--overlay"])

    shown = json.loads(capsys.readouterr().out)
    assert shown["watermark"]["opacity"] == 0.25
    assert shown["developer"]["name"] == "Ada"


def test_overlay_set_rejects_unknown_field(isolated: Path, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit):
        cli.main(
            [
                "--config",
                str(isolated / "config.yaml"),
                "--storage",
                str(isolated / "s.sqlite"),
                "--overlay-set",
                "watermark.size=2",
            ]
        )
    assert "Unknown overlay setting" in capsys.readouterr().out


def test_main_launches_app_with_overrides(monkeypatch: pytest.MonkeyPatch, isolated: Path) -> None:
    created: list = []

    class DummyApp:
        def __init__(self, config, *, storage, config_path) -> None:
            self.config = config
            self.storage = storage
            self.config_path = config_path
            self.ran = False
            created.append(self)

        def run(self) -> None:
            self.ran = True

    monkeypatch.setattr(cli, "RemoteApp", DummyApp)
    config_path = isolated / "config.yaml"

    cli.main(
        [
            "--config",
            str(config_path),
            "--storage",
            str(isolated / "s.sqlite"),
            "--player",
            "custom-mpv",
            "--playlist",
            "a.m3u",
            "--playlist",
            "b.m3u",
        ]
    )

    app = created[-1]
    assert app.ran is True
    assert app.config_path == config_path
    assert app.config.player == "custom-mpv"
    assert app.config.playlists == ["a.m3u", "b.m3u"]
    assert isinstance(app.storage, SqliteStorage)


def test_check_player_reports_summary(
    monkeypatch: pytest.MonkeyPatch, isolated: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    requested: list = []

    def fake_version_check(preferred=None):
        requested.append(preferred)
        return "mpv 0.37.0"

    monkeypatch.setattr(cli, "probe_player", fake_version_check)
    cli.main(
        [
            "--config",
            str(isolated / "config.yaml"),
            "--storage",
            str(isolated / "s.sqlite"),
            "--player",
            "mpv",
            "--check-player",
        ]
    )
    assert requested == ["mpv"]
    assert "Player available: mpv 0.37.0" in capsys.readouterr().out


def test_check_player_failure_exits_non_zero(
    monkeypatch: pytest.MonkeyPatch, isolated: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    def missing(preferred=None):
        raise cli.PlayerError("No supported media player found (mpv, vlc, ffplay)")

    monkeypatch.setattr(cli, "probe_player", missing)
    with pytest.raises(SystemExit) as excinfo:
        cli.main(
            [
                "--config",
                str(isolated / "config.yaml"),
                "--storage",
                str(isolated / "s.sqlite"),
                "--check-player",
            ]
        )
    assert excinfo.value.code == 1
    assert "Player check failed" in capsys.readouterr().out

"""Configuration management for the live TV remote."""
from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from .logging_utils import get_logger
from .session import DEFAULT_AUTO_SKIP_DELAY, DEFAULT_VOLUME, RecoveryPolicy
from .storage import OVERLAY_KEY, PersistenceGateway

CONFIG_PATH = Path.home() / ".config" / "livetv_remote" / "config.yaml"
DEFAULT_PLAYLISTS = ("tv.m3u",)

log = get_logger(__name__)

_KEY_LINE = re.compile(r"^[A-Za-z_][\w-]*:(\s|$)")


@dataclass(slots=True)
class AppConfig:
    """Top level application configuration."""

    playlists: list[str] = field(default_factory=lambda: list(DEFAULT_PLAYLISTS))
    player: Optional[str] = None
    user_agent: Optional[str] = None
    auto_skip: bool = True
    auto_skip_delay: float = DEFAULT_AUTO_SKIP_DELAY
    resume_on_power: bool = False
    volume: int = DEFAULT_VOLUME
    storage_path: Optional[str] = None

    def recovery_policy(self) -> RecoveryPolicy:
        """Return the session policy described by this configuration."""

        return RecoveryPolicy(
            auto_skip=self.auto_skip,
            auto_skip_delay=self.auto_skip_delay,
            resume_on_power=self.resume_on_power,
        )


@dataclass(slots=True)
class WatermarkSettings:
    """Logo overlay drawn above the video surface."""

    opacity: float = 0.5
    top: int = 10
    left: int = 10
    url: str = "assets/logo.png"
    visible: bool = True


@dataclass(slots=True)
class DeveloperSettings:
    """Contents of the "about the developer" card."""

    photo: str = "assets/dev.png"
    name: str = "Mujahid"
    note: str = (
        "Hi, I'm Mujahid, a Dhaka Polytechnic student. "
        "I love building unique UI experiences."
    )


@dataclass(slots=True)
class OverlaySettings:
    """Admin-editable overlay settings persisted through the storage gateway."""

    watermark: WatermarkSettings = field(default_factory=WatermarkSettings)
    developer: DeveloperSettings = field(default_factory=DeveloperSettings)

    def as_dict(self) -> dict[str, dict[str, Any]]:
        return {"watermark": asdict(self.watermark), "developer": asdict(self.developer)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OverlaySettings":
        settings = cls()
        watermark = data.get("watermark")
        if isinstance(watermark, Mapping):
            defaults = settings.watermark
            settings.watermark = WatermarkSettings(
                opacity=min(1.0, max(0.0, _parse_float(watermark.get("opacity"), default=defaults.opacity))),
                top=_parse_int(watermark.get("top"), default=defaults.top),
                left=_parse_int(watermark.get("left"), default=defaults.left),
                url=str(watermark.get("url") or defaults.url),
                visible=_parse_bool(watermark.get("visible"), default=defaults.visible),
            )
        developer = data.get("developer")
        if isinstance(developer, Mapping):
            defaults_dev = settings.developer
            settings.developer = DeveloperSettings(
                photo=str(developer.get("photo") or defaults_dev.photo),
                name=str(developer.get("name") or defaults_dev.name),
                note=str(developer.get("note") or defaults_dev.note),
            )
        return settings


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _clean_scalar(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return value


def _parse_bool(value: object, *, default: bool = True) -> bool:
    """Coerce *value* into a boolean flag."""

    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "yes", "on", "1"}:
            return True
        if normalized in {"false", "no", "off", "0"}:
            return False
    return default


def _parse_int(value: object, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def _parse_float(value: object, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def _parse_config(raw: str) -> dict[str, object]:
    """Parse JSON or the flat YAML subset written by :func:`save_config`."""

    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        pass
    else:
        return data if isinstance(data, dict) else {}

    result: dict[str, object] = {}
    current_list: Optional[list[object]] = None
    current_item: Optional[dict[str, str]] = None
    for line in raw.splitlines():
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        if not line.startswith(" ") and not line.startswith("-"):
            key, _, remainder = line.partition(":")
            key = key.strip()
            value = remainder.strip()
            if value == "[]":
                result[key] = []
                current_list = None
            elif value:
                result[key] = _clean_scalar(value)
                current_list = None
            else:
                current_list = []
                result[key] = current_list
            current_item = None
            continue
        stripped = line.strip()
        if stripped.startswith("-"):
            remainder = stripped[1:].strip()
            if current_list is None:
                continue
            if _KEY_LINE.match(remainder):
                current_item = {}
                key, _, value = remainder.partition(":")
                current_item[key.strip()] = _clean_scalar(value)
                current_list.append(current_item)
            else:
                current_item = None
                current_list.append(_clean_scalar(remainder))
            continue
        if current_item is not None:
            key, _, value = stripped.partition(":")
            current_item[key.strip()] = _clean_scalar(value)
    return result


def _dump_config(data: AppConfig) -> str:
    lines: list[str] = []
    if data.playlists:
        lines.append("playlists:")
        for source in data.playlists:
            lines.append("  - " + source)
    else:
        lines.append("playlists: []")
    if data.player:
        lines.append("player: " + data.player)
    if data.user_agent:
        lines.append("user_agent: " + data.user_agent)
    lines.append("auto_skip: " + ("true" if data.auto_skip else "false"))
    lines.append(f"auto_skip_delay: {data.auto_skip_delay}")
    lines.append("resume_on_power: " + ("true" if data.resume_on_power else "false"))
    lines.append(f"volume: {data.volume}")
    if data.storage_path:
        lines.append("storage_path: " + data.storage_path)
    lines.append("")
    return "\n".join(lines)


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load configuration from *path* or return the defaults."""

    config_path = path or CONFIG_PATH
    if not config_path.exists():
        log.info("Configuration file missing at %s; using defaults", config_path)
        return AppConfig()
    log.debug("Loading configuration from %s", config_path)
    try:
        raw = config_path.read_text(encoding="utf8")
    except OSError as exc:
        log.warning("Failed to read configuration at %s: %s", config_path, exc)
        return AppConfig()
    data = _parse_config(raw)
    defaults = AppConfig()

    playlists_raw = data.get("playlists", defaults.playlists)
    playlists: list[str] = []
    if isinstance(playlists_raw, list):
        for entry in playlists_raw:
            if isinstance(entry, str) and entry.strip():
                playlists.append(entry.strip())
            else:
                log.warning("Skipping invalid playlist entry: %s", entry)
    elif isinstance(playlists_raw, str) and playlists_raw.strip():
        playlists.append(playlists_raw.strip())

    volume = _parse_int(data.get("volume"), default=defaults.volume)
    if not 0 <= volume <= 100:
        log.warning("Volume %d out of range; clamping", volume)
        volume = max(0, min(100, volume))
    delay = _parse_float(data.get("auto_skip_delay"), default=defaults.auto_skip_delay)
    if delay < 0:
        log.warning("Negative auto_skip_delay %.2f; using default", delay)
        delay = defaults.auto_skip_delay

    def optional_str(key: str) -> Optional[str]:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    config = AppConfig(
        playlists=playlists,
        player=optional_str("player"),
        user_agent=optional_str("user_agent"),
        auto_skip=_parse_bool(data.get("auto_skip"), default=defaults.auto_skip),
        auto_skip_delay=delay,
        resume_on_power=_parse_bool(data.get("resume_on_power"), default=defaults.resume_on_power),
        volume=volume,
        storage_path=optional_str("storage_path"),
    )
    log.info(
        "Loaded configuration with %d playlist source(s) from %s",
        len(config.playlists),
        config_path,
    )
    return config


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    """Persist *config* to disk at *path*."""

    config_path = path or CONFIG_PATH
    log.debug("Writing configuration to %s", config_path)
    _ensure_parent(config_path)
    config_path.write_text(_dump_config(config), encoding="utf8")
    log.info("Configuration saved to %s", config_path)


def load_overlay_settings(storage: PersistenceGateway) -> OverlaySettings:
    """Return stored overlay settings, or the defaults when absent or invalid."""

    raw = storage.get(OVERLAY_KEY)
    if not raw:
        return OverlaySettings()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        log.warning("Ignoring unreadable overlay settings")
        return OverlaySettings()
    if not isinstance(data, dict):
        return OverlaySettings()
    return OverlaySettings.from_dict(data)


def save_overlay_settings(storage: PersistenceGateway, settings: OverlaySettings) -> None:
    storage.set(OVERLAY_KEY, json.dumps(settings.as_dict(), ensure_ascii=False))
    log.info("Overlay settings saved")


def update_overlay_settings(settings: OverlaySettings, assignment: str) -> OverlaySettings:
    """Return *settings* with one ``section.field=value`` assignment applied.

    Raises :class:`ValueError` for unknown fields or malformed assignments.
    """

    path, sep, value = assignment.partition("=")
    section, dot, name = path.strip().partition(".")
    if not sep or not dot:
        raise ValueError(f"Expected section.field=value, got {assignment!r}")
    data = settings.as_dict()
    if section not in data or name not in data[section]:
        raise ValueError(f"Unknown overlay setting {path.strip()!r}")
    data[section][name] = value.strip()
    return OverlaySettings.from_dict(data)


__all__ = [
    "AppConfig",
    "CONFIG_PATH",
    "DeveloperSettings",
    "OverlaySettings",
    "WatermarkSettings",
    "load_config",
    "load_overlay_settings",
    "save_config",
    "save_overlay_settings",
    "update_overlay_settings",
]

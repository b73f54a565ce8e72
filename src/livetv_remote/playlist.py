"""Utilities for parsing live TV playlists."""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from itertools import count
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence
from urllib import request
from urllib.error import URLError
from uuid import uuid4

from .logging_utils import get_logger

log = get_logger(__name__)

ALL_CATEGORY = "All"
DEFAULT_CATEGORY = "General"
FALLBACK_CATEGORY = "Other"
UNKNOWN_NAME = "Unknown"

_EXTINF_PREFIX = "#EXTINF"
_LOGO_PATTERNS = (
    re.compile(r'tvg-logo="([^"]*)"', re.IGNORECASE),
    re.compile(r'(?<![\w-])logo="([^"]*)"', re.IGNORECASE),
)
_CATEGORY_PATTERNS = (
    re.compile(r'group-title="([^"]*)"', re.IGNORECASE),
    re.compile(r'(?<![\w-])category="([^"]*)"', re.IGNORECASE),
)

IdFactory = Callable[[], str]


@dataclass(frozen=True, slots=True)
class Channel:
    """A parsed live TV channel entry."""

    id: str
    name: str
    url: str
    logo: Optional[str] = None
    category: Optional[str] = None

    @property
    def category_label(self) -> str:
        """Return the category, defaulting blank values to ``General``."""

        if self.category and self.category.strip():
            return self.category
        return DEFAULT_CATEGORY

    def as_dict(self) -> dict[str, Optional[str]]:
        """Return a JSON-serializable representation of the channel."""

        data = asdict(self)
        return {key: value for key, value in data.items() if value is not None}

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], *, id_factory: Optional[IdFactory] = None
    ) -> Optional["Channel"]:
        """Rebuild a channel from :meth:`as_dict` output.

        Returns ``None`` for records without a stream URL.
        """

        url = data.get("url")
        if not isinstance(url, str) or not url.strip():
            return None
        channel_id = data.get("id")
        if not isinstance(channel_id, str) or not channel_id:
            channel_id = (id_factory or random_id_factory())()
        name = data.get("name")
        logo = data.get("logo")
        category = data.get("category")
        return cls(
            id=channel_id,
            name=str(name).strip() if name and str(name).strip() else UNKNOWN_NAME,
            url=url.strip(),
            logo=str(logo) if logo else None,
            category=str(category) if category else None,
        )


def random_id_factory() -> IdFactory:
    """Return a factory producing short random identifiers."""

    def factory() -> str:
        return uuid4().hex[:9]

    return factory


def sequential_id_factory(start: int = 1) -> IdFactory:
    """Return a factory producing ``"1"``, ``"2"``, … starting at *start*."""

    counter = count(start)

    def factory() -> str:
        return str(next(counter))

    return factory


DEMO_CHANNELS: tuple[Channel, ...] = (
    Channel(
        id="1",
        name="Somoy TV",
        url="https://cdn-1.toffeelive.com/somoy/index.m3u8",
        logo="https://seeklogo.com/images/S/somoy-tv-logo-87B757523F-seeklogo.com.png",
        category="News",
    ),
    Channel(
        id="2",
        name="T Sports",
        url="https://cdn-1.toffeelive.com/tsports/index.m3u8",
        logo="https://tsports.com/static/media/tsports-logo.8e7b99c2.png",
        category="Sports",
    ),
)


def _match_attribute(line: str, patterns: Sequence[re.Pattern[str]]) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(line)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def _parse_extinf(line: str) -> dict[str, Optional[str]]:
    """Extract name, logo and category from an ``#EXTINF`` line."""

    name = UNKNOWN_NAME
    if "," in line:
        candidate = line.rsplit(",", 1)[1].strip()
        if candidate:
            name = candidate
    return {
        "name": name,
        "logo": _match_attribute(line, _LOGO_PATTERNS),
        "category": _match_attribute(line, _CATEGORY_PATTERNS),
    }


def _is_extinf(line: str) -> bool:
    return line[: len(_EXTINF_PREFIX)].upper() == _EXTINF_PREFIX


def parse_playlist(text: Optional[str], *, id_factory: Optional[IdFactory] = None) -> List[Channel]:
    """Parse playlist *text* into a list of :class:`Channel` objects.

    Malformed or empty input yields an empty list; this function never
    raises for bad content. Each ``#EXTINF`` entry is completed by the next
    stream line. Stream lines without metadata still become channels with
    a placeholder name in the ``Other`` category.
    """

    if not isinstance(text, str) or not text.strip():
        log.debug("Playlist text is empty")
        return []

    make_id = id_factory or random_id_factory()
    channels: List[Channel] = []
    seen_ids: set[str] = set()
    pending: Optional[dict[str, Optional[str]]] = None

    def next_id() -> str:
        channel_id = make_id()
        if channel_id in seen_ids:
            channel_id = f"{channel_id}-{len(channels) + 1}"
        seen_ids.add(channel_id)
        return channel_id

    for raw_line in text.split("\n"):
        line = raw_line.strip()
        if not line:
            continue
        if _is_extinf(line):
            if pending is not None:
                log.debug("Discarding entry %s without stream URL", pending["name"])
            pending = _parse_extinf(line)
            continue
        if line.startswith("#"):
            continue
        if pending is None:
            channel = Channel(
                id=next_id(),
                name=f"Channel {len(channels) + 1}",
                url=line,
                category=FALLBACK_CATEGORY,
            )
            log.debug("Synthesized channel %s for bare URL %s", channel.name, line)
        else:
            channel = Channel(
                id=next_id(),
                name=pending["name"] or UNKNOWN_NAME,
                url=line,
                logo=pending["logo"],
                category=pending["category"] or DEFAULT_CATEGORY,
            )
            pending = None
        channels.append(channel)

    if pending is not None:
        log.debug("Discarding trailing entry %s without stream URL", pending["name"])
    log.info("Parsed %d channels from playlist", len(channels))
    return channels


def derive_categories(channels: Iterable[Channel]) -> List[str]:
    """Return ``All`` followed by each category in order of first appearance."""

    categories: List[str] = [ALL_CATEGORY]
    seen = {ALL_CATEGORY}
    for channel in channels:
        label = channel.category_label
        if label not in seen:
            seen.add(label)
            categories.append(label)
    return categories


def fetch_playlist_text(
    candidates: Iterable[str | Path],
    *,
    user_agent: Optional[str] = None,
    timeout: float = 30.0,
    progress: Optional[Callable[[int, Optional[int]], None]] = None,
) -> Optional[str]:
    """Return the text of the first retrievable playlist among *candidates*.

    Local paths and ``http(s)`` URLs are both accepted. Failures are logged
    and the next candidate is tried; ``None`` means nothing was retrievable.
    """

    for candidate in candidates:
        source = str(candidate)
        try:
            data = _read_source(source, user_agent=user_agent, timeout=timeout, progress=progress)
        except (URLError, OSError, ValueError) as exc:
            log.warning("Failed to load playlist from %s: %s", source, exc)
            continue
        if data is None:
            continue
        text = data.decode("utf8", errors="replace")
        if text.strip():
            log.info("Loaded playlist from %s (%d bytes)", source, len(data))
            return text
        log.warning("Playlist at %s is empty", source)
    return None


def _read_source(
    source: str,
    *,
    user_agent: Optional[str],
    timeout: float,
    progress: Optional[Callable[[int, Optional[int]], None]],
) -> Optional[bytes]:
    def report(loaded: int, total: Optional[int]) -> None:
        if progress is None:
            return
        try:
            progress(loaded, total)
        except Exception:  # pragma: no cover - diagnostic safeguard
            log.exception("Progress callback failed")

    chunk_size = 64_000
    data = bytearray()
    if source.startswith(("http://", "https://")):
        req = request.Request(source)
        if user_agent:
            req.add_header("User-Agent", user_agent)
        with request.urlopen(req, timeout=timeout) as response:
            total = getattr(response, "length", None)
            while True:
                chunk = response.read(chunk_size)
                if not chunk:
                    break
                data.extend(chunk)
                report(len(data), total)
        return bytes(data)

    path = Path(source).expanduser()
    if not path.exists():
        log.debug("Playlist path not found: %s", path)
        return None
    total = path.stat().st_size
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                break
            data.extend(chunk)
            report(len(data), total)
    return bytes(data)


__all__ = [
    "ALL_CATEGORY",
    "DEFAULT_CATEGORY",
    "DEMO_CHANNELS",
    "FALLBACK_CATEGORY",
    "Channel",
    "IdFactory",
    "derive_categories",
    "fetch_playlist_text",
    "parse_playlist",
    "random_id_factory",
    "sequential_id_factory",
]

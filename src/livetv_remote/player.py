"""Player detection and the external-process media sink."""
from __future__ import annotations

import asyncio
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional, Protocol, Sequence

from .logging_utils import get_logger

DEFAULT_PLAYER_CANDIDATES: Sequence[str] = ("mpv", "vlc", "ffplay")

PLAYER_PROBE_TIMEOUT_ENV = "LIVETV_REMOTE_PLAYER_PROBE_TIMEOUT"
DEFAULT_PLAYER_PROBE_TIMEOUT = 10.0
DEFAULT_SETTLE_DELAY = 2.0


log = get_logger(__name__)


class PlayerError(RuntimeError):
    """Raised when no usable media player is available."""


class SinkListener(Protocol):
    """Receiver of playback completion events."""

    def on_loading(self, token: int) -> None:
        ...

    def on_ready(self, token: int) -> None:
        ...

    def on_ended(self, token: int) -> None:
        ...

    def on_error(self, token: int) -> None:
        ...


@dataclass(slots=True)
class PlayerCommand:
    """Describe a player invocation."""

    executable: str
    args: list[str]

    def as_sequence(self) -> list[str]:
        return [self.executable, *self.args]


def detect_player(
    preferred: Optional[str] = None,
    *,
    candidates: Iterable[str] = DEFAULT_PLAYER_CANDIDATES,
) -> Optional[str]:
    """Return the path to the first available player executable."""

    search_order: list[str] = []
    if preferred:
        preferred_str = str(preferred)
        log.debug("Preferred player requested: %s", preferred_str)
        search_order.append(preferred_str)
    for candidate in candidates:
        if candidate not in search_order:
            search_order.append(candidate)
    for executable in search_order:
        path = shutil.which(executable)
        if path:
            log.info("Selected player executable: %s (from candidate %s)", path, executable)
            return path
        log.debug("Player candidate %s not found on PATH", executable)
    return None


def _player_probe_timeout() -> float:
    """Return the timeout to use for player probes."""

    raw_value = os.getenv(PLAYER_PROBE_TIMEOUT_ENV)
    if raw_value is None:
        return DEFAULT_PLAYER_PROBE_TIMEOUT
    try:
        timeout = float(raw_value)
    except ValueError:
        log.warning(
            "Invalid %s value %r; using default %.1f seconds",
            PLAYER_PROBE_TIMEOUT_ENV,
            raw_value,
            DEFAULT_PLAYER_PROBE_TIMEOUT,
        )
        return DEFAULT_PLAYER_PROBE_TIMEOUT
    if timeout <= 0:
        log.warning(
            "Probe timeout %.1f from %s must be positive; using default",
            timeout,
            PLAYER_PROBE_TIMEOUT_ENV,
        )
        return DEFAULT_PLAYER_PROBE_TIMEOUT
    return timeout


def _detect_display_backend() -> str:
    """Return a string describing the current display backend."""

    platform = sys.platform
    if platform.startswith("win"):
        return "windows"
    if platform == "darwin":
        return "darwin"
    if os.getenv("WAYLAND_DISPLAY"):
        return "wayland"
    if os.getenv("DISPLAY"):
        return "x11"
    return "unknown"


def _mpv_hardware_flags() -> list[str]:
    """Return hardware-accelerated mpv flags appropriate for the environment."""

    backend = _detect_display_backend()
    if backend in {"windows", "darwin"}:
        return ["--hwdec=auto-safe"]
    if backend == "wayland":
        return ["--hwdec=auto-safe", "--vo=gpu", "--gpu-context=wayland"]
    if backend == "x11":
        return ["--hwdec=auto-safe", "--vo=gpu", "--gpu-context=x11"]
    return []


def build_player_command(
    url: str,
    *,
    preferred: Optional[str] = None,
    volume: int = 100,
    muted: bool = False,
    fullscreen: bool = False,
) -> PlayerCommand:
    """Construct a player command that streams *url*."""

    executable = detect_player(preferred)
    if executable is None:
        log.error("Unable to locate supported media player")
        raise PlayerError("No supported media player found (mpv, vlc, ffplay)")
    args: list[str] = []
    executable_name = Path(executable).name.lower()
    if executable_name.startswith("mpv"):
        args.extend(
            [
                "--force-window=immediate",
                "--no-terminal",
                f"--volume={volume}",
                f"--mute={'yes' if muted else 'no'}",
            ]
        )
        if fullscreen:
            args.append("--fullscreen")
        args.extend(_mpv_hardware_flags())
    elif executable_name.startswith("ffplay"):
        args.extend(["-loglevel", "error", "-volume", str(volume)])
        if muted:
            args.append("-an")
        if fullscreen:
            args.append("-fs")
    elif executable_name.startswith("vlc"):
        args.append("--play-and-exit")
        if muted:
            args.append("--no-audio")
        if fullscreen:
            args.append("--fullscreen")
    command = PlayerCommand(executable=executable, args=[*args, url])
    log.info("Built player command: %s", command.as_sequence())
    return command


def probe_player(preferred: Optional[str] = None) -> str:
    """Invoke the preferred player with ``--version`` to verify availability."""

    executable = detect_player(preferred)
    if executable is None:
        raise PlayerError("No supported media player found (mpv, vlc, ffplay)")
    timeout = _player_probe_timeout()
    try:
        result = subprocess.run(
            [executable, "--version"],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise PlayerError(
            (
                f"{Path(executable).name} --version timed out after {timeout:.1f} seconds. "
                f"Increase the timeout via the {PLAYER_PROBE_TIMEOUT_ENV} environment variable "
                "or run the command manually."
            )
        ) from exc
    except OSError as exc:  # pragma: no cover - defensive
        raise PlayerError(f"Failed to execute {executable}: {exc}") from exc
    if result.returncode != 0:
        output = result.stderr.strip() or result.stdout.strip()
        raise PlayerError(
            f"{Path(executable).name} --version exited with {result.returncode}: {output}"
        )
    output = result.stdout.strip() or result.stderr.strip()
    summary = output.splitlines()[0] if output else Path(executable).name
    log.info("Player probe succeeded using %s: %s", executable, summary)
    return summary


Spawner = Callable[[Sequence[str]], Awaitable[asyncio.subprocess.Process]]


async def _spawn(argv: Sequence[str]) -> asyncio.subprocess.Process:
    return await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
        env=os.environ.copy(),
    )


class ExternalPlayerSink:
    """Media sink that plays each channel in an external player process.

    A load becomes *ready* once the process has stayed alive for
    ``settle_delay`` seconds. Failing to start, or exiting non-zero, is an
    error; a clean exit is an end of stream. Events are only reported for
    the most recent request.

    External players take volume, mute and fullscreen on their command
    line, so changing one while a stream runs relaunches the player for
    the same request.
    """

    def __init__(
        self,
        *,
        preferred: Optional[str] = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        volume: int = 100,
        spawn: Optional[Spawner] = None,
        command_builder: Callable[..., PlayerCommand] = build_player_command,
    ) -> None:
        self.preferred = preferred
        self.settle_delay = settle_delay
        self._spawn = spawn or _spawn
        self._build_command = command_builder
        self._listener: Optional[SinkListener] = None
        self._pending: Optional[tuple[str, int]] = None
        self._current: Optional[tuple[str, int]] = None
        self._active_token: Optional[int] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._process: Optional[asyncio.subprocess.Process] = None
        self.volume = volume
        self.muted = False
        self.fullscreen = False

    def attach(self, listener: SinkListener) -> None:
        self._listener = listener

    @property
    def process(self) -> Optional[asyncio.subprocess.Process]:
        return self._process

    def load(self, url: str, *, token: int) -> None:
        self._pending = (url, token)
        self._active_token = token
        self._report("loading", token)

    def play(self, *, token: int) -> None:
        if self._pending is None or self._pending[1] != token:
            log.debug("Play request %d has no matching load", token)
            return
        url, _ = self._pending
        self._pending = None
        self._current = (url, token)
        self._terminate()
        self._start(url, token)

    def stop(self) -> None:
        self._pending = None
        self._current = None
        self._active_token = None
        self._terminate()

    def set_volume(self, volume: int) -> None:
        if volume != self.volume:
            self.volume = volume
            self._restart()

    def set_muted(self, muted: bool) -> None:
        if muted != self.muted:
            self.muted = muted
            self._restart()

    def set_fullscreen(self, enabled: bool) -> None:
        if enabled != self.fullscreen:
            self.fullscreen = enabled
            self._restart()

    async def wait_closed(self) -> None:
        """Wait for the current player task to finish."""

        task = self._task
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self, url: str, token: int) -> None:
        try:
            command = self._build_command(
                url,
                preferred=self.preferred,
                volume=self.volume,
                muted=self.muted,
                fullscreen=self.fullscreen,
            )
            process = await self._spawn(command.as_sequence())
        except (PlayerError, OSError) as exc:
            log.error("Failed to launch player for %s: %s", url, exc)
            self._report("error", token)
            return
        self._process = process
        log.debug("Spawned player PID %s for request %d", getattr(process, "pid", "unknown"), token)
        try:
            returncode = await asyncio.wait_for(process.wait(), timeout=self.settle_delay)
        except asyncio.TimeoutError:
            self._report("ready", token)
            returncode = await process.wait()
        log.info("Player for request %d exited with %s", token, returncode)
        if self._process is process:
            self._process = None
        self._report("ended" if returncode == 0 else "error", token)

    def _start(self, url: str, token: int) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.error("Cannot start player without a running event loop")
            self._report("error", token)
            return
        self._task = loop.create_task(self._run(url, token))

    def _restart(self) -> None:
        """Relaunch the running stream so new player settings take effect."""

        if self._current is None or self._task is None or self._task.done():
            return
        url, token = self._current
        if token != self._active_token:
            return
        log.info("Restarting player for request %d with updated settings", token)
        self._terminate()
        self._start(url, token)

    def _terminate(self) -> None:
        process = self._process
        self._process = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        if process is not None and process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            log.debug("Terminated player PID %s", getattr(process, "pid", "unknown"))

    def _report(self, event: str, token: int) -> None:
        if self._listener is None or token != self._active_token:
            return
        handler = getattr(self._listener, f"on_{event}")
        handler(token)


__all__ = [
    "DEFAULT_PLAYER_CANDIDATES",
    "ExternalPlayerSink",
    "PlayerCommand",
    "PlayerError",
    "SinkListener",
    "build_player_command",
    "detect_player",
    "probe_player",
]

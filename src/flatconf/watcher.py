"""Change sources: tell the reload loop which config files changed.

inotify (Linux, via inotify_simple) watches the parent directory of every
source file for IN_CLOSE_WRITE / IN_MOVED_TO / IN_CREATE and filters by name,
so editors that save by writing a temp file and renaming it still count.

Falls back to mtime polling if inotify is unavailable (macOS, Docker).

A change source is read from a single thread:

    source.read(timeout)  -> list of changed files ([] on timeout),
                             None once the source has been closed
    source.close()
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from flatconf.errors import WatchSetupError

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger("flatconf.watcher")

DEFAULT_POLL_INTERVAL = 1.0      # seconds between mtime checks in polling mode


class ChangeSource(Protocol):
    def read(self, timeout: float) -> list[Path] | None: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# inotify
# ---------------------------------------------------------------------------

class InotifyChangeSource:
    """inotify_simple-backed change source (Linux only)."""

    def __init__(self, paths: Sequence[Path | str]) -> None:
        import inotify_simple  # type: ignore[import]

        self._flags = inotify_simple.flags  # type: ignore[attr-defined]
        try:
            self._inotify = inotify_simple.INotify()
        except OSError as exc:
            msg = f"failed to create file watcher: {exc}"
            raise WatchSetupError(msg) from exc

        # wd -> {file name -> watched file}
        self._watched: dict[int, dict[str, Path]] = {}
        mask = self._flags.CLOSE_WRITE | self._flags.MOVED_TO | self._flags.CREATE
        for path in paths:
            abs_path = Path(path).resolve()
            try:
                if not abs_path.is_file():
                    raise FileNotFoundError(2, "no such file", str(abs_path))
                wd = self._inotify.add_watch(str(abs_path.parent), mask)
            except OSError as exc:
                self._inotify.close()
                msg = f"failed to watch file {abs_path}: {exc}"
                raise WatchSetupError(msg) from exc
            self._watched.setdefault(wd, {})[abs_path.name] = abs_path
        self._closed = False
        logger.info("inotify watching %d file(s)", len(paths))

    def read(self, timeout: float) -> list[Path] | None:
        if self._closed:
            return None
        changed: list[Path] = []
        for event in self._inotify.read(timeout=int(timeout * 1000)):
            path = self._watched.get(event.wd, {}).get(event.name)
            if path is not None and path not in changed:
                changed.append(path)
        return changed

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._inotify.close()


# ---------------------------------------------------------------------------
# Polling fallback
# ---------------------------------------------------------------------------

def _signature(path: Path) -> tuple[int, int] | None:
    try:
        st = path.stat()
    except FileNotFoundError:
        return None
    return st.st_mtime_ns, st.st_size


class PollingChangeSource:
    """Polling fallback for macOS/Docker. Checks mtime and size every interval seconds."""

    def __init__(self, paths: Sequence[Path | str], interval: float = DEFAULT_POLL_INTERVAL) -> None:
        self._paths = [Path(p).resolve() for p in paths]
        self._interval = interval
        self._seen: dict[Path, tuple[int, int] | None] = {}
        for path in self._paths:
            sig = _signature(path)
            if sig is None:
                msg = f"failed to watch file {path}: no such file"
                raise WatchSetupError(msg)
            self._seen[path] = sig
        self._closed = False
        logger.info("polling %d file(s) interval=%.1fs", len(self._paths), interval)

    def read(self, timeout: float) -> list[Path] | None:
        deadline = time.monotonic() + timeout
        while not self._closed:
            changed = []
            for path in self._paths:
                sig = _signature(path)
                if sig != self._seen[path]:
                    self._seen[path] = sig
                    changed.append(path)
            remaining = deadline - time.monotonic()
            if changed or remaining <= 0:
                return changed
            time.sleep(min(self._interval, remaining))
        return None

    def close(self) -> None:
        self._closed = True


def open_change_source(paths: Sequence[Path | str], poll_interval: float = DEFAULT_POLL_INTERVAL) -> ChangeSource:
    """Watch paths with inotify when available, polling otherwise."""
    try:
        return InotifyChangeSource(paths)
    except ImportError:
        logger.warning("inotify_simple not available, falling back to polling")
        return PollingChangeSource(paths, poll_interval)

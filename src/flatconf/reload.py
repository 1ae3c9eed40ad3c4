"""ReloadCoordinator: owns the current flat store snapshot and its reloads.

    UNLOADED --open()--> LOADED --reload()--> RELOADING --> LOADED ...

Snapshots are immutable mappings. A new one is parsed and flattened without
holding any lock, then swapped in under the store's write lock, so readers
always see one complete snapshot and slow I/O never blocks them. A failed
open/reload leaves the previous snapshot in place.

The watch thread is started at most once per coordinator. Change
notifications trigger reload(); errors from the change source or from a
reload are logged and the loop keeps going.

The reload callback runs on an executor (a private single worker unless the
caller supplies one), never on the reloading thread. reload() returns the
callback's Future; callers that need ordering wait on it. Once close() has
run, reloads still swap the store but no callback is scheduled.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING

from flatconf.errors import EmptyInputError, NoSourceLoadedError, WatchSetupError
from flatconf.flatten import flatten_all
from flatconf.locks import RWLock
from flatconf.sources import load_document
from flatconf.watcher import DEFAULT_POLL_INTERVAL, open_change_source

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from concurrent.futures import Executor

    from flatconf.watcher import ChangeSource

logger = logging.getLogger("flatconf.reload")

_READ_TIMEOUT = 0.25   # seconds a change-source read may block before the stop flag is rechecked
_JOIN_TIMEOUT = 2.0    # seconds close() waits for the watch thread


class State(str, Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"
    RELOADING = "reloading"


class WatchState(str, Enum):
    IDLE = "idle"
    WATCHING = "watching"
    FAILED = "failed"
    STOPPED = "stopped"


class WatchStart(str, Enum):
    """Result of start_watch()."""

    STARTED = "started"
    ALREADY_STARTED = "already_started"


def build_store(paths: Sequence[Path]) -> Mapping[str, str]:
    """Parse every source in order (later wins) into a read-only flat store."""
    docs = [load_document(path, sources=list(paths)) for path in paths]
    return MappingProxyType(flatten_all(docs))


class ReloadCoordinator:
    """Serialises loads and swaps the flat store atomically."""

    def __init__(
        self,
        *,
        watch: bool = True,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        read_timeout: float = _READ_TIMEOUT,
        callback_executor: Executor | None = None,
        change_source_factory: Callable[[Sequence[Path], float], ChangeSource] | None = None,
    ) -> None:
        self._watch_enabled = watch
        self._poll_interval = poll_interval
        self._read_timeout = read_timeout
        self._source_factory = change_source_factory or open_change_source

        self._store_lock = RWLock()
        self._store: Mapping[str, str] = MappingProxyType({})

        # Guards everything below; never held while parsing.
        self._lock = threading.Lock()
        self._paths: tuple[Path, ...] = ()
        self._state = State.UNLOADED
        self._watch_state = WatchState.IDLE
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._on_reload: Callable[[], object] | None = None
        self._executor = callback_executor
        self._owns_executor = callback_executor is None
        self._closed = False

        # Serialises open()/reload() builds and swaps.
        self._reload_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    def snapshot(self) -> Mapping[str, str]:
        """Return the current flat store (immutable; safe to keep using)."""
        with self._store_lock.read():
            return self._store

    def _swap(self, store: Mapping[str, str]) -> None:
        with self._store_lock.write():
            self._store = store

    @property
    def paths(self) -> tuple[Path, ...]:
        with self._lock:
            return self._paths

    @property
    def state(self) -> State:
        with self._lock:
            return self._state

    @property
    def watch_state(self) -> WatchState:
        with self._lock:
            return self._watch_state

    @property
    def watching(self) -> bool:
        return self.watch_state is WatchState.WATCHING

    # ------------------------------------------------------------------
    # Load / reload
    # ------------------------------------------------------------------

    def open(self, *paths: Path | str) -> WatchStart | None:
        """Load `paths` (later overrides earlier) and start watching them.

        Returns the start_watch() result, or None when watching is disabled.
        """
        if not paths:
            msg = "config file path cannot be empty"
            raise EmptyInputError(msg)
        sources = tuple(Path(p) for p in paths)
        with self._reload_lock:
            store = build_store(sources)
            self._swap(store)
            with self._lock:
                self._paths = sources
                self._state = State.LOADED
        logger.info("config loaded: %d entries from %d file(s)", len(store), len(sources))
        if not self._watch_enabled:
            return None
        return self.start_watch()

    def reload(self) -> Future[None] | None:
        """Rebuild the store from the recorded paths and swap it in.

        Returns the Future of the reload callback, or None if none is set.
        """
        with self._lock:
            sources = self._paths
        if not sources:
            msg = "no config file to reload"
            raise NoSourceLoadedError(msg)

        with self._reload_lock:
            with self._lock:
                self._state = State.RELOADING
            try:
                store = build_store(sources)
                self._swap(store)
            finally:
                with self._lock:
                    self._state = State.LOADED
        logger.info("config reloaded: %d entries", len(store))
        return self._dispatch_callback()

    # ------------------------------------------------------------------
    # Callback
    # ------------------------------------------------------------------

    def set_on_reload(self, fn: Callable[[], object] | None) -> None:
        with self._lock:
            self._on_reload = fn

    def _dispatch_callback(self) -> Future[None] | None:
        with self._lock:
            fn = self._on_reload
            if fn is None or self._closed:
                return None
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="flatconf-reload")
            # close() takes the executor under this lock before shutting it down
            return self._executor.submit(_run_callback, fn)

    # ------------------------------------------------------------------
    # Watching
    # ------------------------------------------------------------------

    def start_watch(self) -> WatchStart:
        """Start the watch thread unless it was already started once."""
        with self._lock:
            if self._watch_state is not WatchState.IDLE:
                return WatchStart.ALREADY_STARTED
            sources = self._paths
            if not sources:
                msg = "no config file to watch"
                raise NoSourceLoadedError(msg)
            self._watch_state = WatchState.WATCHING

        try:
            source = self._source_factory(list(sources), self._poll_interval)
        except Exception as exc:
            with self._lock:
                self._watch_state = WatchState.FAILED
            if isinstance(exc, WatchSetupError):
                raise
            msg = f"failed to create file watcher: {exc}"
            raise WatchSetupError(msg) from exc

        thread = threading.Thread(
            target=self._watch_loop, args=(source,), daemon=True, name="flatconf-watcher"
        )
        with self._lock:
            self._thread = thread
        thread.start()
        logger.info("watching %d config file(s)", len(sources))
        return WatchStart.STARTED

    def _watch_loop(self, source: ChangeSource) -> None:
        try:
            while not self._stop.is_set():
                try:
                    changed = source.read(self._read_timeout)
                except Exception:
                    logger.exception("watcher error")
                    self._stop.wait(self._poll_interval)
                    continue
                if changed is None:
                    logger.info("change source closed, watcher exiting")
                    break
                if not changed or self._stop.is_set():
                    continue
                try:
                    self.reload()
                    logger.info("config reloaded: %s", ", ".join(str(p) for p in changed))
                except Exception:
                    logger.exception("config reload failed")
        finally:
            source.close()
            with self._lock:
                if self._watch_state is WatchState.WATCHING:
                    self._watch_state = WatchState.STOPPED

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Stop the watch thread and the private callback executor. Idempotent."""
        with self._lock:
            self._closed = True
            if self._watch_state in (WatchState.IDLE, WatchState.WATCHING):
                self._watch_state = WatchState.STOPPED
            self._stop.set()
            thread = self._thread
            executor = self._executor if self._owns_executor else None
            if self._owns_executor:
                self._executor = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=_JOIN_TIMEOUT)
        if executor is not None:
            executor.shutdown(wait=False)


def _run_callback(fn: Callable[[], object]) -> None:
    try:
        fn()
    except Exception:
        logger.exception("reload callback failed")

"""Config: the public entry point.

    cfg = Config()
    cfg.open("defaults.conf", "local.json")     # later files override earlier ones
    cfg.get_int("database.port", 5432)
    app = cfg.map_to_record(AppConfig)
    cfg.set_on_reload(lambda: log.info("config changed"))
    ...
    cfg.close()

Every read works on one immutable snapshot of the flat store, so a reload
running at the same time is either fully visible or not at all.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from flatconf.binding import bind, bind_flat, detect_nested
from flatconf.coerce import auto_detect, parse_bool, parse_float, parse_int
from flatconf.reconstruct import reconstruct
from flatconf.reload import ReloadCoordinator
from flatconf.shapes import ShapeCache, record_type
from flatconf.watcher import DEFAULT_POLL_INTERVAL

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from concurrent.futures import Executor, Future
    from pathlib import Path

    from flatconf.coerce import Kind
    from flatconf.reload import WatchStart
    from flatconf.watcher import ChangeSource


@dataclass(frozen=True)
class ConfigStats:
    """Point-in-time counters for monitoring."""

    entries: int
    cached_shapes: int
    watched_files: int
    watching: bool


class Config:
    """Flat configuration store with typed record binding and hot reload."""

    def __init__(
        self,
        *,
        watch: bool = True,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        callback_executor: Executor | None = None,
        change_source_factory: Callable[[Sequence[Path], float], ChangeSource] | None = None,
    ) -> None:
        self._reloader = ReloadCoordinator(
            watch=watch,
            poll_interval=poll_interval,
            callback_executor=callback_executor,
            change_source_factory=change_source_factory,
        )
        self._shapes = ShapeCache()

    def __enter__(self) -> Config:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self, *paths: Path | str) -> WatchStart | None:
        """Load config files in order; later files override earlier keys."""
        return self._reloader.open(*paths)

    def reload(self) -> Future[None] | None:
        """Re-read the files passed to open(). See ReloadCoordinator.reload."""
        return self._reloader.reload()

    def set_on_reload(self, fn: Callable[[], object] | None) -> None:
        """Register a callback run (off-thread) after every successful reload."""
        self._reloader.set_on_reload(fn)

    def close(self) -> None:
        self._reloader.close()

    def stats(self) -> ConfigStats:
        return ConfigStats(
            entries=len(self._reloader.snapshot()),
            cached_shapes=len(self._shapes),
            watched_files=len(self._reloader.paths),
            watching=self._reloader.watching,
        )

    def clear_shape_cache(self) -> None:
        self._shapes.clear()

    @property
    def shape_cache(self) -> ShapeCache:
        return self._shapes

    def shape_of(self, record_cls: type) -> Mapping[str, Kind]:
        """Shape map of a record type (cached)."""
        return self._shapes.shape_for(record_cls)

    # ------------------------------------------------------------------
    # Scalar getters
    # ------------------------------------------------------------------

    def get_string(self, name: str, default: str = "") -> str:
        """Value of `name`, or default when it is missing or empty."""
        value = self._reloader.snapshot().get(name)
        return value if value else default

    def get_int(self, name: str, default: int = 0) -> int:
        parsed = parse_int(self._reloader.snapshot().get(name, ""))
        return default if parsed is None else parsed

    def get_bool(self, name: str, default: bool = False) -> bool:
        parsed = parse_bool(self._reloader.snapshot().get(name, ""))
        return default if parsed is None else parsed

    def get_float(self, name: str, default: float = 0.0) -> float:
        parsed = parse_float(self._reloader.snapshot().get(name, ""))
        return default if parsed is None else parsed

    # ------------------------------------------------------------------
    # Arrays
    # ------------------------------------------------------------------

    def get_array_string(self, prefix: str) -> list[str]:
        """Values at prefix.0, prefix.1, ... up to the first missing index."""
        store = self._reloader.snapshot()
        out: list[str] = []
        while (key := f"{prefix}.{len(out)}") in store:
            out.append(store[key])
        return out

    def get_array_object(self, prefix: str, fields: Sequence[str]) -> list[dict[str, str]]:
        """Objects at prefix.<i>, reading only the named fields."""
        store = self._reloader.snapshot()
        out: list[dict[str, str]] = []
        while True:
            base = f"{prefix}.{len(out)}."
            obj = {f: store[base + f] for f in fields if base + f in store}
            if not obj:
                return out
            out.append(obj)

    def get_array_object_auto(self, prefix: str) -> list[dict[str, str]]:
        """Objects at prefix.<i> with every key found under each index."""
        store = self._reloader.snapshot()
        return [_subtree(store, base) for base in _index_prefixes(store, prefix)]

    def get_array_records(self, prefix: str, record_cls: type) -> list[Any]:
        """Bind each prefix.<i> subtree onto a new `record_cls` instance."""
        store = self._reloader.snapshot()
        shapes = self.shape_of(record_cls)
        return [bind(reconstruct(_subtree(store, base), shapes), record_cls)
                for base in _index_prefixes(store, prefix)]

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def get_all(self) -> dict[str, str]:
        """Copy of every flat entry."""
        return dict(self._reloader.snapshot())

    def get_all_typed(self) -> dict[str, Any]:
        """Every flat entry with its value auto-detected (bool, int, float, str)."""
        return {key: auto_detect(value) for key, value in self._reloader.snapshot().items()}

    def get_all_json(self) -> str:
        return json.dumps(self.get_all_typed(), indent=2, sort_keys=True, ensure_ascii=False)

    def get_all_keys(self) -> list[str]:
        return sorted(self._reloader.snapshot())

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def reconstruct(self, record_cls: type | None = None) -> Any:
        """Nested document of the whole store, typed by `record_cls` if given."""
        shapes = self.shape_of(record_cls) if record_cls is not None else {}
        return reconstruct(self._reloader.snapshot(), shapes)

    def map_to_record(self, target: Any) -> Any:
        """Bind onto a record, picking nested or flat mode from its fields."""
        if detect_nested(record_type(target)):
            return self.map_to_record_nested(target)
        return self.map_to_record_flat(target)

    def map_to_record_nested(self, target: Any) -> Any:
        shapes = self.shape_of(record_type(target))
        return bind(reconstruct(self._reloader.snapshot(), shapes), target)

    def map_to_record_flat(self, target: Any) -> Any:
        shapes = self.shape_of(record_type(target))
        return bind_flat(self._reloader.snapshot(), target, shapes)


def _index_prefixes(store: Mapping[str, str], prefix: str) -> list[str]:
    """'servers.0.', 'servers.1.', ... while each index has entries."""
    out: list[str] = []
    while True:
        base = f"{prefix}.{len(out)}."
        if not any(key.startswith(base) for key in store):
            return out
        out.append(base)


def _subtree(store: Mapping[str, str], base: str) -> dict[str, str]:
    return {key[len(base):]: value for key, value in store.items() if key.startswith(base)}

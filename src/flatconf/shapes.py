"""Record descriptions and shape maps.

A record is a dataclass whose fields name their configuration path:

    @dataclass
    class Server:
        host: str = setting("host")
        port: int = setting("port", default=80)

    @dataclass
    class AppConfig:
        name: str = setting("app.name")
        servers: list[Server] = setting("servers", default_factory=list)

extract_shape(AppConfig) walks the fields once and yields the primitive kind
expected at every flat path, with list indices left out:

    {"app.name": STRING, "servers.host": STRING, "servers.port": INT}

ShapeCache keeps one shape map per record type.
"""

from __future__ import annotations

import dataclasses
import threading
import types
import typing
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Union

from flatconf.coerce import Kind, kind_of
from flatconf.errors import InvalidTargetError
from flatconf.locks import RWLock

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

PATH_KEY = "path"


def setting(path: str, *, default: Any = dataclasses.MISSING,
            default_factory: Any = dataclasses.MISSING, **kwargs: Any) -> Any:
    """Declare a dataclass field bound to the configuration path `path`."""
    metadata = {**kwargs.pop("metadata", {}), PATH_KEY: path}
    return dataclasses.field(default=default, default_factory=default_factory,
                             metadata=metadata, **kwargs)


@dataclass(frozen=True)
class FieldSpec:
    """One tagged field of a record, with its type taken apart."""

    name: str
    path: str
    optional: bool          # declared as X | None
    is_list: bool
    record: type | None     # record type (or list element record type)
    kind: Kind | None       # primitive kind (or list element kind)
    field: dataclasses.Field

    @property
    def is_record(self) -> bool:
        return self.record is not None


def is_record(tp: Any) -> bool:
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)


def type_identity(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


def record_type(target: Any) -> type:
    """Return the record class for a record class or instance."""
    if is_record(target):
        return target
    if dataclasses.is_dataclass(target):
        return type(target)
    msg = f"binding target must be a dataclass or dataclass instance, got {type(target).__name__}"
    raise InvalidTargetError(msg)


def unwrap_optional(tp: Any) -> tuple[Any, bool]:
    origin = typing.get_origin(tp)
    if origin is Union or origin is types.UnionType:
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0], True
    return tp, False


def record_fields(cls: type) -> tuple[FieldSpec, ...]:
    """Describe the tagged fields of record class `cls`."""
    try:
        hints = typing.get_type_hints(cls)
    except (NameError, TypeError) as exc:
        msg = f"cannot resolve type hints of {type_identity(cls)}: {exc}"
        raise InvalidTargetError(msg) from exc

    specs: list[FieldSpec] = []
    for f in dataclasses.fields(cls):
        path = f.metadata.get(PATH_KEY)
        if not path:
            continue
        tp, optional = unwrap_optional(hints.get(f.name, Any))
        is_list = typing.get_origin(tp) is list
        if is_list:
            args = typing.get_args(tp)
            tp = args[0] if args else Any
        specs.append(FieldSpec(
            name=f.name,
            path=path,
            optional=optional,
            is_list=is_list,
            record=tp if is_record(tp) else None,
            kind=kind_of(tp),
            field=f,
        ))
    return tuple(specs)


def _walk(prefix: str, cls: type, out: dict[str, Kind], active: set[type]) -> None:
    active.add(cls)
    for spec in record_fields(cls):
        full = f"{prefix}.{spec.path}" if prefix else spec.path
        if spec.record is not None:
            # list[Record] shares the prefix: one entry covers every index
            if spec.record not in active:
                _walk(full, spec.record, out, active)
        elif spec.kind is not None:
            out[full] = spec.kind
    active.discard(cls)


def extract_shape(cls: type) -> dict[str, Kind]:
    """Map every flat path of record `cls` (indices stripped) to its kind."""
    out: dict[str, Kind] = {}
    _walk("", record_type(cls), out, set())
    return out


class ShapeCache:
    """Thread-safe record identity -> shape map cache.

    Returned maps are read-only and are not invalidated by clear().
    """

    def __init__(self) -> None:
        self._lock = RWLock()
        self._entries: dict[str, Mapping[str, Kind]] = {}
        self._counter_lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get_or_compute(self, identity: str, compute: Callable[[], Mapping[str, Kind]]) -> Mapping[str, Kind]:
        with self._lock.read():
            cached = self._entries.get(identity)
        if cached is not None:
            with self._counter_lock:
                self.hits += 1
            return cached

        shape = MappingProxyType(dict(compute()))
        with self._lock.write():
            shape = self._entries.setdefault(identity, shape)
        with self._counter_lock:
            self.misses += 1
        return shape

    def shape_for(self, cls: type) -> Mapping[str, Kind]:
        cls = record_type(cls)
        return self.get_or_compute(type_identity(cls), lambda: extract_shape(cls))

    def clear(self) -> None:
        with self._lock.write():
            self._entries = {}

    def size(self) -> int:
        with self._lock.read():
            return len(self._entries)

    __len__ = size

    def __contains__(self, identity: object) -> bool:
        with self._lock.read():
            return identity in self._entries

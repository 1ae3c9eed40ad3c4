"""Flat configuration store: INI/JSON files in, typed dataclass records out.

Files are flattened into one dotted-path -> string map:

    [database]                 database.host = localhost
    host = localhost     ->    servers.0.port = 80
    {"servers": [{"port": 80}]}

Records are dataclasses whose fields name their path with setting():

    @dataclass
    class AppConfig:
        host: str = setting("database.host")

    cfg = Config()
    cfg.open("app.conf", "servers.json")
    app = cfg.map_to_record(AppConfig)

Files are watched (inotify, polling fallback) and reloaded in place; readers
always see a complete snapshot.
"""

from flatconf.binding import bind, bind_flat, detect_nested
from flatconf.coerce import Kind, auto_detect
from flatconf.config import Config, ConfigStats
from flatconf.errors import (
    EmptyInputError,
    FlatconfError,
    InvalidTargetError,
    NoSourceLoadedError,
    SourceParseError,
    SourceReadError,
    WatchSetupError,
)
from flatconf.flatten import flatten, flatten_all
from flatconf.reconstruct import reconstruct
from flatconf.reload import ReloadCoordinator, WatchStart
from flatconf.shapes import ShapeCache, extract_shape, setting

__all__ = [
    "Config",
    "ConfigStats",
    "EmptyInputError",
    "FlatconfError",
    "InvalidTargetError",
    "Kind",
    "NoSourceLoadedError",
    "ReloadCoordinator",
    "ShapeCache",
    "SourceParseError",
    "SourceReadError",
    "WatchSetupError",
    "WatchStart",
    "auto_detect",
    "bind",
    "bind_flat",
    "detect_nested",
    "extract_shape",
    "flatten",
    "flatten_all",
    "reconstruct",
    "setting",
]

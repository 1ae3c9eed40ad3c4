"""Parse source files into documents for flattening.

The file extension picks the parser: ``.json`` is JSON, anything else is the
INI-like grammar below.

    # comment
    name = top-level value
    [database]
    host = "localhost"          # trailing comments need leading whitespace
    url = http://example.com    // so do these
    include common.conf

Keys inside a section are stored as ``section.key``, so a top-level
``db = x`` and a ``[db]`` section can both hold values. ``include <path>``
pulls another INI file in at that point (relative paths resolve against the including file); files
that are themselves configured sources, or already being read, are skipped.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from flatconf.errors import SourceParseError, SourceReadError

logger = logging.getLogger("flatconf.sources")

_SECTION_RE = re.compile(r"^\s*-?\[([A-Za-z0-9_]+)\].*$")
_LINE_RE = re.compile(r"^\s*([A-Za-z0-9_.]+)\s*=\s*(.*?)(?:\s+(?:#|//).*)?\s*$")
_INCLUDE_RE = re.compile(r"^include\s+(.*?)\s*$")


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise SourceParseError(str(path), f"not valid UTF-8: {exc}") from exc
    except OSError as exc:
        raise SourceReadError(str(path), exc.strerror or str(exc)) from exc


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def parse_ini(text: str, *, origin: Path | None = None, skip: frozenset[Path] = frozenset(),
              _reading: frozenset[Path] = frozenset()) -> dict[str, str]:
    """Parse INI-like text into flat {"section.key": value} entries.

    `origin` is the file the text came from; it anchors relative includes.
    """
    doc: dict[str, str] = {}
    section = ""
    base_dir = origin.parent if origin is not None else Path.cwd()
    reading = _reading | ({origin.resolve()} if origin is not None else set())

    for line in text.splitlines():
        if m := _LINE_RE.match(line):
            key = f"{section}.{m.group(1)}" if section else m.group(1)
            doc[key] = _unquote(m.group(2).strip())
        elif m := _SECTION_RE.match(line):
            section = m.group(1)
        elif m := _INCLUDE_RE.match(line):
            include = Path(_unquote(m.group(1)))
            if not include.is_absolute():
                include = base_dir / include
            resolved = include.resolve()
            if resolved in skip or resolved in reading:
                logger.info("include skipped, already read: %s", include)
                continue
            logger.info("read config: %s", include)
            doc.update(parse_ini(_read_text(include), origin=include, skip=skip, _reading=reading))
    return doc


def parse_json(text: str, *, origin: Path | None = None) -> dict[str, Any]:
    name = str(origin) if origin is not None else "<string>"
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SourceParseError(name, str(exc)) from exc
    if not isinstance(data, dict):
        raise SourceParseError(name, f"root must be an object, got {type(data).__name__}")
    return data


def load_document(path: Path | str, *, sources: list[Path] | None = None) -> dict[str, Any]:
    """Read one source file into a document for flatten().

    `sources` is the full list of configured source files; INI includes that
    point at one of them are skipped since they are loaded on their own.
    """
    file_path = Path(path)
    logger.info("read config: %s", file_path)
    text = _read_text(file_path)
    if file_path.suffix == ".json":
        return parse_json(text, origin=file_path)
    skip = frozenset(p.resolve() for p in (sources or []))
    return parse_ini(text, origin=file_path, skip=skip)

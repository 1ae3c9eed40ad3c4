"""Rebuild nested documents from flat entries.

Each value is converted using the shape map (exact path first, then the path
with list indices removed) or, for paths the shape does not know, by
auto-detection. Mappings whose keys are exactly "0".."n-1" become lists.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from flatconf.coerce import Kind, auto_detect, coerce

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger("flatconf.reconstruct")


def is_index(segment: str) -> bool:
    return segment.isascii() and segment.isdigit()


def strip_indices(path: str) -> str:
    """'servers.0.port' -> 'servers.port', 'numbers.1' -> 'numbers'."""
    return ".".join(p for p in path.split(".") if not is_index(p))


def resolve_kind(path: str, shapes: Mapping[str, Kind]) -> Kind | None:
    kind = shapes.get(path)
    if kind is None:
        kind = shapes.get(strip_indices(path))
    return kind


def convert(path: str, value: str, shapes: Mapping[str, Kind]) -> Any:
    kind = resolve_kind(path, shapes)
    if kind is None:
        return auto_detect(value)
    return coerce(value, kind)


def _is_array(node: dict[str, Any]) -> bool:
    return bool(node) and all(str(i) in node for i in range(len(node)))


def inflate(node: Any) -> Any:
    """Turn every contiguous numeric-keyed mapping into a list, recursively."""
    if isinstance(node, dict):
        if _is_array(node):
            return [inflate(node[str(i)]) for i in range(len(node))]
        return {key: inflate(value) for key, value in node.items()}
    if isinstance(node, list):
        return [inflate(value) for value in node]
    return node


def reconstruct(store: Mapping[str, str], shapes: Mapping[str, Kind] | None = None) -> Any:
    """Build a nested document from `store`, typed according to `shapes`.

    Returns a dict, or a list when every top-level key is an index.
    """
    shapes = shapes or {}
    root: dict[str, Any] = {}

    for path in sorted(store):
        value = convert(path, store[path], shapes)
        *parents, leaf = path.split(".")
        node: dict[str, Any] | None = root
        for part in parents:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                logger.debug("skip %s: %s already holds a value", path, part)
                node = None
                break
            node = child
        if node is None:
            continue
        if isinstance(node.get(leaf), dict):
            logger.debug("skip %s: path already holds a mapping", path)
            continue
        node[leaf] = value

    return inflate(root)

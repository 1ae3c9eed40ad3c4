"""Flatten nested documents into dotted-path -> string entries.

    {"app": {"name": "x"}, "ports": [80, 443]}
        -> {"app.name": "x", "ports.0": "80", "ports.1": "443"}

None values are dropped; booleans render as true/false.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from flatconf.coerce import stringify

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


def _join(prefix: str, segment: str) -> str:
    return f"{prefix}.{segment}" if prefix else segment


def flatten(doc: Any, prefix: str = "", into: dict[str, str] | None = None) -> dict[str, str]:
    """Flatten doc into `into` (a new dict by default) and return it.

    Keys already present in `into` are overwritten, which is how a later
    source overrides an earlier one.
    """
    out: dict[str, str] = {} if into is None else into
    if doc is None:
        return out
    if isinstance(doc, dict):
        for key, value in doc.items():
            flatten(value, _join(prefix, str(key)), out)
    elif isinstance(doc, (list, tuple)):
        for i, value in enumerate(doc):
            flatten(value, _join(prefix, str(i)), out)
    else:
        out[prefix] = stringify(doc)
    return out


def flatten_all(docs: Iterable[Mapping[str, Any]]) -> dict[str, str]:
    """Flatten several documents in order; later documents win."""
    out: dict[str, str] = {}
    for doc in docs:
        flatten(doc, "", out)
    return out

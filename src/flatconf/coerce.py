"""Primitive kinds and string -> value coercion.

Flat values are always strings. Coercion is best-effort: a value that does
not parse as the requested kind is returned unchanged.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

_INT_RE = re.compile(r"[+-]?\d+", re.ASCII)
_FLOAT_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)

_TRUE = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class Kind(str, Enum):
    """Primitive kind expected at a flat path."""

    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"


_PY_KINDS: dict[type, Kind] = {
    str: Kind.STRING,
    int: Kind.INT,
    float: Kind.FLOAT,
    bool: Kind.BOOL,
}


def kind_of(tp: Any) -> Kind | None:
    """Return the Kind for a Python primitive type, or None."""
    if isinstance(tp, type):
        return _PY_KINDS.get(tp)
    return None


def parse_int(value: str) -> int | None:
    if _INT_RE.fullmatch(value):
        return int(value)
    return None


def parse_float(value: str) -> float | None:
    if _FLOAT_RE.fullmatch(value):
        return float(value)
    return None


def parse_bool(value: str) -> bool | None:
    """Lenient bool parse used for typed paths and get_bool()."""
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    return None


def _parse_bool_word(value: str) -> bool | None:
    # Auto-detection only accepts the words, so "1" stays an int.
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None


def coerce(value: str, kind: Kind) -> Any:
    """Convert value to kind, falling back to the original string."""
    if kind is Kind.STRING:
        return value
    if kind is Kind.INT:
        parsed: Any = parse_int(value)
    elif kind is Kind.FLOAT:
        parsed = parse_float(value)
    else:
        parsed = parse_bool(value)
    return value if parsed is None else parsed


def auto_detect(value: str) -> Any:
    """Infer a value's type: bool, then int, then float, then string."""
    for parser in (_parse_bool_word, parse_int, parse_float):
        parsed = parser(value)
        if parsed is not None:
            return parsed
    return value


def stringify(value: Any) -> str:
    """Render a scalar the way it is stored in the flat store."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return str(value)

"""Overlay reconstructed documents (or the flat store) onto records.

Two modes, picked by detect_nested():

    nested  each field path is resolved relative to the enclosing record,
            walking the reconstructed document ({"app": {"name": ...}})
    flat    each primitive field path is a literal flat key ("app.name")

Values that failed coercion keep their original string form; fields with no
matching entry keep their default (or the zero value of their type).
"""

from __future__ import annotations

import dataclasses
import logging
import typing
from typing import TYPE_CHECKING, Any

from flatconf.coerce import Kind, coerce, stringify
from flatconf.errors import InvalidTargetError
from flatconf.reconstruct import is_index, reconstruct
from flatconf.shapes import FieldSpec, is_record, record_fields, record_type, unwrap_optional

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger("flatconf.binding")

_MISSING = object()

_ZERO: dict[type, Any] = {str: "", int: 0, float: 0.0, bool: False}


def _lookup(node: Any, path: str) -> Any:
    for segment in path.split("."):
        if isinstance(node, dict) and segment in node:
            node = node[segment]
        elif isinstance(node, list) and is_index(segment) and int(segment) < len(node):
            node = node[int(segment)]
        else:
            return _MISSING
    return node


def _scalar(value: Any, kind: Kind | None) -> Any:
    if isinstance(value, (dict, list)):
        return _MISSING
    if kind is None:
        return value
    if isinstance(value, str):
        return coerce(value, kind)
    if kind is Kind.STRING:
        return stringify(value)
    if kind is Kind.FLOAT and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    return value


def _convert(spec: FieldSpec, raw: Any, current: Any = None) -> Any:
    if spec.is_list:
        if isinstance(raw, dict):
            logger.debug("field %s: expected a list at %s", spec.name, spec.path)
            return _MISSING
        if not isinstance(raw, list):
            raw = [raw]
        if spec.record is not None:
            return [_build(spec.record, item) for item in raw if isinstance(item, dict)]
        items = (_scalar(item, spec.kind) for item in raw)
        return [item for item in items if item is not _MISSING]
    if spec.record is not None:
        if not isinstance(raw, dict):
            return _MISSING
        if dataclasses.is_dataclass(current) and not isinstance(current, type):
            return _overlay(current, raw)
        return _build(spec.record, raw)
    return _scalar(raw, spec.kind)


def _zero(tp: Any) -> Any:
    tp, optional = unwrap_optional(tp)
    if optional:
        return None
    if typing.get_origin(tp) is list or tp is list:
        return []
    if is_record(tp):
        return _build(tp, {})
    return _ZERO.get(tp) if isinstance(tp, type) else None


def _values(cls: type, node: Any) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for spec in record_fields(cls):
        raw = _lookup(node, spec.path)
        if raw is _MISSING:
            continue
        value = _convert(spec, raw)
        if value is not _MISSING:
            out[spec.name] = value
    return out


def _build(cls: type, node: Any) -> Any:
    return _construct(cls, _values(cls, node))


def _construct(cls: type, values: dict[str, Any]) -> Any:
    hints = typing.get_type_hints(cls)
    kwargs: dict[str, Any] = {}
    late: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        if f.name in values:
            (kwargs if f.init else late)[f.name] = values[f.name]
        elif f.init and f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            kwargs[f.name] = _zero(hints.get(f.name))
    obj = cls(**kwargs)
    for name, value in late.items():
        object.__setattr__(obj, name, value)
    return obj


def _check_mutable(cls: type) -> None:
    if cls.__dataclass_params__.frozen:  # type: ignore[attr-defined]
        msg = f"cannot overlay onto frozen {cls.__qualname__} instance; pass the class instead"
        raise InvalidTargetError(msg)


def _overlay(obj: Any, node: Any) -> Any:
    cls = type(obj)
    _check_mutable(cls)
    for spec in record_fields(cls):
        raw = _lookup(node, spec.path)
        if raw is _MISSING:
            continue
        value = _convert(spec, raw, getattr(obj, spec.name, None))
        if value is not _MISSING:
            setattr(obj, spec.name, value)
    return obj


def bind(doc: Any, target: Any) -> Any:
    """Bind a nested document onto `target` (record class or instance).

    A class yields a new instance; an instance is updated in place and
    returned.
    """
    record_type(target)
    node = doc if isinstance(doc, dict) else {}
    if isinstance(target, type):
        return _build(target, node)
    return _overlay(target, node)


def detect_nested(cls: type) -> bool:
    """True if any record-typed field carries an undotted path."""
    return any(
        spec.is_record and not spec.is_list and "." not in spec.path
        for spec in record_fields(record_type(cls))
    )


def _flat_values(cls: type, store: Mapping[str, str], shapes: Mapping[str, Kind]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    doc: Any = _MISSING
    for spec in record_fields(cls):
        if spec.is_record:
            if doc is _MISSING:
                doc = reconstruct(store, shapes)
            raw = _lookup(doc, spec.path)
            value = _MISSING if raw is _MISSING else _convert(spec, raw)
        elif spec.is_list:
            items = []
            while (key := f"{spec.path}.{len(items)}") in store:
                items.append(store[key])
            if not items and spec.path in store:
                items.append(store[spec.path])
            value = [_scalar(item, spec.kind) for item in items] if items else _MISSING
        elif spec.path in store:
            value = _scalar(store[spec.path], spec.kind)
        else:
            value = _MISSING
        if value is not _MISSING:
            out[spec.name] = value
    return out


def bind_flat(store: Mapping[str, str], target: Any, shapes: Mapping[str, Kind] | None = None) -> Any:
    """Bind flat entries onto `target`, reading each field's path as a flat key."""
    cls = record_type(target)
    values = _flat_values(cls, store, shapes or {})
    if isinstance(target, type):
        return _construct(cls, values)
    _check_mutable(cls)
    for name, value in values.items():
        setattr(target, name, value)
    return target

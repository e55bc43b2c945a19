"""Convert arbitrary values into typed objects through a JSON round trip."""

from __future__ import annotations

import base64
import dataclasses
import datetime as _dt
import functools
import inspect
import json
import types
import typing
from decimal import Decimal
from typing import Any, Union

_MISSING = dataclasses.MISSING

_GENERIC_NAMES = {
    "list": list,
    "List": list,
    "dict": dict,
    "Dict": dict,
    "tuple": tuple,
    "Tuple": tuple,
    "set": set,
    "Set": set,
    "frozenset": frozenset,
    "FrozenSet": frozenset,
}

_KNOWN_NAMES: dict[str, Any] = {
    "None": type(None),
    "Any": Any,
    "...": Ellipsis,
    "Optional": typing.Optional,
    "Union": Union,
    "int": int,
    "float": float,
    "str": str,
    "bytes": bytes,
    "bytearray": bytearray,
    "bool": bool,
    "object": object,
    "list": list,
    "dict": dict,
    "tuple": tuple,
    "set": set,
    "frozenset": frozenset,
    "datetime": _dt.datetime,
    "date": _dt.date,
    "time": _dt.time,
    "Decimal": Decimal,
}


def _json_name(field: dataclasses.Field) -> str:
    return field.metadata.get("json", field.name)


def _default(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {
            _json_name(f): getattr(obj, f.name)
            for f in dataclasses.fields(obj)
            if _json_name(f) != "-"
        }
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(obj)).decode("ascii")
    if isinstance(obj, (_dt.datetime, _dt.date, _dt.time)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    raise TypeError(f"value of type {type(obj).__name__} is not JSON serializable")


def _split_top(text: str, sep: str) -> list[str]:
    parts, depth, current = [], 0, []
    for ch in text:
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
        if ch == sep and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    parts.append("".join(current).strip())
    return parts


def _members(obj: Any) -> dict[str, Any]:
    try:
        return dict(inspect.getmembers(obj))
    except Exception:
        return {}


def _lookup_name(name: str, cls: type) -> Any:
    head, *rest = name.split(".")
    module = inspect.getmodule(cls)
    found = _members(module).get(head, _MISSING) if module is not None else _MISSING
    if found is _MISSING:
        found = _KNOWN_NAMES.get(head, _MISSING)
    if found is _MISSING:
        return Any
    for attr in rest:
        found = _members(found).get(attr, _MISSING)
        if found is _MISSING:
            return Any
    return found


def _resolve_hint(hint: Any, cls: type) -> Any:
    """Turn a string annotation into a type without evaluating code."""
    if not isinstance(hint, str):
        return hint
    text = hint.strip()
    alternatives = _split_top(text, "|")
    if len(alternatives) > 1:
        return Union[tuple(_resolve_hint(part, cls) for part in alternatives)]
    if text.endswith("]") and "[" in text:
        name, inner = text.split("[", 1)
        name = name.strip()
        args = tuple(_resolve_hint(part, cls) for part in _split_top(inner[:-1], ","))
        if name in ("Optional", "typing.Optional"):
            return Union[args[0], None]
        if name in ("Union", "typing.Union"):
            return Union[args]
        base = _GENERIC_NAMES.get(name.rsplit(".", 1)[-1])
        if base is None:
            return Any
        return base[args] if len(args) > 1 else base[args[0]]
    return _lookup_name(text, cls)


@functools.lru_cache(maxsize=512)
def _field_hints(cls: type) -> dict[str, Any]:
    return {field.name: _resolve_hint(field.type, cls) for field in dataclasses.fields(cls)}


def _is_type_like(target: Any) -> bool:
    return target is Any or isinstance(target, type) or typing.get_origin(target) is not None


def _mismatch(data: Any, hint: Any) -> TypeError:
    return TypeError(f"cannot decode {type(data).__name__} into {hint!r}")


def _zero(hint: Any) -> Any:
    origin = typing.get_origin(hint)
    if origin in (Union, types.UnionType):
        if type(None) in typing.get_args(hint):
            return None
        return _zero(typing.get_args(hint)[0])
    base = origin or hint
    if isinstance(base, type):
        if dataclasses.is_dataclass(base):
            return _build_dataclass({}, base)
        if issubclass(base, (bool, int, float, str, bytes, list, dict, tuple, set)):
            return base()
    return None


def _build_dataclass(data: Any, cls: type) -> Any:
    if not isinstance(data, dict):
        raise _mismatch(data, cls)
    hints = _field_hints(cls)
    folded = {key.lower(): key for key in data}
    kwargs = {}
    for field in dataclasses.fields(cls):
        if not field.init:
            continue
        hint = hints.get(field.name, Any)
        name = _json_name(field)
        key = None
        if name != "-":
            key = name if name in data else folded.get(name.lower())
        if key is not None:
            kwargs[field.name] = _convert(data[key], hint)
        elif field.default is _MISSING and field.default_factory is _MISSING:
            kwargs[field.name] = _zero(hint)
    return cls(**kwargs)


def _convert(data: Any, hint: Any) -> Any:
    if hint is Any or hint is object:
        return data
    origin = typing.get_origin(hint)
    if origin in (Union, types.UnionType):
        args = typing.get_args(hint)
        if data is None and type(None) in args:
            return None
        for arg in args:
            if arg is type(None):
                continue
            try:
                return _convert(data, arg)
            except (TypeError, ValueError):
                continue
        raise _mismatch(data, hint)
    if data is None:
        return _zero(hint)
    if origin in (list, set, frozenset, tuple):
        if not isinstance(data, list):
            raise _mismatch(data, hint)
        args = typing.get_args(hint)
        if origin is tuple and args and args[-1] is not Ellipsis:
            if len(args) != len(data):
                raise _mismatch(data, hint)
            return tuple(_convert(item, arg) for item, arg in zip(data, args))
        item_hint = args[0] if args else Any
        return origin(_convert(item, item_hint) for item in data)
    if origin is dict:
        if not isinstance(data, dict):
            raise _mismatch(data, hint)
        args = typing.get_args(hint)
        value_hint = args[1] if len(args) == 2 else Any
        return {key: _convert(value, value_hint) for key, value in data.items()}
    if hint is bool:
        if not isinstance(data, bool):
            raise _mismatch(data, hint)
        return data
    if hint is int:
        if isinstance(data, bool) or not isinstance(data, int):
            raise _mismatch(data, hint)
        return data
    if hint is float:
        if isinstance(data, bool) or not isinstance(data, (int, float)):
            raise _mismatch(data, hint)
        return float(data)
    if hint is str:
        if not isinstance(data, str):
            raise _mismatch(data, hint)
        return data
    if hint is bytes:
        if not isinstance(data, str):
            raise _mismatch(data, hint)
        return base64.b64decode(data)
    if hint is _dt.datetime:
        if not isinstance(data, str):
            raise _mismatch(data, hint)
        return _dt.datetime.fromisoformat(data[:-1] + "+00:00" if data.endswith("Z") else data)
    if isinstance(hint, type) and dataclasses.is_dataclass(hint):
        return _build_dataclass(data, hint)
    if isinstance(hint, type) and isinstance(data, hint):
        return data
    raise _mismatch(data, hint)


def decode_any(value: Any, target: Any) -> Any:
    """Serialize ``value`` to JSON and decode it as an instance of ``target``.

    ``target`` must be a type (a dataclass, a builtin or a generic alias).
    Raises TypeError when the value cannot be serialized or does not fit.
    """
    if not _is_type_like(target):
        raise TypeError(f"target must be a type, not an instance of {type(target).__name__}")
    data = json.loads(json.dumps(value, default=_default))
    return _convert(data, target)
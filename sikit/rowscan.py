"""Scan DB-API result sets into dictionaries, dataclasses and single values."""

from __future__ import annotations

import dataclasses
import datetime as _dt
import functools
import inspect
import re
import types
import typing
from typing import Any, Callable, Optional, Union

from .convert import _field_hints, _zero
from .sqltypes import Converter, SqlColType, converter_for

DEFAULT_TAG_KEY = "si"

_FIRST_CAP = re.compile(r"(.)([A-Z][a-z]+)")
_ALL_CAP = re.compile(r"([a-z0-9])([A-Z])")

_FIELD_COERCERS: dict[Any, Converter] = {
    bool: converter_for(SqlColType.BOOL),
    int: converter_for(SqlColType.INT64),
    float: converter_for(SqlColType.FLOAT64),
    str: converter_for(SqlColType.STRING),
    bytes: converter_for(SqlColType.BYTES),
    _dt.datetime: converter_for(SqlColType.TIME),
}


class NoRowsError(LookupError):
    """Raised when a single row was expected but the result set is empty."""

    def __init__(self) -> None:
        super().__init__("no rows in result set")


def to_snake(name: str) -> str:
    """Turn a CamelCase name into snake_case."""
    snake = _FIRST_CAP.sub(r"\1_\2", name)
    snake = _ALL_CAP.sub(r"\1_\2", snake)
    return snake.lower()


RowScannerOption = Callable[["RowScanner"], None]


def with_tag_key(key: str) -> RowScannerOption:
    """Option that makes a scanner read field names from metadata ``key``."""

    def apply(scanner: RowScanner) -> None:
        scanner.tag_key = key

    return apply


def with_sql_column_type(name: str, col_type: SqlColType | int) -> RowScannerOption:
    """Option that forces the values of column ``name`` to ``col_type``.

    An unknown column type leaves the scanner unchanged.
    """
    try:
        converter = converter_for(col_type)
    except ValueError:
        converter = None

    def apply(scanner: RowScanner) -> None:
        if converter is not None:
            scanner.set_sql_column(name, converter)

    return apply


def _unwrap_optional(hint: Any) -> Any:
    if typing.get_origin(hint) in (Union, types.UnionType):
        args = [arg for arg in typing.get_args(hint) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return hint


def _is_nested(hint: Any) -> bool:
    inner = _unwrap_optional(hint)
    return isinstance(inner, type) and dataclasses.is_dataclass(inner)


def _is_interface(hint: Any) -> bool:
    return isinstance(hint, type) and (
        inspect.isabstract(hint) or bool(getattr(hint, "_is_protocol", False))
    )


def _tag_name(field: dataclasses.Field, tag_key: str) -> Optional[str]:
    tag = field.metadata.get(tag_key)
    if tag is None:
        return None
    return str(tag).split(",")[0]


def _coerce(value: Any, hint: Any) -> Any:
    if value is None:
        return None
    converter = _FIELD_COERCERS.get(_unwrap_optional(hint))
    return converter(value) if converter is not None else value


@dataclasses.dataclass(frozen=True)
class _Leaf:
    path: tuple[str, ...]
    hint: Any


@dataclasses.dataclass(frozen=True)
class _Plan:
    names: dict[str, _Leaf]
    nested: frozenset[tuple[str, ...]]


def _traverse(
    cls: type,
    tag_key: str,
    prefix: tuple[str, ...],
    leaves: list[tuple[tuple[str, ...], dataclasses.Field, Any]],
    nested: set[tuple[str, ...]],
) -> None:
    hints = _field_hints(cls)
    for field in dataclasses.fields(cls):
        if field.name.startswith("_") or not field.init:
            continue
        if _tag_name(field, tag_key) == "-":
            continue
        hint = hints.get(field.name, Any)
        path = prefix + (field.name,)
        if _is_nested(hint):
            nested.add(path)
            _traverse(_unwrap_optional(hint), tag_key, path, leaves, nested)
            continue
        if _is_interface(_unwrap_optional(hint)):
            continue
        leaves.append((path, field, hint))


@functools.lru_cache(maxsize=256)
def _plan(cls: type, tag_key: str) -> _Plan:
    if not (isinstance(cls, type) and dataclasses.is_dataclass(cls)):
        raise TypeError(f"output type must be a dataclass, not {cls!r}")
    leaves: list[tuple[tuple[str, ...], dataclasses.Field, Any]] = []
    nested: set[tuple[str, ...]] = set()
    _traverse(cls, tag_key, (), leaves, nested)
    names: dict[str, _Leaf] = {}
    for path, field, hint in leaves:
        name = _tag_name(field, tag_key)
        if name is None:
            name = to_snake(field.name)
        if name:
            names.setdefault(name, _Leaf(path, hint))
    return _Plan(names, frozenset(nested))


def _build(cls: type, plan: _Plan, values: dict[tuple[str, ...], Any], prefix=()) -> Any:
    hints = _field_hints(cls)
    kwargs: dict[str, Any] = {}
    for field in dataclasses.fields(cls):
        if not field.init:
            continue
        path = prefix + (field.name,)
        hint = hints.get(field.name, Any)
        if path in values:
            kwargs[field.name] = values[path]
        elif path in plan.nested:
            kwargs[field.name] = _build(_unwrap_optional(hint), plan, values, path)
        elif field.default is dataclasses.MISSING and field.default_factory is dataclasses.MISSING:
            kwargs[field.name] = _zero(hint)
    return cls(**kwargs)


def _columns(cursor: Any) -> list[str]:
    description = cursor.description
    return [column[0] for column in description] if description else []


def _destinations(columns: list[str], plan: _Plan) -> list[_Leaf]:
    targets = []
    for column in columns:
        leaf = plan.names.get(column)
        if leaf is None:
            raise ValueError(f"column '{column}' was not found")
        targets.append(leaf)
    return targets


class RowScanner:
    """Turns the rows of an executed DB-API cursor into Python values."""

    def __init__(self, *options: Optional[RowScannerOption]) -> None:
        self._sql_col: dict[str, Converter] = {}
        self.tag_key = DEFAULT_TAG_KEY
        self.reset(*options)

    def reset(self, *options: Optional[RowScannerOption]) -> None:
        """Forget column types, restore the default tag key, apply ``options``."""
        self._sql_col.clear()
        self.tag_key = DEFAULT_TAG_KEY
        for option in options:
            if option is not None:
                option(self)

    def set_sql_column(self, name: str, col_type: SqlColType | int | Converter) -> None:
        """Force column ``name`` through a SqlColType or a converter callable."""
        if isinstance(col_type, int) and not isinstance(col_type, bool):
            converter = converter_for(col_type)
        elif callable(col_type):
            converter = col_type
        else:
            raise TypeError(f"expected a SqlColType or a callable, not {type(col_type).__name__}")
        self._sql_col[name] = converter

    def get_sql_column(self, name: str) -> Optional[Converter]:
        """Return the converter registered for column ``name``, or None."""
        return self._sql_col.get(name)

    def scan_maps(self, cursor: Any) -> list[dict[str, Any]]:
        """Return every remaining row as a dict keyed by column name."""
        columns = _columns(cursor)
        converters = [self._sql_col.get(column) for column in columns]
        return [
            {
                column: converter(value) if converter is not None else value
                for column, converter, value in zip(columns, converters, row)
            }
            for row in cursor
        ]

    def _make(self, cls: type, plan: _Plan, targets: list[_Leaf], row: Any) -> Any:
        values = {
            leaf.path: _coerce(value, leaf.hint)
            for leaf, value in zip(targets, row)
            if value is not None
        }
        return _build(cls, plan, values)

    def _prepare(self, cursor: Any, cls: type) -> tuple[_Plan, list[_Leaf]]:
        plan = _plan(cls, self.tag_key)
        columns = [column.lower() for column in _columns(cursor)]
        return plan, _destinations(columns, plan)

    def scan_structs(self, cursor: Any, cls: type) -> list[Any]:
        """Return every remaining row as an instance of dataclass ``cls``."""
        plan, targets = self._prepare(cursor, cls)
        return [self._make(cls, plan, targets, row) for row in cursor]

    def scan_struct(self, cursor: Any, cls: type) -> Any:
        """Return the first row as an instance of ``cls``; raise NoRowsError if none."""
        plan, targets = self._prepare(cursor, cls)
        row = cursor.fetchone()
        if row is None:
            raise NoRowsError()
        return self._make(cls, plan, targets, row)

    def scan_primary(self, cursor: Any, typ: Any) -> Any:
        """Return the single value of the first row converted to ``typ``."""
        row = cursor.fetchone()
        if row is None:
            raise NoRowsError()
        if len(row) != 1:
            raise ValueError(f"expected {len(row)} destination arguments in scan, not 1")
        value = row[0]
        if value is None:
            return _zero(typ)
        return _coerce(value, typ)
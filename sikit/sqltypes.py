"""Column types that can be forced onto result-set columns, and their converters."""

from __future__ import annotations

import datetime as _dt
import re
from dataclasses import dataclass
from decimal import Decimal
from enum import IntEnum
from typing import Any, Callable, Protocol

Converter = Callable[[Any], Any]

_INT_RE = re.compile(r"[+-]?[0-9]+")
_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})

_INT8 = (-(2**7), 2**7 - 1)
_INT16 = (-(2**15), 2**15 - 1)
_INT32 = (-(2**31), 2**31 - 1)
_INT64 = (-(2**63), 2**63 - 1)
_UINT8 = (0, 2**8 - 1)
_UINT16 = (0, 2**16 - 1)
_UINT32 = (0, 2**32 - 1)
_UINT64 = (0, 2**64 - 1)


class SqlColType(IntEnum):
    """The type a column's values are converted to when scanned."""

    BOOL = 0
    BYTE = 1
    BYTES = 2
    STRING = 3
    INT = 4
    INT8 = 5
    INT16 = 6
    INT32 = 7
    INT64 = 8
    UINT = 9
    UINT8 = 10
    UINT16 = 11
    UINT32 = 12
    UINT64 = 13
    FLOAT32 = 14
    FLOAT64 = 15
    TIME = 16
    INTS = 17
    INTS8 = 18
    INTS16 = 19
    INTS32 = 20
    INTS64 = 21
    UINTS = 22
    UINTS8 = 23
    UINTS16 = 24
    UINTS32 = 25
    UINTS64 = 26


class _ColumnTarget(Protocol):
    def set_sql_column(self, name: str, col_type: Any) -> None: ...


def _text(value: Any) -> str:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8")
    return value


def _parse_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("cannot convert bool to an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{value!r} is not an integral number")
        return int(value)
    if isinstance(value, Decimal):
        if not (value.is_finite() and value == value.to_integral_value()):
            raise ValueError(f"{value!r} is not an integral number")
        return int(value)
    value = _text(value)
    if isinstance(value, str):
        if _INT_RE.fullmatch(value):
            return int(value)
        raise ValueError(f"cannot parse {value!r} as an integer")
    raise TypeError(f"cannot convert {type(value).__name__} to an integer")


def _parse_float(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError("cannot convert bool to a float")
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    value = _text(value)
    if isinstance(value, str):
        return float(value)
    raise TypeError(f"cannot convert {type(value).__name__} to a float")


def _in_range(number: int, bounds: tuple[int, int]) -> int:
    low, high = bounds
    if not low <= number <= high:
        raise ValueError(f"{number} is out of range [{low}, {high}]")
    return number


def _to_bool(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value in (0, 1):
            return bool(value)
        raise ValueError(f"{value} is not a valid boolean")
    value = _text(value)
    if isinstance(value, str):
        if value in _TRUE_WORDS:
            return True
        if value in _FALSE_WORDS:
            return False
        raise ValueError(f"cannot parse {value!r} as a boolean")
    raise TypeError(f"cannot convert {type(value).__name__} to a boolean")


def _int_converter(bounds: tuple[int, int]) -> Converter:
    def convert(value: Any) -> int | None:
        if value is None:
            return None
        return _in_range(_parse_int(value), bounds)

    return convert


def _to_float(value: Any) -> float | None:
    if value is None:
        return None
    return _parse_float(value)


def _to_string(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (_dt.datetime, _dt.date, _dt.time)):
        return value.isoformat()
    if isinstance(value, float):
        return repr(value)
    return str(value)


def _to_bytes(value: Any) -> bytes | None:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    return _to_string(value).encode("utf-8")


def _to_time(value: Any) -> _dt.datetime | None:
    if value is None:
        return None
    if isinstance(value, _dt.datetime):
        return value
    if isinstance(value, _dt.date):
        return _dt.datetime.combine(value, _dt.time())
    value = _text(value)
    if isinstance(value, str):
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        return _dt.datetime.fromisoformat(value)
    raise TypeError(f"cannot convert {type(value).__name__} to a time")


def _list_converter(bounds: tuple[int, int]) -> Converter:
    def convert(value: Any) -> list[int] | None:
        if value is None:
            return None
        if isinstance(value, (bytes, bytearray, memoryview)):
            items = list(bytes(value))
        elif isinstance(value, (list, tuple)):
            items = [_parse_int(item) for item in value]
        else:
            raise TypeError(f"cannot convert {type(value).__name__} to a list of integers")
        return [_in_range(item, bounds) for item in items]

    return convert


_CONVERTERS: dict[SqlColType, Converter] = {
    SqlColType.BOOL: _to_bool,
    SqlColType.BYTE: _int_converter(_UINT8),
    SqlColType.BYTES: _to_bytes,
    SqlColType.STRING: _to_string,
    SqlColType.INT: _int_converter(_INT64),
    SqlColType.INT8: _int_converter(_INT16),
    SqlColType.INT16: _int_converter(_INT16),
    SqlColType.INT32: _int_converter(_INT32),
    SqlColType.INT64: _int_converter(_INT64),
    SqlColType.UINT: _int_converter(_INT64),
    SqlColType.UINT8: _int_converter(_INT16),
    SqlColType.UINT16: _int_converter(_INT16),
    SqlColType.UINT32: _int_converter(_INT32),
    SqlColType.UINT64: _int_converter(_INT64),
    SqlColType.FLOAT32: _to_float,
    SqlColType.FLOAT64: _to_float,
    SqlColType.TIME: _to_time,
    SqlColType.INTS: _list_converter(_INT64),
    SqlColType.INTS8: _list_converter(_INT8),
    SqlColType.INTS16: _list_converter(_INT16),
    SqlColType.INTS32: _list_converter(_INT32),
    SqlColType.INTS64: _list_converter(_INT64),
    SqlColType.UINTS: _list_converter(_UINT64),
    SqlColType.UINTS8: _list_converter(_UINT8),
    SqlColType.UINTS16: _list_converter(_UINT16),
    SqlColType.UINTS32: _list_converter(_UINT32),
    SqlColType.UINTS64: _list_converter(_UINT64),
}


def converter_for(col_type: SqlColType | int) -> Converter:
    """Return the converter for a column type; None always converts to None."""
    return _CONVERTERS[SqlColType(col_type)]


@dataclass(frozen=True)
class SqlColumn:
    """A column name paired with the type its values are forced to."""

    name: str
    type: SqlColType

    def set_type(self, scanner: _ColumnTarget) -> None:
        """Register this column's converter on a row scanner."""
        scanner.set_sql_column(self.name, converter_for(self.type))
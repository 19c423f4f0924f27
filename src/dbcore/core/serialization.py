"""Convert driver values into backend-agnostic result values.

Values are mapped by the column's declared type name into one of: None,
int/float, bool, str, a JSON value (dict/list/scalar), or an opaque
``<binary data: N bytes>`` marker. Unrecognized types fall back to a
string read, then None. Conversion never raises.
"""

from __future__ import annotations

import datetime as dt
import json
import math
import time
from collections.abc import Sequence
from typing import Any

from dbcore.core.models import (
    ColumnDefinition,
    ColumnTypeCategory,
    QueryResult,
    Row,
)

_INTEGER_TYPES = frozenset(
    {"int", "integer", "int2", "int4", "int8", "smallint", "bigint", "oid"}
)
_FLOAT_TYPES = frozenset(
    {"float", "double", "real", "float4", "float8", "double precision"}
)
_DECIMAL_TYPES = frozenset({"decimal", "numeric", "money"})
_BOOL_TYPES = frozenset({"bool", "boolean"})
_STRING_TYPES = frozenset(
    {"char", "bpchar", "varchar", "text", "name", "citext", "character varying"}
)
_TEMPORAL_TYPES = frozenset(
    {"timestamp", "timestamptz", "date", "time", "timetz"}
)
_JSON_TYPES = frozenset({"json", "jsonb"})
_BINARY_TYPES = frozenset({"bytea", "blob", "binary"})
_GEOMETRY_TYPES = frozenset(
    {"point", "line", "polygon", "box", "circle", "path", "lseg"}
)


def binary_marker(size: int) -> str:
    return f"<binary data: {size} bytes>"


def _to_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> float | None:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    # NaN and infinities have no JSON number form.
    return f if math.isfinite(f) else None


def _to_temporal(value: Any) -> str | None:
    if isinstance(value, dt.datetime):
        if value.tzinfo is not None:
            return value.isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, (dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, str):
        return value
    return None


def _to_json(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except ValueError:
            return None
    if isinstance(value, (dict, list, int, float, bool)):
        return value
    return None


def _read_string(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError:
            return None
    try:
        return str(value)
    except Exception:
        return None


def convert_value(value: Any, type_name: str) -> Any:
    """Map one driver value to its result form by declared type name."""
    if value is None:
        return None

    t = type_name.lower()
    if t in _INTEGER_TYPES:
        return _to_int(value)
    if t in _FLOAT_TYPES:
        return _to_float(value)
    if t in _BOOL_TYPES:
        return value if isinstance(value, bool) else None
    if t in _STRING_TYPES:
        return value if isinstance(value, str) else _read_string(value)
    if t in _TEMPORAL_TYPES:
        return _to_temporal(value)
    if t in _JSON_TYPES:
        return _to_json(value)
    if t == "uuid":
        return str(value)
    if t in _BINARY_TYPES:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return binary_marker(len(bytes(value)))
        return None
    return _read_string(value)


def to_row(values: Sequence[Any], columns: Sequence[ColumnDefinition]) -> Row:
    """Build a Row from positional driver values."""
    mapped: dict[str, Any] = {}
    for column, value in zip(columns, values, strict=False):
        mapped[column.name] = convert_value(value, column.data_type)
    return Row(values=mapped)


def create_query_result(
    query: str,
    columns: list[ColumnDefinition],
    rows: list[Row],
    rows_affected: int | None,
    execution_time_ms: int,
    result_index: int = 0,
    warnings: list[str] | None = None,
) -> QueryResult:
    return QueryResult(
        query=query,
        timestamp=int(time.time()),
        execution_time_ms=execution_time_ms,
        rows_affected=rows_affected,
        columns=columns,
        rows=rows,
        warnings=warnings or [],
        result_index=result_index,
    )


def type_category(type_name: str) -> ColumnTypeCategory:
    """Coarse UI category for a catalog type name."""
    t = type_name.lower()
    if t.endswith("[]") or t.startswith("_"):
        return ColumnTypeCategory.ARRAY
    if t in _INTEGER_TYPES or t in _FLOAT_TYPES or t in _DECIMAL_TYPES:
        return ColumnTypeCategory.NUMERIC
    if t in _STRING_TYPES or t.startswith(("character", "varchar")):
        return ColumnTypeCategory.TEXT
    if t in _BOOL_TYPES:
        return ColumnTypeCategory.BOOLEAN
    if t == "date":
        return ColumnTypeCategory.DATE
    if t in ("time", "timetz") or t.startswith(("time without", "time with ")):
        return ColumnTypeCategory.TIME
    if t in ("timestamp", "timestamptz", "interval") or t.startswith("timestamp"):
        return ColumnTypeCategory.DATETIME
    if t in _BINARY_TYPES:
        return ColumnTypeCategory.BINARY
    if t in _JSON_TYPES:
        return ColumnTypeCategory.JSON
    if t == "uuid":
        return ColumnTypeCategory.UUID
    if t in ("inet", "cidr", "macaddr", "macaddr8"):
        return ColumnTypeCategory.NETWORK
    if t.startswith(("geometry", "geography")) or t in _GEOMETRY_TYPES:
        return ColumnTypeCategory.GEOMETRY
    return ColumnTypeCategory.OTHER

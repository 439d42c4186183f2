"""
String <-> native value coercion.

All row values cross the adapter boundary as strings.  Right before a
value is compared in a filter or written to an engine, the adapter
coerces it into the column's declared type using the metadata it got
from introspection.  A value that does not fit its column is a caller
error (``MalformedInputError``), never a silent fallback to a string
comparison.

Type names are normalised first: lower-cased, parameters such as
``(255)`` or ``(10, 2)`` and modifiers such as ``unsigned`` stripped,
so ``VARCHAR(255)``, ``character varying`` and ``NVARCHAR2`` all land in
the text family.

Examples:
    >>> coerce("42", "INTEGER")
    42
    >>> coerce("t", "boolean")
    True
    >>> coerce("12.50", "numeric(10,2)")
    Decimal('12.50')
    >>> to_display(None)
    ''

Tags:
    polydb, coercion, types, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

import base64
import binascii
import datetime as dt
import json
import re
import uuid
from collections.abc import Callable
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from polydb.core.errors import MalformedInputError


class TypeFamily(str, Enum):
    """Coarse families that decide how a string is coerced."""

    INTEGER = "integer"
    DECIMAL = "decimal"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"
    TIME = "time"
    TIMESTAMP = "timestamp"
    UUID = "uuid"
    JSON = "json"
    BINARY = "binary"
    TEXT = "text"


_INTEGER_TYPES = {
    "int", "integer", "smallint", "bigint", "tinyint", "mediumint",
    "int2", "int4", "int8", "serial", "smallserial", "bigserial",
    "serial2", "serial4", "serial8", "long", "short", "byte",
    "unsigned_long", "pls_integer", "binary_integer",
}
_DECIMAL_TYPES = {"decimal", "numeric", "number", "money", "dec", "fixed", "scaled_float"}
_FLOAT_TYPES = {
    "float", "float4", "float8", "real", "double", "double precision",
    "binary_float", "binary_double", "half_float",
}
_BOOLEAN_TYPES = {"bool", "boolean", "bit"}
_DATE_TYPES = {"date"}
_TIME_TYPES = {"time", "time with time zone", "time without time zone", "timetz"}
_TIMESTAMP_TYPES = {
    "timestamp", "timestamptz", "datetime", "datetime2", "smalldatetime",
    "timestamp with time zone", "timestamp without time zone",
    "timestamp with local time zone", "date_nanos",
}
_UUID_TYPES = {"uuid", "uniqueidentifier"}
_JSON_TYPES = {"json", "jsonb", "object", "nested", "document", "array"}
_BINARY_TYPES = {
    "blob", "bytea", "binary", "varbinary", "longblob", "mediumblob",
    "tinyblob", "raw", "long raw", "bindata",
}

_TRUE = {"true", "t", "1", "yes", "y", "on"}
_FALSE = {"false", "f", "0", "no", "n", "off"}

_PARAMS = re.compile(r"\(.*?\)")


def normalize_type_name(type_name: str | None) -> str:
    """Lower-case a declared type name and strip parameters and modifiers."""
    if not type_name:
        return ""
    name = _PARAMS.sub("", type_name.strip().lower())
    for modifier in ("unsigned", "zerofill", "signed"):
        name = name.replace(modifier, "")
    name = " ".join(name.split())
    if name.endswith("[]"):
        return "array"
    return name


def type_family(type_name: str | None) -> TypeFamily:
    """Classify a declared type name into a :class:`TypeFamily`."""
    name = normalize_type_name(type_name)
    if name in _INTEGER_TYPES:
        return TypeFamily.INTEGER
    if name in _DECIMAL_TYPES:
        return TypeFamily.DECIMAL
    if name in _FLOAT_TYPES:
        return TypeFamily.FLOAT
    if name in _BOOLEAN_TYPES:
        return TypeFamily.BOOLEAN
    if name in _DATE_TYPES:
        return TypeFamily.DATE
    if name in _TIME_TYPES:
        return TypeFamily.TIME
    if name in _TIMESTAMP_TYPES or name.startswith("timestamp"):
        return TypeFamily.TIMESTAMP
    if name in _UUID_TYPES:
        return TypeFamily.UUID
    if name in _JSON_TYPES:
        return TypeFamily.JSON
    if name in _BINARY_TYPES:
        return TypeFamily.BINARY
    return TypeFamily.TEXT


def _to_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _to_timestamp(value: str) -> dt.datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return dt.datetime.fromisoformat(text)


def _to_binary(value: str) -> bytes:
    text = value.strip()
    if text.startswith(("\\x", "0x")):
        return bytes.fromhex(text[2:])
    try:
        return bytes.fromhex(text)
    except ValueError:
        return base64.b64decode(text, validate=True)


def _to_decimal(value: str) -> Decimal:
    result = Decimal(value.strip())
    if not result.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return result


_CONVERTERS: dict[TypeFamily, Callable[[str], Any]] = {
    TypeFamily.INTEGER: lambda v: int(v.strip()),
    TypeFamily.DECIMAL: _to_decimal,
    TypeFamily.FLOAT: lambda v: float(v.strip()),
    TypeFamily.BOOLEAN: _to_bool,
    TypeFamily.DATE: lambda v: dt.date.fromisoformat(v.strip()),
    TypeFamily.TIME: lambda v: dt.time.fromisoformat(v.strip()),
    TypeFamily.TIMESTAMP: _to_timestamp,
    TypeFamily.UUID: lambda v: uuid.UUID(v.strip()),
    TypeFamily.JSON: json.loads,
    TypeFamily.BINARY: _to_binary,
    TypeFamily.TEXT: lambda v: v,
}


def coerce(value: str | None, type_name: str | None, *, field: str | None = None) -> Any:
    """Coerce a boundary string into the native type for ``type_name``.

    ``None`` passes through as SQL ``NULL``.

    Raises:
        MalformedInputError: The value does not parse as the column type.
    """
    if value is None:
        return None
    family = type_family(type_name)
    try:
        return _CONVERTERS[family](value)
    except (ValueError, InvalidOperation, binascii.Error, json.JSONDecodeError) as exc:
        raise MalformedInputError(
            f"Value {value!r} is not a valid {type_name or family.value}",
            field=field,
            value=value,
            cause=exc,
        ) from exc


def to_display(value: Any) -> str:
    """Render a native value as its boundary string (NULL → ``""``)."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


__all__ = [
    "TypeFamily",
    "normalize_type_name",
    "type_family",
    "coerce",
    "to_display",
]

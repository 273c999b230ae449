"""
Mapping between the six abstract JSON value types and native column types.

From the engine's point of view json, jsonArray and jsonValue are opaque
payloads stored as serialized text. Only number and boolean get native
numeric encodings; booleans are stored as 0/1.
"""
from __future__ import annotations

import json
import math
from typing import Any, Dict, Optional

from .errors import (
    SchemaError,
    UnknownTypeError,
    UnsupportedColumnTypeError,
    UnsupportedValueTypeError,
)

JSON_VALUE_TYPES = ("string", "number", "boolean", "json", "jsonArray", "jsonValue")

SQL_TYPE_MAPS: Dict[str, Dict[str, str]] = {
    "MSSQL": {
        "string": "NVARCHAR(MAX)",
        "jsonArray": "NVARCHAR(MAX)",
        "json": "NVARCHAR(MAX)",
        "number": "FLOAT",
        "boolean": "BIT",
        "jsonValue": "NVARCHAR(MAX)",
    },
}


def json_to_sql_type(data_type: str, db_type: str = "MSSQL") -> str:
    """
    Convert a JSON value type tag to the native SQL type of ``db_type``.

    Raises:
        UnknownTypeError: for anything but the six known tags.
    """
    type_map = SQL_TYPE_MAPS[db_type]
    try:
        return type_map[data_type]
    except (KeyError, TypeError):
        raise UnknownTypeError(
            f"Unknown JsonValueType: {data_type}", {"type": data_type}
        ) from None


def to_json_text(value: Any, column: Optional[str] = None) -> str:
    """Serialize like JSON.stringify: compact separators, unicode kept."""
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise UnsupportedValueTypeError(
            f"Value for column {column} is not JSON serializable: {exc}",
            {"column": column},
        ) from exc


def encode_value(data_type: str, value: Any, column: Optional[str] = None) -> Any:
    """Encode one abstract value for a native parameter slot."""
    if value is None:
        return None
    if data_type == "jsonValue":
        # scalars too, otherwise "3" and 3 read back the same
        return to_json_text(value, column)
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (dict, list)):
        return to_json_text(value, column)
    if isinstance(value, (str, int, float)):
        return value
    raise UnsupportedValueTypeError(
        f"Unsupported value type {type(value).__name__} for column {column}",
        {"column": column, "type": type(value).__name__},
    )


def is_json_value(value: Any) -> bool:
    """True for anything JSON can represent: scalars, lists and str-keyed dicts."""
    if value is None or isinstance(value, (bool, str, int)):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, list):
        return all(is_json_value(item) for item in value)
    if isinstance(value, dict):
        return all(isinstance(k, str) and is_json_value(v) for k, v in value.items())
    return False


_VALUE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: (
        (isinstance(v, int) and not isinstance(v, bool))
        or (isinstance(v, float) and math.isfinite(v))
    ),
    "boolean": lambda v: isinstance(v, bool),
    "json": lambda v: isinstance(v, dict) and is_json_value(v),
    "jsonArray": lambda v: isinstance(v, list) and is_json_value(v),
    "jsonValue": is_json_value,
}


def check_value(
    data_type: str, value: Any, column: Optional[str] = None, table: Optional[str] = None
) -> None:
    """
    Make sure ``value`` fits a column of type ``data_type``. ``None`` always fits.

    Raises:
        UnsupportedValueTypeError: the value does not match the column type.
    """
    if value is None:
        return
    check_column_type(data_type, column)
    if not _VALUE_CHECKS[data_type](value):
        raise UnsupportedValueTypeError(
            f"Value of type {type(value).__name__} does not fit {data_type} column "
            f"{column} of table {table}",
            {"table": table, "column": column, "type": data_type,
             "value_type": type(value).__name__},
        )


def decode_value(
    data_type: str, value: Any, column: Optional[str] = None, table: Optional[str] = None
) -> Any:
    """Decode one native value (never ``None``) back to its abstract type."""
    if data_type == "boolean":
        return value != 0
    if data_type in ("json", "jsonArray", "jsonValue"):
        if not isinstance(value, (str, bytes)):
            return value
        try:
            return json.loads(value)
        except ValueError as exc:
            raise SchemaError(
                f"Stored value of {data_type} column {column} in table {table} "
                f"is not valid JSON: {exc}",
                {"table": table, "column": column, "type": data_type},
            ) from exc
    if data_type in ("string", "number"):
        return value
    raise UnsupportedColumnTypeError(
        f"Unsupported column type {data_type}", {"column": column, "type": data_type}
    )


def check_column_type(data_type: str, column: Optional[str] = None) -> None:
    if data_type not in JSON_VALUE_TYPES:
        raise UnsupportedColumnTypeError(
            f"Unsupported column type {data_type}", {"column": column, "type": data_type}
        )

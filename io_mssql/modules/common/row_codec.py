"""
Row (de)serialization between abstract rows and native parameter lists.

``serialize_row`` output is positional and always has one slot per column,
matching the placeholders of the insert statement for the same TableCfg.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Sequence

from .naming import add_column_suffix
from .table_cfg import TableCfg
from .type_mapper import check_column_type, decode_value, encode_value


def serialize_row(row: Mapping[str, Any], table_cfg: TableCfg) -> List[Any]:
    return [encode_value(col.type, row.get(col.key), col.key) for col in table_cfg.columns]


def to_native_row(values: Sequence[Any], table_cfg: TableCfg) -> Dict[str, Any]:
    """Positional values to a dict keyed by physical column name."""
    return {add_column_suffix(col.key): value for col, value in zip(table_cfg.columns, values)}


def parse_data(rows: Iterable[Mapping[str, Any]], table_cfg: TableCfg) -> List[Dict[str, Any]]:
    """
    Decode native result rows into abstract rows.

    Columns whose native value is NULL (or missing from the result set, as
    for rows written before a column was added) are left out of the row.

    Raises:
        UnsupportedColumnTypeError: a column carries a type tag this codec
            does not know.
        SchemaError: a stored json, jsonArray or jsonValue cell is not
            valid JSON.
    """
    parsed = []
    for row in rows:
        item: Dict[str, Any] = {}
        for col in table_cfg.columns:
            check_column_type(col.type, col.key)
            value = row.get(add_column_suffix(col.key))
            if value is None:
                continue
            item[col.key] = decode_value(col.type, value, col.key, table_cfg.key)
        parsed.append(item)
    return parsed

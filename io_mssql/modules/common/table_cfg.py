"""
Engine independent table configuration (TableCfg / ColumnCfg).

A TableCfg lists its columns in a fixed, append-only order. The ``_hash``
column holds the row content hash and is the table's primary key.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import SchemaError
from .hashing import HASH_KEY, hash_json
from .naming import (
    COLUMN_SUFFIX,
    MAIN_TABLE,
    PRIMARY_KEY_COLUMN,
    TABLE_SUFFIX,
    validate_identifier,
)
from .type_mapper import json_to_sql_type


@dataclass(frozen=True)
class ColumnCfg:
    key: str
    type: str

    def to_json(self) -> Dict[str, str]:
        return {"key": self.key, "type": self.type}

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ColumnCfg":
        return cls(key=data["key"], type=data["type"])


@dataclass(frozen=True)
class TableCfg:
    key: str
    columns: Tuple[ColumnCfg, ...] = field(default_factory=tuple)
    type: str = "components"
    is_head: bool = False
    is_root: bool = False
    is_shared: bool = True

    def __post_init__(self):
        columns = tuple(
            c if isinstance(c, ColumnCfg) else ColumnCfg.from_json(c) for c in self.columns
        )
        object.__setattr__(self, "columns", columns)

    @property
    def column_keys(self) -> List[str]:
        return [c.key for c in self.columns]

    def column(self, key: str) -> Optional[ColumnCfg]:
        for col in self.columns:
            if col.key == key:
                return col
        return None

    def extended(self, columns: Iterable[ColumnCfg]) -> "TableCfg":
        """Copy of this cfg with ``columns`` appended."""
        return TableCfg(
            key=self.key,
            columns=self.columns + tuple(columns),
            type=self.type,
            is_head=self.is_head,
            is_root=self.is_root,
            is_shared=self.is_shared,
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "type": self.type,
            "isHead": self.is_head,
            "isRoot": self.is_root,
            "isShared": self.is_shared,
            "columns": [c.to_json() for c in self.columns],
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "TableCfg":
        return cls(
            key=data["key"],
            columns=tuple(ColumnCfg.from_json(c) for c in data.get("columns") or []),
            type=data.get("type", "components"),
            is_head=bool(data.get("isHead", False)),
            is_root=bool(data.get("isRoot", False)),
            is_shared=bool(data.get("isShared", True)),
        )

    @property
    def hash(self) -> str:
        return hash_json(self.to_json())

    def registry_row(self) -> Dict[str, Any]:
        """The row stored in the schema registry for this version."""
        row = self.to_json()
        row[HASH_KEY] = self.hash
        return row

    def validate(self) -> "TableCfg":
        """
        Fail loudly on anything that would produce invalid DDL.

        Raises:
            SchemaError: bad identifiers, duplicate or suffixed keys, missing
                hash column.
            UnknownTypeError: a column type outside the known tags.
        """
        validate_identifier(self.key, "table")
        if self.key.endswith(TABLE_SUFFIX):
            raise SchemaError(
                f"Table key {self.key} must not end with {TABLE_SUFFIX}", {"table": self.key}
            )
        if not self.columns:
            raise SchemaError(f"Table {self.key} has no columns", {"table": self.key})

        seen = set()
        for col in self.columns:
            validate_identifier(col.key, "column")
            if col.key.endswith(COLUMN_SUFFIX):
                raise SchemaError(
                    f"Column key {col.key} of table {self.key} must not end with {COLUMN_SUFFIX}",
                    {"table": self.key, "column": col.key},
                )
            if col.key in seen:
                raise SchemaError(
                    f"Duplicate column {col.key} in table {self.key}",
                    {"table": self.key, "column": col.key},
                )
            seen.add(col.key)
            json_to_sql_type(col.type)

        if PRIMARY_KEY_COLUMN not in seen:
            raise SchemaError(
                f"Table {self.key} has no {PRIMARY_KEY_COLUMN} column",
                {"table": self.key, "column": PRIMARY_KEY_COLUMN},
            )
        return self


TABLE_CFGS_TABLE_CFG = TableCfg(
    key=MAIN_TABLE,
    type="ingredients",
    is_head=False,
    is_root=False,
    is_shared=True,
    columns=(
        ColumnCfg(PRIMARY_KEY_COLUMN, "string"),
        ColumnCfg("key", "string"),
        ColumnCfg("type", "string"),
        ColumnCfg("isHead", "boolean"),
        ColumnCfg("isRoot", "boolean"),
        ColumnCfg("isShared", "boolean"),
        ColumnCfg("columns", "jsonArray"),
    ),
)

"""
Base statement builder contract for table DDL, DML and introspection.

Dialect adapters override identifier quoting, the existence guards and the
introspection queries. Everything here is stateless apart from the schema
name the statements are bound to.
"""
from __future__ import annotations

import math
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from ..errors import SchemaError, UnsupportedValueTypeError
from ..naming import (
    PRIMARY_KEY_COLUMN,
    add_column_suffix,
    add_table_suffix,
    is_reference_column,
    referenced_table,
    validate_identifier,
)
from ..table_cfg import TABLE_CFGS_TABLE_CFG, ColumnCfg, TableCfg
from ..type_mapper import json_to_sql_type, to_json_text

# insertion order of schema registry rows; not part of any TableCfg
SEQUENCE_COLUMN = "_seq_col"


class BaseStatements:
    db_type: str = "GENERIC"
    placeholder: str = "?"
    bounded_key_type: str = "VARCHAR(256)"

    def __init__(self, schema_name: str):
        self.schema_name = validate_identifier(schema_name, "schema")

    # ------------------------------------------------------------------
    # identifiers and types
    def quote_identifier(self, name: str) -> str:
        return name

    def format_table_ref(self, table_key: str) -> str:
        physical = add_table_suffix(validate_identifier(table_key, "table"))
        return f"{self.quote_identifier(self.schema_name)}.{self.quote_identifier(physical)}"

    def column_ref(self, column_key: str) -> str:
        return self.quote_identifier(add_column_suffix(validate_identifier(column_key, "column")))

    def json_to_sql_type(self, data_type: str) -> str:
        return json_to_sql_type(data_type, self.db_type)

    def is_unbounded(self, sql_type: str) -> bool:
        return "(MAX)" in sql_type.upper() or sql_type.upper() == "TEXT"

    def column_sql_type(self, col: ColumnCfg) -> str:
        """Native type of ``col``; key and reference columns must be bounded."""
        sql_type = self.json_to_sql_type(col.type)
        needs_bound = col.key == PRIMARY_KEY_COLUMN or is_reference_column(col.key)
        if needs_bound and self.is_unbounded(sql_type):
            return self.bounded_key_type
        return sql_type

    def column_definition(self, col: ColumnCfg) -> str:
        return f"{self.column_ref(col.key)} {self.column_sql_type(col)}"

    # ------------------------------------------------------------------
    # DDL
    def primary_key(self, table_cfg: TableCfg) -> str:
        if table_cfg.column(PRIMARY_KEY_COLUMN) is None:
            raise SchemaError(
                f"Table {table_cfg.key} has no {PRIMARY_KEY_COLUMN} column",
                {"table": table_cfg.key, "column": PRIMARY_KEY_COLUMN},
            )
        name = self.quote_identifier(f"PK_{table_cfg.key}")
        return f"CONSTRAINT {name} PRIMARY KEY ({self.column_ref(PRIMARY_KEY_COLUMN)})"

    def foreign_keys(self, table_cfg: TableCfg) -> List[str]:
        """One constraint per ``<table>Ref`` column, pointing at ``<table>._hash``."""
        constraints = []
        for col in table_cfg.columns:
            if not is_reference_column(col.key):
                continue
            target = referenced_table(col.key)
            name = self.quote_identifier(f"FK_{table_cfg.key}_{add_column_suffix(col.key)}")
            constraints.append(
                f"CONSTRAINT {name} FOREIGN KEY ({self.column_ref(col.key)}) "
                f"REFERENCES {self.format_table_ref(target)}({self.column_ref(PRIMARY_KEY_COLUMN)})"
            )
        return constraints

    def build_create_table(
        self, table_cfg: TableCfg, extra_column_defs: Sequence[str] = ()
    ) -> str:
        table_cfg.validate()
        parts = [self.column_definition(col) for col in table_cfg.columns]
        parts.extend(extra_column_defs)
        parts.append(self.primary_key(table_cfg))
        parts.extend(self.foreign_keys(table_cfg))
        return f"CREATE TABLE {self.format_table_ref(table_cfg.key)} ({', '.join(parts)})"

    def create_table(self, table_cfg: TableCfg, extra_column_defs: Sequence[str] = ()) -> str:
        raise NotImplementedError

    def create_table_cfgs_table(self) -> str:
        return self.create_table(
            TABLE_CFGS_TABLE_CFG,
            [f"{self.quote_identifier(SEQUENCE_COLUMN)} BIGINT NOT NULL"],
        )

    def alter_table(self, table_key: str, added_columns: Iterable[ColumnCfg]) -> List[str]:
        table_ref = self.format_table_ref(table_key)
        return [
            f"ALTER TABLE {table_ref} ADD {self.column_definition(col)};"
            for col in added_columns
        ]

    # ------------------------------------------------------------------
    # DML
    def insert_statement(self, table_cfg: TableCfg) -> str:
        columns = ", ".join(self.column_ref(c.key) for c in table_cfg.columns)
        values = ", ".join(self.placeholder for _ in table_cfg.columns)
        return f"INSERT INTO {self.format_table_ref(table_cfg.key)} ({columns}) VALUES ({values})"

    def insert_table_cfg(self) -> str:
        return self.insert_statement(TABLE_CFGS_TABLE_CFG)

    def selection(self, table_key: str, columns: str, where: str) -> str:
        return f"SELECT {columns} FROM {self.format_table_ref(table_key)} WHERE {where}"

    def all_data(self, table_key: str, named_columns: Optional[str] = None) -> str:
        return f"SELECT {named_columns or '*'} FROM {self.format_table_ref(table_key)}"

    def row_count(self, table_key: str) -> str:
        return f"SELECT COUNT(*) AS totalCount FROM {self.format_table_ref(table_key)}"

    @property
    def table_cfgs(self) -> str:
        return f"{self.all_data(TABLE_CFGS_TABLE_CFG.key)} ORDER BY {self.quote_identifier(SEQUENCE_COLUMN)}"

    @property
    def table_cfg_versions(self) -> str:
        where = f"{self.column_ref('key')} = {self.placeholder}"
        return (
            f"{self.selection(TABLE_CFGS_TABLE_CFG.key, '*', where)} "
            f"ORDER BY {self.quote_identifier(SEQUENCE_COLUMN)}"
        )

    # ------------------------------------------------------------------
    # predicates
    def check_predicate_value(self, column: str, value: Any) -> None:
        """Raise ``UnsupportedValueTypeError`` for values a predicate cannot compare."""
        if isinstance(value, float) and not math.isfinite(value):
            raise UnsupportedValueTypeError(
                f"Non-finite number {value!r} for column {column}",
                {"column": column, "type": "float"},
            )
        if not isinstance(value, (bool, str, int, float, dict, list)):
            raise UnsupportedValueTypeError(
                f"Unsupported value type for column {column}",
                {"column": column, "type": type(value).__name__},
            )

    def sql_literal(self, column: str, value: Any) -> str:
        self.check_predicate_value(column, value)
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, str):
            return "'" + value.replace("'", "''") + "'"
        if isinstance(value, (int, float)):
            return repr(value)
        return "'" + to_json_text(value, column).replace("'", "''") + "'"

    def where_clause(self, pairs: Iterable[Tuple[str, Any]]) -> str:
        """
        Literal conjunction of equality / IS NULL predicates.

        Example:
            [("active", True), ("name", "Ann")]
            -> "[active_col] = 1 AND [name_col] = 'Ann'"
        """
        constraint = ""
        for column, value in pairs:
            if value is None:
                constraint += f"{self.column_ref(column)} IS NULL AND "
            else:
                constraint += f"{self.column_ref(column)} = {self.sql_literal(column, value)} AND "
        return constraint[: -len(" AND ")] if constraint.endswith(" AND ") else constraint

    def where_params(self, pairs: Iterable[Tuple[str, Any]]) -> Tuple[str, List[Any]]:
        """Same conjunction as :meth:`where_clause` with values bound as parameters."""
        predicates: List[str] = []
        params: List[Any] = []
        for column, value in pairs:
            if value is None:
                predicates.append(f"{self.column_ref(column)} IS NULL")
                continue
            self.check_predicate_value(column, value)
            if isinstance(value, bool):
                value = 1 if value else 0
            elif isinstance(value, (dict, list)):
                value = to_json_text(value, column)
            predicates.append(f"{self.column_ref(column)} = {self.placeholder}")
            params.append(value)
        return " AND ".join(predicates), params

    # ------------------------------------------------------------------
    # introspection
    @property
    def table_exists(self) -> str:
        raise NotImplementedError

    @property
    def table_keys(self) -> str:
        raise NotImplementedError

    @property
    def column_keys(self) -> str:
        raise NotImplementedError

"""
Append-only schema evolution over the schema registry (``tableCfgs``).

Every version of every table configuration is one registry row. The current
version of a table key is the one with the most columns; ties go to the row
inserted last. Extending a table only ever appends the columns beyond the
current column count, earlier columns are not compared.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from io_mssql.modules.common.db_adapter.base_adapter import SEQUENCE_COLUMN, BaseStatements
from io_mssql.modules.common.errors import DuplicateKeyError, NotFoundError
from io_mssql.modules.common.naming import (
    add_table_suffix,
    is_reference_column,
    referenced_table,
)
from io_mssql.modules.common.row_codec import parse_data, serialize_row
from io_mssql.modules.common.table_cfg import TABLE_CFGS_TABLE_CFG, ColumnCfg, TableCfg
from io_mssql.modules.logger import debug, info


@dataclass
class EvolutionResult:
    table_key: str
    created: bool = False
    alter_statements: List[str] = field(default_factory=list)
    registry_rows: int = 0
    table_cfg: Optional[TableCfg] = None

    @property
    def changed(self) -> bool:
        return self.created or bool(self.alter_statements) or self.registry_rows > 0


def added_columns(old: TableCfg, new: TableCfg) -> List[ColumnCfg]:
    """Columns of ``new`` beyond the column count of ``old``."""
    return list(new.columns[len(old.columns):])


def resolve_current(versions: List[TableCfg]) -> Optional[TableCfg]:
    """
    Pick the current version out of ``versions`` (in insertion order).

    Max column count wins; on a tie the later entry wins.
    """
    current = None
    for cfg in versions:
        if current is None or len(cfg.columns) >= len(current.columns):
            current = cfg
    return current


class SchemaEvolution:
    def __init__(self, connection, statements: BaseStatements):
        self.connection = connection
        self.statements = statements

    # ------------------------------------------------------------------
    # registry
    def versions(self, table_key: str) -> List[TableCfg]:
        rows = self.connection.execute(self.statements.table_cfg_versions, [table_key])
        rows.sort(key=lambda row: row.get(SEQUENCE_COLUMN) or 0)
        return [TableCfg.from_json(row) for row in parse_data(rows, TABLE_CFGS_TABLE_CFG)]

    def current(self, table_key: str) -> Optional[TableCfg]:
        return resolve_current(self.versions(table_key))

    def register(self, table_cfg: TableCfg) -> int:
        """Insert a registry row for ``table_cfg``; 0 when that version is already stored."""
        params = serialize_row(table_cfg.registry_row(), TABLE_CFGS_TABLE_CFG)
        try:
            self.connection.execute(self.statements.insert_table_cfg(), params)
        except DuplicateKeyError:
            debug(f"Table cfg {table_cfg.key} [{table_cfg.hash}] already registered")
            return 0
        return 1

    def physical_table_exists(self, table_key: str) -> bool:
        rows = self.connection.execute(self.statements.table_exists, [add_table_suffix(table_key)])
        return bool(rows) and bool(rows[0].get("tableExists"))

    # ------------------------------------------------------------------
    # evolution
    def _check_references(self, table_cfg: TableCfg) -> None:
        for col in table_cfg.columns:
            if not is_reference_column(col.key):
                continue
            target = referenced_table(col.key)
            if target == table_cfg.key:
                continue
            if not self.physical_table_exists(target):
                raise NotFoundError(
                    f"Table {target} referenced by {table_cfg.key}.{col.key} does not exist",
                    {"table": table_cfg.key, "column": col.key, "referenced_table": target},
                )

    def create_or_extend_table(self, table_cfg: TableCfg) -> EvolutionResult:
        """
        Bring the stored table for ``table_cfg.key`` up to ``table_cfg``.

        Absent table: create it and register the cfg. More columns than the
        current version: add the appended columns, then register the new
        version. Otherwise nothing happens.

        Raises:
            SchemaError: ``table_cfg`` is malformed.
            NotFoundError: a reference column points at a missing table.
        """
        table_cfg.validate()
        result = EvolutionResult(table_key=table_cfg.key)
        current = self.current(table_cfg.key)

        if current is None:
            self._check_references(table_cfg)
            self.connection.execute(self.statements.create_table(table_cfg))
            result.created = True
            result.registry_rows = self.register(table_cfg)
            result.table_cfg = table_cfg
            info(f"Created table {table_cfg.key} with {len(table_cfg.columns)} column(s)")
            return result

        added = added_columns(current, table_cfg)
        if not added:
            debug(f"Table {table_cfg.key} is up to date ({len(current.columns)} column(s))")
            result.table_cfg = current
            return result

        self._check_references(TableCfg(key=table_cfg.key, columns=tuple(added)))
        # ALTERs are guarded; the registry row goes in last
        for statement in self.statements.alter_table(table_cfg.key, added):
            self.connection.execute(statement)
            result.alter_statements.append(statement)
        result.registry_rows = self.register(table_cfg)
        result.table_cfg = table_cfg
        info(
            f"Extended table {table_cfg.key} by {len(added)} column(s): "
            f"{', '.join(col.key for col in added)}"
        )
        return result

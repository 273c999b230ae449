"""
Table storage on SQL Server.

``IoMssql`` serves one database schema over one connection. Tables are
described by :class:`TableCfg`, rows are content addressed by their
``_hash`` column and payloads use the rljson shape::

    {"users": {"_type": "components", "_data": [{"name": "Ann", "_hash": "..."}]}}
"""
from __future__ import annotations

import functools
import secrets
import threading
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from io_mssql.database.dbconnect import MssqlConfig, MssqlConnection
from io_mssql.modules.admin import db_basics
from io_mssql.modules.common.db_adapter.registry import get_statements
from io_mssql.modules.common.errors import (
    BatchWriteError,
    ConnectionStateError,
    DuplicateKeyError,
    NotFoundError,
    SchemaError,
)
from io_mssql.modules.common.hashing import HASH_KEY, with_hash
from io_mssql.modules.common.naming import (
    add_table_suffix,
    remove_column_suffix,
    remove_table_suffix,
)
from io_mssql.modules.common.row_codec import parse_data, serialize_row
from io_mssql.modules.common.table_cfg import TABLE_CFGS_TABLE_CFG, TableCfg
from io_mssql.modules.common.type_mapper import check_value, encode_value
from io_mssql.modules.logger import debug, error, info, log_context, warning
from io_mssql.modules.schema.schema_evolution import (
    EvolutionResult,
    SchemaEvolution,
    resolve_current,
)

NOT_OPEN_MESSAGE = "MSSQL connection is not open."


class ConnectionState(str, Enum):
    UNCONNECTED = "unconnected"
    READY = "ready"
    CLOSED = "closed"


def _requires_ready(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            if self._state is not ConnectionState.READY:
                raise ConnectionStateError(NOT_OPEN_MESSAGE, {"state": self._state.value})
            with log_context(self.schema_name):
                return method(self, *args, **kwargs)

    return wrapper


class IoMssql:
    def __init__(
        self,
        config: Optional[MssqlConfig],
        schema_name: str,
        connection=None,
        db_type: str = "MSSQL",
    ):
        self.config = config
        self.statements = get_statements(db_type, schema_name)
        self.schema_name = self.statements.schema_name
        self._connection = connection
        self._evolution: Optional[SchemaEvolution] = None
        self._state = ConnectionState.UNCONNECTED
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # lifecycle
    @property
    def state(self) -> ConnectionState:
        return self._state

    def init(self) -> "IoMssql":
        """Connect and make sure the schema registry exists."""
        with self._lock, log_context(self.schema_name):
            if self._state is ConnectionState.READY:
                return self
            if self._state is ConnectionState.CLOSED:
                raise ConnectionStateError(
                    "MSSQL connection is closed and cannot be reopened.",
                    {"state": self._state.value},
                )
            if self._connection is None:
                if self.config is None:
                    raise ConnectionStateError(
                        "No MSSQL config or connection given.", {"schema": self.schema_name}
                    )
                self._connection = MssqlConnection(self.config)
            if not self._connection.is_open:
                self._connection.connect()

            self._evolution = SchemaEvolution(self._connection, self.statements)
            self._connection.execute(self.statements.create_table_cfgs_table())
            self._evolution.register(TABLE_CFGS_TABLE_CFG)
            self._state = ConnectionState.READY
            info(f"IoMssql ready on schema {self.schema_name}")
            return self

    def close(self) -> None:
        with self._lock:
            if self._state is ConnectionState.READY and self._connection is not None:
                self._connection.close()
            self._state = ConnectionState.CLOSED

    @property
    def is_open(self) -> bool:
        return (
            self._state is ConnectionState.READY
            and self._connection is not None
            and self._connection.is_open
        )

    def is_ready(self) -> bool:
        return self._state is ConnectionState.READY

    def __enter__(self):
        return self.init()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ------------------------------------------------------------------
    # helpers
    def _table_cfgs(self) -> Dict[str, TableCfg]:
        rows = self._connection.execute(self.statements.table_cfgs)
        versions: Dict[str, List[TableCfg]] = {}
        for row in parse_data(rows, TABLE_CFGS_TABLE_CFG):
            cfg = TableCfg.from_json(row)
            versions.setdefault(cfg.key, []).append(cfg)
        return {key: resolve_current(cfgs) for key, cfgs in versions.items()}

    def _table_cfg(self, table_key: str) -> TableCfg:
        cfg = self._evolution.current(table_key)
        if cfg is None:
            raise NotFoundError(f"Table {table_key} not found", {"table": table_key})
        return cfg

    def _dump_rows(self, cfg: TableCfg) -> Dict[str, Any]:
        rows = self._connection.execute(self.statements.all_data(cfg.key))
        return {"_type": cfg.type, "_data": parse_data(rows, cfg)}

    # ------------------------------------------------------------------
    # schema
    @_requires_ready
    def create_or_extend_table(self, table_cfg: Union[TableCfg, Mapping[str, Any]]) -> EvolutionResult:
        if not isinstance(table_cfg, TableCfg):
            table_cfg = TableCfg.from_json(table_cfg)
        return self._evolution.create_or_extend_table(table_cfg)

    @_requires_ready
    def table_cfgs(self) -> Dict[str, TableCfg]:
        """Current configuration of every registered table."""
        return self._table_cfgs()

    @_requires_ready
    def raw_schemas(self) -> List[TableCfg]:
        """Every registered configuration version, oldest first."""
        rows = self._connection.execute(self.statements.table_cfgs)
        return [TableCfg.from_json(row) for row in parse_data(rows, TABLE_CFGS_TABLE_CFG)]

    @_requires_ready
    def content_type(self, table_key: str) -> str:
        return self._table_cfg(table_key).type

    @_requires_ready
    def table_exists(self, table_key: str) -> bool:
        return self._evolution.physical_table_exists(table_key)

    @_requires_ready
    def table_keys(self) -> List[str]:
        rows = self._connection.execute(self.statements.table_keys)
        return [remove_table_suffix(row["tableKey"]) for row in rows]

    @_requires_ready
    def column_keys(self, table_key: str) -> List[str]:
        """Physical columns of ``table_key`` as abstract keys, in table order."""
        rows = self._connection.execute(self.statements.column_keys, [add_table_suffix(table_key)])
        return [remove_column_suffix(row["columnKey"]) for row in rows]

    # ------------------------------------------------------------------
    # data
    @_requires_ready
    def write(self, data: Mapping[str, Any]) -> Dict[str, int]:
        """
        Insert the rows of every table in ``data``.

        Everything is validated before the first insert: the tables must be
        registered, every row key must be a column of the table's current
        configuration and every value must fit its column type. Rows without a
        ``_hash`` get their content hash. Rows that already exist are skipped.

        Returns:
            dict with the number of ``inserted`` and ``skipped`` rows.

        Raises:
            NotFoundError: unknown table.
            SchemaError: row key that is not a column.
            UnsupportedValueTypeError: value that does not fit its column type.
            BatchWriteError: one or more inserts failed for another reason
                than an existing row.
        """
        cfgs = self._table_cfgs()
        pending = []
        for table_key, payload in data.items():
            if table_key.startswith("_"):
                continue
            cfg = cfgs.get(table_key)
            if cfg is None:
                raise NotFoundError(f"Table {table_key} not found", {"table": table_key})
            rows = payload.get("_data", []) if isinstance(payload, Mapping) else payload
            insert = self.statements.insert_statement(cfg)
            for row in rows:
                unknown = [key for key in row if cfg.column(key) is None]
                if unknown:
                    raise SchemaError(
                        f"Row of table {table_key} has unknown column(s): {', '.join(unknown)}",
                        {"table": table_key, "columns": unknown},
                    )
                for key, value in row.items():
                    check_value(cfg.column(key).type, value, key, table_key)
                row = with_hash(row)
                pending.append((table_key, row[HASH_KEY], insert, serialize_row(row, cfg)))

        inserted = skipped = 0
        failures = []
        for table_key, row_hash, insert, params in pending:
            try:
                self._connection.execute(insert, params)
                inserted += 1
            except DuplicateKeyError:
                skipped += 1
            except Exception as e:
                error(f"Error writing row {row_hash} to {table_key}: {str(e)}")
                failures.append({"table": table_key, "hash": row_hash, "reason": str(e)})

        if failures:
            raise BatchWriteError(failures)
        debug(f"Write finished: {inserted} inserted, {skipped} already present")
        return {"inserted": inserted, "skipped": skipped}

    @_requires_ready
    def read_rows(self, table_key: str, where: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Rows of ``table_key`` matching every ``column == value`` pair of ``where``.

        ``None`` matches NULL. An empty ``where`` returns the whole table.
        """
        cfg = self._table_cfg(table_key)
        pairs = []
        for key, value in where.items():
            col = cfg.column(key)
            if col is None:
                raise NotFoundError(
                    f"Column {key} not found in table {table_key}",
                    {"table": table_key, "column": key},
                )
            pairs.append((key, encode_value(col.type, value, key)))

        if not pairs:
            return {table_key: self._dump_rows(cfg)}

        where_sql, params = self.statements.where_params(pairs)
        rows = self._connection.execute(self.statements.selection(table_key, "*", where_sql), params)
        return {table_key: {"_type": cfg.type, "_data": parse_data(rows, cfg)}}

    @_requires_ready
    def dump(self) -> Dict[str, Any]:
        return {key: self._dump_rows(cfg) for key, cfg in self._table_cfgs().items()}

    @_requires_ready
    def dump_table(self, table_key: str) -> Dict[str, Any]:
        return {table_key: self._dump_rows(self._table_cfg(table_key))}

    @_requires_ready
    def row_count(self, table_key: str) -> int:
        self._table_cfg(table_key)
        rows = self._connection.execute(self.statements.row_count(table_key))
        return int(rows[0]["totalCount"]) if rows else 0

    @_requires_ready
    def current_login(self) -> str:
        rows = self._connection.execute(self.statements.current_login)
        return rows[0]["loginName"] if rows else ""

    # ------------------------------------------------------------------
    @classmethod
    def example(cls, admin_config: MssqlConfig, db_name: str) -> "IoMssql":
        """
        Provision a throwaway schema with its own login and user in ``db_name``
        and return an adapter for it. Call :meth:`init` before use.
        """
        schema_name = f"test_{secrets.token_hex(5)}"
        login_name = f"{schema_name}_login"
        password = secrets.token_urlsafe(18) + "aA1!"

        db_basics.create_database(admin_config, db_name)
        db_basics.create_schema(admin_config, db_name, schema_name)
        login = db_basics.create_login(admin_config, db_name, login_name, password)
        user = db_basics.create_user(admin_config, db_name, schema_name, login_name, login_name)
        if not (login.ok and user.ok):
            warning(f"Provisioning {schema_name} reported errors: {login.errors + user.errors}")

        config = admin_config.with_database(db_name).with_login(login_name, password)
        info(f"Example schema {schema_name} provisioned in {db_name}")
        return cls(config, schema_name)

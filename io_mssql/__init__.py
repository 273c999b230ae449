from io_mssql.database.dbconnect import MssqlConfig, MssqlConnection
from io_mssql.modules.common.errors import (
    BatchWriteError,
    ConnectionStateError,
    DuplicateKeyError,
    IoMssqlError,
    NotFoundError,
    SchemaError,
    UnknownTypeError,
    UnsupportedColumnTypeError,
    UnsupportedValueTypeError,
)
from io_mssql.modules.common.table_cfg import ColumnCfg, TableCfg
from io_mssql.modules.io.io_mssql import IoMssql

__all__ = [
    "BatchWriteError",
    "ColumnCfg",
    "ConnectionStateError",
    "DuplicateKeyError",
    "IoMssql",
    "IoMssqlError",
    "MssqlConfig",
    "MssqlConnection",
    "NotFoundError",
    "SchemaError",
    "TableCfg",
    "UnknownTypeError",
    "UnsupportedColumnTypeError",
    "UnsupportedValueTypeError",
]

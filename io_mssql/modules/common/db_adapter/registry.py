"""Statement builder registry keyed by database type."""
from __future__ import annotations
from typing import Dict, Type

from .base_adapter import BaseStatements
from .mssql_adapter import MsSqlStatements


_STATEMENTS: Dict[str, Type[BaseStatements]] = {
    "MSSQL": MsSqlStatements,
    "SQL_SERVER": MsSqlStatements,
}


def get_statements(db_type: str, schema_name: str) -> BaseStatements:
    db_key = (db_type or "MSSQL").upper()
    try:
        statements_cls = _STATEMENTS[db_key]
    except KeyError:
        raise ValueError(f"Unsupported database type: {db_type}") from None
    return statements_cls(schema_name)

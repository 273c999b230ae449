"""
Run multi-batch T-SQL scripts.

Batches are separated by lines holding only ``GO`` (optionally followed by a
``--`` comment). Every batch runs on its own; a failing batch is recorded and
the remaining ones still run.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import pyodbc

from io_mssql.database.dbconnect import MssqlConfig, MssqlConnection
from io_mssql.modules.common.naming import validate_identifier
from io_mssql.modules.logger import error, info

_GO_RE = re.compile(r"^\s*GO\s*(?:--.*)?$", re.IGNORECASE | re.MULTILINE)


@dataclass
class ScriptResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def statuses(self) -> List[str]:
        return [row["Status"] for row in self.rows if "Status" in row]

    def lines(self) -> List[str]:
        """Rows as JSON text followed by error messages, in the order collected."""
        return [json.dumps(row, default=str) for row in self.rows] + list(self.errors)


def split_batches(script: str) -> List[str]:
    batches = (batch.strip() for batch in _GO_RE.split(script))
    return [batch for batch in batches if batch]


def run_script(
    config: MssqlConfig,
    script: str,
    db_name: str,
    connection_factory: Optional[Callable[[MssqlConfig], MssqlConnection]] = None,
) -> ScriptResult:
    """
    Run ``script`` against ``db_name`` on a fresh connection.

    Unless the script starts with ``USE master`` the connection switches to
    ``db_name`` before the first batch.
    """
    result = ScriptResult()
    batches = split_batches(script)
    if not batches:
        return result

    factory = connection_factory or MssqlConnection
    connection = factory(config)
    connection.connect()
    try:
        if not batches[0].upper().startswith("USE MASTER"):
            connection.execute(f"USE [{validate_identifier(db_name, 'database')}];")
        for batch in batches:
            try:
                result.rows.extend(connection.execute_batch(batch))
            except pyodbc.Error as e:
                error(f"Error executing SQL batch: {str(e)}")
                result.errors.append(str(e))
    finally:
        connection.close()

    info(f"Script on {db_name} ran {len(batches)} batch(es), {len(result.errors)} error(s)")
    return result

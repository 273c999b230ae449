import os
import sys

import pytest

WORKSPACE_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if WORKSPACE_ROOT not in sys.path:
    sys.path.insert(0, WORKSPACE_ROOT)

from io_mssql.modules.common.db_adapter.mssql_adapter import MsSqlStatements
from io_mssql.modules.common.table_cfg import ColumnCfg, TableCfg
from io_mssql.modules.io.io_mssql import IoMssql
from io_mssql.tests.fake_mssql import FakeMssqlConnection, FakeMssqlServer

SCHEMA = "app"


@pytest.fixture
def statements():
    return MsSqlStatements(SCHEMA)


@pytest.fixture
def server():
    return FakeMssqlServer()


@pytest.fixture
def connection(server):
    return FakeMssqlConnection(server).connect()


@pytest.fixture
def adapter(server):
    adapter = IoMssql(None, SCHEMA, connection=FakeMssqlConnection(server))
    adapter.init()
    yield adapter
    adapter.close()


@pytest.fixture
def counters_cfg():
    return TableCfg(
        key="counters",
        columns=(
            ColumnCfg("_hash", "string"),
            ColumnCfg("count", "number"),
            ColumnCfg("active", "boolean"),
        ),
    )


@pytest.fixture
def all_types_cfg():
    return TableCfg(
        key="everything",
        columns=(
            ColumnCfg("_hash", "string"),
            ColumnCfg("name", "string"),
            ColumnCfg("amount", "number"),
            ColumnCfg("flag", "boolean"),
            ColumnCfg("meta", "json"),
            ColumnCfg("tags", "jsonArray"),
            ColumnCfg("anything", "jsonValue"),
        ),
    )

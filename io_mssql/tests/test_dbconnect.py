from unittest.mock import MagicMock, patch

import pyodbc
import pytest

from io_mssql.database.dbconnect import (
    MssqlConfig,
    MssqlConnection,
    create_mssql_connection,
    is_duplicate_key_error,
)
from io_mssql.modules.common.errors import DuplicateKeyError


class TestMssqlConfig:
    def test_from_env_defaults(self, monkeypatch):
        for name in ("SERVER", "PORT", "USER", "PASSWORD", "DATABASE", "DRIVER",
                     "ENCRYPT", "TRUST_SERVER_CERTIFICATE", "TIMEOUT"):
            monkeypatch.delenv(f"MSSQL_{name}", raising=False)
        config = MssqlConfig.from_env()
        assert config == MssqlConfig()
        assert config.server == "localhost"
        assert config.port == 1433
        assert config.database == "master"
        assert config.encrypt is False
        assert config.trust_server_certificate is True

    def test_from_env_admin_prefix(self, monkeypatch):
        monkeypatch.setenv("MSSQL_ADMIN_SERVER", "db.local")
        monkeypatch.setenv("MSSQL_ADMIN_PORT", "1431")
        monkeypatch.setenv("MSSQL_ADMIN_USER", "sa")
        monkeypatch.setenv("MSSQL_ADMIN_PASSWORD", "Password123!")
        monkeypatch.setenv("MSSQL_ADMIN_ENCRYPT", "yes")
        monkeypatch.setenv("MSSQL_ADMIN_TIMEOUT", "5")
        config = MssqlConfig.from_env("MSSQL_ADMIN_")
        assert (config.server, config.port, config.user) == ("db.local", 1431, "sa")
        assert config.encrypt is True
        assert config.timeout == 5

    def test_derived_configs(self):
        base = MssqlConfig(user="sa", password="x")
        derived = base.with_database("cdm").with_login("bob", "pw")
        assert (derived.database, derived.user, derived.password) == ("cdm", "bob", "pw")
        assert base.database == "master"

    def test_connection_string(self):
        text = MssqlConfig(server="h", port=1431, user="sa", password="p;w}").connection_string()
        assert text.startswith("DRIVER={ODBC Driver 18 for SQL Server};SERVER=h,1431;DATABASE=master")
        assert "UID=sa" in text
        assert "PWD={p;w}}}" in text
        assert "Encrypt=no" in text
        assert "TrustServerCertificate=yes" in text

    def test_trusted_connection_without_user(self):
        assert "Trusted_Connection=yes" in MssqlConfig().connection_string()


def make_cursor(description=None, rows=None, sets=None):
    cursor = MagicMock()
    cursor.description = description
    cursor.fetchall.return_value = rows or []
    cursor.nextset.side_effect = sets or [False]
    return cursor


@pytest.fixture
def pyodbc_connect():
    with patch("io_mssql.database.dbconnect.pyodbc.connect") as connect:
        yield connect


class TestMssqlConnection:
    def test_connect_is_lazy_and_idempotent(self, pyodbc_connect):
        conn = MssqlConnection(MssqlConfig())
        assert not conn.is_open
        conn.connect()
        conn.connect()
        assert conn.is_open
        pyodbc_connect.assert_called_once()
        assert pyodbc_connect.call_args.kwargs["autocommit"] is True

    def test_execute_returns_dict_rows(self, pyodbc_connect):
        cursor = make_cursor(description=[("id",), ("name",)], rows=[(1, "Ann"), (2, "Bob")])
        pyodbc_connect.return_value.cursor.return_value = cursor
        conn = create_mssql_connection(MssqlConfig())

        rows = conn.execute("SELECT * FROM t WHERE id > ?", [0])
        assert rows == [{"id": 1, "name": "Ann"}, {"id": 2, "name": "Bob"}]
        cursor.execute.assert_called_once_with("SELECT * FROM t WHERE id > ?", [0])
        cursor.close.assert_called_once()

    def test_execute_without_result_set(self, pyodbc_connect):
        pyodbc_connect.return_value.cursor.return_value = make_cursor()
        conn = MssqlConnection(MssqlConfig()).connect()
        assert conn.execute("CREATE TABLE t (a INT)") == []

    def test_duplicate_key_is_translated(self, pyodbc_connect):
        cursor = make_cursor()
        cursor.execute.side_effect = pyodbc.IntegrityError(
            "23000", "Violation of PRIMARY KEY constraint 'PK_t'. (2627)"
        )
        pyodbc_connect.return_value.cursor.return_value = cursor
        conn = MssqlConnection(MssqlConfig()).connect()
        with pytest.raises(DuplicateKeyError):
            conn.execute("INSERT INTO t VALUES (?)", ["a"])
        cursor.close.assert_called_once()

    def test_other_integrity_errors_propagate(self, pyodbc_connect):
        cursor = make_cursor()
        cursor.execute.side_effect = pyodbc.IntegrityError("23000", "FOREIGN KEY conflict (547)")
        pyodbc_connect.return_value.cursor.return_value = cursor
        conn = MssqlConnection(MssqlConfig()).connect()
        with pytest.raises(pyodbc.IntegrityError):
            conn.execute("INSERT INTO t VALUES (?)", ["a"])

    def test_execute_batch_collects_all_result_sets(self, pyodbc_connect):
        cursor = make_cursor(description=[("Status",)], sets=[True, False])
        cursor.fetchall.side_effect = [[("created",)], [("done",)]]
        pyodbc_connect.return_value.cursor.return_value = cursor
        conn = MssqlConnection(MssqlConfig()).connect()
        assert conn.execute_batch("SELECT 'created'; SELECT 'done'") == [
            {"Status": "created"},
            {"Status": "done"},
        ]

    def test_close(self, pyodbc_connect):
        conn = MssqlConnection(MssqlConfig()).connect()
        conn.close()
        conn.close()
        assert not conn.is_open
        pyodbc_connect.return_value.close.assert_called_once()
        with pytest.raises(pyodbc.ProgrammingError):
            conn.execute("SELECT 1")

    def test_connect_failure_propagates(self, pyodbc_connect):
        pyodbc_connect.side_effect = pyodbc.OperationalError("08001", "Login timeout expired")
        conn = MssqlConnection(MssqlConfig())
        with pytest.raises(pyodbc.OperationalError):
            conn.connect()
        assert not conn.is_open


def test_is_duplicate_key_error():
    assert is_duplicate_key_error(pyodbc.IntegrityError("23000", "... (2601)"))
    assert not is_duplicate_key_error(pyodbc.IntegrityError("23000", "... (547)"))

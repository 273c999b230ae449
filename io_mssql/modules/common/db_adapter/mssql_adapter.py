"""SQL Server statement builder (T-SQL, bracket-quoted identifiers)."""
from __future__ import annotations

from typing import Iterable, List, Sequence

from ..naming import add_column_suffix, add_table_suffix, validate_identifier
from ..table_cfg import TABLE_CFGS_TABLE_CFG, ColumnCfg, TableCfg
from .base_adapter import SEQUENCE_COLUMN, BaseStatements


def _quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class MsSqlStatements(BaseStatements):
    db_type = "MSSQL"
    bounded_key_type = "NVARCHAR(256)"

    def quote_identifier(self, name: str) -> str:
        # names are validated plain words, so ']' never needs doubling
        return f"[{name}]"

    # ------------------------------------------------------------------
    # DDL
    def create_table(self, table_cfg: TableCfg, extra_column_defs: Sequence[str] = ()) -> str:
        """
        Guarded CREATE TABLE; re-running it against an existing table is a no-op.

        Example:
            IF NOT EXISTS (SELECT * FROM INFORMATION_SCHEMA.TABLES
                WHERE TABLE_NAME = 'users_tbl' AND TABLE_SCHEMA = 'app')
              BEGIN
                CREATE TABLE [app].[users_tbl] (...)
              END
        """
        create = self.build_create_table(table_cfg, extra_column_defs)
        physical = add_table_suffix(table_cfg.key)
        return (
            "IF NOT EXISTS (SELECT * FROM INFORMATION_SCHEMA.TABLES "
            f"WHERE TABLE_NAME = '{physical}' AND TABLE_SCHEMA = '{self.schema_name}')\n"
            "  BEGIN\n"
            f"    {create}\n"
            "  END"
        )

    def create_table_cfgs_table(self) -> str:
        return self.create_table(
            TABLE_CFGS_TABLE_CFG,
            [f"{self.quote_identifier(SEQUENCE_COLUMN)} BIGINT IDENTITY(1,1) NOT NULL"],
        )

    def alter_table(self, table_key: str, added_columns: Iterable[ColumnCfg]) -> List[str]:
        table_ref = self.format_table_ref(table_key)
        object_name = f"{self.schema_name}.{add_table_suffix(table_key)}"
        return [
            f"IF COL_LENGTH('{object_name}', '{add_column_suffix(col.key)}') IS NULL "
            f"ALTER TABLE {table_ref} ADD {self.column_definition(col)};"
            for col in added_columns
        ]

    # ------------------------------------------------------------------
    # introspection
    @property
    def table_exists(self) -> str:
        return (
            "SELECT CASE WHEN EXISTS (SELECT 1 FROM INFORMATION_SCHEMA.TABLES "
            f"WHERE TABLE_NAME = ? AND TABLE_SCHEMA = '{self.schema_name}') "
            "THEN CAST(1 AS BIT) ELSE CAST(0 AS BIT) END AS tableExists"
        )

    @property
    def table_keys(self) -> str:
        return self.schema_tables(self.schema_name)

    @property
    def column_keys(self) -> str:
        return (
            "SELECT COLUMN_NAME AS columnKey FROM INFORMATION_SCHEMA.COLUMNS "
            f"WHERE TABLE_NAME = ? AND TABLE_SCHEMA = '{self.schema_name}' "
            "ORDER BY ORDINAL_POSITION"
        )

    @property
    def current_login(self) -> str:
        return "SELECT SUSER_SNAME() AS loginName"

    def schemas(self, prefix: str = "") -> str:
        if prefix:
            validate_identifier(prefix, "schema prefix")
        return (
            "SELECT SCHEMA_NAME AS schemaName FROM INFORMATION_SCHEMA.SCHEMATA "
            f"WHERE SCHEMA_NAME LIKE '{prefix}%'"
        )

    def schema_tables(self, schema_name: str) -> str:
        validate_identifier(schema_name, "schema")
        return (
            "SELECT TABLE_NAME AS tableKey FROM INFORMATION_SCHEMA.TABLES "
            f"WHERE TABLE_TYPE = 'BASE TABLE' AND TABLE_SCHEMA = '{schema_name}'"
        )

    # ------------------------------------------------------------------
    # administration
    def create_database(self, db_name: str) -> str:
        db_name = validate_identifier(db_name, "database")
        return (
            f"IF NOT EXISTS (SELECT name FROM sys.databases WHERE name = N'{db_name}')\n"
            "BEGIN\n"
            f"  CREATE DATABASE [{db_name}];\n"
            f"  SELECT 'Database {db_name} created' AS Status;\n"
            "END\n"
            "ELSE\n"
            "BEGIN\n"
            f"  SELECT 'Database {db_name} already exists' AS Status;\n"
            "END"
        )

    def drop_database(self, db_name: str) -> str:
        db_name = validate_identifier(db_name, "database")
        return (
            f"IF EXISTS (SELECT name FROM sys.databases WHERE name = N'{db_name}')\n"
            "BEGIN\n"
            f"  ALTER DATABASE [{db_name}] SET SINGLE_USER WITH ROLLBACK IMMEDIATE;\n"
            f"  DROP DATABASE [{db_name}];\n"
            f"  SELECT 'Database {db_name} dropped' AS Status;\n"
            "END\n"
            "ELSE\n"
            "BEGIN\n"
            f"  SELECT 'Database {db_name} does not exist' AS Status;\n"
            "END"
        )

    def use_database(self, db_name: str) -> str:
        return f"USE [{validate_identifier(db_name, 'database')}]"

    def create_schema(self, schema_name: str) -> str:
        schema_name = validate_identifier(schema_name, "schema")
        return (
            f"IF NOT EXISTS (SELECT * FROM sys.schemas WHERE name = N'{schema_name}')\n"
            "BEGIN\n"
            f"  EXEC('CREATE SCHEMA [{schema_name}];');\n"
            f"  SELECT 'Schema {schema_name} created' AS Status;\n"
            "END\n"
            "ELSE\n"
            "BEGIN\n"
            f"  SELECT 'Schema {schema_name} already exists' AS Status;\n"
            "END"
        )

    def drop_schema(self, schema_name: str) -> str:
        schema_name = validate_identifier(schema_name, "schema")
        return (
            f"IF EXISTS (SELECT * FROM sys.schemas WHERE name = N'{schema_name}')\n"
            "BEGIN\n"
            f"  EXEC('DROP SCHEMA [{schema_name}]');\n"
            f"  SELECT 'Schema {schema_name} dropped' AS Status;\n"
            "END\n"
            "ELSE\n"
            "BEGIN\n"
            f"  SELECT 'Schema {schema_name} does not exist' AS Status;\n"
            "END"
        )

    def create_login(self, login_name: str, db_name: str, password: str) -> str:
        login_name = validate_identifier(login_name, "login")
        db_name = validate_identifier(db_name, "database")
        return (
            f"IF EXISTS (SELECT name FROM sys.server_principals WHERE name = N'{login_name}')\n"
            "BEGIN\n"
            f"  SELECT 'LOGIN [{login_name}] ALREADY EXISTS' AS Status;\n"
            "END\n"
            "ELSE\n"
            "BEGIN\n"
            f"  CREATE LOGIN [{login_name}] WITH PASSWORD={_quote_literal(password)}, "
            f"DEFAULT_DATABASE=[{db_name}], DEFAULT_LANGUAGE=[us_english], "
            "CHECK_EXPIRATION=OFF, CHECK_POLICY=OFF;\n"
            f"  SELECT 'LOGIN [{login_name}] CREATED' AS Status;\n"
            "END"
        )

    def drop_login(self, login_name: str) -> str:
        login_name = validate_identifier(login_name, "login")
        return (
            f"IF EXISTS (SELECT name FROM sys.server_principals WHERE name = N'{login_name}')\n"
            "BEGIN\n"
            f"  DROP LOGIN [{login_name}];\n"
            f"  SELECT 'LOGIN [{login_name}] DROPPED' AS Status;\n"
            "END\n"
            "ELSE\n"
            "BEGIN\n"
            f"  SELECT 'LOGIN [{login_name}] DOES NOT EXIST' AS Status;\n"
            "END"
        )

    def create_user(self, user_name: str, login_name: str, schema_name: str) -> str:
        user_name = validate_identifier(user_name, "user")
        login_name = validate_identifier(login_name, "login")
        schema_name = validate_identifier(schema_name, "schema")
        return (
            "IF EXISTS (SELECT name FROM sys.database_principals "
            f"WHERE type_desc = 'SQL_USER' AND name = N'{user_name}')\n"
            "BEGIN\n"
            f"  SELECT 'USER [{user_name}] ALREADY EXISTS' AS Status;\n"
            "END\n"
            "ELSE\n"
            "BEGIN\n"
            f"  CREATE USER [{user_name}] FOR LOGIN [{login_name}] WITH DEFAULT_SCHEMA=[{schema_name}];\n"
            f"  {self.add_user_to_role('db_datareader', user_name)};\n"
            f"  {self.add_user_to_role('db_datawriter', user_name)};\n"
            f"  {self.add_user_to_role('db_ddladmin', user_name)};\n"
            f"  {self.grant_schema_permission(schema_name, user_name)};\n"
            f"  SELECT 'USER [{user_name}] CREATED' AS Status;\n"
            "END"
        )

    def drop_user(self, user_name: str) -> str:
        user_name = validate_identifier(user_name, "user")
        return (
            f"IF EXISTS (SELECT name FROM sys.database_principals WHERE name = N'{user_name}')\n"
            "BEGIN\n"
            f"  DROP USER [{user_name}];\n"
            f"  SELECT 'USER [{user_name}] DROPPED' AS Status;\n"
            "END\n"
            "ELSE\n"
            "BEGIN\n"
            f"  SELECT 'USER [{user_name}] DOES NOT EXIST' AS Status;\n"
            "END"
        )

    def add_user_to_role(self, role_name: str, user_name: str) -> str:
        role_name = validate_identifier(role_name, "role")
        user_name = validate_identifier(user_name, "user")
        return f"ALTER ROLE [{role_name}] ADD MEMBER [{user_name}]"

    def grant_schema_permission(self, schema_name: str, user_name: str) -> str:
        schema_name = validate_identifier(schema_name, "schema")
        user_name = validate_identifier(user_name, "user")
        return f"GRANT ALTER ON SCHEMA::[{schema_name}] TO [{user_name}]"

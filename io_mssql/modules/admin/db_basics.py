"""
Database provisioning: databases, schemas, logins, users and the
maintenance procedures used to tear test schemas down again.

Every function runs its own script through :func:`run_script` with the
provisioning account and returns the :class:`ScriptResult`.
"""
from __future__ import annotations

from typing import List

from io_mssql.database.dbconnect import MssqlConfig
from io_mssql.database.run_script import ScriptResult, run_script
from io_mssql.modules.common.db_adapter.mssql_adapter import MsSqlStatements
from io_mssql.modules.common.naming import validate_identifier
from io_mssql.modules.logger import info, warning

MAIN_SCHEMA = "main"
DROP_CONSTRAINTS_PROC = "DropConstraints"
DROP_OBJECTS_PROC = "DropObjects"
DROP_SCHEMA_PROC = "DropSchema"
PROCEDURES = (DROP_CONSTRAINTS_PROC, DROP_OBJECTS_PROC, DROP_SCHEMA_PROC)

_statements = MsSqlStatements(MAIN_SCHEMA)


def _use_master(script: str) -> str:
    return f"USE master;\nGO\n{script}"


# ---------------------------------------------------------------------------
# databases

def create_database(admin_config: MssqlConfig, db_name: str) -> ScriptResult:
    """Create ``db_name`` unless it exists (runs in master)."""
    result = run_script(admin_config, _use_master(_statements.create_database(db_name)), db_name)
    info(f"create_database {db_name}: {result.statuses}")
    return result


def drop_database(admin_config: MssqlConfig, db_name: str) -> ScriptResult:
    return run_script(admin_config, _use_master(_statements.drop_database(db_name)), db_name)


def use_database(admin_config: MssqlConfig, db_name: str) -> ScriptResult:
    script = f"{_statements.use_database(db_name)};\nSELECT 'Using database {db_name}' AS Status;"
    return run_script(admin_config, script, db_name)


# ---------------------------------------------------------------------------
# schemas

def create_schema(admin_config: MssqlConfig, db_name: str, schema_name: str) -> ScriptResult:
    return run_script(admin_config, _statements.create_schema(schema_name), db_name)


def drop_schema(admin_config: MssqlConfig, db_name: str, schema_name: str) -> ScriptResult:
    return run_script(admin_config, _statements.drop_schema(schema_name), db_name)


# ---------------------------------------------------------------------------
# logins and users

def create_login(
    admin_config: MssqlConfig, db_name: str, login_name: str, login_password: str
) -> ScriptResult:
    return run_script(
        admin_config, _statements.create_login(login_name, db_name, login_password), db_name
    )


def drop_login(admin_config: MssqlConfig, db_name: str, login_name: str) -> ScriptResult:
    return run_script(admin_config, _statements.drop_login(login_name), db_name)


def create_user(
    admin_config: MssqlConfig,
    db_name: str,
    schema_name: str,
    user_name: str,
    login_name: str,
) -> ScriptResult:
    """Create a database user for ``login_name`` with read/write/DDL rights on ``schema_name``."""
    return run_script(
        admin_config, _statements.create_user(user_name, login_name, schema_name), db_name
    )


def drop_user(admin_config: MssqlConfig, db_name: str, user_name: str) -> ScriptResult:
    return run_script(admin_config, _statements.drop_user(user_name), db_name)


def add_user_to_role(
    admin_config: MssqlConfig, db_name: str, role_name: str, user_name: str
) -> ScriptResult:
    return run_script(admin_config, _statements.add_user_to_role(role_name, user_name), db_name)


def grant_schema_permission(
    admin_config: MssqlConfig, db_name: str, schema_name: str, user_name: str
) -> ScriptResult:
    return run_script(
        admin_config, _statements.grant_schema_permission(schema_name, user_name), db_name
    )


def get_users(admin_config: MssqlConfig, db_name: str, schema_name: str) -> List[str]:
    """SQL users whose default schema is ``schema_name``."""
    schema_name = validate_identifier(schema_name, "schema")
    script = (
        "SELECT name FROM sys.database_principals "
        f"WHERE type = 'S' AND default_schema_name = '{schema_name}' AND name NOT LIKE '##%'"
    )
    result = run_script(admin_config, script, db_name)
    return [row["name"] for row in result.rows if row.get("name")]


def get_table_names(admin_config: MssqlConfig, db_name: str, schema_name: str) -> List[str]:
    result = run_script(admin_config, _statements.schema_tables(schema_name), db_name)
    return [row["tableKey"] for row in result.rows if row.get("tableKey")]


# ---------------------------------------------------------------------------
# maintenance procedures

def _proc_drop_constraints() -> str:
    return f"""CREATE OR ALTER PROCEDURE [{MAIN_SCHEMA}].[{DROP_CONSTRAINTS_PROC}]
    (@SchemaName NVARCHAR(128), @TableName NVARCHAR(128))
AS
BEGIN
  DECLARE @sql NVARCHAR(MAX)
  DECLARE @FullName NVARCHAR(260) = QUOTENAME(@SchemaName) + '.' + QUOTENAME(@TableName);
  DECLARE @KeyName NVARCHAR(128)
  DECLARE fkeys CURSOR FOR
    SELECT name FROM sys.foreign_keys WHERE parent_object_id = OBJECT_ID(@FullName)
    UNION SELECT name FROM sys.default_constraints WHERE parent_object_id = OBJECT_ID(@FullName)
    UNION SELECT name FROM sys.check_constraints WHERE parent_object_id = OBJECT_ID(@FullName)
    UNION SELECT name FROM sys.key_constraints WHERE parent_object_id = OBJECT_ID(@FullName)
  OPEN fkeys
  FETCH NEXT FROM fkeys INTO @KeyName
  WHILE @@FETCH_STATUS = 0
  BEGIN
    SET @sql = 'ALTER TABLE ' + @FullName + ' DROP CONSTRAINT ' + QUOTENAME(@KeyName) + ';'
    EXEC sp_executesql @sql;
    FETCH NEXT FROM fkeys INTO @KeyName
  END
  CLOSE fkeys
  DEALLOCATE fkeys
END
GO
SELECT 'Procedure {DROP_CONSTRAINTS_PROC} for {MAIN_SCHEMA} created' AS Status;"""


def _proc_drop_schema() -> str:
    drops = [
        ("DROP TABLE IF EXISTS", "sys.tables o", ""),
        ("DROP VIEW", "sys.views o", ""),
        ("DROP SEQUENCE", "sys.sequences o", ""),
        ("DROP FUNCTION", "sys.objects o", " AND o.type IN ('FN', 'IF', 'TF')"),
        ("DROP PROCEDURE", "sys.procedures o", ""),
    ]
    body = "\n".join(
        f"""  SET @sql = N'';
  SELECT @sql += '{verb} ' + QUOTENAME(s.name) + '.' + QUOTENAME(o.name) + ';'
  FROM {source} INNER JOIN sys.schemas s ON o.schema_id = s.schema_id
  WHERE s.name = @SchemaName{extra};
  EXEC sp_executesql @sql;"""
        for verb, source, extra in drops
    )
    return f"""CREATE OR ALTER PROCEDURE [{MAIN_SCHEMA}].[{DROP_SCHEMA_PROC}] (@SchemaName NVARCHAR(128))
AS
BEGIN
  DECLARE @sql NVARCHAR(MAX) = N''
  SELECT @sql += 'ALTER TABLE ' + QUOTENAME(s.name) + '.' + QUOTENAME(t.name)
    + ' DROP CONSTRAINT ' + QUOTENAME(f.name) + ';'
  FROM sys.foreign_keys f
  INNER JOIN sys.tables t ON f.parent_object_id = t.object_id
  INNER JOIN sys.schemas s ON t.schema_id = s.schema_id
  WHERE s.name = @SchemaName;
  EXEC sp_executesql @sql;
{body}
  SET @sql = N'DROP SCHEMA IF EXISTS ' + QUOTENAME(@SchemaName);
  EXEC sp_executesql @sql;
END
GO
SELECT 'Procedure {DROP_SCHEMA_PROC} for {MAIN_SCHEMA} created' AS Status;"""


def _proc_drop_objects() -> str:
    return f"""CREATE OR ALTER PROCEDURE [{MAIN_SCHEMA}].[{DROP_OBJECTS_PROC}]
AS
-- drops every schema apart from the built-in ones and {MAIN_SCHEMA}
BEGIN
  DECLARE @SchemaName NVARCHAR(128)
  DECLARE SchemaNames CURSOR FOR
    SELECT name FROM sys.schemas
    WHERE name NOT IN ('dbo', 'guest', 'INFORMATION_SCHEMA', 'sys', '{MAIN_SCHEMA}')
      AND schema_id < 16384
  OPEN SchemaNames
  FETCH NEXT FROM SchemaNames INTO @SchemaName
  WHILE @@FETCH_STATUS = 0
  BEGIN
    EXEC [{MAIN_SCHEMA}].[{DROP_SCHEMA_PROC}] @SchemaName
    FETCH NEXT FROM SchemaNames INTO @SchemaName
  END
  CLOSE SchemaNames
  DEALLOCATE SchemaNames
END
GO
SELECT 'Procedure {DROP_OBJECTS_PROC} for {MAIN_SCHEMA} created' AS Status;"""


def install_procedures(admin_config: MssqlConfig, db_name: str) -> List[ScriptResult]:
    # DropObjects calls DropSchema, so DropSchema goes first
    return [
        run_script(admin_config, _proc_drop_constraints(), db_name),
        run_script(admin_config, _proc_drop_schema(), db_name),
        run_script(admin_config, _proc_drop_objects(), db_name),
    ]


def drop_procedures(admin_config: MssqlConfig, db_name: str) -> List[ScriptResult]:
    return [
        run_script(admin_config, f"DROP PROCEDURE IF EXISTS [{MAIN_SCHEMA}].[{proc}]", db_name)
        for proc in PROCEDURES
    ]


def drop_constraints(
    admin_config: MssqlConfig, db_name: str, schema_name: str, table_name: str
) -> ScriptResult:
    schema_name = validate_identifier(schema_name, "schema")
    table_name = validate_identifier(table_name, "table")
    script = (
        f"EXEC [{MAIN_SCHEMA}].[{DROP_CONSTRAINTS_PROC}] "
        f"@SchemaName = N'{schema_name}', @TableName = N'{table_name}'"
    )
    return run_script(admin_config, script, db_name)


def drop_users(admin_config: MssqlConfig, db_name: str, schema_name: str) -> List[str]:
    """Drop every user defaulting to ``schema_name`` together with its login."""
    users = get_users(admin_config, db_name, schema_name)
    for user_name in users:
        drop_user(admin_config, db_name, user_name)
        run_script(admin_config, _use_master(_statements.drop_login(user_name)), db_name)
    return users


def drop_tables(admin_config: MssqlConfig, db_name: str, schema_name: str) -> List[str]:
    """Drop all base tables of ``schema_name``, constraints first."""
    tables = get_table_names(admin_config, db_name, schema_name)
    for table_name in tables:
        drop_constraints(admin_config, db_name, schema_name, table_name)
    for table_name in tables:
        result = run_script(
            admin_config, f"DROP TABLE IF EXISTS [{schema_name}].[{table_name}]", db_name
        )
        if not result.ok:
            warning(f"Could not drop {schema_name}.{table_name}: {result.errors}")
    return tables


# ---------------------------------------------------------------------------
# compilations

def init_db(
    admin_config: MssqlConfig,
    db_name: str,
    schema_name: str,
    login_name: str,
    login_password: str,
) -> List[ScriptResult]:
    """Database, main and app schema, login, user and maintenance procedures."""
    results = [
        create_database(admin_config, db_name),
        use_database(admin_config, db_name),
        create_schema(admin_config, db_name, MAIN_SCHEMA),
        create_schema(admin_config, db_name, schema_name),
        create_login(admin_config, db_name, login_name, login_password),
        create_user(admin_config, db_name, schema_name, login_name, login_name),
    ]
    results.extend(install_procedures(admin_config, db_name))
    info(f"Database {db_name} initialized for schema {schema_name}")
    return results

"""
In-memory stand-in for a SQL Server connection.

Understands exactly the statement shapes the statement builders emit
(guarded CREATE / ALTER, INSERT with ``?`` placeholders, SELECT with an
optional equality conjunction, COUNT and the INFORMATION_SCHEMA lookups).
Anything else raises ``pyodbc.ProgrammingError`` so unexpected SQL shows up
in the tests.
"""
import re

import pyodbc

from io_mssql.modules.common.errors import DuplicateKeyError

_CREATE_RE = re.compile(
    r"CREATE TABLE \[(?P<schema>\w+)\]\.\[(?P<table>\w+)\] \((?P<defs>.*)\)\s*END\s*$", re.S
)
_ALTER_RE = re.compile(
    r"^IF COL_LENGTH\('(?P<object>[\w.]+)', '(?P<column>\w+)'\) IS NULL "
    r"ALTER TABLE \[(?P<schema>\w+)\]\.\[(?P<table>\w+)\] ADD \[(?P<col>\w+)\] (?P<type>[^;]+);$"
)
_INSERT_RE = re.compile(
    r"^INSERT INTO \[(?P<schema>\w+)\]\.\[(?P<table>\w+)\] \((?P<cols>[^)]*)\) VALUES \((?P<vals>[^)]*)\)$"
)
_SELECT_RE = re.compile(
    r"^SELECT \* FROM \[(?P<schema>\w+)\]\.\[(?P<table>\w+)\]"
    r"(?: WHERE (?P<where>.*?))?(?: ORDER BY \[(?P<order>\w+)\])?$"
)
_COUNT_RE = re.compile(r"^SELECT COUNT\(\*\) AS totalCount FROM \[(?P<schema>\w+)\]\.\[(?P<table>\w+)\]$")
_EXISTS_RE = re.compile(r"^SELECT CASE WHEN EXISTS .*TABLE_NAME = \? AND TABLE_SCHEMA = '(?P<schema>\w+)'.*AS tableExists$")
_TABLE_KEYS_RE = re.compile(
    r"^SELECT TABLE_NAME AS tableKey FROM INFORMATION_SCHEMA.TABLES "
    r"WHERE TABLE_TYPE = 'BASE TABLE' AND TABLE_SCHEMA = '(?P<schema>\w+)'$"
)
_COLUMN_KEYS_RE = re.compile(
    r"^SELECT COLUMN_NAME AS columnKey FROM INFORMATION_SCHEMA.COLUMNS "
    r"WHERE TABLE_NAME = \? AND TABLE_SCHEMA = '(?P<schema>\w+)' ORDER BY ORDINAL_POSITION$"
)
_COLUMN_DEF_RE = re.compile(r"^\[(?P<name>\w+)\] (?P<type>.+)$")
_PK_RE = re.compile(r"^CONSTRAINT \[\w+\] PRIMARY KEY \(\[(?P<col>\w+)\]\)$")
_FK_RE = re.compile(
    r"^CONSTRAINT \[\w+\] FOREIGN KEY \(\[(?P<col>\w+)\]\) "
    r"REFERENCES \[(?P<schema>\w+)\]\.\[(?P<table>\w+)\]\(\[(?P<target>\w+)\]\)$"
)
_PREDICATE_RE = re.compile(r"^\[(?P<col>\w+)\] (?:(?P<eq>= \?)|(?P<null>IS NULL))$")


class FakeTable:
    def __init__(self, name):
        self.name = name
        self.columns = []
        self.types = {}
        self.identity = None
        self.primary_key = None
        self.foreign_keys = {}
        self.rows = []
        self.next_identity = 1

    def add_column(self, name, sql_type):
        if "IDENTITY" in sql_type.upper():
            self.identity = name
        self.columns.append(name)
        self.types[name] = sql_type.split()[0].upper()
        for row in self.rows:
            row.setdefault(name, None)

    def native(self, column, value):
        """What pyodbc hands back for the column's SQL type."""
        if value is None:
            return None
        sql_type = self.types.get(column, "")
        if sql_type == "BIT":
            return bool(value)
        if sql_type == "FLOAT":
            return float(value)
        return value


class FakeMssqlServer:
    def __init__(self, login="fake_login"):
        self.tables = {}
        self.executed = []
        self.batches = []
        self.login = login
        self.fail_on = {}

    def table(self, schema, name):
        return self.tables.get((schema, name))

    def statements_like(self, prefix):
        return [sql for sql, _ in self.executed if sql.lstrip().startswith(prefix)]

    # ------------------------------------------------------------------
    def execute(self, sql, params=None):
        params = list(params or [])
        self.executed.append((sql, params))
        stripped = sql.strip()

        if stripped.startswith("USE ["):
            return []
        if stripped.startswith("IF NOT EXISTS (SELECT * FROM INFORMATION_SCHEMA.TABLES"):
            return self._create(stripped)
        match = _ALTER_RE.match(stripped)
        if match:
            return self._alter(match)
        match = _INSERT_RE.match(stripped)
        if match:
            return self._insert(match, params)
        match = _COUNT_RE.match(stripped)
        if match:
            table = self._require(match.group("schema"), match.group("table"))
            return [{"totalCount": len(table.rows)}]
        match = _SELECT_RE.match(stripped)
        if match:
            return self._select(match, params)
        match = _EXISTS_RE.match(stripped)
        if match:
            exists = (match.group("schema"), params[0]) in self.tables
            return [{"tableExists": exists}]
        match = _TABLE_KEYS_RE.match(stripped)
        if match:
            schema = match.group("schema")
            return [{"tableKey": name} for (s, name) in self.tables if s == schema]
        match = _COLUMN_KEYS_RE.match(stripped)
        if match:
            table = self.tables.get((match.group("schema"), params[0]))
            return [{"columnKey": col} for col in (table.columns if table else [])]
        if stripped == "SELECT SUSER_SNAME() AS loginName":
            return [{"loginName": self.login}]
        raise pyodbc.ProgrammingError("42000", f"Fake server cannot run: {stripped}")

    def execute_batch(self, sql):
        self.batches.append(sql)
        return []

    # ------------------------------------------------------------------
    def _require(self, schema, name):
        table = self.tables.get((schema, name))
        if table is None:
            raise pyodbc.ProgrammingError("42S02", f"Invalid object name '{schema}.{name}'.")
        return table

    def _create(self, sql):
        match = _CREATE_RE.search(sql)
        if match is None:
            raise pyodbc.ProgrammingError("42000", f"Fake server cannot parse: {sql}")
        key = (match.group("schema"), match.group("table"))
        if key in self.tables:
            return []
        table = FakeTable(match.group("table"))
        for part in match.group("defs").split(", "):
            pk = _PK_RE.match(part)
            fk = _FK_RE.match(part)
            if pk:
                table.primary_key = pk.group("col")
            elif fk:
                table.foreign_keys[fk.group("col")] = (
                    (fk.group("schema"), fk.group("table")),
                    fk.group("target"),
                )
            else:
                col = _COLUMN_DEF_RE.match(part)
                table.add_column(col.group("name"), col.group("type"))
        self.tables[key] = table
        return []

    def _alter(self, match):
        table = self._require(match.group("schema"), match.group("table"))
        if match.group("col") not in table.columns:
            table.add_column(match.group("col"), match.group("type"))
        return []

    def _insert(self, match, params):
        schema, name = match.group("schema"), match.group("table")
        if (schema, name) in self.fail_on:
            raise pyodbc.OperationalError("HY000", self.fail_on[(schema, name)])
        table = self._require(schema, name)
        columns = re.findall(r"\[(\w+)\]", match.group("cols"))
        if len(columns) != len(params):
            raise pyodbc.ProgrammingError("07002", "COUNT field incorrect")
        row = dict.fromkeys(table.columns)
        row.update(zip(columns, params))

        pk_value = row.get(table.primary_key)
        if any(existing.get(table.primary_key) == pk_value for existing in table.rows):
            raise DuplicateKeyError(
                "Duplicate key", {"table": name, "reason": "Violation of PRIMARY KEY constraint (2627)"}
            )
        for col, (target_key, target_col) in table.foreign_keys.items():
            value = row.get(col)
            if value is None:
                continue
            target = self.tables.get(target_key)
            if target is None or not any(r.get(target_col) == value for r in target.rows):
                raise pyodbc.IntegrityError(
                    "23000",
                    f"The INSERT statement conflicted with the FOREIGN KEY constraint on {col}",
                )
        if table.identity:
            row[table.identity] = table.next_identity
            table.next_identity += 1
        table.rows.append(row)
        return []

    def _select(self, match, params):
        table = self._require(match.group("schema"), match.group("table"))
        predicates = []
        where = match.group("where")
        if where:
            values = iter(params)
            for part in where.split(" AND "):
                pred = _PREDICATE_RE.match(part)
                if pred is None:
                    raise pyodbc.ProgrammingError("42000", f"Fake server cannot parse predicate: {part}")
                predicates.append((pred.group("col"), None if pred.group("null") else next(values)))

        result = []
        for row in table.rows:
            if all(
                row.get(col) is None if value is None else row.get(col) == value
                for col, value in predicates
            ):
                result.append({col: table.native(col, row.get(col)) for col in table.columns})
        if match.group("order"):
            result.sort(key=lambda r: r.get(match.group("order")) or 0)
        return result


class FakeMssqlConnection:
    """Connection collaborator backed by a :class:`FakeMssqlServer`."""

    def __init__(self, server=None):
        self.server = server or FakeMssqlServer()
        self.is_open = False
        self.connect_calls = 0

    def connect(self):
        self.connect_calls += 1
        self.is_open = True
        return self

    def _check_open(self):
        if not self.is_open:
            raise pyodbc.ProgrammingError("Attempt to use a closed connection.")

    def execute(self, sql, params=None):
        self._check_open()
        return self.server.execute(sql, params)

    def execute_batch(self, sql):
        self._check_open()
        return self.server.execute_batch(sql)

    def close(self):
        self.is_open = False

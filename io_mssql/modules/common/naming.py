"""
Physical naming rules.

Abstract table and column keys are mapped to physical identifiers by
appending a fixed suffix (``_tbl`` / ``_col``). Suffixing keeps keys clear of
T-SQL reserved words and separates the table and column namespaces. The
mapping must stay reversible so result rows can be turned back into
abstract keys.
"""
from __future__ import annotations

import re

from .errors import SchemaError

TABLE_SUFFIX = "_tbl"
COLUMN_SUFFIX = "_col"
REF_SUFFIX = "Ref"

PRIMARY_KEY_COLUMN = "_hash"
MAIN_TABLE = "tableCfgs"

# sysname is 128 characters; leave room for the longest suffix
MAX_IDENTIFIER_LENGTH = 124

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def add_fix(name: str, fix: str) -> str:
    """Append ``fix`` unless ``name`` already ends with it."""
    return name if name.endswith(fix) else name + fix


def rem_fix(name: str, fix: str) -> str:
    """Strip a trailing ``fix``; no-op when absent."""
    return name[: -len(fix)] if fix and name.endswith(fix) else name


def add_table_suffix(key: str) -> str:
    return add_fix(key, TABLE_SUFFIX)


def remove_table_suffix(name: str) -> str:
    return rem_fix(name, TABLE_SUFFIX)


def add_column_suffix(key: str) -> str:
    return add_fix(key, COLUMN_SUFFIX)


def remove_column_suffix(name: str) -> str:
    return rem_fix(name, COLUMN_SUFFIX)


def is_reference_column(column_key: str) -> bool:
    """Columns named ``<table>Ref`` point at ``<table>``'s hash column."""
    return len(column_key) > len(REF_SUFFIX) and column_key.endswith(REF_SUFFIX)


def referenced_table(column_key: str) -> str:
    if not is_reference_column(column_key):
        raise SchemaError(
            f"Column {column_key} is not a reference column",
            {"column": column_key},
        )
    return column_key[: -len(REF_SUFFIX)]


def validate_identifier(name: str, kind: str = "identifier") -> str:
    """
    Check that ``name`` can be interpolated into SQL text as an identifier.

    Identifiers come from table configurations and admin setup, never from
    row data, so they are not parameterized. Anything that is not a plain
    word is rejected.

    Returns:
        The unchanged name.
    """
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise SchemaError(f"Invalid {kind}: {name!r}", {kind: name})
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise SchemaError(
            f"Invalid {kind}: {name!r} is longer than {MAX_IDENTIFIER_LENGTH} characters",
            {kind: name},
        )
    return name

"""Tests for physical naming and identifier validation."""
import pytest

from io_mssql.modules.common.errors import SchemaError
from io_mssql.modules.common.naming import (
    add_column_suffix,
    add_fix,
    add_table_suffix,
    is_reference_column,
    referenced_table,
    rem_fix,
    remove_column_suffix,
    remove_table_suffix,
    validate_identifier,
)


@pytest.mark.parametrize("key", ["users", "tableCfgs", "_hash", "a", "userRef"])
def test_table_suffix_is_idempotent_and_reversible(key):
    assert add_table_suffix(add_table_suffix(key)) == add_table_suffix(key)
    assert remove_table_suffix(add_table_suffix(key)) == key


@pytest.mark.parametrize("key", ["name", "_hash", "isHead", "carRef"])
def test_column_suffix_is_idempotent_and_reversible(key):
    assert add_column_suffix(add_column_suffix(key)) == add_column_suffix(key)
    assert remove_column_suffix(add_column_suffix(key)) == key


def test_suffix_values():
    assert add_table_suffix("users") == "users_tbl"
    assert add_column_suffix("_hash") == "_hash_col"


def test_remove_is_noop_without_suffix():
    assert remove_table_suffix("users") == "users"
    assert remove_column_suffix("name") == "name"
    assert rem_fix("name", "") == "name"


def test_add_fix_does_not_double():
    assert add_fix("x_tmp", "_tmp") == "x_tmp"


def test_reference_columns():
    assert is_reference_column("carRef")
    assert not is_reference_column("Ref")
    assert not is_reference_column("reference")
    assert referenced_table("carRef") == "car"
    with pytest.raises(SchemaError):
        referenced_table("car")


@pytest.mark.parametrize("name", ["users", "_hash", "Table_1", "a"])
def test_valid_identifiers(name):
    assert validate_identifier(name) == name


@pytest.mark.parametrize(
    "name",
    ["", "1abc", "with space", "drop];--", "quote'", "a-b", "x" * 125, None],
)
def test_invalid_identifiers(name):
    with pytest.raises(SchemaError):
        validate_identifier(name, "table")

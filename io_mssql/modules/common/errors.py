"""
Error taxonomy for the MSSQL table-storage adapter.

Every error carries a human readable message plus a ``details`` dict with the
table key, column key or statement intent needed to diagnose it.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class IoMssqlError(Exception):
    """Base error for all adapter failures."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SchemaError(IoMssqlError):
    """Malformed table configuration. Never retried."""


class UnknownTypeError(SchemaError):
    """A column declares a type tag outside the six known JSON value types."""


class UnsupportedColumnTypeError(SchemaError):
    """Result decoding met a column type the codec does not know."""


class ConnectionStateError(IoMssqlError):
    """Operation attempted while the adapter is not in the ready state."""


class DuplicateKeyError(IoMssqlError):
    """Primary key collision on insert: the content-hashed row already exists."""


class UnsupportedValueTypeError(IoMssqlError):
    """A row or predicate value has a Python type the codec cannot encode."""


class NotFoundError(IoMssqlError):
    """Referenced table or column does not exist."""


class BatchWriteError(IoMssqlError):
    """Aggregate of every non-duplicate row failure of one write call."""

    def __init__(self, failures: List[Dict[str, Any]]):
        lines = [
            f"{f['table']} [{f.get('hash') or '?'}]: {f['reason']}" for f in failures
        ]
        super().__init__(
            f"{len(failures)} row(s) failed to write:\n  " + "\n  ".join(lines),
            {"failures": failures},
        )
        self.failures = failures

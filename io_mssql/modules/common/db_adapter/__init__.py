from .base_adapter import BaseStatements
from .mssql_adapter import MsSqlStatements
from .registry import get_statements

__all__ = ["BaseStatements", "MsSqlStatements", "get_statements"]

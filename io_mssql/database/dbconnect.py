import os
import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence

import pyodbc
from dotenv import load_dotenv

from io_mssql.modules.common.errors import DuplicateKeyError
from io_mssql.modules.logger import debug, error, info

# Load environment variables
# Try the project root .env first, then fall back to the default search
project_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
env_path = os.path.join(project_dir, '.env')
if os.path.exists(env_path):
    load_dotenv(env_path)
else:
    load_dotenv()

# SQL Server: violation of PRIMARY KEY / UNIQUE constraint, duplicate key in unique index
DUPLICATE_KEY_ERRORS = ("2627", "2601")


@dataclass(frozen=True)
class MssqlConfig:
    server: str = "localhost"
    port: int = 1433
    user: Optional[str] = None
    password: Optional[str] = None
    database: str = "master"
    driver: str = "ODBC Driver 18 for SQL Server"
    encrypt: bool = False
    trust_server_certificate: bool = True
    timeout: int = 30

    @classmethod
    def from_env(cls, prefix: str = "MSSQL_") -> "MssqlConfig":
        """
        Build a config from environment variables.

        Args:
            prefix: MSSQL_ for the application login, MSSQL_ADMIN_ for the
                provisioning account.
        """
        def env(name, default=None):
            return os.getenv(f"{prefix}{name}", default)

        return cls(
            server=env("SERVER", "localhost"),
            port=int(env("PORT", "1433")),
            user=env("USER"),
            password=env("PASSWORD"),
            database=env("DATABASE", "master"),
            driver=env("DRIVER", "ODBC Driver 18 for SQL Server"),
            encrypt=_as_bool(env("ENCRYPT", "no")),
            trust_server_certificate=_as_bool(env("TRUST_SERVER_CERTIFICATE", "yes")),
            timeout=int(env("TIMEOUT", "30")),
        )

    def with_login(self, user: str, password: str) -> "MssqlConfig":
        return replace(self, user=user, password=password)

    def with_database(self, database: str) -> "MssqlConfig":
        return replace(self, database=database)

    def connection_string(self) -> str:
        parts = [
            f"DRIVER={{{self.driver}}}",
            f"SERVER={self.server},{self.port}",
            f"DATABASE={self.database}",
        ]
        if self.user:
            parts.append(f"UID={self.user}")
            parts.append(f"PWD={{{(self.password or '').replace('}', '}}')}}}")
        else:
            parts.append("Trusted_Connection=yes")
        parts.append(f"Encrypt={'yes' if self.encrypt else 'no'}")
        parts.append(f"TrustServerCertificate={'yes' if self.trust_server_certificate else 'no'}")
        return ";".join(parts)

    def describe(self) -> str:
        return f"{self.server}:{self.port}/{self.database}"


def _as_bool(value) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def is_duplicate_key_error(exc: Exception) -> bool:
    text = " ".join(str(arg) for arg in getattr(exc, "args", ()))
    return any(code in text for code in DUPLICATE_KEY_ERRORS)


class MssqlConnection:
    """
    One pyodbc connection, statements run strictly one after another.

    Rows come back as dicts keyed by the result set's column names.
    """

    def __init__(self, config: MssqlConfig):
        self.config = config
        self._conn = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def connect(self) -> "MssqlConnection":
        if self._conn is not None:
            return self
        try:
            self._conn = pyodbc.connect(
                self.config.connection_string(),
                autocommit=True,
                timeout=self.config.timeout,
            )
            self._conn.timeout = self.config.timeout
            info(f"MSSQL connection established successfully: {self.config.describe()}")
        except pyodbc.Error as e:
            error(f"Error establishing MSSQL connection to {self.config.describe()}: {str(e)}")
            raise
        return self

    def _cursor(self):
        if self._conn is None:
            raise pyodbc.ProgrammingError("Attempt to use a closed connection.")
        return self._conn.cursor()

    @staticmethod
    def _fetch(cursor) -> List[Dict[str, Any]]:
        if cursor.description is None:
            return []
        columns = [col[0] for col in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """
        Execute one statement and return the rows of its first result set.

        Raises:
            DuplicateKeyError: the statement violated a primary key / unique index.
            pyodbc.Error: anything else, unchanged.
        """
        with self._lock:
            cursor = self._cursor()
            try:
                debug(f"Executing SQL: {sql}")
                if params:
                    cursor.execute(sql, list(params))
                else:
                    cursor.execute(sql)
                return self._fetch(cursor)
            except pyodbc.IntegrityError as e:
                if is_duplicate_key_error(e):
                    raise DuplicateKeyError(
                        "Duplicate key", {"sql": sql, "reason": str(e)}
                    ) from e
                error(f"Error executing SQL: {str(e)}")
                raise
            except pyodbc.Error as e:
                error(f"Error executing SQL: {str(e)}")
                raise
            finally:
                cursor.close()

    def execute_batch(self, sql: str) -> List[Dict[str, Any]]:
        """Execute a multi-statement batch and collect the rows of every result set."""
        with self._lock:
            cursor = self._cursor()
            try:
                debug(f"Executing batch: {sql}")
                cursor.execute(sql)
                rows = self._fetch(cursor)
                while cursor.nextset():
                    rows.extend(self._fetch(cursor))
                return rows
            except pyodbc.Error as e:
                error(f"Error executing batch: {str(e)}")
                raise
            finally:
                cursor.close()

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.close()
            finally:
                self._conn = None
            info(f"MSSQL connection closed: {self.config.describe()}")


def create_mssql_connection(config: Optional[MssqlConfig] = None) -> MssqlConnection:
    """Open a connection using ``config`` or the MSSQL_* environment."""
    return MssqlConnection(config or MssqlConfig.from_env()).connect()

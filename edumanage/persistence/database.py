"""
Database management and connection handling.

Queries are written once with ``?`` placeholders; each backend rewrites them
to its own paramstyle. Driver exceptions never leak: unique-constraint
violations become ``DuplicateEntityError`` and everything else becomes
``StorageError``.
"""

import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Sequence, Tuple

try:
    import psycopg2
    from psycopg2.extras import RealDictCursor
    PSYCOPG2_AVAILABLE = True
except ImportError:
    PSYCOPG2_AVAILABLE = False

from ..app_logger import get_logger
from ..core.exceptions import (
    ConfigurationError, DuplicateEntityError, EduManageError, StorageError,
)

logger = get_logger("persistence.database")

Statement = Tuple[str, Optional[Sequence[Any]]]


class DatabaseManager(ABC):
    """Abstract base class for database management."""

    placeholder = "?"

    @abstractmethod
    def connect(self) -> Any:
        """Create a raw database connection."""
        pass

    @abstractmethod
    def _get_connection(self):
        """Context manager yielding a connection with error translation."""
        pass

    @abstractmethod
    def _is_unique_violation(self, error: Exception) -> bool:
        pass

    @abstractmethod
    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists."""
        pass

    def prepare(self, query: str) -> str:
        """Rewrite ``?`` placeholders into the backend paramstyle."""
        if self.placeholder == "?":
            return query
        return query.replace("?", self.placeholder)

    def _translate_error(self, error: Exception) -> EduManageError:
        message = str(error).strip()
        if self._is_unique_violation(error):
            return DuplicateEntityError(
                "Unique constraint violated",
                details={"constraint": message},
            )
        return StorageError(
            f"Database error: {message}",
            details={"driver_error": type(error).__name__},
        )

    def _cursor(self, conn):
        return conn.cursor()

    def _rows(self, cursor) -> List[Dict[str, Any]]:
        if cursor.description is None:
            return []
        columns = [description[0] for description in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def execute_query(self, query: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Execute a query and return results."""
        with self._get_connection() as conn:
            cursor = self._cursor(conn)
            cursor.execute(self.prepare(query), tuple(params or ()))
            return self._rows(cursor)

    def execute_update(self, query: str, params: Optional[Sequence[Any]] = None) -> int:
        """Execute an update query and return affected rows."""
        with self._get_connection() as conn:
            cursor = self._cursor(conn)
            cursor.execute(self.prepare(query), tuple(params or ()))
            conn.commit()
            return cursor.rowcount

    def execute_transaction(self, statements: List[Statement], require_rows: bool = False) -> List[int]:
        """Execute several statements atomically; return per-statement rowcounts.

        With ``require_rows`` a statement that matches no row rolls the whole
        transaction back and stops; the rowcounts seen so far are returned.
        """
        with self._get_connection() as conn:
            cursor = self._cursor(conn)
            rowcounts = []
            for query, params in statements:
                cursor.execute(self.prepare(query), tuple(params or ()))
                rowcounts.append(cursor.rowcount)
                if require_rows and cursor.rowcount == 0:
                    conn.rollback()
                    return rowcounts
            conn.commit()
            return rowcounts

    def execute_script(self, script: str) -> None:
        """Execute ``;``-separated DDL statements in one transaction."""
        statements = [stmt.strip() for stmt in script.split(";") if stmt.strip()]
        self.execute_transaction([(stmt, None) for stmt in statements])


class SQLiteDatabase(DatabaseManager):
    """SQLite database implementation."""

    placeholder = "?"

    def __init__(self, database_path: str = "edumanage.db", timeout: float = 5.0):
        if database_path == ":memory:":
            raise ConfigurationError("SQLite needs a file path; connections are opened per call")
        self._database_path = database_path
        self._timeout = timeout

    @property
    def database_path(self) -> str:
        return self._database_path

    @contextmanager
    def _get_connection(self):
        """Get database connection with proper cleanup."""
        conn = None
        try:
            conn = self.connect()
            yield conn
        except EduManageError:
            if conn:
                conn.rollback()
            raise
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            raise self._translate_error(e) from e
        finally:
            if conn:
                conn.close()

    def connect(self) -> sqlite3.Connection:
        """Create a database connection."""
        return sqlite3.connect(self._database_path, timeout=self._timeout, check_same_thread=False)

    def _is_unique_violation(self, error: Exception) -> bool:
        return isinstance(error, sqlite3.IntegrityError) and "UNIQUE" in str(error).upper()

    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists."""
        query = "SELECT name FROM sqlite_master WHERE type='table' AND name=?"
        results = self.execute_query(query, (table_name,))
        return len(results) > 0


class PostgreSQLDatabase(DatabaseManager):
    """PostgreSQL database implementation."""

    placeholder = "%s"
    UNIQUE_VIOLATION = "23505"

    def __init__(self, host: str = "localhost", port: int = 5432,
                 database: str = "edumanage", user: str = "edumanage", password: str = ""):
        if not PSYCOPG2_AVAILABLE:
            raise ConfigurationError("psycopg2 is required for PostgreSQL support")

        self._host = host
        self._port = port
        self._database = database
        self._user = user
        self._password = password

    def _get_connection_string(self) -> str:
        """Get PostgreSQL connection string."""
        return f"host={self._host} port={self._port} dbname={self._database} user={self._user} password={self._password}"

    @contextmanager
    def _get_connection(self):
        """Get database connection with proper cleanup."""
        conn = None
        try:
            conn = self.connect()
            yield conn
        except EduManageError:
            if conn:
                conn.rollback()
            raise
        except psycopg2.Error as e:
            if conn:
                conn.rollback()
            raise self._translate_error(e) from e
        finally:
            if conn:
                conn.close()

    def connect(self):
        """Create a database connection."""
        return psycopg2.connect(self._get_connection_string())

    def _cursor(self, conn):
        return conn.cursor(cursor_factory=RealDictCursor)

    def _rows(self, cursor) -> List[Dict[str, Any]]:
        if cursor.description is None:
            return []
        return [dict(row) for row in cursor.fetchall()]

    def _is_unique_violation(self, error: Exception) -> bool:
        return getattr(error, "pgcode", None) == self.UNIQUE_VIOLATION

    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists."""
        query = "SELECT table_name FROM information_schema.tables WHERE table_name = ?"
        results = self.execute_query(query, (table_name,))
        return len(results) > 0


class DatabaseFactory:
    """Factory for creating database instances."""

    @staticmethod
    def create_database(database_type: str, **kwargs) -> DatabaseManager:
        """Create a database instance based on type."""
        if database_type.lower() == "sqlite":
            database = SQLiteDatabase(**kwargs)
        elif database_type.lower() in ("postgresql", "postgres"):
            database = PostgreSQLDatabase(**kwargs)
        else:
            raise ConfigurationError(f"Unsupported database type: {database_type}")
        logger.info("Database backend ready: %s", database_type.lower())
        return database

# src/lightrecord/backend.py
"""Database handles used by records and query builders.

:class:`StorageBackend` is the capability set the query builder relies on:
run a statement, fetch rows/columns/scalars, substitute placeholders and list
the columns of a table. :class:`MySQLBackend` implements it on top of
mysql-connector-python.
"""
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import mysql.connector
from mysql.connector.errors import (
    DatabaseError as MySQLDatabaseError,
    Error as MySQLError,
    IntegrityError as MySQLIntegrityError,
    OperationalError as MySQLOperationalError,
    ProgrammingError,
)
from pymysql.converters import escape_item

from .config import MySQLConnectionConfig
from .errors import (
    ArgumentError,
    ConnectionError,
    DatabaseError,
    DeadlockError,
    IntegrityError,
    OperationalError,
    QueryError,
)

_PLACEHOLDER = re.compile(r"%([%sdf])")

Row = Dict[str, Any]


@dataclass
class QueryResult:
    """Outcome of one executed statement."""
    data: Optional[List[Row]] = None
    affected_rows: int = 0
    last_insert_id: Optional[int] = None
    duration: float = 0.0


class StorageBackend(ABC):
    """Abstract database handle.

    Subclasses implement :meth:`execute` and :meth:`list_columns`; the fetch
    helpers and placeholder substitution are shared.
    """

    def __init__(self, table_prefix: str = "", database: Optional[str] = None,
                 charset: str = "utf8mb4", logger: Optional[logging.Logger] = None):
        self.table_prefix = table_prefix or ""
        self.database = database
        self.charset = charset
        self._logger = logger or logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._last_insert_id: Optional[int] = None

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def log(self, level: int, msg: str) -> None:
        self._logger.log(level, msg)

    @property
    def last_insert_id(self) -> Optional[int]:
        """Identifier generated by the most recent INSERT."""
        return self._last_insert_id

    @abstractmethod
    def execute(self, sql: str) -> QueryResult:
        """Run a fully prepared statement."""

    @abstractmethod
    def list_columns(self, schema: Optional[str], table: str) -> List[str]:
        """Column names of ``table`` in ordinal order."""

    def query(self, sql: str) -> int:
        """Run a statement for its effect, returning the affected row count."""
        return self.execute(sql).affected_rows

    def fetch_all(self, sql: str) -> List[Row]:
        return list(self.execute(sql).data or [])

    def fetch_row(self, sql: str) -> Optional[Row]:
        rows = self.fetch_all(sql)
        return rows[0] if rows else None

    def fetch_column(self, sql: str) -> List[Any]:
        return [next(iter(row.values()), None) for row in self.fetch_all(sql)]

    def fetch_scalar(self, sql: str) -> Any:
        row = self.fetch_row(sql)
        if not row:
            return None
        return next(iter(row.values()), None)

    def escape(self, value: Any) -> str:
        """SQL literal for ``value`` (quoted and escaped)."""
        return escape_item(value, self.charset)

    def prepare(self, sql: str, args: Sequence[Any]) -> str:
        """Substitute ``%s``, ``%d`` and ``%f`` placeholders with escaped
        literals; ``%%`` yields a single percent sign.

        Raises:
            ArgumentError: If the number of placeholders and arguments differ
        """
        args = list(args)
        position = 0

        def substitute(match):
            nonlocal position
            kind = match.group(1)
            if kind == "%":
                return "%"
            if position >= len(args):
                raise ArgumentError(f"Not enough arguments for SQL placeholders: {sql}")
            value = args[position]
            position += 1
            if kind == "d":
                return str(int(value))
            if kind == "f":
                return repr(float(value))
            return self.escape(value)

        prepared = _PLACEHOLDER.sub(substitute, sql)
        if position != len(args):
            raise ArgumentError(
                f"{len(args)} arguments given but only {position} placeholders found in: {sql}"
            )
        return prepared


class MySQLBackend(StorageBackend):
    """MySQL storage backend implementation"""

    def __init__(self, connection_config: Optional[MySQLConnectionConfig] = None, **kwargs):
        """Initialize MySQL backend

        Args:
            connection_config: Connection configuration; when omitted one is
                built from the keyword arguments.
        """
        if connection_config is None:
            connection_config = MySQLConnectionConfig(**kwargs)
        elif not isinstance(connection_config, MySQLConnectionConfig):
            raise ValueError(f"Unsupported connection_config type: {type(connection_config)}")

        self.config = connection_config
        super().__init__(
            table_prefix=connection_config.table_prefix,
            database=connection_config.database,
            charset=connection_config.charset,
        )
        self._logger.setLevel(connection_config.log_level)
        self._connection = None
        self._connection_args = self.config.to_dict()

    def connect(self) -> None:
        """Establish connection to MySQL database"""
        try:
            self._connection = mysql.connector.connect(**self._connection_args)

            if self.config.timezone:
                cursor = self._connection.cursor()
                try:
                    cursor.execute(f"SET time_zone = '{self.config.timezone}'")
                except MySQLError as e:
                    self.logger.warning(f"Could not set MySQL timezone to {self.config.timezone}: {e}")
                finally:
                    cursor.close()

            self.log(logging.INFO, f"Connected to MySQL server at {self.config.host}:{self.config.port}")
        except MySQLError as e:
            raise ConnectionError(f"Failed to connect to MySQL: {e}")

    def disconnect(self) -> None:
        """Close connection to MySQL database"""
        if self._connection:
            self._connection.close()
            self._connection = None
        self.log(logging.INFO, "Disconnected from MySQL")

    def ping(self, reconnect: bool = True) -> bool:
        """Check if connection is valid"""
        try:
            if not self._connection:
                if reconnect:
                    self.connect()
                    return True
                return False

            self._connection.ping(reconnect=False)
            return True
        except (MySQLError, ConnectionError):
            if not reconnect:
                return False
            self._connection = None
            try:
                self.connect()
            except ConnectionError:
                return False
            return True

    def _handle_error(self, error: Exception) -> None:
        """Handle database errors"""
        if isinstance(error, MySQLIntegrityError):
            raise IntegrityError(f"MySQL integrity error: {error}") from error
        elif isinstance(error, ProgrammingError) and getattr(error, 'errno', None) == 1054:
            raise OperationalError(f"MySQL operational error: {error}") from error
        elif isinstance(error, MySQLOperationalError) or getattr(error, 'errno', None) in (1205, 1213):
            if getattr(error, 'errno', None) in (1205, 1213):
                raise DeadlockError(f"MySQL deadlock detected: {error}") from error
            raise OperationalError(f"MySQL operational error: {error}") from error
        elif isinstance(error, MySQLDatabaseError):
            raise DatabaseError(f"MySQL database error: {error}") from error
        elif isinstance(error, MySQLError):
            raise QueryError(f"MySQL query error: {error}") from error
        raise error

    def _get_statement_type(self, sql: str) -> str:
        """Parse the SQL statement type"""
        clean_sql = re.sub(r'--.*$', '', sql, flags=re.MULTILINE).strip()
        if not clean_sql:
            return ""
        return clean_sql.split()[0].upper()

    def _handle_auto_commit(self) -> None:
        """Commit when the connection is not in autocommit mode"""
        try:
            if self._connection is not None and not self._connection.autocommit:
                self._connection.commit()
                self.log(logging.DEBUG, "Committed operation (autocommit disabled)")
        except MySQLError as e:
            self.log(logging.WARNING, f"Failed to auto-commit: {str(e)}")

    def execute(self, sql: str) -> QueryResult:
        """Execute a prepared SQL statement"""
        start_time = time.perf_counter()
        if self.config.log_queries:
            self.log(logging.INFO, f"Executing SQL: {sql}")

        if not self._connection:
            self.log(logging.DEBUG, "No active connection, establishing new connection")
            self.connect()

        cursor = self._connection.cursor(dictionary=True)
        try:
            cursor.execute(sql)
            data = cursor.fetchall() if cursor.with_rows else None

            last_insert_id = None
            if self._get_statement_type(sql) in ("INSERT", "REPLACE"):
                last_insert_id = cursor.lastrowid
                self._last_insert_id = last_insert_id

            self._handle_auto_commit()
            duration = time.perf_counter() - start_time
            affected_rows = cursor.rowcount if cursor.rowcount is not None else 0

            self.log(logging.DEBUG, f"Statement completed, affected {affected_rows} rows, duration={duration:.3f}s")
            return QueryResult(
                data=data,
                affected_rows=affected_rows,
                last_insert_id=last_insert_id,
                duration=duration,
            )
        except MySQLError as e:
            self.log(logging.ERROR, f"Error executing SQL: {sql}: {str(e)}")
            self._handle_error(e)
        finally:
            cursor.close()

    def list_columns(self, schema: Optional[str], table: str) -> List[str]:
        """Column names of ``table`` from the information schema catalog"""
        if schema:
            sql = self.prepare(
                "SELECT `COLUMN_NAME` AS `attribute` FROM `information_schema`.`columns` "
                "WHERE `table_schema` = %s AND `table_name` = %s ORDER BY `ordinal_position`",
                [schema, table],
            )
        else:
            sql = self.prepare(
                "SELECT `COLUMN_NAME` AS `attribute` FROM `information_schema`.`columns` "
                "WHERE `table_schema` = DATABASE() AND `table_name` = %s ORDER BY `ordinal_position`",
                [table],
            )
        return [row['attribute'] for row in self.fetch_all(sql)]

"""
Source Connectors - Sequential Row Access to the Source Database

Every supported driver sits behind the same small interface: execute a
statement and stream its rows one at a time as dicts, escape a literal, close.
The driver is picked from a closed table by configuration; there is no lookup
by class name.

A statement that fails is logged and reported as "no result" (None) rather
than raised, so the exporter moves on to the next table.
"""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any, Optional

import duckdb

from ..domain.enums import SourceDriver
from ..types import UnknownDriverError
from .serialize import decode_text

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class SourceConnector(ABC):
    """Capability interface shared by all source drivers."""

    driver: SourceDriver
    describe_sql: str
    describe_column: str
    list_tables_sql: str

    def __init__(self, database: str):
        self.database = database
        self._con = self._connect()
        logger.debug(f"Connected to {self.driver.value} source: {database}")

    @abstractmethod
    def _connect(self) -> Any:
        """Open the underlying DB-API connection."""

    @property
    @abstractmethod
    def error_types(self) -> tuple[type[BaseException], ...]:
        """Exceptions that mean the statement failed."""

    def execute(self, sql: str) -> Optional[Iterator[Row]]:
        """
        Run a statement and return a lazy row iterator.

        Args:
            sql: Statement to run

        Returns:
            Iterator of column -> value dicts, or None if the statement failed
        """
        cursor = self._con.cursor()
        try:
            cursor.execute(sql)
        except self.error_types as e:
            logger.warning(f"Query failed on {self.driver.value} source: {e}")
            logger.debug(f"Failed SQL: {sql}")
            cursor.close()
            return None
        return self._iter_rows(cursor)

    def _iter_rows(self, cursor: Any) -> Iterator[Row]:
        """Stream rows from an executed cursor without buffering the result."""
        try:
            if cursor.description is None:
                return
            columns = [col[0] for col in cursor.description]
            while True:
                try:
                    record = cursor.fetchone()
                except self.error_types as e:
                    logger.warning(f"Row fetch failed on {self.driver.value} source: {e}")
                    return
                if record is None:
                    return
                yield dict(zip(columns, record))
        finally:
            cursor.close()

    def escape(self, value: str) -> str:
        """Escape a string literal for inclusion in a statement."""
        return str(value).replace("'", "''")

    def columns(self, table: str) -> Optional[list[str]]:
        """
        Column names of a source table.

        Returns:
            Column names in table order, or None if the table does not exist
        """
        rows = self.execute(self.describe_sql.format(table=table.replace('"', '""')))
        if rows is None:
            return None
        names = [row[self.describe_column] for row in rows]
        return names or None

    def tables(self) -> list[str]:
        """Names of all tables in the source database."""
        rows = self.execute(self.list_tables_sql)
        if rows is None:
            return []
        return sorted(row["name"] for row in rows)

    def close(self) -> None:
        """Close the connection."""
        if self._con is not None:
            self._con.close()
            self._con = None

    def __enter__(self) -> SourceConnector:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class DuckDBConnector(SourceConnector):
    """DuckDB source (database file or in-memory)."""

    driver = SourceDriver.DUCKDB
    describe_sql = 'describe "{table}"'
    describe_column = "column_name"
    list_tables_sql = "show tables"

    def _connect(self) -> duckdb.DuckDBPyConnection:
        return duckdb.connect(database=self.database)

    @property
    def error_types(self) -> tuple[type[BaseException], ...]:
        return (duckdb.Error,)

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        return self._con


class SQLiteConnector(SourceConnector):
    """SQLite source database."""

    driver = SourceDriver.SQLITE
    describe_sql = 'pragma table_info("{table}")'
    describe_column = "name"
    list_tables_sql = "select name from sqlite_master where type = 'table'"

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(self.database)
        # Legacy forums often hold latin-1 text in utf8 columns
        con.text_factory = decode_text
        return con

    @property
    def error_types(self) -> tuple[type[BaseException], ...]:
        return (sqlite3.Error,)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._con


DRIVERS: dict[SourceDriver, type[SourceConnector]] = {
    SourceDriver.DUCKDB: DuckDBConnector,
    SourceDriver.SQLITE: SQLiteConnector,
}


def create_connector(driver: SourceDriver | str, database: str) -> SourceConnector:
    """
    Open a connector for the configured driver.

    Raises:
        UnknownDriverError: If the driver is not one of DRIVERS
    """
    try:
        driver = SourceDriver(getattr(driver, "value", driver))
    except ValueError:
        valid = ", ".join(d.value for d in DRIVERS)
        raise UnknownDriverError(f"Unknown source driver '{driver}'. Supported drivers: {valid}")

    return DRIVERS[driver](database)

"""
Session Controller - Export File Lifecycle

Owns everything that spans a whole export run:

- the output file (plain text or gzip) and its header/footer comments
- the query log appended in test, dump-sql and capture-only runs
- query helpers that apply the table prefix before hitting the source
- the table restriction list and the table-existence cache

Table and blob export build on top of this in ``export`` and ``assets``.
"""

from __future__ import annotations

import gzip
import logging
import re
import time
from collections.abc import Iterable, Iterator, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, TextIO, Union

import typer

from ..config.settings import Config, parse_restricted_tables
from ..config.structures import StructureRegistry
from ..domain.enums import Destination
from ..types import ExportIOError, SourceVerificationError, TableSummary
from ..utils import clean_filename, ensure_directory, export_filename
from .serialize import NEWLINE, format_elapsed
from .source import Row, SourceConnector

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Statements still run against the source in a capture-only database export
_READ_ONLY_SQL = re.compile(r"^\s*(select|show|describe|create)", re.IGNORECASE)


class TableCache:
    """Source table -> column names, remembered for one session."""

    def __init__(self):
        self._columns: dict[str, Optional[list[str]]] = {}

    def __contains__(self, table: str) -> bool:
        return table in self._columns

    def get(self, table: str) -> Optional[list[str]]:
        return self._columns.get(table)

    def set(self, table: str, columns: Optional[list[str]]) -> None:
        self._columns[table] = columns

    def clear(self) -> None:
        self._columns.clear()


class SessionController:
    """
    Begin/end bookkeeping and source access for one export run.

    Usage:
        session.begin_export("vBulletin")
        ...
        session.end_export()
    """

    def __init__(
        self,
        config: Config,
        connector: SourceConnector,
        registry: Optional[StructureRegistry] = None,
        console: bool = False,
    ):
        """
        Args:
            config: Loaded configuration (source, output and export sections)
            connector: Open source connector
            registry: Destination structures, defaults to the built-in set
            console: Echo progress to the terminal
        """
        self.config = config
        self.connector = connector
        self.registry = registry or StructureRegistry()
        self.console = console

        self.restricted_tables: list[str] = list(config.export.restricted_tables)
        self.cache = TableCache()
        self.queries: list[str] = []
        self.comments: list[str] = []
        self.summaries: list[TableSummary] = []

        self.path: Optional[Path] = None
        self.file: Optional[TextIO] = None
        self.begin_time: Optional[float] = None

    # ------------------------------------------------------------------
    # Output file
    # ------------------------------------------------------------------

    @property
    def destination(self) -> Destination:
        return self.config.output.destination

    def begin_export(self, source: Optional[str] = None, path: Optional[Path] = None) -> Path:
        """
        Open the export file and write the header comments.

        Args:
            source: Source platform name for the header
            path: Explicit output path, otherwise export_<timestamp>.txt[.gz]
                in the configured output directory

        Returns:
            Path of the export file

        Raises:
            ExportIOError: If the output directory or file cannot be created
        """
        self.comments = []
        self.begin_time = time.perf_counter()

        compress = self.config.output.compress
        if path is None:
            directory = Path(self.config.output.directory)
            try:
                ensure_directory(directory)
            except OSError as e:
                raise ExportIOError(str(directory), f"Could not create output directory ({e})")
            path = directory / clean_filename(export_filename(compress))

        self.path = path
        self.file = self._open(path, compress)
        logger.info(f"Writing export to {path}")

        header = "Nitro Porter Export"
        name = source or self.config.source.name
        if name:
            header += f", Source: {name}"
        self.comment(header)
        self.comment(f"Export Started: {datetime.now().strftime(TIMESTAMP_FORMAT)}")
        return path

    def _open(self, path: Path, compress: bool) -> TextIO:
        try:
            if compress:
                return gzip.open(path, "wt", encoding="utf-8", newline="")
            return open(path, "w", encoding="utf-8", newline="")
        except OSError as e:
            raise ExportIOError(str(path), f"Could not open export file ({e})")

    def write(self, text: str) -> None:
        """Write raw text to the export file."""
        if self.file is None:
            raise ExportIOError(str(self.path or "<none>"), "Export file is not open")
        try:
            self.file.write(text)
        except OSError as e:
            raise ExportIOError(str(self.path), f"Could not write export file ({e})")

    def comment(self, message: str, echo: bool = True) -> None:
        """
        Write a comment line to the export.

        Multi-line messages get the comment prefix on every line. The message
        is also logged, and kept in ``comments`` when echo is set.
        """
        prefix = self.destination.comment_prefix
        text = f"{prefix} " + message.replace(NEWLINE, f"{NEWLINE}{prefix} ") + NEWLINE

        if self.file is not None:
            self.write(text)
        logger.info(message)
        if echo:
            self.comments.append(message)

    def status(self, message: str) -> None:
        """Progress output for the terminal only."""
        if self.console:
            typer.echo(message, nl=False, err=True)

    def end_export(self) -> Optional[Path]:
        """
        Write the closing comments, the query log if requested, and close the file.

        Returns:
            Path of the finished export file
        """
        elapsed = time.perf_counter() - (self.begin_time or time.perf_counter())
        self.comment(f"Export Completed: {datetime.now().strftime(TIMESTAMP_FORMAT)}")
        self.comment(f"Elapsed Time: {format_elapsed(elapsed)}")

        options = self.config.export
        if (options.test_mode or options.dump_sql or options.capture_only) and self.queries:
            queries = "\n\n".join(self.queries)
            if self.destination is Destination.DATABASE:
                self.write(queries + NEWLINE)
            else:
                self.comment(queries)

        path = self.path
        self.close()
        logger.info(f"Export finished: {path}")
        return path

    def close(self) -> None:
        """Close the export file without writing the footer."""
        if self.file is not None:
            try:
                self.file.close()
            finally:
                self.file = None

    # ------------------------------------------------------------------
    # Source access
    # ------------------------------------------------------------------

    def prepare_sql(self, sql: str) -> str:
        """Apply the table prefix and strip the trailing semicolon."""
        prefix = self.config.source.table_prefix
        sql = sql.replace(":_", prefix)
        source_prefix = self.config.source.source_prefix
        if source_prefix:
            sql = re.sub(rf"\b{re.escape(source_prefix)}", lambda _: prefix, sql)
        return sql.rstrip().rstrip(";")

    def query(self, sql: str, log: bool = True) -> Optional[Iterator[Row]]:
        """
        Run a statement against the source, recording it in the query log.

        Structure probes pass log=False to stay out of the log. In a
        capture-only database export, statements that would change the
        source are recorded but not run.

        Returns:
            Row iterator, or None if the statement failed or was skipped
        """
        if log:
            self.queries.append(sql)

        if (
            self.destination is Destination.DATABASE
            and self.config.export.capture_only
            and not _READ_ONLY_SQL.match(sql)
        ):
            logger.debug(f"Capture only, skipped: {sql}")
            return None

        return self.connector.execute(self.prepare_sql(sql))

    def query_n(self, sql_list: Union[str, Iterable[str]]) -> None:
        """Run several statements, given as a list or a ';'-separated string."""
        if isinstance(sql_list, str):
            sql_list = sql_list.split(";")
        for sql in sql_list:
            sql = sql.strip()
            if sql:
                rows = self.query(sql)
                if rows is not None:
                    # Drain so the statement completes
                    for _ in rows:
                        pass

    def get(self, sql: str, index_column: Optional[str] = None) -> Union[list[Row], dict[Any, Row]]:
        """
        Fetch all rows of a statement.

        Args:
            sql: Statement to run
            index_column: Key the result by this column instead of returning a list
        """
        rows = self.connector.execute(self.prepare_sql(sql)) or iter(())
        if index_column:
            return {row[index_column]: row for row in rows}
        return list(rows)

    def get_value(self, sql: str, default: Any = None) -> Any:
        """First column of the first row, or default when there are no rows."""
        rows = self.connector.execute(self.prepare_sql(sql))
        if rows is None:
            return default
        first = next(rows, None)
        rows.close()
        if first is None:
            return default
        return next(iter(first.values()), default)

    # ------------------------------------------------------------------
    # Table selection and existence
    # ------------------------------------------------------------------

    def load_tables(self, restricted_tables: Optional[str]) -> None:
        """Restrict the export to a comma-separated list of tables."""
        self.restricted_tables = parse_restricted_tables(restricted_tables)

    def should_export(self, table: str) -> bool:
        return not self.restricted_tables or table.lower() in self.restricted_tables

    def _source_columns(self, table: str) -> Optional[list[str]]:
        if table not in self.cache:
            self.cache.set(table, self.connector.columns(self.prepare_sql(f":_{table}")))
        return self.cache.get(table)

    def exists(self, table: str, columns: Union[str, Iterable[str], None] = None) -> Union[bool, list[str]]:
        """
        Check a source table (prefix applied) and optionally some of its columns.

        Returns:
            True if the table and all columns exist, False if the table is
            missing, otherwise the list of missing columns
        """
        present = self._source_columns(table)
        if present is None:
            return False

        if columns is None:
            return True
        if isinstance(columns, str):
            columns = [columns]

        missing = [column for column in columns if column not in present]
        return missing or True

    def verify_source(self, required_tables: Mapping[str, Iterable[str]]) -> None:
        """
        Make sure required source tables and columns are present.

        Raises:
            SourceVerificationError: Describing the missing tables or columns
        """
        missing_tables: list[str] = []
        missing_columns: dict[str, list[str]] = {}

        for table, columns in required_tables.items():
            present = self._source_columns(table)
            if present is None:
                missing_tables.append(table)
                continue
            absent = [column for column in columns or [] if column not in present]
            if absent:
                missing_columns[table] = absent

        if missing_tables and len(missing_tables) == len(required_tables):
            raise SourceVerificationError(
                "The required tables are not present in the database. "
                "Make sure you entered the correct database name and prefix and try again.",
                missing_tables=missing_tables,
            )
        if missing_tables:
            raise SourceVerificationError(
                f"Missing required database tables: {', '.join(missing_tables)}",
                missing_tables=missing_tables,
                missing_columns=missing_columns,
            )
        if missing_columns:
            raise SourceVerificationError(
                "\n".join(
                    f"The {table} table is missing the following column(s): {', '.join(columns)}"
                    for table, columns in missing_columns.items()
                ),
                missing_columns=missing_columns,
            )
        logger.debug(f"Source verified: {', '.join(required_tables) or 'no required tables'}")

    @staticmethod
    def file_extension_sql(column: str) -> str:
        """SQL expression for the file extension of a path column."""
        return f"right({column}, instr(reverse({column}), '.') - 1)"

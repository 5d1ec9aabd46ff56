"""
Table Export Driver

ExportSession adds the per-table work to the session controller: query
preparation, structure resolution on the first row, header/rows/footer, and
the optional create table statements. ``run`` drives a whole ExportPlan.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from ..domain.models import ExportPlan
from ..types import TableSummary
from .assets import BlobExtractor
from .serialize import NEWLINE, format_elapsed, format_header, serialize_row
from .session import SessionController
from .structure import flip_mappings, resolve_structure

logger = logging.getLogger(__name__)

# Chunked queries are exported in one pass over the full id range
CHUNK_FROM = -2000000000
CHUNK_TO = 2000000000

_SELECT = re.compile(r"select", re.IGNORECASE)
_LIMIT = re.compile(r"limit", re.IGNORECASE)


class ExportSession(SessionController):
    """
    Export session with table and blob export.

    Example:
        with create_connector(config.source.driver, config.source.database) as connector:
            session = ExportSession(config, connector)
            session.begin_export("vBulletin")
            session.export_table("User", "select * from :_user", {"userid": "UserID"})
            session.end_export()
    """

    def expand_chunks(self, query: str) -> str:
        """Replace the {from}/{to} chunk placeholders with the full id range."""
        return query.replace("{from}", str(CHUNK_FROM)).replace("{to}", str(CHUNK_TO))

    def prepare_export_query(self, query: str) -> str:
        """Expand chunk placeholders and apply the test mode limit."""
        query = self.expand_chunks(query).rstrip().rstrip(";")
        options = self.config.export
        if options.test_mode and options.test_limit:
            if _SELECT.search(query) and not _LIMIT.search(query):
                query += f" limit {options.test_limit}"
        return query

    def _valid_structure(self, table: str) -> Optional[dict[str, str]]:
        schema_entry = self.registry.get(table)
        if schema_entry is None:
            self.comment(
                f"Error: {table} is not a valid export. "
                f"The valid tables for export are {', '.join(self.registry.tables())}"
            )
            self.write(NEWLINE)
        return schema_entry

    def export_table(self, table: str, query: str, mappings: Optional[Mapping[str, Any]] = None) -> Optional[int]:
        """
        Export one table.

        Args:
            table: Destination table name from the structure registry
            query: Source query; ':_' is replaced by the table prefix
            mappings: Source column -> mapping shorthand or MappingRule

        Returns:
            Number of rows written, or None if the table was skipped or is unknown

        Raises:
            MappingConfigurationError: If a mapping cannot be resolved
            ExportIOError: If the export file cannot be written
        """
        if not self.should_export(table):
            self.comment(f"Skipping table: {table}")
            self.summaries.append(TableSummary(table=table, skipped=True))
            return None

        start = time.perf_counter()
        rows = self._write_table(table, query, mappings or {})
        if rows is None:
            self.summaries.append(TableSummary(table=table, error="not a valid export"))
            return None

        elapsed = time.perf_counter() - start
        self.comment(f"Exported Table: {table} ({rows} rows, {format_elapsed(elapsed)})")
        self.write(NEWLINE)
        self.summaries.append(TableSummary(table=table, rows=rows, elapsed_s=elapsed))
        return rows

    def _write_table(self, table: str, query: str, mappings: Mapping[str, Any]) -> Optional[int]:
        schema_entry = self._valid_structure(table)
        if schema_entry is None:
            return None

        data = self.query(self.prepare_export_query(query))
        if data is None:
            logger.warning(f"No data for {table}: query failed")

        structure = rev_mappings = None
        count = 0
        chunk_size = self.config.export.chunk_size

        for row in data or ():
            if structure is None:
                structure, rules = resolve_structure(row, schema_entry, mappings, table)
                rev_mappings = flip_mappings(rules)
                self.write(f"Table: {table}{NEWLINE}{format_header(structure)}{NEWLINE}")

            self.write(serialize_row(row, structure, rev_mappings))
            count += 1
            if count % chunk_size == 0:
                logger.debug(f"{table}: {count} rows written")

        self.write(NEWLINE)
        return count

    def create_export_table(
        self, table: str, query: str, mappings: Optional[Mapping[str, Any]] = None
    ) -> Optional[str]:
        """
        Write drop/create table statements for a table's export structure.

        The structure comes from the first row of the query, resolved exactly
        like a data export. Nothing is written when create table scripting is
        off, the table is unknown, or the query returns no row.

        Returns:
            The create table statement, or None
        """
        if not self.config.export.script_create_table:
            return None

        schema_entry = self.registry.get(table)
        if schema_entry is None:
            logger.warning(f"Cannot script create table for unknown table {table}")
            return None

        data = self.query(self.expand_chunks(query).rstrip().rstrip(";") + " limit 1", log=False)
        row = next(data, None) if data is not None else None
        if data is not None:
            data.close()
        if row is None:
            logger.info(f"No rows for {table}, create table skipped")
            return None

        structure, _ = resolve_structure(row, schema_entry, mappings or {}, table)

        output = self.config.output
        name = f"{output.dest_db + '.' if output.dest_db else ''}{output.dest_prefix}{table}"
        column_defs = ",\n  ".join(f"`{column}` {col_type}" for column, col_type in structure.items())

        drop_sql = f"drop table if exists {name}"
        create_sql = f"create table {name} (\n  {column_defs}\n) engine=innodb"
        self.queries.extend([drop_sql, create_sql])
        self.write(f"{drop_sql};{NEWLINE}{create_sql};{NEWLINE}{NEWLINE}")
        return create_sql

    def export_blobs(self, sql: str, blob_column: str, path_column: str, thumbnail=None) -> int:
        """Write blob columns to files, see BlobExtractor.export_blobs."""
        extractor = BlobExtractor(self, base_dir=Path(self.config.output.directory))
        return extractor.export_blobs(sql, blob_column, path_column, thumbnail)

    def run(self, plan: ExportPlan, path: Optional[Path] = None) -> Optional[Path]:
        """
        Export everything an ExportPlan describes into one export file.

        Setup statements run first, then source verification, the tables in
        plan order (with create table statements where requested), then the
        blob jobs.

        Returns:
            Path of the export file
        """
        if plan.setup_sql:
            self.query_n(plan.setup_sql)
        if plan.required_tables:
            self.verify_source(plan.required_tables)

        self.begin_export(plan.source, path=path)
        try:
            for table_plan in plan.tables:
                if table_plan.create_table and self.should_export(table_plan.table):
                    self.create_export_table(table_plan.table, table_plan.query, table_plan.mappings)
                self.export_table(table_plan.table, table_plan.query, table_plan.mappings)

            for blob_plan in plan.blobs:
                self.export_blobs(blob_plan.query, blob_plan.blob_column, blob_plan.path_column, blob_plan.thumbnail)
        except BaseException:
            self.close()
            raise

        return self.end_export()

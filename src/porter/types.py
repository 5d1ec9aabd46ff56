"""
Type definitions for the Nitro Porter export core.

This module provides small immutable result objects shared between the
session, the table exporter and the CLI, plus the exception hierarchy used
across the package.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class FilterResult:
    """Value returned by a mapping filter that also replaces the working row.

    A filter may return a plain value, or a FilterResult when later columns of
    the same record must see a modified row.
    """
    value: Any
    row: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class TableSummary:
    """Outcome of exporting one table.

    Provides the row count and timing reported in the export comments, and
    whether the table was skipped by the restriction list or rejected as unknown.
    """
    table: str
    rows: int = 0
    elapsed_s: float = 0.0
    skipped: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class BlobSummary:
    """Outcome of one blob extraction job."""
    count: int = 0
    thumbnails: int = 0
    failed_thumbnails: int = 0
    elapsed_s: float = 0.0


# Export-specific exception hierarchy
class PorterError(Exception):
    """Base exception for export operations."""
    pass


class MappingConfigurationError(PorterError):
    """A mapping rule cannot be resolved against the destination schema."""
    def __init__(self, table: str, column: str, message: str):
        self.table = table
        self.column = column
        super().__init__(f"Mapping error for {table}.{column}: {message}")


class ExportIOError(PorterError):
    """Output file, asset directory or blob file could not be written.

    Always fatal for the whole run.
    """
    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{message}: {path}")


class SourceVerificationError(PorterError):
    """Required source tables or columns are missing."""
    def __init__(self, message: str, missing_tables: Optional[list[str]] = None,
                 missing_columns: Optional[dict[str, list[str]]] = None):
        self.missing_tables = missing_tables or []
        self.missing_columns = missing_columns or {}
        super().__init__(message)


class UnknownDriverError(PorterError):
    """Requested source driver is not one of the supported drivers."""
    pass

"""
Export Enumerations

Core enums for type safety and clear interface definitions across the exporter.
"""

from enum import Enum


class SourceDriver(str, Enum):
    """Database drivers available for reading the source platform."""
    DUCKDB = "duckdb"   # DuckDB database file or in-memory database
    SQLITE = "sqlite"   # SQLite database file


class Destination(str, Enum):
    """Where the export is being sent."""
    FILE = "file"           # Porter text file, optionally gzip compressed
    DATABASE = "database"   # Live destination database (comments use SQL syntax)

    @property
    def comment_prefix(self) -> str:
        return "//" if self is Destination.FILE else "--"

"""
Nitro Porter Pipeline Components

This module provides the export pipeline, following the Source -> Structure -> Serialize -> File pattern.

Components:
- source: SourceConnector drivers (DuckDB, SQLite) streaming rows as dicts
- structure: Export structure resolution from the first row and the column mappings
- serialize: Porter text format records, escaping and headers
- session: SessionController for the export file, comments and query log
- export: ExportSession for table export and create table statements
- assets: BlobExtractor writing blob columns to files with thumbnails
"""

from .assets import BlobExtractor
from .export import ExportSession
from .session import SessionController
from .source import SourceConnector, create_connector

__all__ = ["SourceConnector", "create_connector", "SessionController", "ExportSession", "BlobExtractor"]

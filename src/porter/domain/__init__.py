"""
Domain Models and Types

This module contains the core domain models and enumerations used throughout the exporter.

Models:
- MappingRule: Normalized source -> destination column mapping
- TablePlan: One table export (query + mappings)
- BlobPlan: One blob extraction job
- ExportPlan: A complete export description loaded from YAML

Enums:
- SourceDriver: Supported source database drivers (duckdb, sqlite)
- Destination: Export destination (file, database)
"""

from .enums import Destination, SourceDriver
from .models import BlobPlan, ExportPlan, ExportStructure, MappingRule, TablePlan

__all__ = [
    "MappingRule", "TablePlan", "BlobPlan", "ExportPlan", "ExportStructure",
    "SourceDriver", "Destination"
]

"""
Configuration module for the Nitro Porter exporter.
"""

from .settings import (
    Config,
    ConfigurationError,
    ExportOptions,
    OutputConfig,
    SourceConfig,
    parse_restricted_tables,
)
from .structures import DEFAULT_STRING_TYPE, StructureRegistry

__all__ = [
    'Config',
    'ConfigurationError',
    'SourceConfig',
    'OutputConfig',
    'ExportOptions',
    'StructureRegistry',
    'DEFAULT_STRING_TYPE',
    'parse_restricted_tables',
]

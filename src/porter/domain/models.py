"""
Export Domain Models

Pydantic models for type safety and validation across the exporter.
These models describe what a caller asks for: which tables to export, with
which queries and column mappings, and which blob columns to write to disk.
"""

from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, Field

# Ordered destination column -> declared type
ExportStructure = dict[str, str]


class MappingRule(BaseModel):
    """Normalized column mapping: source column -> destination column."""
    source: str = Field(..., description="Column name in the source row")
    column: Optional[str] = Field(None, description="Destination column name")
    type: Optional[str] = Field(None, description="Explicit destination type")
    filter: Optional[Callable[..., Any]] = Field(
        None, description="Callable (value, dest_column, row) -> value or FilterResult"
    )

    class Config:
        """Pydantic configuration."""
        frozen = True
        arbitrary_types_allowed = True

    @property
    def is_passthrough(self) -> bool:
        return self.column == self.source and self.type is None and self.filter is None


class TablePlan(BaseModel):
    """One destination table to export."""
    table: str = Field(..., description="Destination table name (must exist in the structure registry)")
    query: str = Field(..., description="SQL run against the source; ':_' is replaced by the table prefix")
    mappings: dict[str, Any] = Field(default_factory=dict, description="Source column -> mapping shorthand or rule")
    create_table: bool = Field(default=False, description="Emit a create table statement before the data")
    permission_columns: bool = Field(default=False, description="Type dotted permission mappings as tinyint(1) flags")

    class Config:
        """Pydantic configuration."""
        arbitrary_types_allowed = True


class BlobPlan(BaseModel):
    """Blob column extraction job."""
    query: str = Field(..., description="SQL returning the blob and path columns")
    blob_column: str = Field(..., description="Column holding the file contents")
    path_column: str = Field(..., description="Column holding the destination path")
    thumbnail: Optional[Union[bool, int]] = Field(None, description="Thumbnail size, True for the 50px default")


class ExportPlan(BaseModel):
    """A complete export: source description, tables and blob jobs."""
    source: Optional[str] = Field(None, description="Source platform name written to the export header")
    tables: list[TablePlan] = Field(default_factory=list)
    blobs: list[BlobPlan] = Field(default_factory=list)
    required_tables: dict[str, list[str]] = Field(
        default_factory=dict, description="Source tables (and columns) that must exist before exporting"
    )
    setup_sql: list[str] = Field(default_factory=list, description="Statements run against the source before export")

    class Config:
        """Pydantic configuration."""
        arbitrary_types_allowed = True

    def table_names(self) -> list[str]:
        return [plan.table for plan in self.tables]

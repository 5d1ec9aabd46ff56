"""
Structure Resolver - Export Schema Derivation

Reconciles three inputs into the column layout written for one table:

- the destination structure from the registry (known columns and their types)
- the caller's column mappings (renames, type overrides, computed columns, filters)
- the shape of the first source row

The result is an ordered destination column -> type map. Source row columns
come first in row order, followed by columns that only exist through a
mapping. The caller's mapping set is never modified; the normalized rules,
including passthrough rules discovered on the way, are returned alongside.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Optional

from ..config.structures import DEFAULT_STRING_TYPE
from ..domain.models import ExportStructure, MappingRule
from ..types import MappingConfigurationError

logger = logging.getLogger(__name__)

PERMISSION_COLUMN_TYPE = "tinyint(1)"


def normalize_mapping(
    source: str,
    mapping: Any,
    schema_entry: Mapping[str, str],
    table_name: str = "_",
) -> MappingRule:
    """
    Normalize one mapping shorthand into a MappingRule.

    Accepted forms:
        "DestColumn"                  -> rename to a known destination column
        "varchar(20)"                 -> new column named after the source, with that type
        {"column": .., "type": .., "filter": ..}  (keys are case-insensitive)
        MappingRule

    A dict without a column is kept with column=None; whether that is fatal
    depends on whether the source column shows up in the row.
    """
    if isinstance(mapping, MappingRule):
        return mapping

    if isinstance(mapping, str):
        if mapping in schema_entry:
            return MappingRule(source=source, column=mapping)
        return MappingRule(source=source, column=source, type=mapping)

    if isinstance(mapping, Mapping):
        options = {str(key).lower(): value for key, value in mapping.items()}
        filter_fn = options.get("filter")
        if filter_fn is not None and not callable(filter_fn):
            raise MappingConfigurationError(table_name, source, "filter must be callable")
        return MappingRule(
            source=source,
            column=options.get("column"),
            type=options.get("type"),
            filter=filter_fn,
        )

    raise MappingConfigurationError(
        table_name, source, f"unsupported mapping of type {type(mapping).__name__}"
    )


def normalize_mappings(
    mappings: Mapping[str, Any],
    schema_entry: Mapping[str, str],
    table_name: str = "_",
) -> dict[str, MappingRule]:
    """Normalize every mapping of a table, keeping the caller's order."""
    return {
        source: normalize_mapping(source, mapping, schema_entry, table_name)
        for source, mapping in mappings.items()
    }


def _is_referenced(column: str, rules: Mapping[str, MappingRule]) -> bool:
    """True when any rule uses the column as its source or its destination."""
    return column in rules or any(rule.column == column for rule in rules.values())


def resolve_structure(
    sample_row: Mapping[str, Any],
    schema_entry: Mapping[str, str],
    mappings: Optional[Mapping[str, Any]] = None,
    table_name: str = "_",
) -> tuple[ExportStructure, dict[str, MappingRule]]:
    """
    Compute the export structure of a table from its first row.

    Args:
        sample_row: First row returned by the table's query
        schema_entry: Destination column -> declared type from the registry
        mappings: Source column -> mapping shorthand or MappingRule
        table_name: Table name for diagnostics

    Returns:
        Tuple of (export structure, normalized mapping rules)

    Raises:
        MappingConfigurationError: If a mapping for a column present in the
            row has no destination column
    """
    rules = normalize_mappings(mappings or {}, schema_entry, table_name)
    structure: ExportStructure = {}

    # Row-driven columns, in source order
    for column in sample_row:
        dest_column: Optional[str] = None
        dest_type: Optional[str] = None

        if column in rules:
            rule = rules[column]
            if not rule.column:
                raise MappingConfigurationError(
                    table_name, column, "mapping does not have a destination column defined"
                )
            dest_column = rule.column
            dest_type = rule.type or schema_entry.get(dest_column) or DEFAULT_STRING_TYPE

        elif column in schema_entry:
            dest_column = column
            dest_type = schema_entry[column]

            if not _is_referenced(column, rules):
                rules[column] = MappingRule(source=column, column=column)

        if dest_column and dest_column not in structure:
            structure[dest_column] = dest_type
        elif dest_column:
            logger.debug(f"{table_name}: {column} maps to already resolved column {dest_column}, ignored")

    # Mapping-only columns (computed by filters or synthesized)
    for source, rule in rules.items():
        if not rule.column:
            logger.warning(f"No column for {table_name}(source).{source}, mapping skipped")
            continue

        if source not in sample_row and rule.type is None:
            logger.warning(f"No column for {table_name}(source).{source}")

        if rule.column in structure:
            continue

        if rule.column in schema_entry:
            structure[rule.column] = schema_entry[rule.column]
        elif rule.type:
            structure[rule.column] = rule.type
        else:
            logger.warning(f"No column for {table_name}.{rule.column}, mapping skipped")

    return structure, rules


def flip_mappings(rules: Mapping[str, MappingRule]) -> dict[str, MappingRule]:
    """
    Index rules by destination column for the serializer.

    When several rules share a destination the last one supplies the value;
    the structure slot itself still belongs to the first.
    """
    reverse: dict[str, MappingRule] = {}
    for rule in rules.values():
        if rule.column:
            reverse[rule.column] = rule
    return reverse


def fix_permission_columns(mappings: Mapping[str, Any]) -> dict[str, Any]:
    """
    Type dotted permission columns as flags.

    Bare string mappings such as "Garden.SignIn.Allow" become typed rules
    with a tinyint(1) column; every other mapping is returned unchanged.
    """
    result: dict[str, Any] = {}
    for source, mapping in mappings.items():
        if isinstance(mapping, str) and "." in mapping:
            mapping = {"column": mapping, "type": PERMISSION_COLUMN_TYPE}
        result[source] = mapping
    return result

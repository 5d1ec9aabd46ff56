"""
Export plan loading for the porter CLI.

An export plan is a YAML file describing one platform export:

    source: vBulletin
    required_tables:
      user: [userid, username, email]
    tables:
      - table: User
        query: select * from :_user
        create_table: true
        mappings:
          userid: UserID
          username: Name
          email: {column: Email, filter: lowercase}
    blobs:
      - query: select filedata, concat('avatars/', userid, '.jpg') as path from :_customavatar
        blob_column: filedata
        path_column: path
        thumbnail: true

Filters are given by name (see porter.pipeline.filters) and resolved here.
"""

from pathlib import Path
from typing import Any, Union

from .domain.models import ExportPlan, MappingRule
from .pipeline.filters import get_filter
from .pipeline.structure import fix_permission_columns
from .utils import load_yaml_file


def _resolve_filters(table: str, mappings: dict[str, Any]) -> dict[str, Any]:
    """Replace filter names in dict mappings by the filter callables."""
    resolved: dict[str, Any] = {}
    for source, mapping in mappings.items():
        if isinstance(mapping, dict):
            mapping = dict(mapping)
            for key in ("filter", "Filter"):
                if isinstance(mapping.get(key), str):
                    try:
                        mapping[key] = get_filter(mapping[key])
                    except ValueError as e:
                        raise ValueError(f"{table}.{source}: {e}") from e
        resolved[str(source)] = mapping
    return resolved


def build_plan(data: Any) -> ExportPlan:
    """
    Validate raw plan data into an ExportPlan.

    Raises:
        ValueError: If the plan is malformed or names an unknown filter
    """
    if not isinstance(data, dict):
        raise ValueError("Export plan must be a mapping with a 'tables' list")

    data = dict(data)
    tables = []
    for entry in data.get("tables") or []:
        if not isinstance(entry, dict):
            raise ValueError(f"Invalid table entry in export plan: {entry!r}")
        entry = dict(entry)
        table = entry.get("table", "?")
        mappings = entry.get("mappings") or {}
        if not isinstance(mappings, dict):
            raise ValueError(f"{table}: mappings must be a mapping of source column -> destination")
        if entry.get("permission_columns"):
            mappings = fix_permission_columns(mappings)
        entry["mappings"] = _resolve_filters(table, mappings)
        tables.append(entry)
    data["tables"] = tables

    return ExportPlan(**data)


def load_plan(plan_path: Union[str, Path]) -> ExportPlan:
    """
    Load an export plan from YAML.

    Args:
        plan_path: Path to the plan file

    Returns:
        Validated ExportPlan

    Raises:
        FileNotFoundError: If the plan file doesn't exist
        ValueError: If the plan is not valid YAML or fails validation
    """
    return build_plan(load_yaml_file(Path(plan_path)))


def describe_mapping(source: str, mapping: Any) -> str:
    """One-line description of a mapping for show-plan output."""
    if isinstance(mapping, MappingRule):
        mapping = {"column": mapping.column, "type": mapping.type, "filter": mapping.filter}
    if isinstance(mapping, dict):
        options = {str(key).lower(): value for key, value in mapping.items()}
        text = f"{source} -> {options.get('column') or '?'}"
        if options.get("type"):
            text += f" ({options['type']})"
        if options.get("filter") is not None:
            text += f" [{getattr(options['filter'], '__name__', 'filter')}]"
        return text
    return f"{source} -> {mapping}"

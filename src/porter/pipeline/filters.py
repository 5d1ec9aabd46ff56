"""
Named column filters for export plans.

A filter is called as ``filter(value, dest_column, row)`` and returns the
value to write. Plans loaded from YAML refer to these by name; Python callers
can pass any callable with the same signature.
"""

import html
from datetime import datetime, timezone
from typing import Any, Callable, Optional

Filter = Callable[[Any, str, dict[str, Any]], Any]

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
_TRUE_WORDS = {"1", "y", "yes", "true", "on"}


def lowercase(value: Any, column: str, row: dict[str, Any]) -> Any:
    return value.lower() if isinstance(value, str) else value


def uppercase(value: Any, column: str, row: dict[str, Any]) -> Any:
    return value.upper() if isinstance(value, str) else value


def strip(value: Any, column: str, row: dict[str, Any]) -> Any:
    return value.strip() if isinstance(value, str) else value


def html_decode(value: Any, column: str, row: dict[str, Any]) -> Any:
    """Decode HTML entities (&amp; -> &) left by forum software."""
    return html.unescape(value) if isinstance(value, str) else value


def timestamp_to_date(value: Any, column: str, row: dict[str, Any]) -> Optional[str]:
    """Unix timestamp -> UTC datetime text; empty or zero timestamps become NULL."""
    if value in (None, "", 0, "0"):
        return None
    try:
        stamp = int(value)
    except (TypeError, ValueError):
        return None
    return datetime.fromtimestamp(stamp, tz=timezone.utc).strftime(DATETIME_FORMAT)


def yes_no(value: Any, column: str, row: dict[str, Any]) -> Optional[bool]:
    """Flag columns stored as yes/no, y/n or 1/0 text."""
    if value is None:
        return None
    return str(value).strip().lower() in _TRUE_WORDS


def not_filter(value: Any, column: str, row: dict[str, Any]) -> Optional[bool]:
    """Invert a flag column."""
    if value is None:
        return None
    return not yes_no(value, column, row)


def empty_to_null(value: Any, column: str, row: dict[str, Any]) -> Any:
    return None if value == "" else value


FILTERS: dict[str, Filter] = {
    "lowercase": lowercase,
    "uppercase": uppercase,
    "strip": strip,
    "html_decode": html_decode,
    "timestamp_to_date": timestamp_to_date,
    "yes_no": yes_no,
    "not": not_filter,
    "empty_to_null": empty_to_null,
}


def get_filter(name: str) -> Filter:
    """
    Look up a named filter.

    Raises:
        ValueError: If no filter has that name
    """
    try:
        return FILTERS[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown filter '{name}'. Available: {', '.join(sorted(FILTERS))}")

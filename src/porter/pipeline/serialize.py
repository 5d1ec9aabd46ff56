"""
Row Serializer - Porter Text Format

Turns one source row into one escaped, typed text record laid out by the
table's export structure. The format is a quoted, backslash-escaped CSV
variant:

- fields are separated by ``,`` and records end with ``\\n``
- NULL is the bare sentinel ``\\N``
- integers are written as-is, booleans as 1/0
- everything else textual is quoted with ``"`` after escaping ``\\``, ``,``,
  ``\\n`` and ``"`` (in that order) with a ``\\`` prefix
"""

from __future__ import annotations

import datetime as dt
import logging
from decimal import Decimal
from typing import Any, Optional

from ..domain.models import ExportStructure, MappingRule
from ..types import FilterResult

logger = logging.getLogger(__name__)

# Format constants
COMMENT = "//"
DELIM = ","
ESCAPE = "\\"
NEWLINE = "\n"
NULL = "\\N"
QUOTE = '"'

# Escape character must go first so later substitutions are not double-escaped
ESCAPE_SEARCH = (ESCAPE, DELIM, NEWLINE, QUOTE)

TEXT_ENCODING = "utf-8"
FALLBACK_ENCODING = "latin-1"


def decode_text(raw: bytes) -> str:
    """
    Decode bytes as UTF-8, re-encoding from Latin-1 when they are not valid UTF-8.

    Latin-1 maps every byte, so this never fails.
    """
    try:
        return raw.decode(TEXT_ENCODING)
    except UnicodeDecodeError:
        return raw.decode(FALLBACK_ENCODING)


def escape_value(value: str) -> str:
    """Escape the format's special characters with a backslash prefix."""
    for char in ESCAPE_SEARCH:
        value = value.replace(char, ESCAPE + char)
    return value


def unescape_value(value: str) -> str:
    """Reverse escape_value.

    A left-to-right scan that drops each escape prefix is the same as undoing
    the four substitutions in reverse order.
    """
    result = []
    chars = iter(value)
    for char in chars:
        if char == ESCAPE:
            result.append(next(chars, ""))
        else:
            result.append(char)
    return "".join(result)


def normalize_newlines(value: str) -> str:
    return value.replace("\r\n", NEWLINE).replace("\r", NEWLINE)


def _as_text(value: Any) -> Optional[str]:
    """Text form of a string-like value, or None if the type is not textual."""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return decode_text(bytes(value))
    if isinstance(value, (float, Decimal)):
        return str(value)
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat(sep=" ") if isinstance(value, dt.datetime) else value.isoformat()
    return None


def format_value(value: Any) -> str:
    """
    Format a single field value.

    Args:
        value: Value after mapping filters ran

    Returns:
        Field text ready to be joined into a record
    """
    if value is None:
        return NULL
    # bool is an int subclass, so check it first
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)

    text = _as_text(value)
    if text is None:
        logger.debug(f"Unsupported value type {type(value).__name__}, writing NULL")
        return NULL

    return QUOTE + escape_value(normalize_newlines(text)) + QUOTE


def _resolve_value(row: dict[str, Any], field: str, rule: Optional[MappingRule]) -> Any:
    """Mapped source column first (when set), then an exact name match, else None."""
    if rule is not None and row.get(rule.source) is not None:
        return row[rule.source]
    return row.get(field)


def serialize_row(
    row: dict[str, Any],
    structure: ExportStructure,
    rev_mappings: dict[str, MappingRule],
) -> str:
    """
    Serialize one row into a porter record.

    Filters see a working copy of the row. A filter may change that copy in
    place or return FilterResult(value, row) to replace it; either way later
    columns of the record read the updated row.

    Args:
        row: Source row (column -> value)
        structure: Resolved export structure for the table
        rev_mappings: Destination column -> mapping rule (see flip_mappings)

    Returns:
        Record text including the trailing newline
    """
    working = dict(row)
    fields = []

    for field in structure:
        rule = rev_mappings.get(field)
        value = _resolve_value(working, field, rule)

        if rule is not None and rule.filter is not None:
            result = rule.filter(value, field, working)
            if isinstance(result, FilterResult):
                value = result.value
                if result.row is not None:
                    working = dict(result.row)
            else:
                value = result

        fields.append(format_value(value))

    return DELIM.join(fields) + NEWLINE


def split_record(record: str) -> list[Optional[str]]:
    """
    Split a porter record back into field values.

    Quoted fields are unescaped, the NULL sentinel becomes None and bare
    numbers are returned as their text.
    """
    if record.endswith(NEWLINE):
        record = record[:-1]

    fields: list[Optional[str]] = []
    current: list[str] = []
    quoted = False
    in_quotes = False
    i = 0
    while i < len(record):
        char = record[i]
        if char == ESCAPE and i + 1 < len(record):
            current.append(record[i:i + 2])
            i += 2
            continue
        if char == QUOTE:
            in_quotes = not in_quotes
            quoted = True
        elif char == DELIM and not in_quotes:
            fields.append(_finish_field("".join(current), quoted))
            current, quoted = [], False
        else:
            current.append(char)
        i += 1
    fields.append(_finish_field("".join(current), quoted))
    return fields


def _finish_field(raw: str, quoted: bool) -> Optional[str]:
    if quoted:
        return unescape_value(raw)
    if raw == NULL:
        return None
    return raw


def format_header(structure: ExportStructure) -> str:
    """Header line: col:type pairs joined by the delimiter, no trailing newline."""
    return DELIM.join(f"{column}:{col_type}" if col_type else column for column, col_type in structure.items())


def format_elapsed(start: float, end: Optional[float] = None) -> str:
    """
    Elapsed time as mm:ss.ss.

    Args:
        start: Start timestamp, or the elapsed seconds when end is None
        end: End timestamp
    """
    elapsed = start if end is None else end - start
    minutes = int(elapsed // 60)
    seconds = elapsed - minutes * 60
    return f"{minutes:02d}:{seconds:05.2f}"

"""Tests for the porter text format."""

import datetime as dt
import itertools
from decimal import Decimal

import pytest

from porter.domain.models import MappingRule
from porter.pipeline.filters import lowercase
from porter.pipeline.serialize import (
    decode_text,
    escape_value,
    format_elapsed,
    format_header,
    format_value,
    serialize_row,
    split_record,
    unescape_value,
)
from porter.types import FilterResult

SPECIALS = ("\\", ",", "\"", "\n")


class TestFormatValue:
    """Type-directed field formatting."""

    def test_none_is_the_null_sentinel(self):
        assert format_value(None) == "\\N"

    def test_booleans_before_integers(self):
        assert format_value(True) == "1"
        assert format_value(False) == "0"

    def test_integers_are_bare(self):
        assert format_value(42) == "42"
        assert format_value(-7) == "-7"

    def test_strings_are_quoted_and_escaped(self):
        assert format_value("plain") == '"plain"'
        assert format_value("a,b") == '"a\\,b"'
        assert format_value('say "hi"') == '"say \\"hi\\""'
        assert format_value("C:\\dir") == '"C:\\\\dir"'

    def test_carriage_returns_become_newlines(self):
        assert format_value("one\r\ntwo\rthree") == '"one\\\ntwo\\\nthree"'

    def test_empty_string_is_not_null(self):
        assert format_value("") == '""'

    @pytest.mark.parametrize("value, expected", [
        (1.5, '"1.5"'),
        (Decimal("2.50"), '"2.50"'),
        (dt.date(2020, 1, 2), '"2020-01-02"'),
        (dt.datetime(2020, 1, 2, 3, 4, 5), '"2020-01-02 03:04:05"'),
        ("héllo".encode("latin-1"), '"héllo"'),
        ("日本".encode("utf-8"), '"日本"'),
    ])
    def test_text_like_values(self, value, expected):
        assert format_value(value) == expected

    def test_unsupported_types_become_null(self):
        assert format_value(object()) == "\\N"
        assert format_value([1, 2]) == "\\N"


class TestEscaping:

    def test_escape_character_goes_first(self):
        # Backslash then comma: each gets its own prefix, nothing doubled
        assert escape_value("\\,") == "\\\\\\,"

    @pytest.mark.parametrize("specials", itertools.product(SPECIALS, repeat=4))
    def test_unescape_reverses_escape(self, specials):
        text = "x".join(specials) + " end"
        assert unescape_value(escape_value(text)) == text
        assert split_record(format_value(text) + "\n") == [text]

    def test_decode_text_falls_back_to_latin1(self):
        assert decode_text(b"caf\xe9") == "café"
        assert decode_text("café".encode("utf-8")) == "café"


class TestSerializeRow:
    """Record layout and value resolution."""

    STRUCTURE = {"UserID": "int", "Name": "varchar(50)", "Email": "varchar(200)"}

    def test_fields_follow_structure_order(self):
        row = {"Email": "e@x", "Name": "n", "UserID": 1, "junk": "x"}
        record = serialize_row(row, self.STRUCTURE, {})

        assert record == '1,"n","e@x"\n'
        assert len(split_record(record)) == len(self.STRUCTURE)

    def test_missing_columns_are_null(self):
        assert serialize_row({"UserID": 1}, self.STRUCTURE, {}) == "1,\\N,\\N\n"

    def test_mapped_source_is_preferred(self):
        rev = {"Name": MappingRule(source="username", column="Name")}
        record = serialize_row({"UserID": 1, "username": "mapped", "Name": "exact"}, self.STRUCTURE, rev)
        assert record == '1,"mapped",\\N\n'

    def test_null_mapped_source_falls_back_to_exact_name(self):
        rev = {"UserID": MappingRule(source="userid", column="UserID")}
        record = serialize_row({"userid": None, "UserID": 5}, self.STRUCTURE, rev)
        assert record.startswith("5,")

    def test_lowercase_filter(self):
        rev = {"Email": MappingRule(source="email", column="Email", filter=lowercase)}
        record = serialize_row({"UserID": 1, "email": "A@B.com"}, self.STRUCTURE, rev)
        assert record.endswith(',"a@b.com"\n')

    def test_filter_sees_destination_column_and_row(self):
        calls = []

        def spy(value, column, row):
            calls.append((value, column, dict(row)))
            return value

        rev = {"Name": MappingRule(source="username", column="Name", filter=spy)}
        serialize_row({"username": "u", "UserID": 3}, self.STRUCTURE, rev)

        assert calls == [("u", "Name", {"username": "u", "UserID": 3})]

    def test_filter_row_mutation_is_seen_by_later_columns(self):
        def stash_email(value, column, row):
            row["Email"] = f"{value}@example.com"
            return value

        rev = {"Name": MappingRule(source="Name", column="Name", filter=stash_email)}
        source_row = {"UserID": 1, "Name": "bob"}
        record = serialize_row(source_row, self.STRUCTURE, rev)

        assert record == '1,"bob","bob@example.com"\n'
        assert "Email" not in source_row

    def test_filter_result_replaces_working_row(self):
        def replace_row(value, column, row):
            return FilterResult(value=value * 10, row={**row, "Name": "replaced"})

        rev = {"UserID": MappingRule(source="UserID", column="UserID", filter=replace_row)}
        record = serialize_row({"UserID": 2, "Name": "orig"}, self.STRUCTURE, rev)

        assert record == '20,"replaced",\\N\n'


class TestSplitRecord:

    def test_split_restores_fields(self):
        structure = {"a": "int", "b": "text", "c": "text", "d": "text"}
        record = serialize_row({"a": 7, "b": 'x, "y"\nz', "c": None, "d": ""}, structure, {})

        assert split_record(record) == ["7", 'x, "y"\nz', None, ""]


def test_format_header():
    assert format_header({"UserID": "int", "Name": "varchar(50)"}) == "UserID:int,Name:varchar(50)"


def test_format_elapsed():
    assert format_elapsed(65.5) == "01:05.50"
    assert format_elapsed(10.0, 12.25) == "00:02.25"
    assert format_elapsed(0) == "00:00.00"

"""Tests for export structure resolution."""

import copy
import logging

import pytest

from porter.config.structures import StructureRegistry
from porter.domain.models import MappingRule
from porter.pipeline.filters import lowercase
from porter.pipeline.serialize import serialize_row
from porter.pipeline.structure import (
    fix_permission_columns,
    flip_mappings,
    normalize_mapping,
    resolve_structure,
)
from porter.types import MappingConfigurationError

USER = StructureRegistry().get("User")


class TestNormalizeMapping:
    """Mapping shorthand normalization."""

    def test_string_naming_schema_column_is_rename(self):
        rule = normalize_mapping("userid", "UserID", USER)
        assert rule == MappingRule(source="userid", column="UserID")

    def test_other_string_is_a_type(self):
        rule = normalize_mapping("legacy", "varchar(20)", USER)
        assert rule.column == "legacy"
        assert rule.type == "varchar(20)"

    def test_dict_keys_are_case_insensitive(self):
        rule = normalize_mapping("email", {"Column": "Email", "Filter": lowercase}, USER)
        assert rule.column == "Email"
        assert rule.filter is lowercase

    def test_rule_is_returned_unchanged(self):
        rule = MappingRule(source="a", column="b", type="int")
        assert normalize_mapping("a", rule, USER) is rule

    def test_non_callable_filter_is_rejected(self):
        with pytest.raises(MappingConfigurationError, match="User.email"):
            normalize_mapping("email", {"column": "Email", "filter": "lowercase"}, USER, "User")

    def test_unsupported_mapping_type(self):
        with pytest.raises(MappingConfigurationError):
            normalize_mapping("email", 42, USER)


class TestResolveStructure:
    """Structure resolution from the first row."""

    def test_schema_columns_pass_through(self):
        structure, rules = resolve_structure({"id": 1, "name": "a"}, {"id": "int", "name": "varchar"}, {})

        assert structure == {"id": "int", "name": "varchar"}
        assert list(structure) == ["id", "name"]
        assert all(rule.is_passthrough for rule in rules.values())

    def test_renames_take_schema_types_and_unknown_columns_drop(self):
        row = {"userid": 1, "username": "a", "junk": "x"}
        structure, _ = resolve_structure(row, USER, {"userid": "UserID", "username": "Name"}, "User")

        assert structure == {"UserID": "int", "Name": "varchar(50)"}

    def test_explicit_type_wins_over_schema(self):
        structure, _ = resolve_structure(
            {"userid": 1}, USER, {"userid": {"Column": "UserID", "Type": "bigint"}}, "User"
        )
        assert structure == {"UserID": "bigint"}

    def test_type_shorthand_adds_new_column(self):
        structure, rules = resolve_structure({"legacy": "x"}, USER, {"legacy": "varchar(20)"}, "User")

        assert structure == {"legacy": "varchar(20)"}
        assert rules["legacy"].column == "legacy"

    def test_unknown_destination_defaults_to_string_type(self):
        structure, _ = resolve_structure({"foo": 1}, USER, {"foo": {"column": "Bar"}}, "User")
        assert structure == {"Bar": "varchar(255)"}

    def test_rule_without_column_for_row_column_is_fatal(self):
        with pytest.raises(MappingConfigurationError, match="User.userid"):
            resolve_structure({"userid": 1}, USER, {"userid": {"type": "int"}}, "User")

    def test_rule_without_column_outside_row_is_skipped(self, caplog):
        with caplog.at_level(logging.WARNING):
            structure, _ = resolve_structure({"userid": 1}, USER, {"ghost": {"type": "int"}}, "User")

        assert structure == {}
        assert "ghost" in caplog.text

    def test_mapping_only_columns_follow_row_columns(self):
        mappings = {
            "Photo": {"column": "Photo"},
            "extra": {"column": "Extra", "type": "text"},
            "userid": "UserID",
        }
        structure, _ = resolve_structure({"Name": "a", "userid": 1}, USER, mappings, "User")

        assert list(structure.items()) == [
            ("Name", "varchar(50)"),
            ("UserID", "int"),
            ("Photo", "varchar(255)"),
            ("Extra", "text"),
        ]

    def test_untyped_mapping_only_column_is_skipped(self, caplog):
        with caplog.at_level(logging.WARNING):
            structure, _ = resolve_structure({"userid": 1}, USER, {"ghost": {"column": "Nowhere"}}, "User")

        assert "Nowhere" not in structure
        assert "Nowhere" in caplog.text

    def test_first_writer_wins_duplicate_destination(self):
        row = {"userid": 1, "UserID": 2}
        structure, rules = resolve_structure(row, USER, {"userid": "UserID"}, "User")

        assert structure == {"UserID": "int"}
        # UserID is already the target of a rule, so no passthrough is added
        assert list(rules) == ["userid"]
        assert flip_mappings(rules)["UserID"].source == "userid"

    def test_later_source_supplies_shared_destination(self):
        row = {"a": "first", "b": "second"}
        structure, rules = resolve_structure(row, USER, {"a": "Name", "b": "Name"}, "User")

        assert structure == {"Name": "varchar(50)"}
        assert serialize_row(row, structure, flip_mappings(rules)) == '"second"\n'

    def test_null_later_source_falls_back_to_exact_name(self):
        row = {"a": "first", "b": None, "Name": "exact"}
        structure, rules = resolve_structure(row, USER, {"a": "Name", "b": "Name"}, "User")

        assert serialize_row(row, structure, flip_mappings(rules)) == '"exact"\n'

    def test_caller_mappings_are_not_modified(self):
        mappings = {"userid": "UserID", "email": {"column": "Email", "filter": lowercase}}
        before = copy.copy(mappings)

        _, rules = resolve_structure({"userid": 1, "email": "a", "Name": "n"}, USER, mappings, "User")

        assert mappings == before
        assert "Name" in rules
        assert "Name" not in mappings

    def test_resolution_is_deterministic(self):
        row = {"userid": 1, "username": "a", "Email": "e", "junk": None}
        mappings = {"userid": "UserID", "username": "Name", "extra": {"column": "Extra", "type": "int"}}

        first = resolve_structure(row, USER, mappings, "User")
        second = resolve_structure(row, USER, mappings, "User")

        assert list(first[0].items()) == list(second[0].items())
        assert first[1] == second[1]


class TestFlipMappings:

    def test_last_rule_per_destination_wins(self):
        rules = {
            "a": MappingRule(source="a", column="X"),
            "b": MappingRule(source="b", column="X"),
            "c": MappingRule(source="c", column="Y"),
        }
        reverse = flip_mappings(rules)

        assert reverse["X"].source == "b"
        assert reverse["Y"].source == "c"

    def test_rules_without_column_are_left_out(self):
        assert flip_mappings({"a": MappingRule(source="a")}) == {}


def test_fix_permission_columns():
    mappings = {"perm_signin": "Garden.SignIn.Allow", "name": "Name", "other": {"column": "X"}}

    fixed = fix_permission_columns(mappings)

    assert fixed["perm_signin"] == {"column": "Garden.SignIn.Allow", "type": "tinyint(1)"}
    assert fixed["name"] == "Name"
    assert fixed["other"] == {"column": "X"}
    assert mappings["perm_signin"] == "Garden.SignIn.Allow"

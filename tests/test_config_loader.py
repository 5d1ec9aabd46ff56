"""Tests for export plan loading and the named filters."""

from pathlib import Path

import pytest

from porter.config_loader import build_plan, describe_mapping, load_plan
from porter.domain.models import MappingRule
from porter.pipeline import filters

PLAN = """
source: vBulletin
required_tables:
  user: [userid, username]
setup_sql:
  - create index if not exists ix_user on :_user (userid)
tables:
  - table: User
    query: select * from :_user
    create_table: true
    mappings:
      userid: UserID
      username: Name
      email: {column: Email, filter: lowercase}
  - table: Role
    query: select * from :_role
    permission_columns: true
    mappings:
      roleid: RoleID
      signin: Garden.SignIn.Allow
blobs:
  - query: select filedata, filename from :_attachment
    blob_column: filedata
    path_column: filename
    thumbnail: 64
"""


class TestLoadPlan:

    def test_plan_is_validated(self, tmp_path):
        plan_file = tmp_path / "vbulletin.yml"
        plan_file.write_text(PLAN)

        plan = load_plan(plan_file)

        assert plan.source == "vBulletin"
        assert plan.table_names() == ["User", "Role"]
        assert plan.required_tables == {"user": ["userid", "username"]}
        assert plan.tables[0].create_table is True
        assert plan.tables[0].mappings["email"]["filter"] is filters.lowercase
        assert plan.blobs[0].thumbnail == 64

    def test_permission_columns_are_typed(self, tmp_path):
        plan_file = tmp_path / "vbulletin.yml"
        plan_file.write_text(PLAN)

        role = load_plan(plan_file).tables[1]

        assert role.mappings["signin"] == {"column": "Garden.SignIn.Allow", "type": "tinyint(1)"}
        assert role.mappings["roleid"] == "RoleID"

    def test_unknown_filter(self):
        data = {"tables": [{"table": "User", "query": "select 1", "mappings": {"email": {"column": "Email", "filter": "shout"}}}]}
        with pytest.raises(ValueError, match="User.email: Unknown filter 'shout'"):
            build_plan(data)

    def test_missing_required_field(self):
        with pytest.raises(ValueError):
            build_plan({"tables": [{"table": "User"}]})

    def test_not_a_mapping(self):
        with pytest.raises(ValueError, match="must be a mapping"):
            build_plan(["User"])

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_plan(tmp_path / "missing.yml")

    def test_invalid_yaml(self, tmp_path):
        plan_file = tmp_path / "broken.yml"
        plan_file.write_text("tables: [unclosed\n")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_plan(plan_file)


def test_describe_mapping():
    assert describe_mapping("userid", "UserID") == "userid -> UserID"
    assert describe_mapping("email", {"column": "Email", "filter": filters.lowercase}) == "email -> Email [lowercase]"
    assert describe_mapping("x", MappingRule(source="x", column="X", type="int")) == "x -> X (int)"


class TestFilters:

    def test_text_filters(self):
        assert filters.lowercase("A@B.com", "Email", {}) == "a@b.com"
        assert filters.uppercase("abc", "Name", {}) == "ABC"
        assert filters.strip("  x ", "Name", {}) == "x"
        assert filters.html_decode("Tom &amp; Jerry", "Name", {}) == "Tom & Jerry"
        assert filters.lowercase(None, "Email", {}) is None

    def test_timestamp_to_date(self):
        assert filters.timestamp_to_date(86400, "DateInserted", {}) == "1970-01-02 00:00:00"
        assert filters.timestamp_to_date("0", "DateInserted", {}) is None
        assert filters.timestamp_to_date("soon", "DateInserted", {}) is None

    def test_flags(self):
        assert filters.yes_no("Y", "Verified", {}) is True
        assert filters.yes_no("no", "Verified", {}) is False
        assert filters.not_filter("1", "Banned", {}) is False
        assert filters.empty_to_null("", "Title", {}) is None

    def test_get_filter(self):
        assert filters.get_filter(" Lowercase ") is filters.lowercase
        with pytest.raises(ValueError, match="Available"):
            filters.get_filter("shout")


def test_bundled_vbulletin_plan():
    plan_file = Path(__file__).resolve().parent.parent / "plans" / "vbulletin.yml"

    plan = load_plan(plan_file)

    assert plan.source == "vBulletin"
    assert "User" in plan.table_names()
    assert plan.blobs[0].thumbnail is True
    discussion = plan.tables[plan.table_names().index("Discussion")]
    assert discussion.mappings["open"]["filter"] is filters.not_filter

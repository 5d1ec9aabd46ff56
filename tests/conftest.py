"""Pytest configuration and shared fixtures."""

import os
import sqlite3
from pathlib import Path

import pytest

from porter.config.settings import Config
from porter.pipeline.export import ExportSession
from porter.pipeline.source import SQLiteConnector


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep PORTER_* variables from the developer's shell out of the tests."""
    for key in list(os.environ):
        if key.startswith("PORTER_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("ENVIRONMENT", "test")


@pytest.fixture
def sqlite_db(tmp_path: Path) -> Path:
    """A small vBulletin-like forum database with the 'forum_' table prefix."""
    db_file = tmp_path / "forum.sqlite"
    con = sqlite3.connect(db_file)
    con.executescript(
        """
        create table forum_user (userid integer, username text, email text, junk text);
        insert into forum_user values (1, 'Alice', 'A@B.com', 'x');
        insert into forum_user values (2, 'Bob, Jr.', null, 'y');

        create table forum_thread (threadid integer, title text, body text, views integer);
        insert into forum_thread values (10, 'Hello "world"', 'Line1
Line2', 5);

        create table forum_empty (id integer);

        create table forum_blob (path text, data blob);
        """
    )
    con.commit()
    con.close()
    return db_file


@pytest.fixture
def config(tmp_path: Path, sqlite_db: Path) -> Config:
    """Configuration pointing at the forum database, plain text output in tmp_path/out."""
    cfg = Config(validate_on_init=False)
    cfg.override("source", driver="sqlite", database=str(sqlite_db), table_prefix="forum_")
    cfg.override("output", directory=str(tmp_path / "out"), use_compression=False)
    return cfg


@pytest.fixture
def connector(sqlite_db: Path):
    con = SQLiteConnector(str(sqlite_db))
    yield con
    con.close()


@pytest.fixture
def session(config: Config, connector: SQLiteConnector) -> ExportSession:
    """An export session with the export file already open."""
    export_session = ExportSession(config, connector)
    export_session.begin_export("vBulletin")
    yield export_session
    export_session.close()


@pytest.fixture
def finish():
    """End an export and return the file contents."""
    def _finish(export_session: ExportSession) -> str:
        path = export_session.end_export()
        return path.read_text(encoding="utf-8")
    return _finish

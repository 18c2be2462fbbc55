"""Tests for the threadwatch command line."""

from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import text

from threadwatch import cli, db
from threadwatch.services import logs


@pytest.fixture
def database_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.delenv("DB_ADMIN_URL", raising=False)
    monkeypatch.delenv("DB_ADMIN_USER", raising=False)
    db.get_engine.cache_clear()
    db.get_sessionmaker.cache_clear()
    yield url
    db.get_engine().dispose()
    db.get_engine.cache_clear()
    db.get_sessionmaker.cache_clear()


def test_migrate_then_version(database_url: str, capsys: pytest.CaptureFixture):
    assert cli.main(["version"]) == 0
    assert "No migrations applied" in capsys.readouterr().out

    assert cli.main(["migrate"]) == 0
    assert "Schema version: 4" in capsys.readouterr().out

    assert cli.main(["version"]) == 0
    assert capsys.readouterr().out.strip() == "4"


def test_logs_command(database_url: str, capsys: pytest.CaptureFixture):
    cli.main(["migrate"])
    with db.get_sessionmaker()() as session:
        for i in range(3):
            logs.append(session, datetime.now(timezone.utc), "INFO", "tests", f"line {i}")
    capsys.readouterr()

    assert cli.main(["logs", "--num", "2"]) == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 2
    assert lines[0].endswith("tests: line 2")
    assert lines[1].endswith("tests: line 1")


def test_schema_drift_exit_status(database_url: str):
    cli.main(["migrate"])
    with db.get_engine().begin() as connection:
        connection.execute(text("UPDATE migrations SET checksum = 'tampered' WHERE version = 1"))

    assert cli.main(["migrate"]) == cli.EXIT_SCHEMA_DRIFT


def test_invites_commands(database_url: str, capsys: pytest.CaptureFixture):
    cli.main(["migrate"])
    capsys.readouterr()

    assert cli.main(["invites", "--count", "2"]) == 0
    invite_ids = capsys.readouterr().out.split()
    assert len(invite_ids) == 2
    assert all(len(invite_id) == 256 for invite_id in invite_ids)

    assert cli.main(["cleanup-invites"]) == 0
    assert "Deleted 0 expired invites" in capsys.readouterr().out

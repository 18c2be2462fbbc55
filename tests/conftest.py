from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest
from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from threadwatch.db import create_db_engine, make_sessionmaker
from threadwatch.migrations import run_migrations
from threadwatch.services import accounts

load_dotenv()


@pytest.fixture()
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """Fresh, fully migrated SQLite database per test."""
    test_engine = create_db_engine(f"sqlite:///{tmp_path / 'threadwatch.db'}")
    run_migrations(test_engine)
    try:
        yield test_engine
    finally:
        test_engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine):
    return make_sessionmaker(engine)


@pytest.fixture()
def db(session_factory) -> Generator[Session, None, None]:
    """Create a database session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def account_id() -> str:
    return accounts.account_id_from_user_id("a" * 32)


@pytest.fixture()
def account(db: Session, account_id: str) -> int:
    """Internal id of an account valid for the next 30 days."""
    return accounts.upsert_account(db, account_id, datetime.now(timezone.utc) + timedelta(days=30))

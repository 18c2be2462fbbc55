"""Schema migrations: Alembic revisions guarded by the checksum ledger."""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext, MigrationInfo
from alembic.script import ScriptDirectory
from sqlalchemy import insert, text
from sqlalchemy.engine import Engine

from . import models, settings
from .db import create_db_engine, get_admin_url
from .services.migration_ledger import MigrationLedger
from .utils.hashing import file_checksum

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent


def alembic_config() -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(BASE_DIR / "alembic"))
    return cfg


def expected_checksums(script: ScriptDirectory) -> dict[int, str]:
    """Map every revision (by integer version) to the checksum of its script file."""
    return {int(revision.revision): file_checksum(revision.path) for revision in script.walk_revisions()}


def make_version_recorder(script: ScriptDirectory):
    """Build an Alembic on_version_apply callback that keeps the ledger in step with each revision."""

    def record_version(ctx: MigrationContext, step: MigrationInfo, heads, run_args) -> None:
        revision = script.get_revision(step.up_revision_id)
        version = int(revision.revision)

        if ctx.as_sql:
            # Offline mode: emit the ledger row into the generated script
            if step.is_upgrade:
                ctx.execute(
                    insert(models.Migration.__table__).values(
                        version=version, name=revision.doc, checksum=file_checksum(revision.path)
                    )
                )
            return

        ledger = MigrationLedger(ctx.connection)
        if step.is_upgrade:
            ledger.apply(version, revision.doc, file_checksum(revision.path))
        elif ledger.exists():
            ledger.forget(version)

    return record_version


def _acquire_migration_lock(connection) -> None:
    # Released automatically when the migration transaction ends
    if connection.dialect.name == "postgresql":
        logger.info(f"Waiting for migration lock {settings.MIGRATION_LOCK_KEY}...")
        connection.execute(
            text("SELECT pg_advisory_xact_lock(:key)"), {"key": settings.MIGRATION_LOCK_KEY}
        )


def run_migrations(engine: Engine | None = None, target: str = "head") -> int | None:
    """
    Upgrade the schema to ``target`` in a single transaction.

    Recorded migrations are checked against their revision scripts first;
    any checksum drift aborts the run before anything is applied.

    Returns:
        Latest applied version from the ledger

    Raises:
        SchemaDriftError: If a recorded checksum does not match its revision script
    """
    logger.info("run_migrations: Starting...")
    engine = engine or create_db_engine(get_admin_url())
    cfg = alembic_config()
    script = ScriptDirectory.from_config(cfg)
    expected = expected_checksums(script)

    try:
        with engine.begin() as connection:
            _acquire_migration_lock(connection)

            ledger = MigrationLedger(connection)
            applied = ledger.recorded()
            logger.info(
                f"Found {len(expected)} migrations in total, and {len(applied)} already applied migrations"
            )
            ledger.verify(expected)

            cfg.attributes["connection"] = connection
            command.upgrade(cfg, target)
            version = ledger.current_version()
    except Exception as e:
        logger.error(f"run_migrations: Error occurred: {e}", exc_info=True)
        raise

    logger.info(f"run_migrations: Completed successfully, schema version {version}")
    return version


def downgrade(engine: Engine, target: str) -> int | None:
    cfg = alembic_config()
    with engine.begin() as connection:
        _acquire_migration_lock(connection)
        cfg.attributes["connection"] = connection
        command.downgrade(cfg, target)
        return MigrationLedger(connection).current_version()


def current_schema_version(engine: Engine) -> int | None:
    with engine.connect() as connection:
        return MigrationLedger(connection).current_version()

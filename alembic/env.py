from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from alembic.script import ScriptDirectory

from threadwatch.db import Base, create_db_engine, get_admin_url
from threadwatch.migrations import expected_checksums, make_version_recorder
from threadwatch.services.migration_ledger import MigrationLedger
from threadwatch import models  # noqa: F401  (registers tables on Base.metadata)

config = context.config

# Only configure logging when alembic runs from the command line
if config.config_file_name and "connection" not in config.attributes:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata
script = ScriptDirectory.from_config(config)
record_version = make_version_recorder(script)


def get_url() -> str:
    return config.get_main_option("sqlalchemy.url") or get_admin_url()


def run_migrations_offline() -> None:
    url = get_url()

    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
        on_version_apply=record_version,
    )

    with context.begin_transaction():
        context.run_migrations()


def _run_with_connection(connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        on_version_apply=record_version,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    # threadwatch.migrations.run_migrations passes its own connection so that
    # the checksum check, the upgrade and the ledger share one transaction
    connection = config.attributes.get("connection")
    if connection is not None:
        _run_with_connection(connection)
        return

    connectable = create_db_engine(get_url())
    with connectable.begin() as connection:
        MigrationLedger(connection).verify(expected_checksums(script))
        _run_with_connection(connection)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

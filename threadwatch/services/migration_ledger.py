"""Ledger of applied schema versions and their checksums."""

from __future__ import annotations

import logging

from sqlalchemy import delete, func, inspect, insert, select
from sqlalchemy.engine import Connection

from .. import models
from ..errors import SchemaDriftError

logger = logging.getLogger(__name__)

_migrations = models.Migration.__table__


class MigrationLedger:
    """
    Reads and appends rows of the migrations table on a single connection.

    The ledger never commits: it runs inside the caller's transaction so a
    migration and its ledger row become visible together or not at all.
    """

    def __init__(self, connection: Connection):
        self.connection = connection

    def exists(self) -> bool:
        return inspect(self.connection).has_table(_migrations.name)

    def recorded(self) -> list[models.Migration]:
        if not self.exists():
            return []
        rows = self.connection.execute(select(_migrations).order_by(_migrations.c.version))
        return [
            models.Migration(
                version=row.version,
                name=row.name,
                applied_on=row.applied_on,
                checksum=row.checksum,
            )
            for row in rows
        ]

    def current_version(self) -> int | None:
        if not self.exists():
            return None
        return self.connection.execute(select(func.max(_migrations.c.version))).scalar()

    def _recorded_checksum(self, version: int) -> tuple[bool, str | None]:
        row = self.connection.execute(
            select(_migrations.c.checksum).where(_migrations.c.version == version)
        ).one_or_none()
        if row is None:
            return False, None
        return True, row[0]

    def apply(self, version: int, name: str | None, checksum: str) -> bool:
        """
        Record a migration as applied.

        Returns:
            True if the version was recorded now, False if it was already recorded with the same checksum

        Raises:
            SchemaDriftError: If the version is recorded with a different checksum
        """
        found, recorded = self._recorded_checksum(version)
        if found:
            if recorded != checksum:
                raise SchemaDriftError(version, recorded, checksum)
            logger.info(f"Skipping migration {version} because it's already applied")
            return False

        self.connection.execute(
            insert(_migrations).values(version=version, name=name, checksum=checksum)
        )
        logger.info(f"Recorded migration {version} ({name})")
        return True

    def verify(self, expected: dict[int, str]) -> None:
        """
        Compare every recorded checksum with the checksum of the current revision script.

        Raises:
            SchemaDriftError: On the first version whose checksums differ
        """
        for migration in self.recorded():
            if migration.version not in expected:
                logger.warning(
                    f"Migration {migration.version} ({migration.name}) is recorded "
                    f"but has no revision script"
                )
                continue

            calculated = expected[migration.version]
            migrations_match = migration.checksum == calculated
            logger.debug(
                f"Migration {migration.version}, checksum_from_db: {migration.checksum}, "
                f"checksum_calculated: {calculated}, migrations_match: {migrations_match}"
            )
            if not migrations_match:
                raise SchemaDriftError(migration.version, migration.checksum, calculated)

    def forget(self, version: int) -> None:
        self.connection.execute(delete(_migrations).where(_migrations.c.version == version))
        logger.info(f"Removed migration {version} from the ledger")

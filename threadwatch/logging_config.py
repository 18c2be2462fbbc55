"""Logging setup: console output plus an optional sink into the logs table."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from logging.handlers import BufferingHandler
from typing import Callable

from sqlalchemy.orm import Session

from . import settings
from .services import logs

# Records from these loggers are never persisted; writing them would log again
_IGNORED_LOGGERS = ("sqlalchemy", "alembic")


class DatabaseLogHandler(BufferingHandler):
    """Buffers log records and writes them to the logs table in batches."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        capacity: int = settings.LOG_BUFFER_SIZE,
        level: int = logging.INFO,
    ):
        super().__init__(capacity)
        self.setLevel(level)
        self.session_factory = session_factory

    def emit(self, record: logging.LogRecord) -> None:
        if record.name.startswith(_IGNORED_LOGGERS):
            return
        super().emit(record)

    def _to_entry(self, record: logging.LogRecord) -> dict:
        return {
            "log_time": datetime.fromtimestamp(record.created, tz=timezone.utc),
            "log_level": record.levelname[:8],
            "target": record.name,
            "message": self.format(record),
        }

    def flush(self) -> None:
        self.acquire()
        try:
            if not self.buffer:
                return

            records, self.buffer = self.buffer, []
            try:
                with self.session_factory() as db:
                    logs.append_many(db, [self._to_entry(record) for record in records])
            except Exception:
                self.handleError(records[-1])
        finally:
            self.release()


def setup_logging(
    level: str | None = None,
    session_factory: Callable[[], Session] | None = None,
) -> DatabaseLogHandler | None:
    """
    Configure root logging.

    Args:
        level: Log level name, defaults to LOG_LEVEL from the environment
        session_factory: When given, records are also stored in the logs table

    Returns:
        The database handler, if one was attached
    """
    level = (level or settings.log_level()).upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if session_factory is None:
        return None

    handler = DatabaseLogHandler(session_factory, level=logging.getLevelName(level))
    logging.getLogger().addHandler(handler)
    return handler

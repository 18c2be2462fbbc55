"""Append-only log sink backed by the logs table."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from sqlalchemy import insert, select
from sqlalchemy.orm import Session

from .. import models


def append(db: Session, log_time: datetime, log_level: str | None, target: str | None, message: str) -> int:
    entry = models.LogEntry(log_time=log_time, log_level=log_level, target=target, message=message)
    db.add(entry)
    db.commit()
    return entry.id


def append_many(db: Session, entries: Iterable[dict]) -> int:
    """
    Insert many log rows in one statement.

    Args:
        entries: Dicts with log_time, log_level, target and message keys

    Returns:
        Count of inserted rows
    """
    rows = list(entries)
    if not rows:
        return 0

    db.execute(insert(models.LogEntry), rows)
    db.commit()
    return len(rows)


def get_logs(db: Session, num: int, last_id: int | None = None) -> list[models.LogEntry]:
    """Newest log entries first; pass the smallest id seen so far as last_id to page back."""
    query = select(models.LogEntry)
    if last_id is not None:
        query = query.where(models.LogEntry.id < last_id)
    query = query.order_by(models.LogEntry.id.desc()).limit(num)
    return list(db.execute(query).scalars())

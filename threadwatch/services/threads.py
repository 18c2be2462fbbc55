"""Thread identity resolution and ingestion watermarks."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from .. import models
from ..db import dialect_insert
from ..errors import NotFoundError

logger = logging.getLogger(__name__)


def insert_thread(db: Session, site_name: str, board_code: str, thread_no: int) -> int:
    """Insert-or-read a thread row without committing."""
    stmt = (
        dialect_insert(db, models.Thread.__table__)
        .values(site_name=site_name, board_code=board_code, thread_no=thread_no)
        .on_conflict_do_nothing(index_elements=["site_name", "board_code", "thread_no"])
    )
    db.execute(stmt)
    return db.execute(
        select(models.Thread.id).where(
            models.Thread.site_name == site_name,
            models.Thread.board_code == board_code,
            models.Thread.thread_no == thread_no,
        )
    ).scalar_one()


def resolve_thread(db: Session, site_name: str, board_code: str, thread_no: int) -> int:
    """Return the internal id of a thread, creating the row on first sight."""
    thread_id = insert_thread(db, site_name, board_code, thread_no)
    db.commit()
    return thread_id


def get_thread(db: Session, thread_id: int) -> models.Thread | None:
    return db.get(models.Thread, thread_id)


def find_thread(
    db: Session, site_name: str, board_code: str, thread_no: int
) -> models.Thread | None:
    return db.execute(
        select(models.Thread).where(
            models.Thread.site_name == site_name,
            models.Thread.board_code == board_code,
            models.Thread.thread_no == thread_no,
        )
    ).scalar_one_or_none()


def _require_thread(db: Session, thread_id: int) -> models.Thread:
    thread = get_thread(db, thread_id)
    if thread is None:
        raise NotFoundError(f"Thread {thread_id} does not exist")
    return thread


def advance_watermark(db: Session, thread_id: int, post_no: int, post_sub_no: int = 0) -> bool:
    """
    Move the last processed post of a thread forward.

    Runs as a single conditional UPDATE so concurrent ingestion workers can
    never move the watermark backwards.

    Returns:
        True if the watermark moved, False if (post_no, post_sub_no) is not ahead of it

    Raises:
        NotFoundError: If the thread does not exist
    """
    current_no = func.coalesce(models.Thread.last_processed_post_no, 0)
    current_sub_no = func.coalesce(models.Thread.last_processed_post_sub_no, 0)

    result = db.execute(
        update(models.Thread)
        .where(
            models.Thread.id == thread_id,
            or_(
                current_no < post_no,
                and_(current_no == post_no, current_sub_no < post_sub_no),
            ),
        )
        .values(last_processed_post_no=post_no, last_processed_post_sub_no=post_sub_no)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    if result.rowcount:
        logger.debug(f"advance_watermark() thread {thread_id} now at {post_no}/{post_sub_no}")
        return True

    _require_thread(db, thread_id)
    return False


def get_last_processed_post(db: Session, thread_id: int) -> tuple[int, int] | None:
    """Return (post_no, post_sub_no) of the watermark, or None before anything was processed."""
    row = db.execute(
        select(
            models.Thread.last_processed_post_no,
            models.Thread.last_processed_post_sub_no,
        ).where(models.Thread.id == thread_id)
    ).one_or_none()

    if row is None or not row[0]:
        return None
    return int(row[0]), int(row[1] or 0)


def store_last_modified(db: Session, thread_id: int, last_modified: datetime) -> None:
    thread = _require_thread(db, thread_id)
    thread.last_modified = last_modified
    db.commit()


def get_last_modified(db: Session, thread_id: int) -> datetime | None:
    return _require_thread(db, thread_id).last_modified


def mark_thread_dead(db: Session, thread_id: int) -> int:
    """
    Flag a thread as archived/404'd upstream, together with all of its posts.

    History is kept: nothing is deleted.

    Returns:
        Number of posts marked dead
    """
    thread = _require_thread(db, thread_id)
    thread.is_dead = True

    descriptor_ids = select(models.PostDescriptor.id).where(
        models.PostDescriptor.owner_thread_id == thread_id
    )
    result = db.execute(
        update(models.Post)
        .where(models.Post.owner_post_descriptor_id.in_(descriptor_ids))
        .values(is_dead=True)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    logger.info(f"mark_thread_dead() {thread!r} is dead, {result.rowcount} posts marked dead")
    return result.rowcount


def get_watched_threads(db: Session) -> list[models.Thread]:
    """Threads that still have at least one alive, watched post."""
    query = (
        select(models.Thread)
        .join(models.PostDescriptor, models.PostDescriptor.owner_thread_id == models.Thread.id)
        .join(models.Post, models.Post.owner_post_descriptor_id == models.PostDescriptor.id)
        .join(models.PostWatch, models.PostWatch.owner_post_descriptor_id == models.PostDescriptor.id)
        .where(
            models.Post.is_dead == False,
            models.Post.deleted_on.is_(None),
            models.Thread.deleted_on.is_(None),
        )
        .distinct()
        .order_by(models.Thread.id)
    )
    return list(db.execute(query).scalars())

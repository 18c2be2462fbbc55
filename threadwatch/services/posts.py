"""Post descriptor resolution and post lifecycle."""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..db import dialect_insert
from ..errors import NotFoundError

logger = logging.getLogger(__name__)


def insert_post_descriptor(db: Session, thread_id: int, post_no: int, post_sub_no: int) -> int:
    """Insert-or-read a descriptor row without committing."""
    stmt = (
        dialect_insert(db, models.PostDescriptor.__table__)
        .values(owner_thread_id=thread_id, post_no=post_no, post_sub_no=post_sub_no)
        .on_conflict_do_nothing(index_elements=["owner_thread_id", "post_no", "post_sub_no"])
    )
    try:
        db.execute(stmt)
    except IntegrityError as e:
        # Only the thread foreign key can fail here, conflicts on the natural key are ignored
        db.rollback()
        raise NotFoundError(f"Thread {thread_id} does not exist") from e

    return db.execute(
        select(models.PostDescriptor.id).where(
            models.PostDescriptor.owner_thread_id == thread_id,
            models.PostDescriptor.post_no == post_no,
            models.PostDescriptor.post_sub_no == post_sub_no,
        )
    ).scalar_one()


def insert_post(db: Session, descriptor_id: int) -> int:
    """Insert-or-read the content row of a descriptor without committing."""
    stmt = (
        dialect_insert(db, models.Post.__table__)
        .values(owner_post_descriptor_id=descriptor_id)
        .on_conflict_do_nothing(index_elements=["owner_post_descriptor_id"])
    )
    try:
        db.execute(stmt)
    except IntegrityError as e:
        db.rollback()
        raise NotFoundError(f"Post descriptor {descriptor_id} does not exist") from e

    return db.execute(
        select(models.Post.id).where(models.Post.owner_post_descriptor_id == descriptor_id)
    ).scalar_one()


def resolve_post_descriptor(db: Session, thread_id: int, post_no: int, post_sub_no: int = 0) -> int:
    """
    Return the internal id of a post descriptor, creating it on first sight.

    Safe to call concurrently for the same post: every caller gets the same id.

    Raises:
        NotFoundError: If the thread does not exist
    """
    descriptor_id = insert_post_descriptor(db, thread_id, post_no, post_sub_no)
    db.commit()
    return descriptor_id


def get_post_descriptor(db: Session, descriptor_id: int) -> models.PostDescriptor | None:
    return db.get(models.PostDescriptor, descriptor_id)


def get_thread_post_descriptor_ids(db: Session, thread_id: int) -> list[int]:
    query = (
        select(models.PostDescriptor.id)
        .where(models.PostDescriptor.owner_thread_id == thread_id)
        .order_by(models.PostDescriptor.post_no, models.PostDescriptor.post_sub_no)
    )
    return list(db.execute(query).scalars())


def ensure_post(db: Session, descriptor_id: int) -> int:
    """Create the content row of a descriptor if it is missing and return its id."""
    post_id = insert_post(db, descriptor_id)
    db.commit()
    return post_id


def mark_post_dead(db: Session, descriptor_id: int) -> bool:
    """
    Flag the post of a descriptor as dead, creating its content row if needed.

    Returns:
        True if the post was alive until now, False if it was already dead

    Raises:
        NotFoundError: If the descriptor does not exist
    """
    post_id = insert_post(db, descriptor_id)
    result = db.execute(
        update(models.Post)
        .where(models.Post.id == post_id, models.Post.is_dead == False)
        .values(is_dead=True)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount > 0

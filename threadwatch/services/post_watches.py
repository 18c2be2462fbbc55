"""Watch registry: which account wants notifications about which post."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..db import dialect_insert
from ..errors import AccountNotValidError, NotFoundError
from ..utils.formatting import format_token
from . import accounts
from .posts import insert_post, insert_post_descriptor
from .threads import insert_thread

logger = logging.getLogger(__name__)


def _insert_watch(
    db: Session, owner_account_id: int, post_descriptor_id: int, application_type: int
) -> int:
    stmt = (
        dialect_insert(db, models.PostWatch.__table__)
        .values(
            owner_account_id=owner_account_id,
            owner_post_descriptor_id=post_descriptor_id,
            application_type=application_type,
        )
        .on_conflict_do_nothing(
            index_elements=["owner_account_id", "owner_post_descriptor_id", "application_type"]
        )
    )
    try:
        db.execute(stmt)
    except IntegrityError as e:
        db.rollback()
        raise NotFoundError(
            f"Cannot watch post descriptor {post_descriptor_id} for account {owner_account_id}: "
            f"referenced row does not exist"
        ) from e

    return db.execute(
        select(models.PostWatch.id).where(
            models.PostWatch.owner_account_id == owner_account_id,
            models.PostWatch.owner_post_descriptor_id == post_descriptor_id,
            models.PostWatch.application_type == application_type,
        )
    ).scalar_one()


def subscribe(
    db: Session,
    owner_account_id: int,
    post_descriptor_id: int,
    application_type: int = models.ApplicationType.UNKNOWN,
) -> int:
    """Watch a post descriptor; idempotent per (account, descriptor, application_type)."""
    watch_id = _insert_watch(db, owner_account_id, post_descriptor_id, int(application_type))
    db.commit()
    return watch_id


def unsubscribe(
    db: Session,
    owner_account_id: int,
    post_descriptor_id: int,
    application_type: int | None = None,
) -> int:
    """
    Stop watching a post descriptor.

    Args:
        application_type: Only remove the watch of this application; None removes all of them

    Returns:
        Count of deleted watches
    """
    stmt = delete(models.PostWatch).where(
        models.PostWatch.owner_account_id == owner_account_id,
        models.PostWatch.owner_post_descriptor_id == post_descriptor_id,
    )
    if application_type is not None:
        stmt = stmt.where(models.PostWatch.application_type == int(application_type))

    count = db.execute(stmt.execution_options(synchronize_session=False)).rowcount
    db.commit()

    logger.info(
        f"unsubscribe() Deleted {count} post watches of account {owner_account_id} "
        f"for post descriptor {post_descriptor_id}"
    )
    return count


def watch_post(
    db: Session,
    account_id: str,
    site_name: str,
    board_code: str,
    thread_no: int,
    post_no: int,
    post_sub_no: int = 0,
    application_type: int = models.ApplicationType.UNKNOWN,
) -> int:
    """
    Resolve a post by its imageboard coordinates and watch it, in one transaction.

    Returns:
        Id of the post_watches row

    Raises:
        NotFoundError: If the account does not exist
        AccountNotValidError: If the account is expired or deleted
    """
    account = accounts.get_account(db, account_id, include_deleted=True)
    if account is None:
        logger.info(f"watch_post() account with id '{format_token(account_id)}' does not exist")
        raise NotFoundError(f"Account {format_token(account_id)} does not exist")

    status = accounts.account_validation_status(account)
    if status is not None:
        logger.info(
            f"watch_post() account with id '{format_token(account_id)}' is not valid (status: {status})"
        )
        raise AccountNotValidError(status)

    thread_id = insert_thread(db, site_name, board_code, thread_no)
    descriptor_id = insert_post_descriptor(db, thread_id, post_no, post_sub_no)
    insert_post(db, descriptor_id)
    watch_id = _insert_watch(db, account.id, descriptor_id, int(application_type))
    db.commit()

    logger.info(
        f"watch_post() account {format_token(account_id)} watches "
        f"{site_name}/{board_code}/{thread_no}/{post_no}/{post_sub_no}"
    )
    return watch_id


def get_watches(db: Session, owner_account_id: int) -> list[models.PostWatch]:
    query = (
        select(models.PostWatch)
        .where(models.PostWatch.owner_account_id == owner_account_id)
        .order_by(models.PostWatch.id)
    )
    return list(db.execute(query).scalars())


def find_watchers(db: Session, descriptor_ids: list[int]) -> list[tuple[int, int]]:
    """
    Find accounts watching any of the given descriptors.

    Only accounts that can still receive notifications are returned.

    Returns:
        Distinct (post_descriptor_id, owner_account_id) pairs
    """
    if not descriptor_ids:
        return []

    now = datetime.now(timezone.utc)
    query = (
        select(models.PostWatch.owner_post_descriptor_id, models.PostWatch.owner_account_id)
        .join(models.Account, models.Account.id == models.PostWatch.owner_account_id)
        .where(
            models.PostWatch.owner_post_descriptor_id.in_(descriptor_ids),
            models.Account.deleted_on.is_(None),
            models.Account.valid_until > now,
        )
        .distinct()
        .order_by(models.PostWatch.owner_post_descriptor_id, models.PostWatch.owner_account_id)
    )
    return [(row[0], row[1]) for row in db.execute(query)]

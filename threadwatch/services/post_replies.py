"""Service for the reply graph and its notification delivery state."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, settings
from ..db import dialect_insert
from ..errors import NotFoundError

logger = logging.getLogger(__name__)


class PostReplyService:
    """Service for recording reply edges and tracking their notification delivery."""

    @staticmethod
    def _insert_reply(
        db: Session, owner_account_id: int, post_descriptor_id: int, reply_to_descriptor_id: int
    ) -> bool:
        stmt = (
            dialect_insert(db, models.PostReply.__table__)
            .values(
                owner_account_id=owner_account_id,
                owner_post_descriptor_id=post_descriptor_id,
                reply_to_post_descriptor_id=reply_to_descriptor_id,
            )
            .on_conflict_do_nothing(
                index_elements=[
                    "owner_account_id",
                    "owner_post_descriptor_id",
                    "reply_to_post_descriptor_id",
                ]
            )
        )
        try:
            result = db.execute(stmt)
        except IntegrityError as e:
            db.rollback()
            raise NotFoundError(
                f"Cannot record reply {post_descriptor_id} -> {reply_to_descriptor_id} "
                f"for account {owner_account_id}: referenced row does not exist"
            ) from e
        return result.rowcount > 0

    @staticmethod
    def record_reply(
        db: Session, owner_account_id: int, post_descriptor_id: int, reply_to_descriptor_id: int
    ) -> int:
        """
        Record that post_descriptor_id replied to reply_to_descriptor_id, which the account watches.

        Recording the same edge twice is a no-op, since ingestion may reprocess a thread.

        Returns:
            Id of the post_replies row

        Raises:
            NotFoundError: If the account or either descriptor does not exist
        """
        PostReplyService._insert_reply(db, owner_account_id, post_descriptor_id, reply_to_descriptor_id)
        reply_id = db.execute(
            select(models.PostReply.id).where(
                models.PostReply.owner_account_id == owner_account_id,
                models.PostReply.owner_post_descriptor_id == post_descriptor_id,
                models.PostReply.reply_to_post_descriptor_id == reply_to_descriptor_id,
            )
        ).scalar_one()
        db.commit()
        return reply_id

    @staticmethod
    def record_replies(db: Session, replies: Iterable[tuple[int, int, int]]) -> int:
        """
        Record many (owner_account_id, post_descriptor_id, reply_to_descriptor_id) edges in one transaction.

        Returns:
            Number of edges that were not stored before
        """
        inserted = 0
        for owner_account_id, post_descriptor_id, reply_to_descriptor_id in replies:
            if PostReplyService._insert_reply(
                db, owner_account_id, post_descriptor_id, reply_to_descriptor_id
            ):
                inserted += 1
        db.commit()

        logger.info(f"record_replies() stored {inserted} new post replies")
        return inserted

    @staticmethod
    def mark_notification_attempts(db: Session, reply_ids: list[int]) -> int:
        """Increment the delivery attempt counter of replies. Returns count of updated replies."""
        if not reply_ids:
            return 0

        count = db.execute(
            update(models.PostReply)
            .where(models.PostReply.id.in_(reply_ids))
            .values(
                notification_delivery_attempt=models.PostReply.notification_delivery_attempt + 1
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        db.commit()

        logger.info(f"mark_notification_attempts() Got {len(reply_ids)} reply ids, updated {count}")
        return count

    @staticmethod
    def mark_notification_attempt(db: Session, reply_id: int) -> None:
        if PostReplyService.mark_notification_attempts(db, [reply_id]) == 0:
            raise NotFoundError(f"Post reply {reply_id} does not exist")

    @staticmethod
    def mark_delivered(db: Session, reply_id: int, at: datetime | None = None) -> bool:
        """
        Set notification_delivered_on of a reply.

        The timestamp is written exactly once: calls for an already delivered
        reply are no-ops and return False.

        Raises:
            NotFoundError: If the reply does not exist
        """
        at = at or datetime.now(timezone.utc)
        count = db.execute(
            update(models.PostReply)
            .where(
                models.PostReply.id == reply_id,
                models.PostReply.notification_delivered_on.is_(None),
            )
            .values(notification_delivered_on=at)
            .execution_options(synchronize_session=False)
        ).rowcount
        db.commit()

        if count:
            return True

        if db.get(models.PostReply, reply_id) is None:
            raise NotFoundError(f"Post reply {reply_id} does not exist")

        logger.debug(f"mark_delivered() reply {reply_id} was already delivered")
        return False

    @staticmethod
    def mark_delivered_for_account(
        db: Session, account_id: str, reply_ids: list[int], at: datetime | None = None
    ) -> int:
        """
        Mark replies as delivered on behalf of a client.

        Only replies owned by the account are touched; foreign ids are ignored.

        Returns:
            Count of replies marked delivered
        """
        if not reply_ids:
            return 0

        at = at or datetime.now(timezone.utc)
        owner_ids = select(models.Account.id).where(models.Account.account_id == account_id)
        count = db.execute(
            update(models.PostReply)
            .where(
                models.PostReply.id.in_(reply_ids),
                models.PostReply.owner_account_id.in_(owner_ids),
                models.PostReply.notification_delivered_on.is_(None),
            )
            .values(notification_delivered_on=at)
            .execution_options(synchronize_session=False)
        ).rowcount
        db.commit()

        if count < len(reply_ids):
            logger.info(
                f"mark_delivered_for_account() {len(reply_ids) - count} of {len(reply_ids)} "
                f"reply ids were skipped (foreign or already delivered)"
            )
        return count

    @staticmethod
    def pending_notifications(db: Session, limit: int) -> list[models.PostReply]:
        """
        Replies whose notification still has to be delivered, oldest first.

        Excludes deleted replies, replies that exhausted their delivery
        attempts, and replies owned by deleted, expired or never activated
        (no valid_until) accounts.
        """
        now = datetime.now(timezone.utc)
        query = (
            select(models.PostReply)
            .join(models.Account, models.Account.id == models.PostReply.owner_account_id)
            .where(
                models.PostReply.notification_delivered_on.is_(None),
                models.PostReply.deleted_on.is_(None),
                models.PostReply.notification_delivery_attempt
                < settings.MAX_NOTIFICATION_DELIVERY_ATTEMPTS,
                models.Account.deleted_on.is_(None),
                models.Account.valid_until > now,
            )
            .order_by(models.PostReply.created_on, models.PostReply.id)
            .limit(limit)
        )
        return list(db.execute(query).scalars())

    @staticmethod
    def get_account_replies(db: Session, account_id: str) -> list[models.PostReply]:
        query = (
            select(models.PostReply)
            .join(models.Account, models.Account.id == models.PostReply.owner_account_id)
            .where(models.Account.account_id == account_id)
            .order_by(models.PostReply.id)
        )
        return list(db.execute(query).scalars())

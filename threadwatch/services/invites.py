"""Single-use invites that hand out trial accounts."""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from .. import models, settings
from ..db import dialect_insert
from ..utils.formatting import format_token
from . import accounts

logger = logging.getLogger(__name__)

MAX_INVITES_PER_CALL = 255

_ALPHABET = string.ascii_letters + string.digits


def _random_string(length: int) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def get_invite(db: Session, invite_id: str) -> models.Invite | None:
    return db.execute(
        select(models.Invite).where(models.Invite.invite_id == invite_id)
    ).scalar_one_or_none()


def generate_invites(db: Session, amount: int, now: datetime | None = None) -> list[str]:
    """
    Create new invites in one transaction.

    Args:
        amount: Number of invites, 0..255
        now: Creation time, expiry is INVITE_LIFETIME_DAYS later

    Returns:
        The generated invite ids

    Raises:
        ValueError: If amount is out of bounds
    """
    if not 0 <= amount <= MAX_INVITES_PER_CALL:
        raise ValueError(f"Bad amount {amount} must be within 0..{MAX_INVITES_PER_CALL}")

    now = now or datetime.now(timezone.utc)
    expires_on = now + timedelta(days=settings.INVITE_LIFETIME_DAYS)

    invite_ids: list[str] = []
    while len(invite_ids) < amount:
        invite_id = _random_string(settings.INVITE_ID_LENGTH)
        if invite_id in invite_ids or get_invite(db, invite_id) is not None:
            continue
        invite_ids.append(invite_id)

    db.add_all(models.Invite(invite_id=invite_id, expires_on=expires_on) for invite_id in invite_ids)
    db.commit()

    logger.info(f"generate_invites() Generated {len(invite_ids)} invites, expire on {expires_on.isoformat()}")
    return invite_ids


def _new_account_id(db: Session) -> tuple[str, str]:
    while True:
        user_id = _random_string(settings.USER_ID_MAX_LENGTH)
        account_id = accounts.account_id_from_user_id(user_id)
        if accounts.get_account(db, account_id, include_deleted=True) is None:
            return user_id, account_id


def accept_invite(db: Session, invite_id: str, now: datetime | None = None) -> str | None:
    """
    Accept an invite and create a trial account for it.

    The invite is marked accepted and the account is created in the same
    transaction. The account is valid for NEW_ACCOUNT_TRIAL_PERIOD_DAYS.

    Returns:
        The user id of the new account (clients hash it into the account id),
        or None if the invite does not exist, is expired or was already accepted
    """
    now = now or datetime.now(timezone.utc)

    accepted = db.execute(
        update(models.Invite)
        .where(
            models.Invite.invite_id == invite_id,
            models.Invite.accepted_on.is_(None),
            models.Invite.expires_on > now,
        )
        .values(accepted_on=now)
        .execution_options(synchronize_session=False)
    ).rowcount
    if not accepted:
        db.rollback()
        logger.info(f"accept_invite() invite does not exist or not valid, invite: {format_token(invite_id)}")
        return None

    user_id, account_id = _new_account_id(db)
    valid_until = now + timedelta(days=settings.NEW_ACCOUNT_TRIAL_PERIOD_DAYS)
    created = db.execute(
        dialect_insert(db, models.Account.__table__)
        .values(account_id=account_id, valid_until=valid_until)
        .on_conflict_do_nothing(index_elements=["account_id"])
    ).rowcount
    if not created:
        db.rollback()
        logger.info(f"accept_invite() Account already exists, invite: {format_token(invite_id)}")
        return None

    db.commit()
    logger.info(
        f"accept_invite() success, account {format_token(account_id)} valid until {valid_until.isoformat()}"
    )
    return user_id


def cleanup_expired(db: Session, now: datetime | None = None) -> int:
    """Delete expired invites that were never accepted. Returns count of deleted invites."""
    now = now or datetime.now(timezone.utc)
    deleted = db.execute(
        delete(models.Invite)
        .where(models.Invite.accepted_on.is_(None), models.Invite.expires_on < now)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()

    logger.info(f"cleanup_expired() deleted {deleted} expired invites")
    return deleted

"""Account and push-token registry."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, settings
from ..db import dialect_insert
from ..errors import AccountNotValidError, ConflictError, NotFoundError
from ..utils.formatting import format_token
from ..utils.hashing import sha3_512_hex

logger = logging.getLogger(__name__)


def account_id_from_user_id(user_id: str) -> str:
    """
    Derive the stored account_id from a client supplied user id.

    Args:
        user_id: Opaque id generated by the client, 32..128 characters

    Returns:
        128 character sha3-512 hex digest

    Raises:
        ValueError: If the user id length is out of bounds
    """
    if not settings.USER_ID_MIN_LENGTH <= len(user_id) <= settings.USER_ID_MAX_LENGTH:
        raise ValueError(
            f"Bad user_id length {len(user_id)} must be within "
            f"{settings.USER_ID_MIN_LENGTH}..{settings.USER_ID_MAX_LENGTH} symbols"
        )
    return sha3_512_hex(user_id, settings.USER_ID_HASH_ITERATIONS)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def account_validation_status(account: models.Account, now: datetime | None = None) -> str | None:
    """Return why the account cannot receive notifications, or None if it can."""
    if account.deleted_on is not None:
        return "account is deleted"
    if account.valid_until is None:
        return "valid_until is not set"

    now = now or datetime.now(timezone.utc)
    valid_until = _as_utc(account.valid_until)
    if valid_until < now:
        return f"Account is not valid, now: {now.isoformat()}, valid_until: {valid_until.isoformat()}"
    return None


def is_account_valid(account: models.Account, now: datetime | None = None) -> bool:
    return account_validation_status(account, now) is None


def get_account(
    db: Session, account_id: str, include_deleted: bool = False
) -> models.Account | None:
    query = select(models.Account).where(models.Account.account_id == account_id)
    if not include_deleted:
        query = query.where(models.Account.deleted_on.is_(None))
    return db.execute(query).scalar_one_or_none()


def _require_account(db: Session, account_id: str) -> models.Account:
    account = get_account(db, account_id, include_deleted=True)
    if account is None:
        raise NotFoundError(f"Account {format_token(account_id)} does not exist")
    return account


def upsert_account(db: Session, account_id: str, valid_until: datetime | None = None) -> int:
    """
    Create the account if it does not exist yet.

    Concurrent callers racing on the same account_id all receive the same
    internal id. An existing account keeps its current valid_until, and a
    soft-deleted account is not revived: its id is returned as is.

    Returns:
        Internal surrogate id of the account
    """
    stmt = (
        dialect_insert(db, models.Account.__table__)
        .values(account_id=account_id, valid_until=valid_until)
        .on_conflict_do_nothing(index_elements=["account_id"])
    )
    result = db.execute(stmt)
    internal_id = db.execute(
        select(models.Account.id).where(models.Account.account_id == account_id)
    ).scalar_one()
    db.commit()

    if result.rowcount:
        logger.info(f"upsert_account() created account {format_token(account_id)} (id: {internal_id})")
    return internal_id


def update_expiry_date(db: Session, account_id: str, valid_until: datetime) -> None:
    account = _require_account(db, account_id)
    account.valid_until = valid_until
    db.commit()
    logger.info(
        f"update_expiry_date() account {format_token(account_id)} valid until {valid_until.isoformat()}"
    )


def expire_account(db: Session, account_id: str, at: datetime | None = None) -> None:
    """Expire and soft-delete an account, keeping its notification history."""
    at = at or datetime.now(timezone.utc)
    account = _require_account(db, account_id)
    account.valid_until = at
    account.deleted_on = at
    db.commit()
    logger.info(f"expire_account() account {format_token(account_id)} expired at {at.isoformat()}")


def delete_account(db: Session, account_id: str) -> bool:
    """Physically delete an account; tokens, replies and watches cascade."""
    result = db.execute(
        delete(models.Account)
        .where(models.Account.account_id == account_id)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount > 0


def get_account_tokens(db: Session, account_id: str) -> list[models.AccountToken]:
    query = (
        select(models.AccountToken)
        .join(models.Account, models.Account.id == models.AccountToken.owner_account_id)
        .where(models.Account.account_id == account_id)
        .order_by(models.AccountToken.application_type, models.AccountToken.token_type)
    )
    return list(db.execute(query).scalars())


def _find_token(
    db: Session, token: str | None, application_type: int, token_type: int
) -> models.AccountToken | None:
    return db.execute(
        select(models.AccountToken).where(
            models.AccountToken.token == token,
            models.AccountToken.application_type == application_type,
            models.AccountToken.token_type == token_type,
        )
    ).scalar_one_or_none()


def register_token(
    db: Session,
    account_id: str,
    token: str | None,
    application_type: int,
    token_type: int,
) -> int:
    """
    Store a push token for an account.

    An account holds at most one token per (application_type, token_type);
    registering a different token for an occupied slot replaces it.

    Returns:
        Id of the account_tokens row

    Raises:
        NotFoundError: If the account does not exist
        AccountNotValidError: If the account was expired with expire_account
        ConflictError: If the (token, application_type, token_type) triple belongs to another account
        ValueError: If the token is empty or longer than 1024 characters
    """
    if token is not None and not 0 < len(token) <= settings.TOKEN_MAX_LENGTH:
        raise ValueError(
            f"Bad token length {len(token)} must be within 1..{settings.TOKEN_MAX_LENGTH}"
        )

    application_type = int(application_type)
    token_type = int(token_type)
    owner = _require_account(db, account_id)
    if owner.deleted_on is not None:
        logger.info(f"register_token() account {format_token(account_id)} is deleted")
        raise AccountNotValidError(f"Account {format_token(account_id)} is deleted")

    existing = _find_token(db, token, application_type, token_type) if token is not None else None
    if existing is not None:
        if existing.owner_account_id != owner.id:
            db.rollback()
            raise ConflictError(
                f"Token {format_token(token)} is already registered to another account"
            )
        db.commit()
        return existing.id

    slot = db.execute(
        select(models.AccountToken).where(
            models.AccountToken.owner_account_id == owner.id,
            models.AccountToken.application_type == application_type,
            models.AccountToken.token_type == token_type,
        )
    ).scalar_one_or_none()

    if slot is None:
        slot = models.AccountToken(
            owner_account_id=owner.id,
            token=token,
            application_type=application_type,
            token_type=token_type,
        )
        db.add(slot)
    else:
        slot.token = token

    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        # Lost a race against another writer; decide based on who owns the token now
        winner = _find_token(db, token, application_type, token_type) if token is not None else None
        if winner is not None and winner.owner_account_id == owner.id:
            return winner.id
        raise ConflictError(
            f"Token {format_token(token)} could not be registered for account {format_token(account_id)}"
        ) from e

    logger.info(
        f"register_token() account {format_token(account_id)} token {format_token(token)} "
        f"(application_type: {application_type}, token_type: {token_type})"
    )
    return slot.id


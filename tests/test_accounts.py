"""Tests for the account and push-token registry."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from threadwatch.errors import AccountNotValidError, ConflictError, NotFoundError
from threadwatch.models import Account, AccountToken, ApplicationType, PostReply, PostWatch, TokenType
from threadwatch.services import accounts, post_watches
from threadwatch.services.post_replies import PostReplyService


def test_account_id_from_user_id_is_sha3_512_hex():
    account_id = accounts.account_id_from_user_id("x" * 32)

    assert len(account_id) == 128
    assert account_id == accounts.account_id_from_user_id("x" * 32)
    assert account_id != accounts.account_id_from_user_id("y" * 32)


@pytest.mark.parametrize("length", [0, 31, 129])
def test_account_id_from_user_id_rejects_bad_length(length: int):
    with pytest.raises(ValueError):
        accounts.account_id_from_user_id("x" * length)


def test_upsert_account_is_idempotent(db: Session, account_id: str):
    first = accounts.upsert_account(db, account_id)
    second = accounts.upsert_account(db, account_id)

    assert first == second
    count = db.execute(select(func.count()).select_from(Account)).scalar_one()
    assert count == 1


def test_upsert_account_keeps_existing_expiry(db: Session, account_id: str):
    valid_until = datetime(2030, 1, 1, tzinfo=timezone.utc)
    accounts.upsert_account(db, account_id, valid_until)
    accounts.upsert_account(db, account_id, datetime(2031, 1, 1, tzinfo=timezone.utc))

    account = accounts.get_account(db, account_id)
    assert account.valid_until.replace(tzinfo=timezone.utc) == valid_until


def test_account_with_future_expiry_is_valid(db: Session, account_id: str, account: int):
    assert accounts.is_account_valid(accounts.get_account(db, account_id))


def test_account_without_expiry_is_not_valid(db: Session, account_id: str):
    accounts.upsert_account(db, account_id)

    account = accounts.get_account(db, account_id)
    assert account.valid_until is None
    assert accounts.account_validation_status(account) == "valid_until is not set"
    assert not accounts.is_account_valid(account)


def test_update_expiry_date(db: Session, account_id: str, account: int):
    past = datetime.now(timezone.utc) - timedelta(days=1)
    accounts.update_expiry_date(db, account_id, past)

    status = accounts.account_validation_status(accounts.get_account(db, account_id))
    assert status is not None
    assert "valid_until" in status


def test_update_expiry_date_unknown_account(db: Session):
    with pytest.raises(NotFoundError):
        accounts.update_expiry_date(db, "b" * 128, datetime.now(timezone.utc))


def test_expire_account_soft_deletes(db: Session, account_id: str, account: int):
    accounts.expire_account(db, account_id)

    assert accounts.get_account(db, account_id) is None
    expired = accounts.get_account(db, account_id, include_deleted=True)
    assert expired is not None
    assert expired.deleted_on is not None
    assert not accounts.is_account_valid(expired)


def test_register_token_is_idempotent(db: Session, account_id: str, account: int):
    first = accounts.register_token(
        db, account_id, "token-1", ApplicationType.KUROBA_EX_LITE_PRODUCTION, TokenType.FIREBASE
    )
    second = accounts.register_token(
        db, account_id, "token-1", ApplicationType.KUROBA_EX_LITE_PRODUCTION, TokenType.FIREBASE
    )

    assert first == second
    assert [t.token for t in accounts.get_account_tokens(db, account_id)] == ["token-1"]


def test_register_token_replaces_token_in_same_slot(db: Session, account_id: str, account: int):
    first = accounts.register_token(
        db, account_id, "token-1", ApplicationType.KUROBA_EX_LITE_PRODUCTION, TokenType.FIREBASE
    )
    second = accounts.register_token(
        db, account_id, "token-2", ApplicationType.KUROBA_EX_LITE_PRODUCTION, TokenType.FIREBASE
    )

    assert first == second
    assert [t.token for t in accounts.get_account_tokens(db, account_id)] == ["token-2"]


def test_register_token_one_per_application(db: Session, account_id: str, account: int):
    accounts.register_token(
        db, account_id, "debug-token", ApplicationType.KUROBA_EX_LITE_DEBUG, TokenType.FIREBASE
    )
    accounts.register_token(
        db, account_id, "prod-token", ApplicationType.KUROBA_EX_LITE_PRODUCTION, TokenType.FIREBASE
    )

    tokens = accounts.get_account_tokens(db, account_id)
    assert [(t.application_type, t.token) for t in tokens] == [
        (ApplicationType.KUROBA_EX_LITE_DEBUG, "debug-token"),
        (ApplicationType.KUROBA_EX_LITE_PRODUCTION, "prod-token"),
    ]


def test_register_token_owned_by_other_account(db: Session, account_id: str, account: int):
    other_id = accounts.account_id_from_user_id("c" * 32)
    accounts.upsert_account(db, other_id)
    accounts.register_token(
        db, account_id, "shared", ApplicationType.KUROBA_EX_LITE_PRODUCTION, TokenType.FIREBASE
    )

    with pytest.raises(ConflictError):
        accounts.register_token(
            db, other_id, "shared", ApplicationType.KUROBA_EX_LITE_PRODUCTION, TokenType.FIREBASE
        )

    assert accounts.get_account_tokens(db, other_id) == []


def test_register_token_on_expired_account(db: Session, account_id: str, account: int):
    accounts.expire_account(db, account_id)

    assert accounts.upsert_account(db, account_id) == account
    assert accounts.get_account(db, account_id) is None

    with pytest.raises(AccountNotValidError):
        accounts.register_token(
            db, account_id, "token", ApplicationType.KUROBA_EX_LITE_PRODUCTION, TokenType.FIREBASE
        )

    assert accounts.get_account_tokens(db, account_id) == []


def test_register_token_unknown_account(db: Session):
    with pytest.raises(NotFoundError):
        accounts.register_token(
            db, "d" * 128, "token", ApplicationType.KUROBA_EX_LITE_PRODUCTION, TokenType.FIREBASE
        )


@pytest.mark.parametrize("token", ["", "t" * 1025])
def test_register_token_bad_length(db: Session, account_id: str, account: int, token: str):
    with pytest.raises(ValueError):
        accounts.register_token(
            db, account_id, token, ApplicationType.KUROBA_EX_LITE_PRODUCTION, TokenType.FIREBASE
        )


def test_delete_account_cascades(db: Session, account_id: str, account: int):
    accounts.register_token(
        db, account_id, "token", ApplicationType.KUROBA_EX_LITE_PRODUCTION, TokenType.FIREBASE
    )
    watch_id = post_watches.watch_post(db, account_id, "4chan", "g", 12345, 12345)
    descriptor_id = db.get(PostWatch, watch_id).owner_post_descriptor_id
    PostReplyService.record_reply(db, account, descriptor_id, descriptor_id)

    assert accounts.delete_account(db, account_id) is True
    db.expire_all()

    for model in (AccountToken, PostWatch, PostReply):
        assert db.execute(select(func.count()).select_from(model)).scalar_one() == 0

    assert accounts.delete_account(db, account_id) is False

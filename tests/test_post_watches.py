"""Tests for the watch registry."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import Session

from threadwatch.errors import AccountNotValidError, NotFoundError
from threadwatch.models import ApplicationType, PostWatch
from threadwatch.services import accounts, post_watches, posts, threads


@pytest.fixture
def descriptor_id(db: Session) -> int:
    thread_id = threads.resolve_thread(db, "4chan", "g", 12345)
    return posts.resolve_post_descriptor(db, thread_id, 12345)


def test_subscribe_is_idempotent(db: Session, account: int, descriptor_id: int):
    first = post_watches.subscribe(db, account, descriptor_id)
    second = post_watches.subscribe(db, account, descriptor_id)

    assert first == second
    assert len(post_watches.get_watches(db, account)) == 1


def test_subscribe_per_application_type(db: Session, account: int, descriptor_id: int):
    debug = post_watches.subscribe(db, account, descriptor_id, ApplicationType.KUROBA_EX_LITE_DEBUG)
    production = post_watches.subscribe(
        db, account, descriptor_id, ApplicationType.KUROBA_EX_LITE_PRODUCTION
    )

    assert debug != production
    assert [w.application_type for w in post_watches.get_watches(db, account)] == [0, 1]


def test_subscribe_unknown_descriptor(db: Session, account: int):
    with pytest.raises(NotFoundError):
        post_watches.subscribe(db, account, 999)


def test_unsubscribe(db: Session, account: int, descriptor_id: int):
    post_watches.subscribe(db, account, descriptor_id, ApplicationType.KUROBA_EX_LITE_DEBUG)
    post_watches.subscribe(db, account, descriptor_id, ApplicationType.KUROBA_EX_LITE_PRODUCTION)

    assert post_watches.unsubscribe(
        db, account, descriptor_id, ApplicationType.KUROBA_EX_LITE_DEBUG
    ) == 1
    assert post_watches.unsubscribe(db, account, descriptor_id) == 1
    assert post_watches.unsubscribe(db, account, descriptor_id) == 0
    assert post_watches.get_watches(db, account) == []


def test_watch_post_creates_thread_and_post(db: Session, account_id: str, account: int):
    watch_id = post_watches.watch_post(
        db,
        account_id,
        "4chan",
        "g",
        12345,
        12350,
        application_type=ApplicationType.KUROBA_EX_LITE_PRODUCTION,
    )

    watch = db.get(PostWatch, watch_id)
    assert watch.owner_account_id == account
    assert watch.application_type == ApplicationType.KUROBA_EX_LITE_PRODUCTION
    assert watch.descriptor.post_no == 12350
    assert watch.descriptor.thread.thread_no == 12345
    assert watch.descriptor.post is not None

    again = post_watches.watch_post(
        db,
        account_id,
        "4chan",
        "g",
        12345,
        12350,
        application_type=ApplicationType.KUROBA_EX_LITE_PRODUCTION,
    )
    assert again == watch_id


def test_watch_post_unknown_account(db: Session):
    with pytest.raises(NotFoundError):
        post_watches.watch_post(db, "e" * 128, "4chan", "g", 1, 1)

    assert threads.find_thread(db, "4chan", "g", 1) is None


def test_watch_post_expired_account(db: Session, account_id: str, account: int):
    accounts.update_expiry_date(db, account_id, datetime.now(timezone.utc) - timedelta(days=1))

    with pytest.raises(AccountNotValidError):
        post_watches.watch_post(db, account_id, "4chan", "g", 1, 1)

    assert threads.find_thread(db, "4chan", "g", 1) is None


def test_find_watchers_skips_invalid_accounts(db: Session, account: int, descriptor_id: int):
    expired_id = accounts.account_id_from_user_id("q" * 40)
    expired = accounts.upsert_account(db, expired_id, datetime.now(timezone.utc) + timedelta(days=1))
    post_watches.subscribe(db, account, descriptor_id)
    post_watches.subscribe(db, expired, descriptor_id)

    assert post_watches.find_watchers(db, [descriptor_id]) == [
        (descriptor_id, account),
        (descriptor_id, expired),
    ]

    accounts.expire_account(db, expired_id)
    assert post_watches.find_watchers(db, [descriptor_id]) == [(descriptor_id, account)]
    assert post_watches.find_watchers(db, []) == []


def test_find_watchers_skips_accounts_without_expiry(db: Session, descriptor_id: int):
    inactive = accounts.upsert_account(db, accounts.account_id_from_user_id("n" * 48))
    post_watches.subscribe(db, inactive, descriptor_id)

    assert post_watches.find_watchers(db, [descriptor_id]) == []


def test_watch_post_account_without_expiry(db: Session):
    account_id = accounts.account_id_from_user_id("n" * 48)
    accounts.upsert_account(db, account_id)

    with pytest.raises(AccountNotValidError):
        post_watches.watch_post(db, account_id, "4chan", "g", 1, 1)

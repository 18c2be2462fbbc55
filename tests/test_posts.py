"""Tests for post descriptor resolution and post lifecycle."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from threadwatch.errors import NotFoundError
from threadwatch.models import Post, PostDescriptor
from threadwatch.services import posts, threads


def test_resolve_post_descriptor_is_idempotent(db: Session):
    thread_id = threads.resolve_thread(db, "4chan", "g", 12345)

    first = posts.resolve_post_descriptor(db, thread_id, 12346)
    second = posts.resolve_post_descriptor(db, thread_id, 12346)
    sub_post = posts.resolve_post_descriptor(db, thread_id, 12346, 1)

    assert first == second
    assert sub_post != first
    assert posts.get_thread_post_descriptor_ids(db, thread_id) == [first, sub_post]


def test_resolve_post_descriptor_concurrently(db: Session, session_factory):
    thread_id = threads.resolve_thread(db, "4chan", "g", 12345)

    def resolve() -> int:
        with session_factory() as session:
            return posts.resolve_post_descriptor(session, thread_id, 12350)

    with ThreadPoolExecutor(max_workers=2) as executor:
        results = [f.result() for f in [executor.submit(resolve) for _ in range(2)]]

    assert results[0] == results[1]
    count = db.execute(select(func.count()).select_from(PostDescriptor)).scalar_one()
    assert count == 1


def test_resolve_post_descriptor_unknown_thread(db: Session):
    with pytest.raises(NotFoundError):
        posts.resolve_post_descriptor(db, 999, 1)


def test_ensure_post_is_idempotent(db: Session):
    thread_id = threads.resolve_thread(db, "4chan", "g", 1)
    descriptor_id = posts.resolve_post_descriptor(db, thread_id, 1)

    assert posts.ensure_post(db, descriptor_id) == posts.ensure_post(db, descriptor_id)
    assert posts.get_post_descriptor(db, descriptor_id).post.is_dead is False


def test_mark_post_dead_creates_missing_post(db: Session):
    thread_id = threads.resolve_thread(db, "4chan", "g", 1)
    descriptor_id = posts.resolve_post_descriptor(db, thread_id, 1)

    assert posts.mark_post_dead(db, descriptor_id) is True
    assert posts.mark_post_dead(db, descriptor_id) is False

    post = db.execute(
        select(Post).where(Post.owner_post_descriptor_id == descriptor_id)
    ).scalar_one()
    assert post.is_dead is True


def test_mark_post_dead_unknown_descriptor(db: Session):
    with pytest.raises(NotFoundError):
        posts.mark_post_dead(db, 999)

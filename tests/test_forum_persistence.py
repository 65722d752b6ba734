"""
Tests for the persistence contract: compare-and-swap, atomic view counts,
conflict replay. Each test runs against both the SQL and in-memory stores.
"""
from datetime import datetime, timezone

import pytest

from app.core.errors import ConcurrentModification, NotFound
from app.services.engagement import EngagementEngine
from app.services.forum_aggregate import Attachment, Category, Post, Reply
from app.services.forum_persistence import (
    InMemoryPostPersistence,
    PostQuery,
    SqlPostPersistence,
)


@pytest.fixture(params=["sql", "memory"])
def store(request, db_session):
    if request.param == "sql":
        return SqlPostPersistence(db_session)
    return InMemoryPostPersistence()


def _new_post(**kwargs) -> Post:
    defaults = {"author_id": "user-a", "title": "Hem finishing", "content": "c"}
    defaults.update(kwargs)
    return Post(**defaults)


class TestPersistenceContract:

    def test_insert_and_get_round_trip_aggregate(self, store):
        post = _new_post(category=Category.FABRIC, tags=["silk", "silk"])
        post.append_reply(Reply(
            author_id="user-b",
            content="R1",
            attachments=[Attachment(url="u", filename="f.png", file_type="image/png")],
        ))
        post.likes.toggle("user-c", datetime(2024, 1, 1, tzinfo=timezone.utc))
        store.insert(post)

        loaded = store.get(post.id)

        assert loaded.version == 1
        assert loaded.category == Category.FABRIC
        assert loaded.tags == ["silk", "silk"]
        assert loaded.replies[0].content == "R1"
        assert loaded.replies[0].attachments[0].file_type == "image/png"
        assert loaded.find_reply(post.replies[0].id) is not None
        assert "user-c" in loaded.likes

    def test_get_missing(self, store):
        assert store.get("missing") is None

    def test_replace_rejects_stale_version(self, store):
        post = _new_post()
        store.insert(post)
        first = store.get(post.id)
        second = store.get(post.id)

        first.title = "first writer"
        assert store.replace(first, first.version) is True

        second.title = "stale writer"
        assert store.replace(second, second.version) is False
        assert store.get(post.id).title == "first writer"
        assert store.get(post.id).version == 2

    def test_increment_views_survives_concurrent_replace(self, store):
        post = _new_post()
        store.insert(post)
        snapshot = store.get(post.id)

        assert store.increment_views(post.id) is True
        snapshot.title = "edited"
        assert store.replace(snapshot, snapshot.version) is True

        loaded = store.get(post.id)
        assert loaded.views == 1
        assert loaded.title == "edited"

    def test_replace_returns_current_view_count(self, store):
        post = _new_post()
        store.insert(post)
        snapshot = store.get(post.id)
        store.increment_views(post.id)
        store.increment_views(post.id)

        snapshot.title = "edited"
        assert store.replace(snapshot, snapshot.version) is True
        assert snapshot.views == 2

    def test_increment_views_missing(self, store):
        assert store.increment_views("missing") is False

    def test_delete(self, store):
        post = _new_post()
        post.append_reply(Reply(author_id="user-b", content="R1"))
        store.insert(post)

        assert store.delete(post.id) is True
        assert store.get(post.id) is None
        assert store.delete(post.id) is False

    def test_find_counts_before_paging(self, store):
        for i in range(3):
            store.insert(_new_post(title=f"post {i}"))
        items, total = store.find(PostQuery(offset=2, limit=2))
        assert total == 3
        assert len(items) == 1

    def test_search_treats_wildcards_literally(self, store):
        store.insert(_new_post(title="100% cotton"))
        store.insert(_new_post(title="1000 cotton"))
        items, total = store.find(PostQuery(search="100%"))
        assert total == 1
        assert items[0].title == "100% cotton"

    def test_mutate_replays_after_conflict(self, store):
        post = _new_post()
        store.insert(post)
        concurrent = EngagementEngine(store)
        calls = []

        def apply(p: Post) -> None:
            calls.append(p.version)
            if len(calls) == 1:
                # another request likes the post between our read and write
                concurrent.toggle_like(post.id, "user-b")
            p.likes.toggle("user-c")

        result = store.mutate(post.id, apply, max_attempts=3)

        assert len(calls) == 2
        assert set(result.likes) == {"user-b", "user-c"}
        assert set(store.get(post.id).likes) == {"user-b", "user-c"}

    def test_mutate_gives_up_after_max_attempts(self, store):
        post = _new_post()
        store.insert(post)
        concurrent = EngagementEngine(store)

        def apply(p: Post) -> None:
            concurrent.toggle_like(post.id, "user-b")

        with pytest.raises(ConcurrentModification):
            store.mutate(post.id, apply, max_attempts=2)

    def test_mutate_missing_post(self, store):
        with pytest.raises(NotFound):
            store.mutate("missing", lambda p: None, max_attempts=1)

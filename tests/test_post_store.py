"""
Tests for the post store (create/get/update/delete/views).
"""
import pytest

from app.core.errors import Forbidden, NotFound, ValidationFailed
from app.services.forum_aggregate import Category
from app.services.post_store import PostStore


class TestPostStore:
    """Test post lifecycle rules."""

    def test_create_assigns_identity_and_defaults(self, persistence):
        store = PostStore(persistence)
        post = store.create("user-a", {"title": "Hem finishing", "content": "How?", "category": "techniques"})

        assert post.id
        assert post.author_id == "user-a"
        assert post.category == Category.TECHNIQUES
        assert post.views == 0
        assert len(post.likes) == 0
        assert post.replies == []
        assert not (post.is_pinned or post.is_locked or post.is_resolved)
        assert post.updated_at == post.created_at

    def test_create_ignores_supplied_author(self, persistence):
        store = PostStore(persistence)
        post = store.create("user-a", {"title": "t", "content": "c", "author": "user-b", "authorId": "user-b"})
        assert store.get(post.id).author_id == "user-a"

    def test_create_defaults_to_general_category(self, persistence):
        post = PostStore(persistence).create("user-a", {"title": "t", "content": "c"})
        assert post.category == Category.GENERAL

    def test_create_keeps_tag_order_and_duplicates(self, persistence):
        store = PostStore(persistence)
        post = store.create("user-a", {"title": "t", "content": "c", "tags": ["b", "a", "b"]})
        assert store.get(post.id).tags == ["b", "a", "b"]

    @pytest.mark.parametrize("fields", [
        {"content": "c"},
        {"title": "t"},
        {"title": "   ", "content": "c"},
        {"title": "t", "content": "c", "category": "cooking"},
    ])
    def test_create_rejects_invalid_fields(self, persistence, fields):
        with pytest.raises(ValidationFailed):
            PostStore(persistence).create("user-a", fields)

    def test_get_missing_post(self, persistence):
        with pytest.raises(NotFound):
            PostStore(persistence).get("missing")

    def test_increment_views_counts_each_display(self, persistence):
        store = PostStore(persistence)
        post = store.create("user-a", {"title": "Hem finishing", "content": "c"})

        assert store.increment_views(post.id).views == 1
        assert store.increment_views(post.id).views == 2
        assert store.get(post.id).views == 2

    def test_increment_views_missing_post(self, persistence):
        with pytest.raises(NotFound):
            PostStore(persistence).increment_views("missing")

    def test_update_merges_fields(self, persistence):
        store = PostStore(persistence)
        post = store.create("user-a", {"title": "t", "content": "c", "tags": ["x"]})

        updated = store.update(post.id, "user-a", "user", {"title": "new title"})

        assert updated.title == "new title"
        assert updated.content == "c"
        assert updated.tags == ["x"]
        assert updated.updated_at >= post.updated_at

    def test_update_ignores_protected_fields(self, persistence):
        store = PostStore(persistence)
        post = store.create("user-a", {"title": "t", "content": "c"})

        updated = store.update(post.id, "user-a", "user", {"author": "user-b", "views": 99, "isResolved": True})

        assert updated.author_id == "user-a"
        assert updated.views == 0
        assert updated.is_resolved is False

    def test_update_by_other_user_is_forbidden(self, persistence):
        store = PostStore(persistence)
        post = store.create("user-a", {"title": "t", "content": "c"})

        with pytest.raises(Forbidden):
            store.update(post.id, "user-b", "user", {"title": "hijacked"})
        assert store.get(post.id).title == "t"

    def test_update_by_admin(self, persistence):
        store = PostStore(persistence)
        post = store.create("user-a", {"title": "t", "content": "c"})
        assert store.update(post.id, "admin-1", "admin", {"isPinned": True}).is_pinned is True

    def test_update_rejects_blank_title(self, persistence):
        store = PostStore(persistence)
        post = store.create("user-a", {"title": "t", "content": "c"})
        with pytest.raises(ValidationFailed):
            store.update(post.id, "user-a", "user", {"title": ""})

    def test_update_checks_permission_before_patch(self, persistence):
        store = PostStore(persistence)
        post = store.create("user-a", {"title": "t", "content": "c"})
        with pytest.raises(Forbidden):
            store.update(post.id, "user-b", "user", {"title": ""})
        with pytest.raises(NotFound):
            store.update("missing", "user-a", "user", {"title": "", "category": "cooking"})

    def test_tags_cannot_contain_line_breaks(self, persistence):
        store = PostStore(persistence)
        with pytest.raises(ValidationFailed):
            store.create("user-a", {"title": "t", "content": "c", "tags": ["silk\nlinen"]})
        post = store.create("user-a", {"title": "t", "content": "c", "tags": ["silk"]})
        with pytest.raises(ValidationFailed):
            store.update(post.id, "user-a", "user", {"tags": ["a\r\nb"]})

    def test_delete_by_author(self, persistence):
        store = PostStore(persistence)
        post = store.create("user-a", {"title": "t", "content": "c"})

        store.delete(post.id, "user-a", "user")

        with pytest.raises(NotFound):
            store.get(post.id)

    def test_delete_by_other_user_is_forbidden(self, persistence):
        store = PostStore(persistence)
        post = store.create("user-a", {"title": "t", "content": "c"})

        with pytest.raises(Forbidden):
            store.delete(post.id, "user-b", "user")
        assert store.get(post.id).id == post.id

    def test_delete_by_admin(self, persistence):
        store = PostStore(persistence)
        post = store.create("user-a", {"title": "t", "content": "c"})
        store.delete(post.id, "admin-1", "admin")
        with pytest.raises(NotFound):
            store.get(post.id)

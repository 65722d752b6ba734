"""
帖子存储：创建、读取、更新、删除、浏览量
"""
from typing import Any, Mapping, Optional
import logging

from app.core.config import settings
from app.core.errors import Forbidden, NotFound, ValidationFailed
from app.services.forum_aggregate import Category, DEFAULT_CATEGORY, Post, utc_now
from app.services.forum_persistence import PostPersistence
from app.services.forum_policy import Action, can_mutate

logger = logging.getLogger(__name__)

# update 允许覆盖的字段；id / 作者 / 浏览量 / 点赞 / 回复 / 已解决状态由引擎维护
EDITABLE_FIELDS = ("title", "content", "category", "tags", "isPinned", "isLocked")


def _require_text(fields: Mapping[str, Any], name: str) -> str:
    value = fields.get(name)
    if not isinstance(value, str) or not value.strip():
        raise ValidationFailed(f"{name} 不能为空")
    return value.strip() if name == "title" else value


def _parse_category(value: Any) -> Category:
    if value is None:
        return DEFAULT_CATEGORY
    try:
        return Category(value)
    except ValueError:
        raise ValidationFailed(f"未知分类: {value}")


def _parse_tags(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)) or not all(isinstance(t, str) for t in value):
        raise ValidationFailed("tags 必须是字符串列表")
    if any("\n" in t or "\r" in t for t in value):
        raise ValidationFailed("标签不能包含换行")
    return list(value)


def _parse_flag(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValidationFailed(f"{name} 必须是布尔值")
    return value


def _parse_patch(patch: Mapping[str, Any]) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    for name in EDITABLE_FIELDS:
        if name not in patch:
            continue
        value = patch[name]
        if name in ("title", "content"):
            changes[name] = _require_text(patch, name)
        elif name == "category":
            if value is None:
                raise ValidationFailed("category 不能为空")
            changes[name] = _parse_category(value)
        elif name == "tags":
            changes[name] = _parse_tags(value)
        else:
            changes[name] = _parse_flag(name, value)
    return changes


class PostStore:

    def __init__(self, persistence: PostPersistence, max_attempts: Optional[int] = None):
        self.persistence = persistence
        self.max_attempts = max_attempts or settings.FORUM_MAX_WRITE_ATTEMPTS

    def create(self, author_id: str, fields: Mapping[str, Any]) -> Post:
        """作者始终取调用方身份，忽略输入里的 author 字段"""
        post = Post(
            author_id=author_id,
            title=_require_text(fields, "title"),
            content=_require_text(fields, "content"),
            category=_parse_category(fields.get("category")),
            tags=_parse_tags(fields.get("tags")),
        )
        self.persistence.insert(post)
        logger.info("帖子已创建: id=%s author=%s category=%s", post.id, author_id, post.category.value)
        return post

    def get(self, post_id: str) -> Post:
        post = self.persistence.get(post_id)
        if post is None:
            raise NotFound()
        return post

    def increment_views(self, post_id: str) -> Post:
        """详情页读取：浏览量原子 +1 后返回最新聚合"""
        if not self.persistence.increment_views(post_id):
            raise NotFound()
        logger.debug("帖子浏览量 +1: id=%s", post_id)
        return self.get(post_id)

    def update(self, post_id: str, caller_id: str, caller_role: Optional[str], patch: Mapping[str, Any]) -> Post:
        """先判断存在与权限，再校验补丁内容"""

        def apply(post: Post) -> None:
            if not can_mutate(post, caller_id, caller_role, Action.UPDATE):
                raise Forbidden()
            changes = _parse_patch(patch)
            if "title" in changes:
                post.title = changes["title"]
            if "content" in changes:
                post.content = changes["content"]
            if "category" in changes:
                post.category = changes["category"]
            if "tags" in changes:
                post.tags = list(changes["tags"])
            if "isPinned" in changes:
                post.is_pinned = changes["isPinned"]
            if "isLocked" in changes:
                post.is_locked = changes["isLocked"]
            post.touch(utc_now())

        post = self.persistence.mutate(post_id, apply, max_attempts=self.max_attempts)
        fields = sorted(name for name in EDITABLE_FIELDS if name in patch)
        logger.info("帖子已更新: id=%s by=%s fields=%s", post_id, caller_id, fields)
        return post

    def delete(self, post_id: str, caller_id: str, caller_role: Optional[str]) -> None:
        """删除整个聚合（含全部回复）"""
        post = self.get(post_id)
        if not can_mutate(post, caller_id, caller_role, Action.DELETE):
            raise Forbidden()
        if not self.persistence.delete(post_id):
            raise NotFound()
        logger.info("帖子已删除: id=%s by=%s replies=%s", post_id, caller_id, len(post.replies))

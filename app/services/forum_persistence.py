"""
帖子聚合的持久化接口

引擎只依赖 PostPersistence 约定：按 id 读取、插入、按版本号条件替换（CAS）、
删除、原子递增浏览量、条件查询。提供 SQLAlchemy 实现（一行一个聚合，
回复和点赞以 JSON 内嵌）和内存实现（测试用）。
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Optional
import copy
import logging
import threading

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import ConcurrentModification, NotFound, PersistenceFailure
from app.models import ForumPost
from app.services.forum_aggregate import (
    Category,
    LikeSet,
    Post,
    Reply,
    ensure_utc,
    utc_now,
)

logger = logging.getLogger(__name__)

# 排序关键字 -> 聚合字段
SORT_FIELDS: dict[str, str] = {
    "popular": "likeCount",
    "recent": "createdAt",
    "createdAt": "createdAt",
    "updatedAt": "updatedAt",
    "views": "views",
    "title": "title",
    "category": "category",
    "likes": "likeCount",
    "likeCount": "likeCount",
    "replies": "replyCount",
    "replyCount": "replyCount",
}


def resolve_sort_field(sort_by: Optional[str]) -> Optional[str]:
    """未知字段返回 None：只按置顶 + 创建时间排序"""
    if not sort_by:
        return None
    return SORT_FIELDS.get(sort_by)


@dataclass(frozen=True)
class PostQuery:
    category: Optional[str] = None
    search: Optional[str] = None
    sort_by: Optional[str] = None
    offset: int = 0
    limit: int = 20


class PostPersistence(ABC):

    @abstractmethod
    def get(self, post_id: str) -> Optional[Post]:
        ...

    @abstractmethod
    def insert(self, post: Post) -> Post:
        ...

    @abstractmethod
    def replace(self, post: Post, expected_version: int) -> bool:
        """仅当存储中的版本号等于 expected_version 时整体替换（浏览量除外），成功后 post.version 加一"""

    @abstractmethod
    def delete(self, post_id: str) -> bool:
        ...

    @abstractmethod
    def increment_views(self, post_id: str) -> bool:
        ...

    @abstractmethod
    def find(self, query: PostQuery) -> tuple[list[Post], int]:
        """返回 (当前页帖子, 总数)"""

    def mutate(self, post_id: str, apply: Callable[[Post], None], *, max_attempts: int) -> Post:
        """读取 -> 修改 -> 条件写回；版本冲突时重新读取并重放修改"""
        for attempt in range(1, max_attempts + 1):
            post = self.get(post_id)
            if post is None:
                raise NotFound()
            apply(post)
            if self.replace(post, post.version):
                return post
            logger.warning("帖子 %s 写入版本冲突（第 %s/%s 次）", post_id, attempt, max_attempts)
        raise ConcurrentModification()


# 标签本身不含换行，拼接文本里的子串匹配必然落在单个标签内
TAG_SEPARATOR = "\n"


def _tags_text(tags: list[str]) -> str:
    return TAG_SEPARATOR.join(tags)


def _search_matches(post: Post, search: str) -> bool:
    needle = search.lower()
    if needle in post.title.lower() or needle in post.content.lower():
        return True
    return any(needle in tag.lower() for tag in post.tags)


def _sort_value(post: Post, field_name: str):
    if field_name == "likeCount":
        return len(post.likes)
    if field_name == "replyCount":
        return len(post.replies)
    if field_name == "createdAt":
        return post.created_at
    if field_name == "updatedAt":
        return post.updated_at
    if field_name == "category":
        return post.category.value
    return getattr(post, field_name)


class InMemoryPostPersistence(PostPersistence):
    """进程内实现，语义与 SQL 实现一致；读写都做深拷贝，避免调用方共享状态"""

    def __init__(self):
        self._posts: dict[str, Post] = {}
        self._lock = threading.Lock()

    def get(self, post_id: str) -> Optional[Post]:
        with self._lock:
            stored = self._posts.get(post_id)
            return copy.deepcopy(stored) if stored else None

    def insert(self, post: Post) -> Post:
        with self._lock:
            if post.id in self._posts:
                raise PersistenceFailure("帖子 id 重复")
            post.version = 1
            self._posts[post.id] = copy.deepcopy(post)
        return post

    def replace(self, post: Post, expected_version: int) -> bool:
        with self._lock:
            stored = self._posts.get(post.id)
            if stored is None or stored.version != expected_version:
                return False
            updated = copy.deepcopy(post)
            updated.views = stored.views
            updated.version = expected_version + 1
            self._posts[post.id] = updated
        post.version = expected_version + 1
        post.views = updated.views
        return True

    def delete(self, post_id: str) -> bool:
        with self._lock:
            return self._posts.pop(post_id, None) is not None

    def increment_views(self, post_id: str) -> bool:
        with self._lock:
            stored = self._posts.get(post_id)
            if stored is None:
                return False
            stored.views += 1
            stored.touch()
            return True

    def find(self, query: PostQuery) -> tuple[list[Post], int]:
        with self._lock:
            posts = list(self._posts.values())

        if query.category:
            posts = [p for p in posts if p.category.value == query.category]
        if query.search:
            posts = [p for p in posts if _search_matches(p, query.search)]

        # 稳定排序：先排次要键，再排主键
        posts.sort(key=lambda p: p.id)
        posts.sort(key=lambda p: p.created_at, reverse=True)
        field_name = resolve_sort_field(query.sort_by)
        if field_name and field_name != "createdAt":
            posts.sort(key=lambda p: _sort_value(p, field_name), reverse=True)
        posts.sort(key=lambda p: p.is_pinned, reverse=True)

        total = len(posts)
        page = posts[query.offset:query.offset + query.limit]
        return [copy.deepcopy(p) for p in page], total


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_post(row: ForumPost) -> Post:
    return Post(
        id=row.id,
        author_id=row.authorId,
        title=row.title,
        content=row.content,
        category=Category(row.category),
        tags=list(row.tags or []),
        views=row.views or 0,
        likes=LikeSet.from_document(row.likes),
        replies=[Reply.from_document(doc) for doc in row.replies or []],
        is_pinned=bool(row.isPinned),
        is_locked=bool(row.isLocked),
        is_resolved=bool(row.isResolved),
        created_at=ensure_utc(row.createdAt),
        updated_at=ensure_utc(row.updatedAt),
        version=row.version,
    )


def _post_columns(post: Post) -> dict:
    """聚合 -> 列值（不含 id / views / version / createdAt）"""
    return {
        "authorId": post.author_id,
        "title": post.title,
        "content": post.content,
        "category": post.category.value,
        "tags": list(post.tags),
        "tagsText": _tags_text(post.tags),
        "likes": post.likes.to_document(),
        "likeCount": len(post.likes),
        "replies": [r.to_document() for r in post.replies],
        "replyCount": len(post.replies),
        "isPinned": post.is_pinned,
        "isLocked": post.is_locked,
        "isResolved": post.is_resolved,
        "updatedAt": post.updated_at,
    }


class SqlPostPersistence(PostPersistence):
    """SQLAlchemy 实现：每次写操作是单条语句 + 单次提交"""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, action: str):
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("帖子%s失败: %s", action, exc)
            raise PersistenceFailure(f"帖子{action}失败") from exc

    def get(self, post_id: str) -> Optional[Post]:
        with self._guard("读取"):
            row = (
                self.db.query(ForumPost)
                .populate_existing()
                .filter(ForumPost.id == post_id)
                .first()
            )
            return _row_to_post(row) if row else None

    def insert(self, post: Post) -> Post:
        with self._guard("创建"):
            row = ForumPost(
                id=post.id,
                views=post.views,
                version=1,
                createdAt=post.created_at,
                **_post_columns(post),
            )
            self.db.add(row)
            self.db.commit()
        post.version = 1
        return post

    def replace(self, post: Post, expected_version: int) -> bool:
        with self._guard("更新"):
            stmt = (
                update(ForumPost)
                .where(ForumPost.id == post.id, ForumPost.version == expected_version)
                .values(version=expected_version + 1, **_post_columns(post))
                .execution_options(synchronize_session=False)
            )
            matched = self.db.execute(stmt).rowcount
            if matched == 1:
                # 浏览量不参与 CAS，写回后带回存储中的最新值
                views = self.db.execute(
                    select(ForumPost.views).where(ForumPost.id == post.id)
                ).scalar_one()
            self.db.commit()
        if matched != 1:
            return False
        post.version = expected_version + 1
        post.views = views
        return True

    def delete(self, post_id: str) -> bool:
        with self._guard("删除"):
            deleted = (
                self.db.query(ForumPost)
                .filter(ForumPost.id == post_id)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        return deleted > 0

    def increment_views(self, post_id: str) -> bool:
        with self._guard("浏览量更新"):
            stmt = (
                update(ForumPost)
                .where(ForumPost.id == post_id)
                .values(views=ForumPost.views + 1, updatedAt=utc_now())
                .execution_options(synchronize_session=False)
            )
            matched = self.db.execute(stmt).rowcount
            self.db.commit()
        return matched == 1

    def find(self, query: PostQuery) -> tuple[list[Post], int]:
        with self._guard("查询"):
            q = self.db.query(ForumPost)
            if query.category:
                q = q.filter(ForumPost.category == query.category)
            if query.search:
                pattern = f"%{_escape_like(query.search)}%"
                conditions = [
                    ForumPost.title.ilike(pattern, escape="\\"),
                    ForumPost.content.ilike(pattern, escape="\\"),
                ]
                if TAG_SEPARATOR not in query.search:
                    conditions.append(ForumPost.tagsText.ilike(pattern, escape="\\"))
                q = q.filter(or_(*conditions))

            total = q.count()

            order_by = [ForumPost.isPinned.desc()]
            field_name = resolve_sort_field(query.sort_by)
            if field_name and field_name != "createdAt":
                order_by.append(getattr(ForumPost, field_name).desc())
            order_by.extend([ForumPost.createdAt.desc(), ForumPost.id])

            rows = (
                q.populate_existing()
                .order_by(*order_by)
                .offset(query.offset)
                .limit(query.limit)
                .all()
            )
            return [_row_to_post(row) for row in rows], total

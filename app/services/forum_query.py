"""
帖子列表查询：分类过滤、关键词搜索、排序、分页（只读，不计浏览量）
"""
from dataclasses import dataclass
from typing import Optional
import math

from app.core.config import settings
from app.core.errors import ValidationFailed
from app.services.forum_aggregate import Post
from app.services.forum_persistence import PostPersistence, PostQuery

DEFAULT_SORT = "createdAt"


@dataclass(frozen=True)
class PostPage:
    items: list[Post]
    total_count: int
    page: int
    total_pages: int
    limit: int


class QueryEngine:

    def __init__(
        self,
        persistence: PostPersistence,
        default_limit: Optional[int] = None,
        max_limit: Optional[int] = None,
    ):
        self.persistence = persistence
        self.default_limit = default_limit or settings.FORUM_DEFAULT_PAGE_SIZE
        self.max_limit = max_limit or settings.FORUM_MAX_PAGE_SIZE

    def list(
        self,
        category: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: Optional[str] = DEFAULT_SORT,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> PostPage:
        if limit is None:
            limit = self.default_limit
        if page < 1:
            raise ValidationFailed("page 必须大于等于 1")
        if limit < 1:
            raise ValidationFailed("limit 必须大于等于 1")
        limit = min(limit, self.max_limit)

        query = PostQuery(
            category=category or None,
            search=search or None,
            sort_by=sort_by or DEFAULT_SORT,
            offset=(page - 1) * limit,
            limit=limit,
        )
        items, total = self.persistence.find(query)
        return PostPage(
            items=items,
            total_count=total,
            page=page,
            total_pages=math.ceil(total / limit),
            limit=limit,
        )

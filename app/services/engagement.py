"""
点赞：帖子与回复的点赞 / 取消点赞
"""
from typing import Optional
import logging

from app.core.config import settings
from app.core.errors import Forbidden
from app.services.forum_aggregate import Post, utc_now
from app.services.forum_persistence import PostPersistence
from app.services.forum_policy import Action, can_mutate

logger = logging.getLogger(__name__)


class EngagementEngine:

    def __init__(self, persistence: PostPersistence, max_attempts: Optional[int] = None):
        self.persistence = persistence
        self.max_attempts = max_attempts or settings.FORUM_MAX_WRITE_ATTEMPTS

    def toggle_like(self, post_id: str, user_id: str, reply_id: Optional[str] = None) -> Post:
        """reply_id 为空时给帖子点赞，否则给指定回复点赞；连续两次调用恢复原状"""

        def apply(post: Post) -> None:
            if not can_mutate(post, user_id, None, Action.LIKE):
                raise Forbidden()
            target = post if reply_id is None else post.require_reply(reply_id)
            now = utc_now()
            liked = target.likes.toggle(user_id, now)
            post.touch(now)
            logger.debug(
                "点赞状态变更: post=%s reply=%s user=%s liked=%s",
                post_id, reply_id, user_id, liked,
            )

        return self.persistence.mutate(post_id, apply, max_attempts=self.max_attempts)

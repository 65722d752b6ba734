"""
回复与版务：追加回复、采纳答案、置顶 / 锁定
"""
from typing import Iterable, Optional
import logging

from app.core.config import settings
from app.core.errors import Forbidden, Locked, ValidationFailed
from app.services.forum_aggregate import Attachment, Post, Reply, utc_now
from app.services.forum_persistence import PostPersistence
from app.services.forum_policy import Action, can_mutate

logger = logging.getLogger(__name__)


class ModerationEngine:

    def __init__(self, persistence: PostPersistence, max_attempts: Optional[int] = None):
        self.persistence = persistence
        self.max_attempts = max_attempts or settings.FORUM_MAX_WRITE_ATTEMPTS

    def add_reply(
        self,
        post_id: str,
        author_id: str,
        content: str,
        attachments: Optional[Iterable[Attachment]] = None,
    ) -> Post:
        if not isinstance(content, str) or not content.strip():
            raise ValidationFailed("回复内容不能为空")
        attachment_list = list(attachments or [])

        def apply(post: Post) -> None:
            if post.is_locked:
                raise Locked()
            if not can_mutate(post, author_id, None, Action.REPLY):
                raise Forbidden()
            now = utc_now()
            post.append_reply(
                Reply(author_id=author_id, content=content, attachments=list(attachment_list), created_at=now)
            )
            post.touch(now)

        post = self.persistence.mutate(post_id, apply, max_attempts=self.max_attempts)
        logger.info("新回复: post=%s author=%s replies=%s", post_id, author_id, len(post.replies))
        return post

    def mark_as_solution(self, post_id: str, caller_id: str, reply_id: str) -> Post:
        """只有帖子作者可以采纳；清除旧答案、设置新答案、标记已解决在同一次写入中完成"""

        def apply(post: Post) -> None:
            if not can_mutate(post, caller_id, None, Action.MARK_SOLUTION):
                raise Forbidden()
            post.mark_solution(reply_id)
            post.touch()

        post = self.persistence.mutate(post_id, apply, max_attempts=self.max_attempts)
        logger.info("采纳答案: post=%s reply=%s", post_id, reply_id)
        return post

    def set_moderation_flags(
        self,
        post_id: str,
        caller_id: str,
        caller_role: Optional[str],
        is_pinned: Optional[bool] = None,
        is_locked: Optional[bool] = None,
    ) -> Post:

        def apply(post: Post) -> None:
            if not can_mutate(post, caller_id, caller_role, Action.MODERATE):
                raise Forbidden()
            if is_pinned is not None:
                post.is_pinned = is_pinned
            if is_locked is not None:
                post.is_locked = is_locked
            post.touch()

        post = self.persistence.mutate(post_id, apply, max_attempts=self.max_attempts)
        logger.info(
            "版务标记变更: post=%s by=%s pinned=%s locked=%s",
            post_id, caller_id, post.is_pinned, post.is_locked,
        )
        return post

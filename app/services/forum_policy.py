"""
论坛写操作的权限规则
"""
from enum import Enum
from typing import Optional

from app.core.config import settings
from app.services.forum_aggregate import Post


class Action(str, Enum):
    UPDATE = "update"
    DELETE = "delete"
    MODERATE = "moderate"            # 置顶 / 锁定
    MARK_SOLUTION = "mark_solution"  # 采纳答案
    REPLY = "reply"
    LIKE = "like"


# 作者或管理员可执行
_OWNER_OR_ADMIN = {Action.UPDATE, Action.DELETE, Action.MODERATE}
# 任意已登录用户可执行
_ANY_CALLER = {Action.REPLY, Action.LIKE}


def can_mutate(post: Post, caller_id: Optional[str], caller_role: Optional[str], action: Action) -> bool:
    if not caller_id:
        return False
    is_author = caller_id == post.author_id
    if action in _ANY_CALLER:
        return True
    if action == Action.MARK_SOLUTION:
        return is_author
    if action in _OWNER_OR_ADMIN:
        return is_author or caller_role == settings.ADMIN_ROLE
    return False

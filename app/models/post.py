from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, JSON, Index
from app.core.database import Base
import uuid
from datetime import datetime, timezone


def utc_now():
    """返回带时区的 UTC 时间"""
    return datetime.now(timezone.utc)


class ForumPost(Base):
    """论坛帖子聚合（回复与点赞以 JSON 文档内嵌，整行原子更新）"""
    __tablename__ = "forum_post"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    authorId = Column(String(191), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    category = Column(String(32), nullable=False, default="general", index=True)
    tags = Column(JSON, nullable=False, default=list)  # 有序标签，允许重复
    tagsText = Column(Text, nullable=False, default="")  # 标签拼接文本，仅用于关键词检索
    views = Column(Integer, nullable=False, default=0)
    likes = Column(JSON, nullable=False, default=dict)  # {userId: ISO 时间}
    likeCount = Column(Integer, nullable=False, default=0)
    replies = Column(JSON, nullable=False, default=list)  # 回复文档列表，按时间顺序
    replyCount = Column(Integer, nullable=False, default=0)
    isPinned = Column(Boolean, nullable=False, default=False)
    isLocked = Column(Boolean, nullable=False, default=False)
    isResolved = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False, default=1)  # 乐观并发版本号
    createdAt = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updatedAt = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_forum_post_pinned_created", "isPinned", "createdAt"),
    )

    def __repr__(self):
        return f"<ForumPost {self.title}>"

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from app.services.forum_aggregate import Attachment, Category, DEFAULT_CATEGORY, LikeSet, Post, Reply


# ============ Post Schemas ============
class PostCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    category: Category = DEFAULT_CATEGORY
    tags: list[str] = Field(default_factory=list)


class PostUpdate(BaseModel):
    """内容校验在权限判断之后由 PostStore 完成，这里只约束类型"""
    title: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None
    isPinned: Optional[bool] = None
    isLocked: Optional[bool] = None


class ModerationFlagsUpdate(BaseModel):
    isPinned: Optional[bool] = None
    isLocked: Optional[bool] = None


# ============ Reply Schemas ============
class AttachmentSchema(BaseModel):
    url: Optional[str] = None
    filename: Optional[str] = None
    fileType: Optional[str] = None

    def to_attachment(self) -> Attachment:
        return Attachment(url=self.url, filename=self.filename, file_type=self.fileType)


class ReplyCreate(BaseModel):
    content: str = Field(..., min_length=1)
    attachments: list[AttachmentSchema] = Field(default_factory=list)


# ============ Response Schemas ============
class LikeResponse(BaseModel):
    userId: str
    createdAt: datetime


def _likes(likes: LikeSet) -> list[LikeResponse]:
    return [LikeResponse(userId=user_id, createdAt=created_at) for user_id, created_at in likes.items()]


class ReplyResponse(BaseModel):
    id: str
    author: str
    content: str
    attachments: list[AttachmentSchema]
    likes: list[LikeResponse]
    likeCount: int
    isSolution: bool
    createdAt: datetime

    @classmethod
    def from_reply(cls, reply: Reply) -> "ReplyResponse":
        return cls(
            id=reply.id,
            author=reply.author_id,
            content=reply.content,
            attachments=[
                AttachmentSchema(url=a.url, filename=a.filename, fileType=a.file_type)
                for a in reply.attachments
            ],
            likes=_likes(reply.likes),
            likeCount=len(reply.likes),
            isSolution=reply.is_solution,
            createdAt=reply.created_at,
        )


class PostResponse(BaseModel):
    id: str
    author: str
    title: str
    content: str
    category: Category
    tags: list[str]
    views: int
    likes: list[LikeResponse]
    likeCount: int
    replies: list[ReplyResponse]
    replyCount: int
    isPinned: bool
    isLocked: bool
    isResolved: bool
    createdAt: datetime
    updatedAt: datetime

    @classmethod
    def from_post(cls, post: Post) -> "PostResponse":
        return cls(
            id=post.id,
            author=post.author_id,
            title=post.title,
            content=post.content,
            category=post.category,
            tags=list(post.tags),
            views=post.views,
            likes=_likes(post.likes),
            likeCount=len(post.likes),
            replies=[ReplyResponse.from_reply(r) for r in post.replies],
            replyCount=len(post.replies),
            isPinned=post.is_pinned,
            isLocked=post.is_locked,
            isResolved=post.is_resolved,
            createdAt=post.created_at,
            updatedAt=post.updated_at,
        )


# ============ Envelopes ============
class PostEnvelope(BaseModel):
    success: bool = True
    data: Optional[PostResponse] = None
    message: Optional[str] = None


class PostListEnvelope(BaseModel):
    success: bool = True
    count: int
    total: int
    page: int
    pages: int
    data: list[PostResponse]


class CategoryListEnvelope(BaseModel):
    success: bool = True
    data: list[Category]

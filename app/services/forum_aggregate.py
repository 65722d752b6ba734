"""
论坛帖子聚合

Post 是聚合根，独占其 Reply 列表；Reply 没有独立的生命周期，只能通过
所属帖子内的 id 定位。点赞按用户 id 建索引，同一用户天然只能有一条记录。
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator, Optional
import uuid

from app.core.errors import NotFound


class Category(str, Enum):
    """帖子分类"""
    GENERAL = "general"
    TECHNIQUES = "techniques"
    BUSINESS = "business"
    TOOLS = "tools"
    FABRIC = "fabric"
    DESIGN = "design"
    TROUBLESHOOTING = "troubleshooting"


DEFAULT_CATEGORY = Category.GENERAL


def utc_now() -> datetime:
    """返回带时区的 UTC 时间"""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    # SQLite 读回来的时间不带时区
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(str(value)))


def new_id() -> str:
    return str(uuid.uuid4())


class LikeSet:
    """点赞集合：userId -> 点赞时间"""

    def __init__(self, entries: Optional[dict[str, datetime]] = None):
        self._entries: dict[str, datetime] = dict(entries or {})

    def toggle(self, user_id: str, now: Optional[datetime] = None) -> bool:
        """已点赞则取消，否则点赞；返回操作后的点赞状态"""
        if user_id in self._entries:
            del self._entries[user_id]
            return False
        self._entries[user_id] = now or utc_now()
        return True

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LikeSet):
            return NotImplemented
        return self._entries == other._entries

    def items(self) -> list[tuple[str, datetime]]:
        """按点赞时间排序的 (userId, createdAt)"""
        return sorted(self._entries.items(), key=lambda item: item[1])

    def to_document(self) -> dict[str, str]:
        return {user_id: created_at.isoformat() for user_id, created_at in self._entries.items()}

    @classmethod
    def from_document(cls, doc: Any) -> "LikeSet":
        if not doc:
            return cls()
        return cls({str(user_id): parse_timestamp(ts) for user_id, ts in doc.items()})


@dataclass
class Attachment:
    """附件元数据（不负责存储文件本身）"""
    url: Optional[str] = None
    filename: Optional[str] = None
    file_type: Optional[str] = None

    def to_document(self) -> dict[str, Optional[str]]:
        return {"url": self.url, "filename": self.filename, "fileType": self.file_type}

    @classmethod
    def from_document(cls, doc: dict) -> "Attachment":
        return cls(url=doc.get("url"), filename=doc.get("filename"), file_type=doc.get("fileType"))


@dataclass
class Reply:
    author_id: str
    content: str
    id: str = field(default_factory=new_id)
    attachments: list[Attachment] = field(default_factory=list)
    likes: LikeSet = field(default_factory=LikeSet)
    is_solution: bool = False
    created_at: datetime = field(default_factory=utc_now)

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "authorId": self.author_id,
            "content": self.content,
            "attachments": [a.to_document() for a in self.attachments],
            "likes": self.likes.to_document(),
            "isSolution": self.is_solution,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_document(cls, doc: dict) -> "Reply":
        return cls(
            id=doc["id"],
            author_id=doc["authorId"],
            content=doc["content"],
            attachments=[Attachment.from_document(a) for a in doc.get("attachments") or []],
            likes=LikeSet.from_document(doc.get("likes")),
            is_solution=bool(doc.get("isSolution", False)),
            created_at=parse_timestamp(doc["createdAt"]),
        )


@dataclass
class Post:
    author_id: str
    title: str
    content: str
    id: str = field(default_factory=new_id)
    category: Category = DEFAULT_CATEGORY
    tags: list[str] = field(default_factory=list)
    views: int = 0
    likes: LikeSet = field(default_factory=LikeSet)
    replies: list[Reply] = field(default_factory=list)
    is_pinned: bool = False
    is_locked: bool = False
    is_resolved: bool = False
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
    version: int = 0

    def __post_init__(self):
        if self.updated_at is None:
            self.updated_at = self.created_at
        self._reply_index: dict[str, int] = {r.id: i for i, r in enumerate(self.replies)}

    def touch(self, now: Optional[datetime] = None) -> None:
        self.updated_at = now or utc_now()

    def find_reply(self, reply_id: str) -> Optional[Reply]:
        index = self._reply_index.get(reply_id)
        if index is None:
            return None
        return self.replies[index]

    def require_reply(self, reply_id: str) -> Reply:
        reply = self.find_reply(reply_id)
        if reply is None:
            raise NotFound("回复不存在")
        return reply

    def append_reply(self, reply: Reply) -> Reply:
        # 同一帖子内回复 id 唯一
        while reply.id in self._reply_index:
            reply.id = new_id()
        self._reply_index[reply.id] = len(self.replies)
        self.replies.append(reply)
        return reply

    def mark_solution(self, reply_id: str) -> Reply:
        """先清空所有回复的采纳标记，再标记指定回复，保证至多一个采纳答案"""
        chosen = self.require_reply(reply_id)
        for reply in self.replies:
            reply.is_solution = False
        chosen.is_solution = True
        self.is_resolved = True
        return chosen

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from app.core.database import get_db
from app.core.security import CallerIdentity, get_current_caller
from app.schemas.forum import (
    CategoryListEnvelope,
    ModerationFlagsUpdate,
    PostCreate,
    PostEnvelope,
    PostListEnvelope,
    PostResponse,
    PostUpdate,
    ReplyCreate,
)
from app.services.engagement import EngagementEngine
from app.services.forum_aggregate import Category
from app.services.forum_persistence import PostPersistence, SqlPostPersistence
from app.services.forum_query import DEFAULT_SORT, QueryEngine
from app.services.moderation import ModerationEngine
from app.services.post_store import PostStore

router = APIRouter()


def get_post_persistence(db: Session = Depends(get_db)) -> PostPersistence:
    """帖子持久化依赖注入（测试中可替换为内存实现）"""
    return SqlPostPersistence(db)


def get_post_store(persistence: PostPersistence = Depends(get_post_persistence)) -> PostStore:
    return PostStore(persistence)


def get_query_engine(persistence: PostPersistence = Depends(get_post_persistence)) -> QueryEngine:
    return QueryEngine(persistence)


def get_engagement_engine(persistence: PostPersistence = Depends(get_post_persistence)) -> EngagementEngine:
    return EngagementEngine(persistence)


def get_moderation_engine(persistence: PostPersistence = Depends(get_post_persistence)) -> ModerationEngine:
    return ModerationEngine(persistence)


@router.get("/posts", response_model=PostListEnvelope)
async def list_posts(
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    sortBy: str = Query(DEFAULT_SORT),
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    engine: QueryEngine = Depends(get_query_engine),
):
    """帖子列表（置顶优先，不增加浏览量）"""
    result = engine.list(category=category, search=search, sort_by=sortBy, page=page, limit=limit)
    return PostListEnvelope(
        count=len(result.items),
        total=result.total_count,
        page=result.page,
        pages=result.total_pages,
        data=[PostResponse.from_post(p) for p in result.items],
    )


@router.get("/posts/categories", response_model=CategoryListEnvelope)
async def list_categories():
    """帖子分类枚举"""
    return CategoryListEnvelope(data=list(Category))


@router.get("/posts/{post_id}", response_model=PostEnvelope)
async def get_post(post_id: str, store: PostStore = Depends(get_post_store)):
    """帖子详情（浏览量 +1）"""
    post = store.increment_views(post_id)
    return PostEnvelope(data=PostResponse.from_post(post))


@router.post("/posts", response_model=PostEnvelope, status_code=status.HTTP_201_CREATED)
async def create_post(
    payload: PostCreate,
    caller: CallerIdentity = Depends(get_current_caller),
    store: PostStore = Depends(get_post_store),
):
    """发帖（作者为当前用户）"""
    post = store.create(caller.user_id, payload.model_dump(mode="json"))
    return PostEnvelope(data=PostResponse.from_post(post))


@router.put("/posts/{post_id}", response_model=PostEnvelope)
async def update_post(
    post_id: str,
    payload: PostUpdate,
    caller: CallerIdentity = Depends(get_current_caller),
    store: PostStore = Depends(get_post_store),
):
    """编辑帖子（作者或管理员），只覆盖请求中出现的字段"""
    patch = payload.model_dump(mode="json", exclude_unset=True)
    post = store.update(post_id, caller.user_id, caller.role, patch)
    return PostEnvelope(data=PostResponse.from_post(post))


@router.delete("/posts/{post_id}", response_model=PostEnvelope)
async def delete_post(
    post_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    store: PostStore = Depends(get_post_store),
):
    """删除帖子及其全部回复（作者或管理员）"""
    store.delete(post_id, caller.user_id, caller.role)
    return PostEnvelope(message="帖子已删除")


@router.post("/posts/{post_id}/reply", response_model=PostEnvelope)
async def add_reply(
    post_id: str,
    payload: ReplyCreate,
    caller: CallerIdentity = Depends(get_current_caller),
    engine: ModerationEngine = Depends(get_moderation_engine),
):
    """回复帖子（已锁定的帖子不可回复）"""
    post = engine.add_reply(
        post_id,
        caller.user_id,
        payload.content,
        [a.to_attachment() for a in payload.attachments],
    )
    return PostEnvelope(data=PostResponse.from_post(post))


@router.post("/posts/{post_id}/like", response_model=PostEnvelope)
async def toggle_post_like(
    post_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    engine: EngagementEngine = Depends(get_engagement_engine),
):
    """点赞 / 取消点赞帖子"""
    post = engine.toggle_like(post_id, caller.user_id)
    return PostEnvelope(data=PostResponse.from_post(post))


@router.post("/posts/{post_id}/replies/{reply_id}/like", response_model=PostEnvelope)
async def toggle_reply_like(
    post_id: str,
    reply_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    engine: EngagementEngine = Depends(get_engagement_engine),
):
    """点赞 / 取消点赞回复"""
    post = engine.toggle_like(post_id, caller.user_id, reply_id=reply_id)
    return PostEnvelope(data=PostResponse.from_post(post))


@router.put("/posts/{post_id}/replies/{reply_id}/solution", response_model=PostEnvelope)
async def mark_as_solution(
    post_id: str,
    reply_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    engine: ModerationEngine = Depends(get_moderation_engine),
):
    """采纳答案（仅帖子作者）"""
    post = engine.mark_as_solution(post_id, caller.user_id, reply_id)
    return PostEnvelope(data=PostResponse.from_post(post))


@router.put("/posts/{post_id}/moderation", response_model=PostEnvelope)
async def set_moderation_flags(
    post_id: str,
    payload: ModerationFlagsUpdate,
    caller: CallerIdentity = Depends(get_current_caller),
    engine: ModerationEngine = Depends(get_moderation_engine),
):
    """置顶 / 锁定（作者或管理员）"""
    post = engine.set_moderation_flags(
        post_id,
        caller.user_id,
        caller.role,
        is_pinned=payload.isPinned,
        is_locked=payload.isLocked,
    )
    return PostEnvelope(data=PostResponse.from_post(post))

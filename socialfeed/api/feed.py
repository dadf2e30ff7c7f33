from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from common.config import get_settings
from common.database import get_async_session, async_session_maker
from ..services.cache_service import CacheService
from ..services.feed_service import FeedCacheConfig, FeedComposer, FeedService
from ..services.follow_service import FollowService
from ..services.post_service import PostStore
from .auth import get_current_user_id

router = APIRouter()
settings = get_settings()


def get_session_maker():
    return async_session_maker


def get_cache_service(request: Request) -> Optional[CacheService]:
    """Get cache service from app state"""
    return getattr(request.app.state, "cache_service", None)


def get_feed_service(
    request: Request,
    db: AsyncSession = Depends(get_async_session),
    session_maker=Depends(get_session_maker)
) -> FeedService:
    state = request.app.state
    metrics = getattr(state, "metrics", None)
    composer = FeedComposer(FollowService(db), PostStore(session_maker), metrics)
    return FeedService(
        composer,
        get_cache_service(request),
        getattr(state, "feed_cache_config", FeedCacheConfig()),
        metrics
    )


@router.get("/")
async def get_feed(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.feed_default_limit, ge=1, le=settings.feed_max_limit),
    user_id: int = Depends(get_current_user_id),
    feed_service: FeedService = Depends(get_feed_service)
):
    """
    Posts by the current user and everyone they follow, newest first.
    Pages are cached for the configured TTL, so recent changes may take up to
    that long to appear unless a post mutation invalidated them.
    """
    result = await feed_service.get_feed(user_id, page, limit)
    return {"success": True, "data": result}

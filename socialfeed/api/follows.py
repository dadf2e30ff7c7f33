from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging
from common.database import get_async_session
from common.schemas import User, FollowToggle
from ..services.feed_service import FeedService
from ..services.follow_service import FollowService
from ..services.user_service import UserService
from .auth import get_current_user_id
from .feed import get_feed_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/{user_id}")
async def toggle_follow(
    user_id: int,
    follower_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_session),
    feed_service: FeedService = Depends(get_feed_service)
):
    if follower_id == user_id:
        raise HTTPException(status_code=400, detail="Cannot follow yourself")

    user_service = UserService(db)
    follower = await user_service.get_user(follower_id)
    followed = await user_service.get_user(user_id)
    if not follower or not followed:
        raise HTTPException(status_code=404, detail="User not found")

    following = await FollowService(db).toggle_follow(follower_id, user_id)

    # The follower's own feed now has a different author set
    try:
        await feed_service.invalidate_user_pages(follower_id)
    except Exception as e:
        logger.warning(f"Could not invalidate feed pages of user {follower_id}: {e}")

    return {"success": True, "data": FollowToggle(following=following)}


@router.get("/{user_id}/followers", response_model=List[User])
async def get_followers(
    user_id: int,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    db: AsyncSession = Depends(get_async_session)
):
    return await FollowService(db).get_followers(user_id, skip=skip, limit=limit)


@router.get("/{user_id}/following", response_model=List[User])
async def get_following(
    user_id: int,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    db: AsyncSession = Depends(get_async_session)
):
    return await FollowService(db).get_following(user_id, skip=skip, limit=limit)

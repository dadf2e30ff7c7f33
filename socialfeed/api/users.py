from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from common.database import get_async_session
from common.schemas import User, UserCreate, UserProfile, UserUpdate
from ..services.feed_service import FeedService
from ..services.post_service import PostService
from ..services.user_service import UserService, UsernameTaken
from .auth import get_current_user_id, get_optional_user_id
from .feed import get_feed_service

router = APIRouter()


@router.post("/", response_model=User, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_async_session)
):
    user = await UserService(db).create_user(user_data)
    if not user:
        raise HTTPException(status_code=400, detail="Username or email already registered")
    return user


@router.put("/profile", response_model=User)
async def update_profile(
    user_data: UserUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_session),
    feed_service: FeedService = Depends(get_feed_service)
):
    try:
        user = await UserService(db).update_profile(user_id, user_data)
    except UsernameTaken:
        raise HTTPException(status_code=409, detail="Username already taken")
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    # Cached pages embed the author summary
    await feed_service.invalidate_feed_cache(user_id)
    return user


@router.get("/{user_id}", response_model=UserProfile)
async def get_user(
    user_id: int,
    db: AsyncSession = Depends(get_async_session)
):
    profile = await UserService(db).get_profile(user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")
    return profile


@router.get("/{user_id}/posts")
async def get_user_posts(
    user_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    viewer_id: Optional[int] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_async_session)
):
    if not await UserService(db).get_user(user_id):
        raise HTTPException(status_code=404, detail="User not found")

    result = await PostService(db).list_posts(page, limit, viewer_id, author_id=user_id)
    return {"success": True, "data": result}

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from common.database import get_async_session
from common.schemas import PostCreate, PostUpdate
from ..services.feed_service import FeedService
from ..services.invalidation import InvalidationDispatcher
from ..services.post_service import PostService, PostNotFound, NotPostAuthor
from ..services.user_service import UserService
from .auth import get_current_user_id, get_optional_user_id
from .feed import get_feed_service

router = APIRouter()


def get_post_service(
    request: Request,
    db: AsyncSession = Depends(get_async_session),
    feed_service: FeedService = Depends(get_feed_service)
) -> PostService:
    publisher = getattr(request.app.state, "publisher", None)
    return PostService(db, on_mutation=InvalidationDispatcher(feed_service, publisher))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_post(
    post_data: PostCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_session),
    service: PostService = Depends(get_post_service)
):
    # Verify user exists
    user = await UserService(db).get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    try:
        post = await service.create_post(user_id, post_data)
    except PostNotFound:
        # Idempotency key belongs to a post that has since been deleted
        raise HTTPException(status_code=409, detail="Idempotency key already used")
    return {"success": True, "data": post}


@router.get("/")
async def list_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    viewer_id: Optional[int] = Depends(get_optional_user_id),
    service: PostService = Depends(get_post_service)
):
    result = await service.list_posts(page, limit, viewer_id)
    return {"success": True, "data": result}


@router.get("/{post_id}")
async def get_post(
    post_id: int,
    viewer_id: Optional[int] = Depends(get_optional_user_id),
    service: PostService = Depends(get_post_service)
):
    try:
        post = await service.get_post(post_id, viewer_id)
    except PostNotFound:
        raise HTTPException(status_code=404, detail="Post not found")
    return {"success": True, "data": post}


@router.put("/{post_id}")
async def update_post(
    post_id: int,
    post_data: PostUpdate,
    user_id: int = Depends(get_current_user_id),
    service: PostService = Depends(get_post_service)
):
    try:
        post = await service.update_post(post_id, user_id, post_data.caption)
    except PostNotFound:
        raise HTTPException(status_code=404, detail="Post not found")
    except NotPostAuthor:
        raise HTTPException(status_code=403, detail="Not authorized to update this post")
    return {"success": True, "data": post}


@router.delete("/{post_id}")
async def delete_post(
    post_id: int,
    user_id: int = Depends(get_current_user_id),
    service: PostService = Depends(get_post_service)
):
    try:
        await service.delete_post(post_id, user_id)
    except PostNotFound:
        raise HTTPException(status_code=404, detail="Post not found")
    except NotPostAuthor:
        raise HTTPException(status_code=403, detail="Not authorized to delete this post")
    return {"success": True, "message": "Post deleted successfully"}


@router.post("/{post_id}/like")
async def toggle_like(
    post_id: int,
    user_id: int = Depends(get_current_user_id),
    service: PostService = Depends(get_post_service)
):
    try:
        result = await service.toggle_like(post_id, user_id)
    except PostNotFound:
        raise HTTPException(status_code=404, detail="Post not found")
    return {"success": True, "data": result}


@router.get("/{post_id}/likes")
async def get_post_likes(
    post_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_async_session)
):
    try:
        result = await PostService(db).list_post_likes(post_id, page, limit)
    except PostNotFound:
        raise HTTPException(status_code=404, detail="Post not found")
    return {"success": True, "data": result}

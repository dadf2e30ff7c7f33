from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from common.database import get_async_session
from common.schemas import CommentCreate, CommentUpdate
from ..services.comment_service import CommentService, CommentNotFound, NotCommentAuthor
from ..services.post_service import PostNotFound
from .auth import get_current_user_id

router = APIRouter()


@router.post("/posts/{post_id}/comments", status_code=status.HTTP_201_CREATED)
async def create_comment(
    post_id: int,
    comment_data: CommentCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_session)
):
    try:
        comment = await CommentService(db).create_comment(post_id, user_id, comment_data.content)
    except PostNotFound:
        raise HTTPException(status_code=404, detail="Post not found")
    return {"success": True, "data": comment}


@router.get("/posts/{post_id}/comments")
async def get_comments(
    post_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_async_session)
):
    try:
        result = await CommentService(db).list_comments(post_id, page, limit)
    except PostNotFound:
        raise HTTPException(status_code=404, detail="Post not found")
    return {"success": True, "data": result}


@router.put("/comments/{comment_id}")
async def update_comment(
    comment_id: int,
    comment_data: CommentUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_session)
):
    try:
        comment = await CommentService(db).update_comment(comment_id, user_id, comment_data.content)
    except CommentNotFound:
        raise HTTPException(status_code=404, detail="Comment not found")
    except NotCommentAuthor:
        raise HTTPException(status_code=403, detail="Not authorized to update this comment")
    return {"success": True, "data": comment}


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_session)
):
    try:
        await CommentService(db).delete_comment(comment_id, user_id)
    except CommentNotFound:
        raise HTTPException(status_code=404, detail="Comment not found")
    except NotCommentAuthor:
        raise HTTPException(status_code=403, detail="Not authorized to delete this comment")
    return {"success": True, "message": "Comment deleted successfully"}

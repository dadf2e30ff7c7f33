from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from datetime import datetime
import logging
from common.models import Comment, Post, User
from common.schemas import AuthorSummary, CommentOut, CommentPage
from .feed_service import build_pagination
from .post_service import PostNotFound

logger = logging.getLogger(__name__)


class CommentNotFound(Exception):
    pass


class NotCommentAuthor(Exception):
    pass


def _to_comment(comment: Comment, author: User) -> CommentOut:
    return CommentOut(
        id=comment.id,
        post_id=comment.post_id,
        content=comment.content,
        author=AuthorSummary.model_validate(author),
        created_at=comment.created_at,
        updated_at=comment.updated_at,
    )


class CommentService:
    """
    Comments on live posts.

    Comment writes change a post's comment_count but do not invalidate cached
    feed pages; cached counts catch up when the page expires.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_comment(self, post_id: int, user_id: int, content: str) -> CommentOut:
        await self._require_live_post(post_id)

        comment = Comment(post_id=post_id, author_id=user_id, content=content)
        self.db.add(comment)
        await self.db.commit()
        await self.db.refresh(comment)

        logger.info(f"User {user_id} commented on post {post_id}")
        return await self._load(comment.id)

    async def list_comments(self, post_id: int, page: int = 1, limit: int = 20) -> CommentPage:
        """Comments of a post, oldest first"""
        await self._require_live_post(post_id)

        skip = (page - 1) * limit
        result = await self.db.execute(
            select(Comment, User)
            .join(User, User.id == Comment.author_id)
            .filter(Comment.post_id == post_id)
            .order_by(Comment.created_at, Comment.id)
            .offset(skip)
            .limit(limit)
        )
        comments = [_to_comment(comment, author) for comment, author in result.all()]

        count = await self.db.execute(select(func.count(Comment.id)).filter(Comment.post_id == post_id))
        return CommentPage(comments=comments, pagination=build_pagination(page, limit, count.scalar_one()))

    async def update_comment(self, comment_id: int, user_id: int, content: str) -> CommentOut:
        comment = await self._get_owned_comment(comment_id, user_id)
        comment.content = content
        comment.updated_at = datetime.utcnow()
        await self.db.commit()
        return await self._load(comment_id)

    async def delete_comment(self, comment_id: int, user_id: int) -> None:
        comment = await self._get_owned_comment(comment_id, user_id)
        await self.db.delete(comment)
        await self.db.commit()

    async def _require_live_post(self, post_id: int):
        result = await self.db.execute(
            select(Post.id).filter(Post.id == post_id, Post.deleted_at.is_(None))
        )
        if result.scalar_one_or_none() is None:
            raise PostNotFound(post_id)

    async def _get_owned_comment(self, comment_id: int, user_id: int) -> Comment:
        result = await self.db.execute(select(Comment).filter(Comment.id == comment_id))
        comment = result.scalar_one_or_none()
        if comment is None:
            raise CommentNotFound(comment_id)
        if comment.author_id != user_id:
            raise NotCommentAuthor(comment_id)
        return comment

    async def _load(self, comment_id: int) -> CommentOut:
        result = await self.db.execute(
            select(Comment, User)
            .join(User, User.id == Comment.author_id)
            .filter(Comment.id == comment_id)
        )
        comment, author = result.one()
        return _to_comment(comment, author)

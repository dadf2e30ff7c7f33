from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select, desc, func
from typing import Awaitable, Callable, List, Optional, Sequence, Set
from datetime import datetime
import logging
from common.models import Post, User, Like, Comment
from common.schemas import AuthorSummary, PostCreate, FeedPost, FeedPage, LikeToggle, PostLike, PostLikesPage
from .stores import PostRecord
from .feed_service import to_feed_post, build_pagination

logger = logging.getLogger(__name__)

# Called after a post is created, updated or deleted: (author_id, post_id, action)
MutationHook = Callable[[int, int, str], Awaitable[None]]


class PostNotFound(Exception):
    pass


class NotPostAuthor(Exception):
    pass


def _live_posts_query():
    """Live posts joined with their author and like/comment counts"""
    like_count = (
        select(func.count(Like.id))
        .where(Like.post_id == Post.id)
        .correlate(Post)
        .scalar_subquery()
    )
    comment_count = (
        select(func.count(Comment.id))
        .where(Comment.post_id == Post.id)
        .correlate(Post)
        .scalar_subquery()
    )
    return (
        select(Post, User, like_count.label("like_count"), comment_count.label("comment_count"))
        .join(User, User.id == Post.author_id)
        .filter(Post.deleted_at.is_(None))
    )


def _to_record(row) -> PostRecord:
    post, author, like_count, comment_count = row
    return PostRecord(
        id=post.id,
        author_id=post.author_id,
        caption=post.caption,
        media_urls=list(post.media_urls or []),
        created_at=post.created_at,
        updated_at=post.updated_at,
        author_username=author.username,
        author_first_name=author.first_name,
        author_last_name=author.last_name,
        author_avatar_url=author.avatar_url,
        like_count=like_count or 0,
        comment_count=comment_count or 0,
    )


async def _liked_post_ids(db: AsyncSession, user_id: Optional[int], post_ids: Sequence[int]) -> Set[int]:
    if user_id is None or not post_ids:
        return set()
    result = await db.execute(
        select(Like.post_id).filter(Like.user_id == user_id, Like.post_id.in_(post_ids))
    )
    return {row[0] for row in result}


class PostStore:
    """
    Content store read by the feed composer.

    Every query runs in its own short-lived session so the page query and the
    count query can be awaited concurrently.
    """

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def find_posts(self, author_ids: Sequence[int], offset: int, limit: int) -> List[PostRecord]:
        async with self.session_maker() as db:
            result = await db.execute(
                _live_posts_query()
                .filter(Post.author_id.in_(list(author_ids)))
                .order_by(desc(Post.created_at), desc(Post.id))
                .offset(offset)
                .limit(limit)
            )
            return [_to_record(row) for row in result.all()]

    async def count_posts(self, author_ids: Sequence[int]) -> int:
        async with self.session_maker() as db:
            result = await db.execute(
                select(func.count(Post.id)).filter(
                    Post.author_id.in_(list(author_ids)),
                    Post.deleted_at.is_(None)
                )
            )
            return result.scalar_one()

    async def find_like(self, user_id: int, post_id: int) -> bool:
        return post_id in await self.find_liked_post_ids(user_id, [post_id])

    async def find_liked_post_ids(self, user_id: int, post_ids: Sequence[int]) -> Set[int]:
        async with self.session_maker() as db:
            return await _liked_post_ids(db, user_id, post_ids)


class PostService:
    def __init__(self, db: AsyncSession, on_mutation: Optional[MutationHook] = None):
        self.db = db
        self.on_mutation = on_mutation

    async def create_post(self, user_id: int, post_data: PostCreate) -> FeedPost:
        """Create a post; a repeated idempotency key returns the original post"""
        if post_data.idempotency_key:
            result = await self.db.execute(
                select(Post.id).filter(Post.idempotency_key == post_data.idempotency_key)
            )
            existing_id = result.scalar_one_or_none()
            if existing_id is not None:
                return await self.get_post(existing_id, user_id)

        post = Post(
            caption=post_data.caption,
            media_urls=list(post_data.media_urls),
            author_id=user_id,
            idempotency_key=post_data.idempotency_key
        )
        self.db.add(post)
        await self.db.commit()
        await self.db.refresh(post)

        await self._notify(user_id, post.id, "created")
        return await self.get_post(post.id, user_id)

    async def get_post(self, post_id: int, viewer_id: Optional[int] = None) -> FeedPost:
        result = await self.db.execute(_live_posts_query().filter(Post.id == post_id))
        row = result.first()
        if row is None:
            raise PostNotFound(post_id)

        liked = await _liked_post_ids(self.db, viewer_id, [post_id])
        return to_feed_post(_to_record(row), post_id in liked)

    async def update_post(self, post_id: int, user_id: int, caption: str) -> FeedPost:
        post = await self._get_owned_post(post_id, user_id)
        post.caption = caption
        post.updated_at = datetime.utcnow()
        await self.db.commit()

        await self._notify(user_id, post_id, "updated")
        return await self.get_post(post_id, user_id)

    async def delete_post(self, post_id: int, user_id: int) -> None:
        """Soft delete: the row stays, feeds stop showing it"""
        post = await self._get_owned_post(post_id, user_id)
        post.deleted_at = datetime.utcnow()
        await self.db.commit()

        await self._notify(user_id, post_id, "deleted")

    async def list_posts(self, page: int = 1, limit: int = 10, viewer_id: Optional[int] = None,
                         author_id: Optional[int] = None) -> FeedPage:
        """Live posts newest first, optionally only those of one author"""
        skip = (page - 1) * limit
        query = _live_posts_query()
        count_query = select(func.count(Post.id)).filter(Post.deleted_at.is_(None))
        if author_id is not None:
            query = query.filter(Post.author_id == author_id)
            count_query = count_query.filter(Post.author_id == author_id)

        result = await self.db.execute(
            query
            .order_by(desc(Post.created_at), desc(Post.id))
            .offset(skip)
            .limit(limit)
        )
        records = [_to_record(row) for row in result.all()]
        count = await self.db.execute(count_query)
        total = count.scalar_one()

        liked = await _liked_post_ids(self.db, viewer_id, [record.id for record in records])
        return FeedPage(
            posts=[to_feed_post(record, record.id in liked) for record in records],
            pagination=build_pagination(page, limit, total),
        )

    async def toggle_like(self, post_id: int, user_id: int) -> LikeToggle:
        result = await self.db.execute(
            select(Post.id).filter(Post.id == post_id, Post.deleted_at.is_(None))
        )
        if result.scalar_one_or_none() is None:
            raise PostNotFound(post_id)

        result = await self.db.execute(
            select(Like).filter(Like.user_id == user_id, Like.post_id == post_id)
        )
        like = result.scalar_one_or_none()
        if like:
            await self.db.delete(like)
        else:
            self.db.add(Like(user_id=user_id, post_id=post_id))
        await self.db.commit()

        count = await self.db.execute(select(func.count(Like.id)).filter(Like.post_id == post_id))
        return LikeToggle(liked=like is None, like_count=count.scalar_one())

    async def list_post_likes(self, post_id: int, page: int = 1, limit: int = 20) -> PostLikesPage:
        """Users who liked a post, most recent like first"""
        result = await self.db.execute(
            select(Post.id).filter(Post.id == post_id, Post.deleted_at.is_(None))
        )
        if result.scalar_one_or_none() is None:
            raise PostNotFound(post_id)

        skip = (page - 1) * limit
        result = await self.db.execute(
            select(Like, User)
            .join(User, User.id == Like.user_id)
            .filter(Like.post_id == post_id)
            .order_by(desc(Like.created_at), desc(Like.id))
            .offset(skip)
            .limit(limit)
        )
        likes = [
            PostLike(user=AuthorSummary.model_validate(user), created_at=like.created_at)
            for like, user in result.all()
        ]
        count = await self.db.execute(select(func.count(Like.id)).filter(Like.post_id == post_id))
        return PostLikesPage(likes=likes, pagination=build_pagination(page, limit, count.scalar_one()))

    async def _get_owned_post(self, post_id: int, user_id: int) -> Post:
        result = await self.db.execute(select(Post).filter(Post.id == post_id))
        post = result.scalar_one_or_none()
        if post is None or post.deleted_at is not None:
            raise PostNotFound(post_id)
        if post.author_id != user_id:
            raise NotPostAuthor(post_id)
        return post

    async def _notify(self, author_id: int, post_id: int, action: str):
        if self.on_mutation is None:
            return
        logger.info(f"Post {post_id} {action} by user {author_id}, invalidating feeds")
        await self.on_mutation(author_id, post_id, action)

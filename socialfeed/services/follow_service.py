from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from typing import List, Optional
from common.models import Follow, User


class FollowService:
    """Follow edges between users; also the social graph store the feed reads"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def follow(self, follower_id: int, following_id: int) -> Optional[Follow]:
        existing = await self._get_edge(follower_id, following_id)
        if existing or follower_id == following_id:
            return None

        follow = Follow(
            follower_id=follower_id,
            following_id=following_id
        )
        self.db.add(follow)
        await self.db.commit()
        await self.db.refresh(follow)
        return follow

    async def unfollow(self, follower_id: int, following_id: int) -> bool:
        follow = await self._get_edge(follower_id, following_id)
        if follow:
            await self.db.delete(follow)
            await self.db.commit()
            return True
        return False

    async def toggle_follow(self, follower_id: int, following_id: int) -> bool:
        """Follow if not following yet, otherwise unfollow. Returns the new state."""
        if await self.unfollow(follower_id, following_id):
            return False
        return await self.follow(follower_id, following_id) is not None

    async def is_following(self, follower_id: int, following_id: int) -> bool:
        return await self._get_edge(follower_id, following_id) is not None

    async def get_followers(self, user_id: int, skip: int = 0, limit: int = 100) -> List[User]:
        result = await self.db.execute(
            select(User)
            .join(Follow, Follow.follower_id == User.id)
            .filter(Follow.following_id == user_id)
            .order_by(User.id)
            .offset(skip)
            .limit(limit)
        )
        return result.scalars().all()

    async def get_following(self, user_id: int, skip: int = 0, limit: int = 100) -> List[User]:
        result = await self.db.execute(
            select(User)
            .join(Follow, Follow.following_id == User.id)
            .filter(Follow.follower_id == user_id)
            .order_by(User.id)
            .offset(skip)
            .limit(limit)
        )
        return result.scalars().all()

    async def list_following(self, user_id: int) -> List[int]:
        result = await self.db.execute(
            select(Follow.following_id).filter(Follow.follower_id == user_id)
        )
        return [row[0] for row in result]

    async def list_followers(self, user_id: int) -> List[int]:
        result = await self.db.execute(
            select(Follow.follower_id).filter(Follow.following_id == user_id)
        )
        return [row[0] for row in result]

    async def _get_edge(self, follower_id: int, following_id: int) -> Optional[Follow]:
        result = await self.db.execute(
            select(Follow).filter(
                and_(
                    Follow.follower_id == follower_id,
                    Follow.following_id == following_id
                )
            )
        )
        return result.scalar_one_or_none()

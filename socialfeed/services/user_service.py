from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from typing import Optional
from common.models import Follow, Post, User
from common.schemas import UserCreate, UserProfile, UserUpdate


class UsernameTaken(Exception):
    pass


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_user(self, user_data: UserCreate) -> Optional[User]:
        """Create a user, or return None if the username or email is taken"""
        result = await self.db.execute(
            select(User.id).filter(
                or_(User.username == user_data.username, User.email == user_data.email)
            )
        )
        if result.first() is not None:
            return None

        user = User(**user_data.model_dump())
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def get_user(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(select(User).filter(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_profile(self, user_id: int) -> Optional[UserProfile]:
        """User with follower, following and live post counts"""
        user = await self.get_user(user_id)
        if not user:
            return None

        followers = await self.db.execute(
            select(func.count(Follow.id)).filter(Follow.following_id == user_id)
        )
        following = await self.db.execute(
            select(func.count(Follow.id)).filter(Follow.follower_id == user_id)
        )
        posts = await self.db.execute(
            select(func.count(Post.id)).filter(Post.author_id == user_id, Post.deleted_at.is_(None))
        )
        profile = UserProfile.model_validate(user)
        profile.follower_count = followers.scalar_one()
        profile.following_count = following.scalar_one()
        profile.post_count = posts.scalar_one()
        return profile

    async def update_profile(self, user_id: int, data: UserUpdate) -> Optional[User]:
        """Apply the fields that were sent. Raises UsernameTaken on a clash."""
        user = await self.get_user(user_id)
        if not user:
            return None

        changes = data.model_dump(exclude_unset=True)
        if changes.get("username") is None:
            changes.pop("username", None)
        else:
            result = await self.db.execute(
                select(User.id).filter(User.username == changes["username"], User.id != user_id)
            )
            if result.first() is not None:
                raise UsernameTaken(changes["username"])

        for field, value in changes.items():
            setattr(user, field, value)
        await self.db.commit()
        await self.db.refresh(user)
        return user

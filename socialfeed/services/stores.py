"""
Collaborator interfaces the feed layer is written against.

The SQLAlchemy services (FollowService, PostService) and the Redis
CacheService implement these; tests substitute in-memory doubles.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol, Sequence, Set


@dataclass(frozen=True)
class PostRecord:
    """A live post as returned by the content store, with author and counts."""
    id: int
    author_id: int
    caption: str
    created_at: datetime
    author_username: str
    media_urls: List[str] = field(default_factory=list)
    updated_at: Optional[datetime] = None
    author_first_name: Optional[str] = None
    author_last_name: Optional[str] = None
    author_avatar_url: Optional[str] = None
    like_count: int = 0
    comment_count: int = 0


class SocialGraphStore(Protocol):
    async def list_following(self, user_id: int) -> List[int]: ...

    async def list_followers(self, user_id: int) -> List[int]: ...


class ContentStore(Protocol):
    async def find_posts(self, author_ids: Sequence[int], offset: int, limit: int) -> List[PostRecord]:
        """Live posts by author_ids, newest first."""
        ...

    async def count_posts(self, author_ids: Sequence[int]) -> int: ...

    async def find_like(self, user_id: int, post_id: int) -> bool: ...

    async def find_liked_post_ids(self, user_id: int, post_ids: Sequence[int]) -> Set[int]: ...


class CacheStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def list_keys_by_prefix(self, prefix: str) -> List[str]: ...

    async def delete_keys(self, keys: Sequence[str]) -> int: ...

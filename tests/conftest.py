import os

# Must be set before common.config is first imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from common.database import Base
from common import models  # noqa: F401
from socialfeed.services.stores import PostRecord

EPOCH = datetime(2024, 1, 1)


def at(seconds: int) -> datetime:
    return EPOCH + timedelta(seconds=seconds)


class InMemoryGraph:
    def __init__(self):
        self.edges: Set[Tuple[int, int]] = set()
        self.following_calls = 0
        self.fail_followers = False

    def follow(self, follower_id: int, following_id: int):
        self.edges.add((follower_id, following_id))

    async def list_following(self, user_id: int) -> List[int]:
        self.following_calls += 1
        return [following for follower, following in self.edges if follower == user_id]

    async def list_followers(self, user_id: int) -> List[int]:
        if self.fail_followers:
            raise ConnectionError("graph store unavailable")
        return [follower for follower, following in self.edges if following == user_id]


class InMemoryContent:
    def __init__(self):
        self.posts: List[PostRecord] = []
        self.deleted: Set[int] = set()
        self.likes: Set[Tuple[int, int]] = set()
        self.find_calls = 0
        self.fail = False

    def add_post(self, post_id: int, author_id: int, created_at: datetime, deleted: bool = False) -> PostRecord:
        record = PostRecord(
            id=post_id,
            author_id=author_id,
            caption=f"post {post_id}",
            created_at=created_at,
            author_username=f"user{author_id}",
        )
        self.posts.append(record)
        if deleted:
            self.deleted.add(post_id)
        return record

    def _live(self, author_ids: Sequence[int]) -> List[PostRecord]:
        live = [p for p in self.posts if p.author_id in set(author_ids) and p.id not in self.deleted]
        return sorted(live, key=lambda p: (p.created_at, p.id), reverse=True)

    async def find_posts(self, author_ids: Sequence[int], offset: int, limit: int) -> List[PostRecord]:
        self.find_calls += 1
        if self.fail:
            raise ConnectionError("content store unavailable")
        return self._live(author_ids)[offset:offset + limit]

    async def count_posts(self, author_ids: Sequence[int]) -> int:
        if self.fail:
            raise ConnectionError("content store unavailable")
        return len(self._live(author_ids))

    async def find_like(self, user_id: int, post_id: int) -> bool:
        return (user_id, post_id) in self.likes

    async def find_liked_post_ids(self, user_id: int, post_ids: Sequence[int]) -> Set[int]:
        return {pid for pid in post_ids if (user_id, pid) in self.likes}


class FakeCache:
    """Key-value store with TTLs driven by a manual clock and injectable failures"""

    def __init__(self):
        self.now = 0.0
        self.data: Dict[str, Tuple[str, float]] = {}
        self.fail_get = False
        self.fail_set = False
        self.fail_prefixes: Set[str] = set()

    def advance(self, seconds: float):
        self.now += seconds

    async def get(self, key: str) -> Optional[str]:
        if self.fail_get:
            raise ConnectionError("cache unavailable")
        entry = self.data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self.now:
            del self.data[key]
            return None
        return value

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        if self.fail_set:
            raise ConnectionError("cache unavailable")
        self.data[key] = (value, self.now + ttl_seconds)

    async def list_keys_by_prefix(self, prefix: str) -> List[str]:
        if prefix in self.fail_prefixes:
            raise ConnectionError(f"cache unavailable for {prefix}")
        return [k for k, (_, exp) in self.data.items() if k.startswith(prefix) and exp > self.now]

    async def delete_keys(self, keys: Sequence[str]) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def get_stats(self, prefix: str = "feed:") -> dict:
        keys = [k for k, (_, exp) in self.data.items() if k.startswith(prefix) and exp > self.now]
        return {
            "cached_feed_pages": len(keys),
            "cached_users": len({k[len(prefix):].split(":", 1)[0] for k in keys}),
            "memory_used_mb": 0.0,
        }


@pytest.fixture
def graph():
    return InMemoryGraph()


@pytest.fixture
def content():
    return InMemoryContent()


@pytest.fixture
def cache():
    return FakeCache()


@pytest.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'feed.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()

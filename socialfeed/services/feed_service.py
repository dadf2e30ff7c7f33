"""
Personalized feed: composition plus a read-through page cache.

FeedComposer builds a page of posts written by a user or anyone they follow,
newest first. FeedService puts a Redis page cache in front of it under keys
of the form ``feed:{user_id}:{page}:{limit}`` and removes those pages for an
author and all of the author's followers when the author's posts change.

The cache is an optimization only. Cache read, write and delete failures are
logged and swallowed; failures of the social graph or content store on the
read path propagate to the caller.
"""
import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pydantic import ValidationError

from common.schemas import AuthorSummary, FeedPage, FeedPost, Pagination
from .metrics_service import MetricsService, track_time
from .stores import CacheStore, ContentStore, PostRecord, SocialGraphStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300
DEFAULT_KEY_PREFIX = "feed:"
DEFAULT_INVALIDATION_CONCURRENCY = 50


@dataclass(frozen=True)
class FeedCacheConfig:
    ttl_seconds: int = DEFAULT_TTL_SECONDS
    key_prefix: str = DEFAULT_KEY_PREFIX
    # Upper bound on users whose pages are scanned and deleted at the same time
    invalidation_concurrency: int = DEFAULT_INVALIDATION_CONCURRENCY


def feed_cache_key(user_id: int, page: int, limit: int, prefix: str = DEFAULT_KEY_PREFIX) -> str:
    return f"{prefix}{user_id}:{page}:{limit}"


def user_key_prefix(user_id: int, prefix: str = DEFAULT_KEY_PREFIX) -> str:
    # Trailing colon keeps user 1 from matching user 12's pages
    return f"{prefix}{user_id}:"


def build_pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit))


def to_feed_post(record: PostRecord, is_liked: bool) -> FeedPost:
    return FeedPost(
        id=record.id,
        caption=record.caption,
        media_urls=list(record.media_urls),
        author_id=record.author_id,
        author=AuthorSummary(
            id=record.author_id,
            username=record.author_username,
            first_name=record.author_first_name,
            last_name=record.author_last_name,
            avatar_url=record.author_avatar_url,
        ),
        like_count=record.like_count,
        comment_count=record.comment_count,
        created_at=record.created_at,
        updated_at=record.updated_at,
        is_liked=is_liked,
    )


class FeedComposer:
    def __init__(self, graph: SocialGraphStore, content: ContentStore,
                 metrics: Optional[MetricsService] = None):
        self.graph = graph
        self.content = content
        self.metrics = metrics

    @track_time("feed.compose")
    async def compose_feed(self, user_id: Optional[int], page: int = 1, limit: int = 10) -> FeedPage:
        """
        Build one page of the feed for user_id.

        Authors are the users user_id follows plus user_id itself. The page
        query and the count query run concurrently and are not snapshot
        isolated, so total may drift slightly under concurrent writes.
        """
        if page < 1 or limit < 1:
            raise ValueError(f"page and limit must be positive, got page={page} limit={limit}")

        author_ids = set()
        if user_id is not None:
            author_ids.update(await self.graph.list_following(user_id))
            author_ids.add(user_id)
        author_ids = sorted(author_ids)

        if author_ids:
            records, total = await asyncio.gather(
                self.content.find_posts(author_ids, offset=(page - 1) * limit, limit=limit),
                self.content.count_posts(author_ids),
            )
        else:
            records, total = [], 0

        liked = set()
        if user_id is not None and records:
            liked = await self.content.find_liked_post_ids(user_id, [record.id for record in records])

        return FeedPage(
            posts=[to_feed_post(record, record.id in liked) for record in records],
            pagination=build_pagination(page, limit, total),
        )


@dataclass
class InvalidationResult:
    user_ids: List[int] = field(default_factory=list)
    keys_deleted: int = 0
    failures: Dict[int, str] = field(default_factory=dict)
    followers_lookup_failed: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures and not self.followers_lookup_failed


class FeedService:
    def __init__(self, composer: FeedComposer, cache: Optional[CacheStore] = None,
                 config: FeedCacheConfig = FeedCacheConfig(),
                 metrics: Optional[MetricsService] = None):
        self.composer = composer
        self.cache = cache
        self.config = config
        self.metrics = metrics

    def cache_key(self, user_id: int, page: int, limit: int) -> str:
        return feed_cache_key(user_id, page, limit, self.config.key_prefix)

    async def get_feed(self, user_id: int, page: int = 1, limit: int = 10) -> FeedPage:
        """Serve a cached page when present, otherwise compose and cache it"""
        key = self.cache_key(user_id, page, limit)

        cached = await self._read_cache(key)
        if cached is not None:
            logger.debug(f"Feed cache hit for user {user_id} ({key})")
            self._count("feed.cache.hit")
            return cached

        logger.debug(f"Feed cache miss for user {user_id} ({key})")
        self._count("feed.cache.miss")

        feed_page = await self.composer.compose_feed(user_id, page, limit)
        await self._write_cache(key, feed_page)
        return feed_page

    async def invalidate_user_pages(self, user_id: int) -> int:
        """Delete every cached page of one user's feed. Raises on cache errors."""
        if self.cache is None:
            return 0
        keys = await self.cache.list_keys_by_prefix(user_key_prefix(user_id, self.config.key_prefix))
        if not keys:
            return 0
        return await self.cache.delete_keys(keys)

    async def invalidate_feed_cache(self, user_id: int) -> InvalidationResult:
        """
        Drop cached feed pages of user_id and of everyone following user_id.

        Each user's pages are deleted independently: a failure for one user is
        logged and recorded in the result, and the remaining deletions still run.
        """
        result = InvalidationResult()
        if self.cache is None:
            return result

        await self._invalidate_batch([user_id], result)

        try:
            follower_ids = await self.composer.graph.list_followers(user_id)
        except Exception as e:
            logger.error(f"Could not load followers of user {user_id} for feed invalidation: {e}")
            result.followers_lookup_failed = True
            self._count("feed.cache.error")
            follower_ids = []

        followers = [fid for fid in dict.fromkeys(follower_ids) if fid != user_id]
        await self._invalidate_batch(followers, result)

        logger.info(
            f"Invalidated {result.keys_deleted} feed pages for user {user_id} "
            f"and {len(followers)} followers ({len(result.failures)} failures)"
        )
        self._count("feed.invalidation.keys_deleted", result.keys_deleted)
        return result

    async def _invalidate_batch(self, user_ids: List[int], result: InvalidationResult):
        semaphore = asyncio.Semaphore(max(1, self.config.invalidation_concurrency))

        async def invalidate(uid: int) -> int:
            async with semaphore:
                return await self.invalidate_user_pages(uid)

        outcomes = await asyncio.gather(
            *(invalidate(uid) for uid in user_ids),
            return_exceptions=True
        )
        for uid, outcome in zip(user_ids, outcomes):
            result.user_ids.append(uid)
            if isinstance(outcome, BaseException):
                logger.warning(f"Feed cache invalidation failed for user {uid}: {outcome}")
                result.failures[uid] = str(outcome)
                self._count("feed.cache.error")
            else:
                result.keys_deleted += outcome

    async def _read_cache(self, key: str) -> Optional[FeedPage]:
        if self.cache is None:
            return None
        try:
            raw = await self.cache.get(key)
        except Exception as e:
            logger.warning(f"Feed cache read failed for {key}, composing fresh page: {e}")
            self._count("feed.cache.error")
            return None
        if raw is None:
            return None
        try:
            return FeedPage.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding undecodable feed cache entry {key}: {e}")
            self._count("feed.cache.error")
            return None

    async def _write_cache(self, key: str, feed_page: FeedPage):
        if self.cache is None:
            return
        try:
            await self.cache.set_with_ttl(key, feed_page.model_dump_json(), self.config.ttl_seconds)
        except Exception as e:
            logger.warning(f"Feed cache write failed for {key}: {e}")
            self._count("feed.cache.error")

    def _count(self, metric: str, value: int = 1):
        if self.metrics is not None:
            self.metrics.increment(metric, value)

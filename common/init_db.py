import asyncio
import logging
from sqlalchemy import text
from .database import engine, Base
from . import models  # noqa: F401  registers tables on Base.metadata

logger = logging.getLogger(__name__)

FEED_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_posts_created ON posts(created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_posts_live_author_created "
    "ON posts(author_id, created_at DESC) WHERE deleted_at IS NULL",
    "CREATE INDEX IF NOT EXISTS idx_follows_follower ON follows(follower_id)",
    "CREATE INDEX IF NOT EXISTS idx_follows_following ON follows(following_id)",
    "CREATE INDEX IF NOT EXISTS idx_likes_post ON likes(post_id)",
    "CREATE INDEX IF NOT EXISTS idx_comments_post ON comments(post_id)",
]


async def init_database():
    """Create tables and the indexes the feed queries rely on"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        for statement in FEED_INDEXES:
            await conn.execute(text(statement))
    logger.info("Database initialized with %d feed indexes", len(FEED_INDEXES))


async def main():
    await init_database()
    await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    asyncio.run(main())
